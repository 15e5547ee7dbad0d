"""GitLab REST client for merge-request discussions and commit statuses."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import quote

import requests

from .errors import ApiError
from .models import AuthToken
from .pagination import PageTraverser
from .rest import RestClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GitlabNote:
    id: int
    body: str
    author_id: Optional[int]
    system: bool
    resolved: bool


@dataclass(frozen=True, slots=True)
class GitlabDiscussion:
    id: str
    notes: List[GitlabNote]


@dataclass(frozen=True, slots=True)
class MergeRequest:
    iid: int
    project_id: int
    web_url: str
    base_sha: Optional[str]
    start_sha: Optional[str]
    head_sha: Optional[str]


@dataclass(frozen=True, slots=True)
class LinePosition:
    """Anchor of a line discussion in the merge-request diff."""

    base_sha: str
    start_sha: str
    head_sha: str
    path: str
    line: int

    def to_form(self) -> Dict[str, str]:
        return {
            "position[base_sha]": self.base_sha,
            "position[start_sha]": self.start_sha,
            "position[head_sha]": self.head_sha,
            "position[old_path]": self.path,
            "position[new_path]": self.path,
            "position[new_line]": str(self.line),
            "position[position_type]": "text",
        }


def _parse_note(item: Dict[str, Any]) -> GitlabNote:
    author = item.get("author") or {}
    author_id = author.get("id")
    return GitlabNote(
        id=int(item["id"]),
        body=str(item.get("body") or ""),
        author_id=int(author_id) if author_id is not None else None,
        system=bool(item.get("system", False)),
        resolved=bool(item.get("resolved", False)),
    )


def _parse_discussion(item: Dict[str, Any]) -> GitlabDiscussion:
    try:
        return GitlabDiscussion(
            id=str(item["id"]),
            notes=[_parse_note(note) for note in item.get("notes", [])],
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ApiError(f"GitLab discussion payload is malformed: {item}") from exc


class GitlabClient:
    """Small, typed client for the GitLab v4 merge-request APIs."""

    def __init__(self, api_url: str, token: AuthToken, session: Optional[requests.Session] = None) -> None:
        self._rest = RestClient(api_url, headers={"PRIVATE-TOKEN": token.value}, session=session)
        self._traverser = PageTraverser(self._rest)

    def get_project(self, project_path: str) -> Dict[str, Any]:
        """Fetch a project by its ``group/name`` path."""
        payload = self._rest.get_json(f"projects/{quote(project_path, safe='')}")
        if not isinstance(payload, dict) or "id" not in payload:
            raise ApiError(f"GitLab project payload is missing required fields: {project_path}")
        return payload

    def get_merge_request(self, project_path: str, merge_request_iid: str) -> MergeRequest:
        payload = self._rest.get_json(f"projects/{quote(project_path, safe='')}/merge_requests/{merge_request_iid}")
        try:
            diff_refs = payload.get("diff_refs") or {}
            return MergeRequest(
                iid=int(payload["iid"]),
                project_id=int(payload.get("source_project_id") or payload["project_id"]),
                web_url=str(payload["web_url"]),
                base_sha=diff_refs.get("base_sha"),
                start_sha=diff_refs.get("start_sha"),
                head_sha=diff_refs.get("head_sha"),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ApiError(
                "GitLab merge request payload is missing required fields: "
                f"project={project_path}, iid={merge_request_iid}"
            ) from exc

    def get_current_user_id(self) -> int:
        payload = self._rest.get_json("user")
        try:
            return int(payload["id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ApiError("GitLab user payload did not include an id.") from exc

    def _discussions_path(self, merge_request: MergeRequest) -> str:
        return f"projects/{merge_request.project_id}/merge_requests/{merge_request.iid}/discussions"

    def iter_discussions(self, merge_request: MergeRequest) -> Iterator[GitlabDiscussion]:
        """Iterate every discussion of the merge request, across pages."""
        for item in self._traverser.iter_items(
            self._rest.build_url(self._discussions_path(merge_request)),
            params={"per_page": 100},
        ):
            yield _parse_discussion(item)

    def create_discussion(
        self,
        merge_request: MergeRequest,
        body: str,
        position: Optional[LinePosition] = None,
    ) -> GitlabDiscussion:
        """Open a discussion, anchored to a diff line when ``position`` is given."""
        form = {"body": body}
        if position is not None:
            form.update(position.to_form())
        payload = self._rest.post_json(self._discussions_path(merge_request), data=form)
        return _parse_discussion(payload)

    def add_note(self, merge_request: MergeRequest, discussion_id: str, body: str) -> None:
        self._rest.request(
            "POST",
            f"{self._discussions_path(merge_request)}/{discussion_id}/notes",
            data={"body": body},
        )

    def resolve_discussion(self, merge_request: MergeRequest, discussion_id: str) -> None:
        self._rest.put(f"{self._discussions_path(merge_request)}/{discussion_id}", params={"resolved": "true"})

    def delete_note(self, merge_request: MergeRequest, discussion_id: str, note_id: int) -> None:
        self._rest.delete(f"{self._discussions_path(merge_request)}/{discussion_id}/notes/{note_id}")

    def set_commit_status(
        self,
        project_id: int,
        commit_sha: str,
        state: str,
        target_url: str,
        coverage: Optional[float] = None,
    ) -> None:
        """Publish the quality-gate outcome as an external commit status.

        GitLab answers ``400 Cannot transition status`` when the commit already
        carries the same state; that response is treated as success.
        """
        form: Dict[str, Any] = {
            "name": "SonarQube",
            "target_url": target_url,
            "description": "SonarQube Status",
        }
        if coverage is not None:
            form["coverage"] = str(coverage)

        try:
            self._rest.request(
                "POST",
                f"projects/{project_id}/statuses/{commit_sha}",
                params={"state": state},
                data=form,
            )
        except ApiError as exc:
            if exc.status_code == 400 and "Cannot transition status" in str(exc):
                logger.debug("Commit status already set", extra={"state": state, "commit_sha": commit_sha})
                return
            raise
