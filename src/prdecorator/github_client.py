"""GitHub REST client for check runs and pull-request comments."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

import requests

from .errors import ApiError
from .models import AuthToken
from .pagination import PageTraverser
from .rest import Clock, RestClient, utc_now

logger = logging.getLogger(__name__)

_GITHUB_HEADERS = {"Accept": "application/vnd.github+json", "X-GitHub-Api-Version": "2022-11-28"}


@dataclass(frozen=True, slots=True)
class GithubComment:
    id: int
    body: str
    author_login: str
    author_type: str


@dataclass(frozen=True, slots=True)
class CheckRun:
    id: int
    html_url: Optional[str]


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_comment(item: Dict[str, Any]) -> GithubComment:
    comment_id = item.get("id")
    if comment_id is None:
        raise ApiError(f"GitHub comment payload is missing an id: {item}")
    user = item.get("user") or {}
    return GithubComment(
        id=int(comment_id),
        body=str(item.get("body") or ""),
        author_login=str(user.get("login") or ""),
        author_type=str(user.get("type") or ""),
    )


class GithubClient:
    """Small, typed client for the GitHub check-run and issue-comment APIs."""

    def __init__(
        self,
        api_url: str,
        token: AuthToken,
        repository_path: str,
        session: Optional[requests.Session] = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize a client bound to one repository.

        Args:
            api_url: Normalised REST root, e.g. ``https://api.github.com``.
            token: Installation token for this run.
            repository_path: Repository as ``owner/name``.
            session: Optional pre-built session, mostly for tests.
            clock: Source of the current time for ``completed_at``.
        """
        self._repository_path = repository_path
        self._clock = clock
        self._rest = RestClient(api_url, token=token, headers=_GITHUB_HEADERS, session=session, clock=clock)
        self._traverser = PageTraverser(self._rest)

    def _repo_path(self, path: str) -> str:
        return f"repos/{self._repository_path}/{path.lstrip('/')}"

    def get_repository(self) -> Dict[str, Any]:
        payload = self._rest.get_json(f"repos/{self._repository_path}")
        if not isinstance(payload, dict) or "html_url" not in payload:
            raise ApiError(f"GitHub repository payload is missing required fields: {self._repository_path}")
        return payload

    def create_check_run(
        self,
        name: str,
        head_sha: str,
        conclusion: str,
        title: str,
        summary: str,
        annotations: List[Dict[str, Any]],
        details_url: Optional[str] = None,
        external_id: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ) -> CheckRun:
        """Create a completed check run carrying the first annotation batch."""
        body: Dict[str, Any] = {
            "name": name,
            "head_sha": head_sha,
            "status": "completed",
            "conclusion": conclusion,
            "completed_at": _format_timestamp(self._clock()),
            "output": {"title": title, "summary": summary, "annotations": annotations},
        }
        if details_url:
            body["details_url"] = details_url
        if external_id:
            body["external_id"] = external_id
        if started_at is not None:
            body["started_at"] = _format_timestamp(started_at)

        payload = self._rest.post_json(self._repo_path("check-runs"), json=body)
        check_run_id = payload.get("id") if isinstance(payload, dict) else None
        if check_run_id is None:
            raise ApiError("GitHub check run response did not include an id.")

        logger.info("Created check run", extra={"check_run_id": check_run_id, "annotations": len(annotations)})
        return CheckRun(id=int(check_run_id), html_url=payload.get("html_url"))

    def update_check_run_annotations(
        self,
        check_run_id: int,
        title: str,
        summary: str,
        annotations: List[Dict[str, Any]],
    ) -> None:
        """Append one more annotation batch to an existing check run."""
        self._rest.patch_json(
            self._repo_path(f"check-runs/{check_run_id}"),
            json={"output": {"title": title, "summary": summary, "annotations": annotations}},
        )
        logger.debug("Appended check run annotations", extra={"check_run_id": check_run_id, "annotations": len(annotations)})

    def iter_issue_comments(self, pull_request_number: str) -> Iterator[GithubComment]:
        """Iterate every comment on the pull request conversation, across pages."""
        for item in self._traverser.iter_items(
            self._rest.build_url(self._repo_path(f"issues/{pull_request_number}/comments")),
            params={"per_page": 100},
        ):
            yield _parse_comment(item)

    def create_issue_comment(self, pull_request_number: str, body: str) -> GithubComment:
        payload = self._rest.post_json(self._repo_path(f"issues/{pull_request_number}/comments"), json={"body": body})
        return _parse_comment(payload)

    def delete_issue_comment(self, comment_id: int) -> None:
        self._rest.delete(self._repo_path(f"issues/comments/{comment_id}"))
