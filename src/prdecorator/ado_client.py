"""Azure DevOps REST API client for pull-request threads and statuses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from requests.auth import HTTPBasicAuth

from .errors import ApiError
from .models import AuthToken
from .rest import RestClient

THREAD_STATUS_ACTIVE = "active"
THREAD_STATUS_CLOSED = "closed"
COMMENT_TYPE_TEXT = "text"


@dataclass(frozen=True, slots=True)
class AdoComment:
    id: int
    content: str
    author_id: Optional[str]
    comment_type: str


@dataclass(frozen=True, slots=True)
class AdoThread:
    id: int
    status: Optional[str]
    is_deleted: bool
    comments: List[AdoComment] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class AdoPullRequest:
    id: int
    remote_url: str

    @property
    def web_url(self) -> str:
        return f"{self.remote_url}/pullRequest/{self.id}"


class AdoClient:
    """Small, typed client for Azure DevOps Git pull request APIs."""

    _API_VERSION = "4.1"
    _API_VERSION_PREVIEW = "4.1-preview"

    def __init__(
        self,
        url: str,
        token: AuthToken,
        project: str,
        repository_name: str,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize an authenticated Azure DevOps API client.

        Args:
            url: Collection URL, e.g. ``https://dev.azure.com/org``.
            token: Personal access token for this run.
            project: Azure DevOps project name.
            repository_name: Git repository name within the project.
            session: Optional pre-built session, mostly for tests.
        """
        self._url = url.rstrip("/")
        self._project = project
        self._repository_name = repository_name
        self._rest = RestClient(self._url, auth=HTTPBasicAuth("", token.value), session=session)

    def _build_url(self, path: str) -> str:
        """Build a fully qualified API URL from a path below the repository."""
        return (
            f"{self._url}/{quote(self._project, safe='')}/_apis/git/repositories/"
            f"{quote(self._repository_name, safe='')}/{path.lstrip('/')}".rstrip("/")
        )

    def _pull_request_path(self, pr_id: int, path: str = "") -> str:
        return self._build_url(f"pullRequests/{pr_id}/{path.lstrip('/')}")

    def _json(self, method: str, url: str, api_version: str = _API_VERSION, body: Any = None) -> Dict[str, Any]:
        payload = self._rest.request_json(method, url, params={"api-version": api_version}, json=body)
        if not isinstance(payload, dict):
            raise ApiError(f"Azure DevOps API returned unexpected payload shape: {method} {url}")
        return payload

    def get_repository(self) -> Dict[str, Any]:
        return self._json("GET", self._build_url(""))

    def get_pull_request(self, pr_id: int) -> AdoPullRequest:
        """Fetch a pull request together with the repository it belongs to.

        Raises:
            ApiError: If the request fails or required fields are missing.
        """
        payload = self._json("GET", self._pull_request_path(pr_id))
        repository = payload.get("repository") or {}

        pull_request_id = payload.get("pullRequestId")
        remote_url = repository.get("remoteUrl")
        if pull_request_id is None or not remote_url:
            raise ApiError(
                "Azure DevOps pull request payload is missing required fields: "
                f"pr_id={pr_id}, payload={payload}"
            )

        return AdoPullRequest(
            id=int(pull_request_id),
            remote_url=str(remote_url),
        )

    def get_authenticated_user_id(self) -> str:
        payload = self._json("GET", f"{self._url}/_apis/ConnectionData", api_version=self._API_VERSION_PREVIEW)
        user_id = (payload.get("authenticatedUser") or {}).get("id")
        if not user_id:
            raise ApiError("Azure DevOps connection data did not include the authenticated user.")
        return str(user_id)

    def list_threads(self, pr_id: int) -> List[AdoThread]:
        """List discussion threads, with their comments, for a pull request."""
        payload = self._json("GET", self._pull_request_path(pr_id, "threads"))
        threads: List[AdoThread] = []

        for item in payload.get("value", []):
            thread_id = item.get("id")
            if thread_id is None:
                continue

            comments: List[AdoComment] = []
            for comment in item.get("comments") or []:
                comment_id = comment.get("id")
                if comment_id is None:
                    continue
                author = comment.get("author") or {}
                comments.append(
                    AdoComment(
                        id=int(comment_id),
                        content=str(comment.get("content") or ""),
                        author_id=author.get("id"),
                        comment_type=str(comment.get("commentType") or COMMENT_TYPE_TEXT).lower(),
                    )
                )

            threads.append(
                AdoThread(
                    id=int(thread_id),
                    status=(item.get("status") or None),
                    is_deleted=bool(item.get("isDeleted", False)),
                    comments=comments,
                )
            )

        return threads

    def create_thread(
        self,
        pr_id: int,
        content: str,
        file_path: Optional[str] = None,
        line: Optional[int] = None,
    ) -> int:
        """Open an active thread, anchored to ``file_path``/``line`` when given.

        Returns:
            The new thread id.
        """
        body: Dict[str, Any] = {
            "comments": [{"content": content, "commentType": COMMENT_TYPE_TEXT}],
            "status": THREAD_STATUS_ACTIVE,
        }
        if file_path is not None and line is not None:
            position = {"line": line, "offset": 1}
            body["threadContext"] = {
                "filePath": file_path if file_path.startswith("/") else f"/{file_path}",
                "rightFileStart": position,
                "rightFileEnd": position,
            }

        payload = self._json("POST", self._pull_request_path(pr_id, "threads"), body=body)
        thread_id = payload.get("id")
        if thread_id is None:
            raise ApiError(f"Azure DevOps thread response did not include an id: pr_id={pr_id}")
        return int(thread_id)

    def add_comment(self, pr_id: int, thread_id: int, content: str) -> None:
        self._json(
            "POST",
            self._pull_request_path(pr_id, f"threads/{thread_id}/comments"),
            body={"content": content, "commentType": COMMENT_TYPE_TEXT},
        )

    def resolve_thread(self, pr_id: int, thread_id: int) -> None:
        self._json("PATCH", self._pull_request_path(pr_id, f"threads/{thread_id}"), body={"status": THREAD_STATUS_CLOSED})

    def delete_comment(self, pr_id: int, thread_id: int, comment_id: int) -> None:
        self._rest.request(
            "DELETE",
            self._pull_request_path(pr_id, f"threads/{thread_id}/comments/{comment_id}"),
            params={"api-version": self._API_VERSION},
        )

    def submit_status(
        self,
        pr_id: int,
        state: str,
        description: str,
        context_name: str,
        target_url: str,
    ) -> None:
        """Post a pull-request status in the ``sonarqube/qualitygate`` genre."""
        self._json(
            "POST",
            self._pull_request_path(pr_id, "statuses"),
            api_version=self._API_VERSION_PREVIEW,
            body={
                "state": state,
                "description": description,
                "context": {"genre": "sonarqube/qualitygate", "name": context_name},
                "targetUrl": target_url,
            },
        )
