"""GitLab merge-request decoration through discussions and commit statuses."""

from __future__ import annotations

import logging
from typing import List, Optional

from .discussions import DiscussionAwareDecorator
from .errors import ApiError, ContractViolationError
from .gitlab_client import GitlabClient, GitlabDiscussion, GitlabNote, LinePosition, MergeRequest
from .models import AnalysisResult, AuthToken, Issue

logger = logging.getLogger(__name__)


class GitlabDecorator(DiscussionAwareDecorator[GitlabDiscussion, GitlabNote]):
    platform = "gitlab"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._client: Optional[GitlabClient] = None
        self._merge_request: Optional[MergeRequest] = None
        self._user_id: Optional[int] = None

    @property
    def client(self) -> GitlabClient:
        if self._client is None:
            raise ContractViolationError("GitLab client used before authentication.")
        return self._client

    @property
    def merge_request(self) -> MergeRequest:
        if self._merge_request is None:
            raise ContractViolationError("GitLab merge request used before it was loaded.")
        return self._merge_request

    def validate_token(self, token: AuthToken) -> None:
        GitlabClient(self._binding.url, token, session=self._session).get_project(self._binding.repository)

    def connect(self, token: AuthToken) -> None:
        self._client = GitlabClient(self._binding.url, token, session=self._session)
        self._user_id = self._client.get_current_user_id()
        self._merge_request = None

    def cleanup(self, analysis: AnalysisResult) -> None:
        self._merge_request = self.client.get_merge_request(self._binding.repository, analysis.pull_request_id)
        super().cleanup(analysis)

    def list_discussions(self) -> List[GitlabDiscussion]:
        return list(self.client.iter_discussions(self.merge_request))

    def discussion_id(self, discussion: GitlabDiscussion) -> str:
        return discussion.id

    def discussion_notes(self, discussion: GitlabDiscussion) -> List[GitlabNote]:
        return discussion.notes

    def is_closed(self, discussion: GitlabDiscussion) -> bool:
        return any(note.resolved for note in discussion.notes)

    def note_body(self, note: GitlabNote) -> str:
        return note.body

    def is_own_note(self, note: GitlabNote) -> bool:
        return note.author_id is not None and note.author_id == self._user_id

    def is_user_note(self, note: GitlabNote) -> bool:
        return not note.system

    def add_note(self, discussion: GitlabDiscussion, body: str) -> None:
        self.client.add_note(self.merge_request, discussion.id, body)

    def resolve_discussion(self, discussion: GitlabDiscussion) -> None:
        self.client.resolve_discussion(self.merge_request, discussion.id)

    def delete_discussion(self, discussion: GitlabDiscussion) -> None:
        for note in discussion.notes:
            if self.is_own_note(note):
                self.client.delete_note(self.merge_request, discussion.id, note.id)

    def create_issue_discussion(self, analysis: AnalysisResult, issue: Issue, body: str) -> None:
        merge_request = self.merge_request
        if not merge_request.base_sha or not merge_request.start_sha or not merge_request.head_sha:
            raise ApiError(f"GitLab merge request {merge_request.iid} has no diff references to anchor discussions.")

        position = LinePosition(
            base_sha=merge_request.base_sha,
            start_sha=merge_request.start_sha,
            head_sha=merge_request.head_sha,
            path=str(issue.path),
            line=int(issue.line or 0),
        )
        self.client.create_discussion(merge_request, body, position=position)
        logger.debug("Opened issue discussion", extra={"issue_key": issue.key, "path": issue.path, "line": issue.line})

    def create_summary_discussion(self, analysis: AnalysisResult, body: str) -> str:
        discussion = self.client.create_discussion(self.merge_request, body)
        if analysis.passed:
            self.client.resolve_discussion(self.merge_request, discussion.id)
        return discussion.id

    def submit_status(self, analysis: AnalysisResult) -> None:
        self.client.set_commit_status(
            self.merge_request.project_id,
            analysis.commit_sha,
            "success" if analysis.passed else "failed",
            analysis.dashboard_url,
            coverage=analysis.new_coverage,
        )

    def pull_request_url(self, analysis: AnalysisResult) -> Optional[str]:
        return self.merge_request.web_url
