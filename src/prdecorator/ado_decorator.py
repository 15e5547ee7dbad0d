"""Azure DevOps pull-request decoration through comment threads and statuses."""

from __future__ import annotations

from typing import List, Optional

from .ado_client import COMMENT_TYPE_TEXT, THREAD_STATUS_CLOSED, AdoClient, AdoComment, AdoPullRequest, AdoThread
from .discussions import DiscussionAwareDecorator
from .errors import ConfigurationError, ContractViolationError
from .models import AnalysisResult, AuthToken, Issue


class AzureDevOpsDecorator(DiscussionAwareDecorator[AdoThread, AdoComment]):
    platform = "azure_devops"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._client: Optional[AdoClient] = None
        self._pull_request: Optional[AdoPullRequest] = None
        self._user_id: Optional[str] = None

    @property
    def client(self) -> AdoClient:
        if self._client is None:
            raise ContractViolationError("Azure DevOps client used before authentication.")
        return self._client

    @property
    def pull_request(self) -> AdoPullRequest:
        if self._pull_request is None:
            raise ContractViolationError("Azure DevOps pull request used before it was loaded.")
        return self._pull_request

    def _build_client(self, token: AuthToken) -> AdoClient:
        if not self._binding.slug:
            raise ConfigurationError("No repository name has been set for Azure DevOps connections.")
        return AdoClient(
            self._binding.url,
            token,
            project=self._binding.repository,
            repository_name=self._binding.slug,
            session=self._session,
        )

    def validate_token(self, token: AuthToken) -> None:
        self._build_client(token).get_repository()

    def connect(self, token: AuthToken) -> None:
        self._client = self._build_client(token)
        self._user_id = self._client.get_authenticated_user_id()
        self._pull_request = None

    def _pull_request_id(self, analysis: AnalysisResult) -> int:
        try:
            return int(analysis.pull_request_id)
        except ValueError as exc:
            raise ContractViolationError(f"Could not parse pull request id '{analysis.pull_request_id}'.") from exc

    def cleanup(self, analysis: AnalysisResult) -> None:
        self._pull_request = self.client.get_pull_request(self._pull_request_id(analysis))
        super().cleanup(analysis)

    def list_discussions(self) -> List[AdoThread]:
        return [thread for thread in self.client.list_threads(self.pull_request.id) if not thread.is_deleted]

    def discussion_id(self, discussion: AdoThread) -> str:
        return str(discussion.id)

    def discussion_notes(self, discussion: AdoThread) -> List[AdoComment]:
        return discussion.comments

    def is_closed(self, discussion: AdoThread) -> bool:
        return discussion.is_deleted or (discussion.status or "").lower() == THREAD_STATUS_CLOSED

    def note_body(self, note: AdoComment) -> str:
        return note.content

    def is_own_note(self, note: AdoComment) -> bool:
        return note.author_id is not None and note.author_id == self._user_id

    def is_user_note(self, note: AdoComment) -> bool:
        return note.comment_type == COMMENT_TYPE_TEXT

    def add_note(self, discussion: AdoThread, body: str) -> None:
        self.client.add_comment(self.pull_request.id, discussion.id, body)

    def resolve_discussion(self, discussion: AdoThread) -> None:
        self.client.resolve_thread(self.pull_request.id, discussion.id)

    def delete_discussion(self, discussion: AdoThread) -> None:
        for comment in discussion.comments:
            if self.is_own_note(comment):
                self.client.delete_comment(self.pull_request.id, discussion.id, comment.id)

    def create_issue_discussion(self, analysis: AnalysisResult, issue: Issue, body: str) -> None:
        self.client.create_thread(self.pull_request.id, body, file_path=issue.path, line=issue.line)

    def create_summary_discussion(self, analysis: AnalysisResult, body: str) -> str:
        thread_id = self.client.create_thread(self.pull_request.id, body)
        if analysis.passed:
            self.client.resolve_thread(self.pull_request.id, thread_id)
        return str(thread_id)

    def submit_status(self, analysis: AnalysisResult) -> None:
        self.client.submit_status(
            self.pull_request.id,
            state="succeeded" if analysis.passed else "failed",
            description=f"SonarQube Quality Gate - {analysis.project_name} ({analysis.project_key})",
            context_name=analysis.project_key,
            target_url=analysis.dashboard_url,
        )

    def pull_request_url(self, analysis: AnalysisResult) -> Optional[str]:
        return self.pull_request.web_url
