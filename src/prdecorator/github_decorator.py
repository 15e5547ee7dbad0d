"""GitHub pull-request decoration through check runs and issue comments."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .auth import normalize_github_api_url
from .decorator import PullRequestDecorator
from .errors import ContractViolationError
from .formatting import parse_marker
from .github_client import CheckRun, GithubClient
from .models import AnalysisResult, AuthToken, Issue
from .report import Annotation, build_annotations

logger = logging.getLogger(__name__)


def check_run_name(analysis: AnalysisResult) -> str:
    return f"{analysis.project_name} Sonarqube Results"


def check_run_title(analysis: AnalysisResult) -> str:
    return f"Quality Gate {'success' if analysis.passed else 'failed'}"


class GithubDecorator(PullRequestDecorator):
    """Publishes a check run with annotations plus one summary comment."""

    platform = "github"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._client: Optional[GithubClient] = None
        self._repository_url: Optional[str] = None

    @property
    def client(self) -> GithubClient:
        if self._client is None:
            raise ContractViolationError("GitHub client used before authentication.")
        return self._client

    def _build_client(self, token: AuthToken) -> GithubClient:
        return GithubClient(
            normalize_github_api_url(self._binding.url),
            token,
            self._binding.repository,
            session=self._session,
            clock=self._clock,
        )

    def validate_token(self, token: AuthToken) -> Dict[str, Any]:
        return self._build_client(token).get_repository()

    def connect(self, token: AuthToken) -> None:
        self._client = self._build_client(token)
        if token.repository is not None:
            self._repository_url = token.repository.html_url
        else:
            self._repository_url = str(self._client.get_repository()["html_url"])

    def cleanup(self, analysis: AnalysisResult) -> None:
        # every run creates a new check run, so nothing from earlier runs needs removing
        logger.debug("Check runs are replaced per run; skipping cleanup", extra={"commit_sha": analysis.commit_sha})

    def publish(self, analysis: AnalysisResult, selected: List[Issue]) -> None:
        annotations = build_annotations(selected, analysis)
        summary = self._formatter.format_summary(analysis)
        title = check_run_title(analysis)
        check_run: Optional[CheckRun] = None

        def upload(_index: int, batch: List[Annotation]) -> None:
            nonlocal check_run
            payload = [annotation.to_github() for annotation in batch]
            if check_run is None:
                check_run = self._create_check_run(analysis, title, summary, payload)
            else:
                self.client.update_check_run_annotations(check_run.id, title, summary, payload)

        self.upload_in_batches(annotations, upload)

        if check_run is None:
            self._create_check_run(analysis, title, summary, [])

    def _create_check_run(
        self,
        analysis: AnalysisResult,
        title: str,
        summary: str,
        annotations: List[Dict[str, Any]],
    ) -> CheckRun:
        return self.client.create_check_run(
            name=check_run_name(analysis),
            head_sha=analysis.commit_sha,
            conclusion="success" if analysis.passed else "failure",
            title=title,
            summary=summary,
            annotations=annotations,
            details_url=analysis.dashboard_url,
            external_id=analysis.analysis_id or None,
            started_at=analysis.analysis_date,
        )

    def reconcile_summary(self, analysis: AnalysisResult) -> None:
        """Post the new summary, then delete older summaries for this project.

        Only comments written by the same account as the new one are
        considered, so summaries for other projects sharing the pull request
        and comments by people are left alone.
        """
        posted = self.client.create_issue_comment(analysis.pull_request_id, self._formatter.format_summary(analysis))
        login = posted.author_login.lower()

        stale = []
        for comment in self.client.iter_issue_comments(analysis.pull_request_id):
            if comment.id == posted.id or comment.author_login.lower() != login:
                continue
            marker = parse_marker(comment.body)
            if marker is not None and marker.is_summary and marker.project_key == analysis.project_key:
                stale.append(comment.id)

        for comment_id in stale:
            self.client.delete_issue_comment(comment_id)

        logger.info("Reconciled summary comments", extra={"comment_id": posted.id, "deleted": len(stale)})

    def pull_request_url(self, analysis: AnalysisResult) -> Optional[str]:
        if not self._repository_url:
            return None
        return f"{self._repository_url}/pull/{analysis.pull_request_id}"
