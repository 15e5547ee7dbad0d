"""Pull-request decoration pipeline shared by every hosting platform.

One run is strictly sequential:

1. select and order the issues to publish (local, no network),
2. authenticate once,
3. clean up state left by earlier runs,
4. assemble and publish the status/report and annotation batches,
5. reconcile summary comments so one summary per project survives,
6. return the pull-request URL.

Any failure aborts the remaining steps and surfaces as a
``DecorationFailedError`` naming the platform.
"""

from __future__ import annotations

import abc
import logging
from typing import Any, Callable, List, Optional

import requests

from .auth import CredentialProvider, create_credential_provider
from .batching import batch_items
from .config import HostBinding, Platform
from .errors import DecorationFailedError
from .formatting import MarkdownSummaryFormatter, SummaryFormatter
from .models import AnalysisResult, AuthToken, DecorationResult, Issue
from .rest import Clock, utc_now
from .selection import SelectionPolicy, select_issues

logger = logging.getLogger(__name__)


class PullRequestDecorator(abc.ABC):
    """Template for one decoration run against a single hosting platform."""

    platform = "unknown"

    def __init__(
        self,
        binding: HostBinding,
        policy: Optional[SelectionPolicy] = None,
        formatter: Optional[SummaryFormatter] = None,
        session: Optional[requests.Session] = None,
        clock: Clock = utc_now,
        credential_provider: Optional[CredentialProvider] = None,
    ) -> None:
        self._binding = binding
        self._policy = policy or SelectionPolicy()
        self._formatter = formatter or MarkdownSummaryFormatter()
        self._session = session
        self._clock = clock
        self._credentials = credential_provider or create_credential_provider(
            binding, self.validate_token, session=session, clock=clock
        )

    @property
    def binding(self) -> HostBinding:
        return self._binding

    def decorate(self, analysis: AnalysisResult) -> DecorationResult:
        """Publish ``analysis`` to the pull request bound to this decorator.

        Raises:
            DecorationFailedError: If any step fails; steps after the failing
                one are not attempted.
        """
        log_context = {
            "platform": self.platform,
            "project_key": analysis.project_key,
            "pull_request_id": analysis.pull_request_id,
        }
        logger.info("Starting pull request decoration", extra=log_context)

        try:
            # selection is local, so a contract violation surfaces before any call
            selected = select_issues(analysis.issues, self._policy)
            logger.info(
                "Selected issues for publication",
                extra={**log_context, "selected": len(selected), "total": len(analysis.issues)},
            )

            token = self._credentials.acquire()
            self.connect(token)

            self.cleanup(analysis)
            self.publish(analysis, selected)

            if self._binding.summary_comment_enabled:
                self.reconcile_summary(analysis)

            result = DecorationResult(pull_request_url=self.pull_request_url(analysis))
        except DecorationFailedError:
            raise
        except Exception as exc:
            logger.error("Pull request decoration failed", extra={**log_context, "error": str(exc)})
            raise DecorationFailedError(self.platform, exc) from exc

        logger.info("Finished pull request decoration", extra={**log_context, "url": result.pull_request_url})
        return result

    def upload_in_batches(self, items: List[Any], upload: Callable[[int, List[Any]], None]) -> int:
        """Send ``items`` through ``upload`` one limit-sized batch at a time.

        ``upload`` receives the batch index and the batch. Batches are sent
        sequentially and the first failure propagates.

        Returns:
            The number of items sent.
        """
        sent = 0
        for index, batch in enumerate(batch_items(items, self._binding.upload_limit)):
            upload(index, batch)
            sent += len(batch)
        return sent

    @abc.abstractmethod
    def validate_token(self, token: AuthToken) -> Any:
        """Read-only call proving a stored token works against the repository."""

    @abc.abstractmethod
    def connect(self, token: AuthToken) -> None:
        """Build the platform client for this run."""

    @abc.abstractmethod
    def cleanup(self, analysis: AnalysisResult) -> None:
        """Remove or resolve what earlier runs published."""

    @abc.abstractmethod
    def publish(self, analysis: AnalysisResult, selected: List[Issue]) -> None:
        """Publish the status/report and the annotations for ``selected``."""

    def reconcile_summary(self, analysis: AnalysisResult) -> None:
        """Post the summary comment and remove earlier ones; no-op by default."""

    @abc.abstractmethod
    def pull_request_url(self, analysis: AnalysisResult) -> Optional[str]:
        """URL of the decorated pull request, when the platform exposes one."""


def create_decorator(
    binding: HostBinding,
    policy: Optional[SelectionPolicy] = None,
    formatter: Optional[SummaryFormatter] = None,
    session: Optional[requests.Session] = None,
    clock: Clock = utc_now,
) -> PullRequestDecorator:
    """Return the decorator matching ``binding.platform``."""
    # imported here because the platform modules subclass PullRequestDecorator
    from .ado_decorator import AzureDevOpsDecorator
    from .bitbucket_decorator import BitbucketDecorator
    from .github_decorator import GithubDecorator
    from .gitlab_decorator import GitlabDecorator

    decorators = {
        Platform.GITHUB: GithubDecorator,
        Platform.GITLAB: GitlabDecorator,
        Platform.BITBUCKET: BitbucketDecorator,
        Platform.AZURE_DEVOPS: AzureDevOpsDecorator,
    }
    decorator_class = decorators[binding.platform]
    return decorator_class(binding, policy=policy, formatter=formatter, session=session, clock=clock)
