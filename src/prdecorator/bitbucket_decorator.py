"""Bitbucket decoration through Code Insights reports and annotations."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from .bitbucket_client import BitbucketCloudClient, BitbucketServerClient
from .decorator import PullRequestDecorator
from .errors import ConfigurationError, ContractViolationError
from .models import AnalysisResult, AuthToken, Issue
from .report import Annotation, build_annotations, build_report, report_description

logger = logging.getLogger(__name__)

BitbucketClient = Union[BitbucketServerClient, BitbucketCloudClient]


class BitbucketDecorator(PullRequestDecorator):
    """Publishes one report per commit; Bitbucket carries no summary comment."""

    platform = "bitbucket"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._client: Optional[BitbucketClient] = None
        self._code_insights_supported = True

    @property
    def client(self) -> BitbucketClient:
        if self._client is None:
            raise ContractViolationError("Bitbucket client used before authentication.")
        return self._client

    def _build_client(self, token: AuthToken) -> BitbucketClient:
        if not self._binding.slug:
            raise ConfigurationError("No repository slug has been set for Bitbucket connections.")
        if self._binding.is_cloud:
            return BitbucketCloudClient(token, self._binding.repository, self._binding.slug, session=self._session)
        return BitbucketServerClient(
            self._binding.url,
            token,
            self._binding.repository,
            self._binding.slug,
            session=self._session,
        )

    def validate_token(self, token: AuthToken) -> Dict[str, Any]:
        return self._build_client(token).get_repository()

    def connect(self, token: AuthToken) -> None:
        self._client = self._build_client(token)
        self._code_insights_supported = self._client.supports_code_insights()

    def cleanup(self, analysis: AnalysisResult) -> None:
        if not self._code_insights_supported:
            return
        client = self.client
        if isinstance(client, BitbucketCloudClient):
            client.delete_report(analysis.commit_sha)
        else:
            client.delete_annotations(analysis.commit_sha)

    def publish(self, analysis: AnalysisResult, selected: List[Issue]) -> None:
        if not self._code_insights_supported:
            logger.warning("Skipping decoration: the Bitbucket instance does not support the Code Insights API.")
            return

        client = self.client
        report = build_report(analysis, report_description(analysis), cloud=client.is_cloud)
        client.put_report(analysis.commit_sha, report)

        def upload(index: int, batch: List[Annotation]) -> None:
            logger.debug("Uploading annotation batch", extra={"batch": index, "size": len(batch)})
            client.post_annotations(analysis.commit_sha, batch)

        sent = self.upload_in_batches(build_annotations(selected, analysis), upload)
        logger.info("Uploaded Code Insights annotations", extra={"annotations": sent})

    def pull_request_url(self, analysis: AnalysisResult) -> Optional[str]:
        return self.client.pull_request_url(analysis.pull_request_id)
