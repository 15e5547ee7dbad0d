"""Bitbucket Server and Bitbucket Cloud Code Insights clients."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import requests

from .errors import ApiError
from .models import AuthToken
from .report import REPORT_KEY, Annotation, Report
from .rest import RestClient

logger = logging.getLogger(__name__)

BITBUCKET_CLOUD_API_URL = "https://api.bitbucket.org/2.0"
BITBUCKET_CLOUD_WEB_URL = "https://bitbucket.org"

_CODE_INSIGHTS_MIN_VERSION = (5, 15)


def parse_version(version: str) -> Tuple[int, ...]:
    """Parse the numeric prefix of a dotted version such as ``7.21.0-rc1``."""
    parts: List[int] = []
    for piece in version.split("."):
        match = re.match(r"\d+", piece)
        if match is None:
            break
        parts.append(int(match.group(0)))
    return tuple(parts)


class BitbucketServerClient:
    """Client for a self-hosted Bitbucket Server / Data Center instance."""

    is_cloud = False

    def __init__(
        self,
        url: str,
        token: AuthToken,
        project: str,
        repository_slug: str,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._project = project
        self._slug = repository_slug
        self._rest = RestClient(self._url, token=token, session=session)

    def _report_path(self, commit_sha: str) -> str:
        return (
            f"rest/insights/1.0/projects/{quote(self._project, safe='')}/repos/{quote(self._slug, safe='')}"
            f"/commits/{commit_sha}/reports/{REPORT_KEY}"
        )

    def get_repository(self) -> Dict[str, Any]:
        return self._rest.get_json(
            f"rest/api/1.0/projects/{quote(self._project, safe='')}/repos/{quote(self._slug, safe='')}"
        )

    def supports_code_insights(self) -> bool:
        """Return whether the server version exposes the Code Insights API."""
        payload = self._rest.get_json("rest/api/1.0/application-properties")
        version = str(payload.get("version", "")) if isinstance(payload, dict) else ""
        supported = parse_version(version) >= _CODE_INSIGHTS_MIN_VERSION
        if not supported:
            logger.warning("Bitbucket Server does not support Code Insights", extra={"version": version})
        return supported

    def delete_annotations(self, commit_sha: str) -> None:
        self._rest.delete(f"{self._report_path(commit_sha)}/annotations")

    def put_report(self, commit_sha: str, report: Report) -> None:
        self._rest.put(self._report_path(commit_sha), json=report.to_json())
        logger.info("Published Code Insights report", extra={"commit_sha": commit_sha, "result": report.result})

    def post_annotations(self, commit_sha: str, annotations: List[Annotation]) -> None:
        if not annotations:
            return
        self._rest.request(
            "POST",
            f"{self._report_path(commit_sha)}/annotations",
            json={"annotations": [annotation.to_bitbucket_server() for annotation in annotations]},
        )

    def pull_request_url(self, pull_request_id: str) -> str:
        return f"{self._url}/projects/{self._project}/repos/{self._slug}/pull-requests/{pull_request_id}"


class BitbucketCloudClient:
    """Client for bitbucket.org; reports are replaced rather than patched."""

    is_cloud = True

    def __init__(
        self,
        token: AuthToken,
        workspace: str,
        repository_slug: str,
        session: Optional[requests.Session] = None,
        api_url: str = BITBUCKET_CLOUD_API_URL,
    ) -> None:
        self._workspace = workspace
        self._slug = repository_slug
        self._rest = RestClient(api_url, token=token, session=session)

    def _repository_path(self) -> str:
        return f"repositories/{quote(self._workspace, safe='')}/{quote(self._slug, safe='')}"

    def _report_path(self, commit_sha: str) -> str:
        return f"{self._repository_path()}/commit/{commit_sha}/reports/{REPORT_KEY}"

    def get_repository(self) -> Dict[str, Any]:
        return self._rest.get_json(self._repository_path())

    def supports_code_insights(self) -> bool:
        return True

    def delete_report(self, commit_sha: str) -> None:
        """Remove the previous report and its annotations, ignoring failures."""
        try:
            self._rest.delete(self._report_path(commit_sha))
        except ApiError as exc:
            # nothing to delete on the first analysis of a commit
            logger.debug("No previous report deleted", extra={"commit_sha": commit_sha, "status_code": exc.status_code})

    def put_report(self, commit_sha: str, report: Report) -> None:
        self._rest.put(self._report_path(commit_sha), json=report.to_json())
        logger.info("Published Code Insights report", extra={"commit_sha": commit_sha, "result": report.result})

    def post_annotations(self, commit_sha: str, annotations: List[Annotation]) -> None:
        if not annotations:
            return
        self._rest.request(
            "POST",
            f"{self._report_path(commit_sha)}/annotations",
            json=[annotation.to_bitbucket_cloud() for annotation in annotations],
        )

    def pull_request_url(self, pull_request_id: str) -> str:
        return f"{BITBUCKET_CLOUD_WEB_URL}/{self._workspace}/{self._slug}/pull-requests/{pull_request_id}"
