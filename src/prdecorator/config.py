"""Configuration parsing and validation for the pull-request decorator."""

from __future__ import annotations

import enum
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from .batching import (
    AZURE_DEVOPS_UPLOAD_LIMIT,
    BITBUCKET_CLOUD_UPLOAD_LIMIT,
    BITBUCKET_SERVER_UPLOAD_LIMIT,
    GITHUB_UPLOAD_LIMIT,
    GITLAB_UPLOAD_LIMIT,
    UploadLimit,
)
from .errors import AuthenticationError, ConfigurationError
from .models import AnalysisResult, Issue, IssueType, QualityGateStatus, Severity

TOKEN_ENV_VAR = "DECORATOR_TOKEN"
PRIVATE_KEY_ENV_VAR = "DECORATOR_GITHUB_PRIVATE_KEY"
CLIENT_SECRET_ENV_VAR = "DECORATOR_BITBUCKET_CLIENT_SECRET"

_CLOUD_HOSTS = ("bitbucket.org", "api.bitbucket.org", "dev.azure.com", "api.github.com", "gitlab.com")


class Platform(enum.Enum):
    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    AZURE_DEVOPS = "azure_devops"


@dataclass(frozen=True)
class HostBinding:
    """Validated binding between an analysed project and its hosting platform."""

    platform: Platform
    url: str
    repository: str
    slug: Optional[str] = None
    personal_access_token: Optional[str] = field(default=None, repr=False)
    app_id: Optional[str] = None
    private_key: Optional[str] = field(default=None, repr=False)
    client_id: Optional[str] = None
    client_secret: Optional[str] = field(default=None, repr=False)
    summary_comment_enabled: bool = True
    upload_limit_override: Optional[UploadLimit] = None

    @property
    def is_cloud(self) -> bool:
        host = (urlparse(self.url).hostname or "").lower()
        return host in _CLOUD_HOSTS or host.endswith(".visualstudio.com")

    @property
    def upload_limit(self) -> UploadLimit:
        if self.upload_limit_override is not None:
            return self.upload_limit_override
        if self.platform is Platform.GITHUB:
            return GITHUB_UPLOAD_LIMIT
        if self.platform is Platform.GITLAB:
            return GITLAB_UPLOAD_LIMIT
        if self.platform is Platform.AZURE_DEVOPS:
            return AZURE_DEVOPS_UPLOAD_LIMIT
        return BITBUCKET_CLOUD_UPLOAD_LIMIT if self.is_cloud else BITBUCKET_SERVER_UPLOAD_LIMIT


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"Could not read configuration file '{path}': {exc}") from exc
    except ValueError as exc:
        raise ConfigurationError(f"Configuration file '{path}' is not valid JSON.") from exc

    if not isinstance(payload, dict):
        raise ConfigurationError(f"Configuration file '{path}' must contain a JSON object.")
    return payload


def _optional_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _optional_float(payload: Dict[str, Any], key: str) -> Optional[float]:
    value = payload.get(key)
    return float(value) if value is not None else None


def _flag(payload: Dict[str, Any], key: str, default: bool) -> bool:
    value = payload.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError(f"'{key}' must be true or false, got {value!r}.")
    return value


def _secret(payload: Dict[str, Any], key: str, env_var: str) -> Optional[str]:
    from_env = os.getenv(env_var, "").strip()
    return from_env or _optional_str(payload, key)


def parse_binding(payload: Dict[str, Any]) -> HostBinding:
    """Build and validate a host binding from a decoded JSON object.

    Secrets may be supplied through environment variables, which take
    precedence over the file: ``DECORATOR_TOKEN``,
    ``DECORATOR_GITHUB_PRIVATE_KEY`` and ``DECORATOR_BITBUCKET_CLIENT_SECRET``.

    Raises:
        ConfigurationError: If required fields are missing or malformed.
        AuthenticationError: If the platform's credential material is absent.
    """
    raw_platform = _optional_str(payload, "platform")
    try:
        platform = Platform((raw_platform or "").lower())
    except ValueError as exc:
        raise ConfigurationError(f"Unsupported platform '{raw_platform}'.") from exc

    url = _optional_str(payload, "url")
    if not url:
        raise ConfigurationError(f"No URL has been set for {platform.value} connections.")

    repository = _optional_str(payload, "repository")
    if not repository:
        raise ConfigurationError(f"No repository has been set for {platform.value} connections.")

    upload_limit = None
    raw_limit = payload.get("upload_limit")
    if raw_limit is not None:
        try:
            upload_limit = UploadLimit(
                batch_size=int(raw_limit["batch_size"]),
                total_cap=int(raw_limit["total_cap"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(
                "Invalid 'upload_limit': expected an object with integer 'batch_size' and 'total_cap'."
            ) from exc

    binding = HostBinding(
        platform=platform,
        url=url.rstrip("/"),
        repository=repository,
        slug=_optional_str(payload, "slug"),
        personal_access_token=_secret(payload, "personal_access_token", TOKEN_ENV_VAR),
        app_id=_optional_str(payload, "app_id"),
        private_key=_secret(payload, "private_key", PRIVATE_KEY_ENV_VAR),
        client_id=_optional_str(payload, "client_id"),
        client_secret=_secret(payload, "client_secret", CLIENT_SECRET_ENV_VAR),
        summary_comment_enabled=_flag(payload, "summary_comment_enabled", True),
        upload_limit_override=upload_limit,
    )

    if platform is Platform.GITHUB:
        if not binding.app_id or not binding.private_key:
            raise AuthenticationError(
                "GitHub connections require an App ID and a private key. "
                f"Set 'app_id' and 'private_key' or the '{PRIVATE_KEY_ENV_VAR}' environment variable."
            )
        if "/" not in repository:
            raise ConfigurationError("GitHub repository must be given as 'owner/name'.")
    elif platform is Platform.BITBUCKET and binding.is_cloud:
        if not binding.personal_access_token and not (binding.client_id and binding.client_secret):
            raise AuthenticationError(
                "Bitbucket Cloud connections require either a token or an OAuth client ID and secret."
            )
    elif not binding.personal_access_token:
        raise AuthenticationError(
            f"Missing required personal access token for {platform.value} connections. "
            f"Set 'personal_access_token' or the '{TOKEN_ENV_VAR}' environment variable."
        )

    if platform in (Platform.BITBUCKET, Platform.AZURE_DEVOPS) and not binding.slug:
        raise ConfigurationError(f"No repository slug has been set for {platform.value} connections.")

    return binding


def load_binding(path: Path) -> HostBinding:
    """Load a host binding from a JSON file."""
    return parse_binding(_read_json(path))


def _parse_datetime(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_issue(item: Dict[str, Any]) -> Issue:
    try:
        raw_severities = item.get("severities")
        if raw_severities is None:
            raw_severities = [item["severity"]] if item.get("severity") else []
        line = item.get("line")
        effort = item.get("effort_minutes")
        return Issue(
            key=str(item["key"]),
            severities=tuple(Severity[str(value).upper()] for value in raw_severities),
            type=IssueType[str(item["type"]).upper()],
            message=str(item.get("message", "")),
            path=item.get("path") or None,
            line=int(line) if line is not None else None,
            effort_minutes=int(effort) if effort is not None else None,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Analysis issue payload is malformed: {item}") from exc


def parse_analysis(payload: Dict[str, Any]) -> AnalysisResult:
    """Build an analysis result from a decoded JSON object."""
    try:
        return AnalysisResult(
            commit_sha=str(payload["commit_sha"]),
            pull_request_id=str(payload["pull_request_id"]),
            quality_gate=QualityGateStatus(str(payload["quality_gate"]).upper()),
            issues=tuple(_parse_issue(item) for item in payload.get("issues", [])),
            server_url=str(payload["server_url"]),
            project_key=str(payload["project_key"]),
            project_name=str(payload.get("project_name") or payload["project_key"]),
            analysis_id=str(payload.get("analysis_id", "")),
            analysis_date=_parse_datetime(payload.get("analysis_date")),
            failed_conditions=tuple(str(c) for c in payload.get("failed_conditions", [])),
            new_coverage=_optional_float(payload, "new_coverage"),
            new_duplication=_optional_float(payload, "new_duplication"),
            base_image_url=_optional_str(payload, "base_image_url"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Analysis payload is malformed or incomplete: {exc}") from exc


def load_analysis(path: Path) -> AnalysisResult:
    """Load an analysis result from a JSON file."""
    return parse_analysis(_read_json(path))
