"""Domain models for pull-request decoration.

These dataclasses model the read-only analysis view handed over by the analysis
engine and the small set of values that flow through one decoration run.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple
from urllib.parse import quote

from .errors import ContractViolationError


class Severity(enum.IntEnum):
    """Issue severity, ordered from lowest to highest."""

    INFO = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    BLOCKER = 4


class IssueType(enum.IntEnum):
    """Issue type, ordered by reporting priority."""

    CODE_SMELL = 1
    BUG = 2
    VULNERABILITY = 3
    SECURITY_HOTSPOT = 4


class QualityGateStatus(enum.Enum):
    OK = "OK"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class Issue:
    """One finding produced by the analysis engine."""

    key: str
    severities: Tuple[Severity, ...]
    type: IssueType
    message: str
    path: Optional[str] = None
    line: Optional[int] = None
    effort_minutes: Optional[int] = None

    @property
    def severity(self) -> Severity:
        """Return the highest severity facet of the issue."""
        if not self.severities:
            raise ContractViolationError(f"Issue '{self.key}' does not carry any severity.")
        return max(self.severities)


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    """Immutable view of one completed analysis of a pull request."""

    commit_sha: str
    pull_request_id: str
    quality_gate: QualityGateStatus
    issues: Tuple[Issue, ...]
    server_url: str
    project_key: str
    project_name: str
    analysis_id: str
    analysis_date: datetime
    failed_conditions: Tuple[str, ...] = ()
    new_coverage: Optional[float] = None
    new_duplication: Optional[float] = None
    base_image_url: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.quality_gate is QualityGateStatus.OK

    @property
    def dashboard_url(self) -> str:
        return (
            f"{self.server_url.rstrip('/')}/dashboard?id={quote(self.project_key, safe='')}"
            f"&pullRequest={quote(self.pull_request_id, safe='')}"
        )

    def issue_url(self, issue_key: str) -> str:
        encoded_key = quote(issue_key, safe="")
        return (
            f"{self.server_url.rstrip('/')}/project/issues?id={quote(self.project_key, safe='')}"
            f"&pullRequest={quote(self.pull_request_id, safe='')}"
            f"&issues={encoded_key}&open={encoded_key}"
        )


@dataclass(frozen=True, slots=True)
class RepositoryIdentity:
    """Canonical identity of a repository learned while acquiring a token."""

    node_id: str
    html_url: str
    name: str
    owner_login: str


@dataclass(frozen=True, slots=True)
class AuthToken:
    """Bearer credential valid for the duration of one decoration run."""

    value: str = field(repr=False)
    expires_at: Optional[datetime] = None
    repository: Optional[RepositoryIdentity] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass(frozen=True, slots=True)
class DecorationResult:
    """Terminal output of one decoration run."""

    pull_request_url: Optional[str] = None
