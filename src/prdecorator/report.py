"""Mapping of selected issues and analysis metrics to platform wire shapes."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import ContractViolationError
from .models import AnalysisResult, Issue, IssueType, Severity

logger = logging.getLogger(__name__)

REPORT_KEY = "com.github.mc1arke.sonarqube"
REPORT_TITLE = "SonarQube"
REPORTER = "SonarQube"
LINK_TEXT = "Go to SonarQube"
CLOUD_REPORT_TYPE = "COVERAGE"

_ANNOTATION_LEVELS = {
    Severity.INFO: "notice",
    Severity.LOW: "notice",
    Severity.MEDIUM: "warning",
    Severity.HIGH: "failure",
    Severity.BLOCKER: "failure",
}

_BITBUCKET_SEVERITIES = {
    Severity.INFO: "LOW",
    Severity.LOW: "LOW",
    Severity.MEDIUM: "MEDIUM",
    Severity.HIGH: "HIGH",
    Severity.BLOCKER: "HIGH",
}

_BITBUCKET_TYPES = {
    IssueType.CODE_SMELL: "CODE_SMELL",
    IssueType.BUG: "BUG",
    IssueType.VULNERABILITY: "VULNERABILITY",
    IssueType.SECURITY_HOTSPOT: "VULNERABILITY",
}


def highest_severity(severities: Iterable[Severity]) -> Severity:
    """Return the maximum severity of a non-empty set.

    Raises:
        ContractViolationError: If ``severities`` is empty.
    """
    values = list(severities)
    if not values:
        raise ContractViolationError("An issue reached the report assembler without any severity.")
    return max(values)


def annotation_level(severity: Severity) -> str:
    return _ANNOTATION_LEVELS[severity]


def bitbucket_severity(severity: Severity) -> str:
    return _BITBUCKET_SEVERITIES[severity]


def bitbucket_type(issue_type: IssueType) -> str:
    return _BITBUCKET_TYPES[issue_type]


@dataclass(frozen=True, slots=True)
class Annotation:
    """Platform-neutral annotation for one issue anchored to a file."""

    external_id: str
    path: str
    line: Optional[int]
    level: str
    severity: str
    type: str
    message: str
    link: str

    def to_github(self) -> Dict[str, Any]:
        message = self.message
        line = self.line
        if line is None:
            # check runs need a line range, so file-level issues sit on the first line
            line = 1
            message = f"File-level issue: {message}"
        return {
            "path": self.path,
            "start_line": line,
            "end_line": line,
            "annotation_level": self.level,
            "title": self.external_id,
            "message": message,
            "raw_details": self.link,
        }

    def to_bitbucket_server(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "externalId": self.external_id,
            "link": self.link,
            "message": self.message,
            "path": self.path,
            "severity": self.severity,
            "type": self.type,
        }
        # a missing line marks a file-level annotation
        if self.line is not None:
            payload["line"] = self.line
        return payload

    def to_bitbucket_cloud(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "external_id": self.external_id,
            "link": self.link,
            "summary": self.message,
            "path": self.path,
            "severity": self.severity,
            "annotation_type": self.type,
        }
        if self.line is not None:
            payload["line"] = self.line
        return payload


def build_annotations(issues: Sequence[Issue], analysis: AnalysisResult) -> List[Annotation]:
    """Build one annotation per issue that is attached to a file.

    Issues without a path cannot be anchored and are skipped here; they are
    still part of the report and summary counts.

    Raises:
        ContractViolationError: If an issue carries no severity.
    """
    annotations: List[Annotation] = []
    for issue in issues:
        severity = highest_severity(issue.severities)
        if not issue.path:
            logger.debug("Skipping issue without a file path", extra={"issue_key": issue.key})
            continue

        annotations.append(
            Annotation(
                external_id=issue.key,
                path=issue.path,
                line=issue.line,
                level=annotation_level(severity),
                severity=bitbucket_severity(severity),
                type=bitbucket_type(issue.type),
                message=issue.message,
                link=analysis.issue_url(issue.key),
            )
        )
    return annotations


class DataValueKind(enum.Enum):
    LINK = "LINK"
    CLOUD_LINK = "CLOUD_LINK"
    TEXT = "TEXT"
    PERCENTAGE = "PERCENTAGE"


@dataclass(frozen=True, slots=True)
class DataValue:
    """Value cell of a Code Insights report row."""

    kind: DataValueKind
    value: Any
    href: Optional[str] = None

    @classmethod
    def link(cls, text: str, href: str, cloud: bool = False) -> "DataValue":
        return cls(DataValueKind.CLOUD_LINK if cloud else DataValueKind.LINK, text, href)

    @classmethod
    def text(cls, value: str) -> "DataValue":
        return cls(DataValueKind.TEXT, value)

    @classmethod
    def percentage(cls, value: Optional[float]) -> "DataValue":
        return cls(DataValueKind.PERCENTAGE, float(value) if value is not None else 0.0)

    @property
    def report_type(self) -> str:
        if self.kind in (DataValueKind.LINK, DataValueKind.CLOUD_LINK):
            return "LINK"
        if self.kind is DataValueKind.PERCENTAGE:
            return "PERCENTAGE"
        return "TEXT"

    def to_json(self) -> Any:
        if self.kind is DataValueKind.LINK:
            return {"linktext": self.value, "href": self.href}
        if self.kind is DataValueKind.CLOUD_LINK:
            return {"text": self.value, "href": self.href}
        if self.kind is DataValueKind.TEXT:
            return self.value
        if self.kind is DataValueKind.PERCENTAGE:
            return self.value
        raise ContractViolationError(f"Unsupported report value kind: {self.kind}")


@dataclass(frozen=True, slots=True)
class ReportData:
    title: str
    value: DataValue

    def to_json(self) -> Dict[str, Any]:
        return {"title": self.title, "type": self.value.report_type, "value": self.value.to_json()}


@dataclass(frozen=True, slots=True)
class Report:
    """Code Insights report for one commit."""

    title: str
    details: str
    reporter: str
    link: str
    result: str
    created_date: int
    cloud: bool
    logo_url: Optional[str] = None
    data: List[ReportData] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "title": self.title,
            "details": self.details,
            "reporter": self.reporter,
            "link": self.link,
            "result": self.result,
            "data": [row.to_json() for row in self.data],
        }
        if self.cloud:
            payload["created_on"] = self.created_date
            payload["report_type"] = CLOUD_REPORT_TYPE
            payload["remote_link_enabled"] = True
            if self.logo_url:
                payload["logo_url"] = self.logo_url
        else:
            payload["createdDate"] = self.created_date
            if self.logo_url:
                payload["logoUrl"] = self.logo_url
        return payload


def count_issues_by_type(issues: Iterable[Issue]) -> Dict[IssueType, int]:
    """Count issues per type, with every type present in the result."""
    counts = {issue_type: 0 for issue_type in IssueType}
    for issue in issues:
        counts[issue.type] += 1
    return counts


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def report_description(analysis: AnalysisResult) -> str:
    """Headline plus one bullet per failed quality-gate condition."""
    header = "Quality Gate passed" if analysis.passed else "Quality Gate failed"
    body = "\n".join(f"- {condition}" for condition in analysis.failed_conditions)
    return f"{header}\n{body}"


def build_report(analysis: AnalysisResult, details: str, cloud: bool) -> Report:
    """Assemble the Code Insights report for Bitbucket Server or Cloud."""
    counts = count_issues_by_type(analysis.issues)
    vulnerabilities = counts[IssueType.VULNERABILITY]
    hotspots = counts[IssueType.SECURITY_HOTSPOT]

    data = [
        ReportData("Reliability", DataValue.text(_plural(counts[IssueType.BUG], "Bug", "Bugs"))),
        ReportData("Code coverage", DataValue.percentage(analysis.new_coverage)),
        ReportData(
            "Security",
            DataValue.text(
                f"{_plural(vulnerabilities, 'Vulnerability', 'Vulnerabilities')} "
                f"(and {_plural(hotspots, 'Hotspot', 'Hotspots')})"
            ),
        ),
        ReportData("Duplication", DataValue.percentage(analysis.new_duplication)),
        ReportData(
            "Maintainability",
            DataValue.text(_plural(counts[IssueType.CODE_SMELL], "Code Smell", "Code Smells")),
        ),
        ReportData("Analysis details", DataValue.link(LINK_TEXT, analysis.dashboard_url, cloud=cloud)),
    ]

    if cloud:
        result = "PASSED" if analysis.passed else "FAILED"
    else:
        result = "PASS" if analysis.passed else "FAIL"

    created = analysis.analysis_date
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)

    logo_url = f"{analysis.base_image_url.rstrip('/')}/common/icon.png" if analysis.base_image_url else None

    return Report(
        title=REPORT_TITLE,
        details=details,
        reporter=REPORTER,
        link=analysis.dashboard_url,
        result=result,
        created_date=int(created.astimezone(timezone.utc).timestamp() * 1000),
        cloud=cloud,
        logo_url=logo_url,
        data=data,
    )
