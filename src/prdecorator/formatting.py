"""Markdown rendering of analysis summaries and per-issue comments.

Every rendered document ends with a ``[View in SonarQube](url)`` line. The link
identifies the project, and the issue when there is one, that a comment was
posted for, so later runs can find and reconcile their own comments.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Protocol
from urllib.parse import parse_qs, urlparse

from .models import AnalysisResult, Issue, IssueType
from .report import count_issues_by_type

VIEW_LINK_LABEL = "View in SonarQube"
SUMMARY_ISSUE_KEY = "decorator-summary-comment"

_VIEW_LINK_PATTERN = re.compile(r"^\[" + re.escape(VIEW_LINK_LABEL) + r"\]\((.*?)\)$")


class SummaryFormatter(Protocol):
    def format_summary(self, analysis: AnalysisResult) -> str:
        ...

    def format_issue(self, issue: Issue, analysis: AnalysisResult) -> str:
        ...


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def _percentage(value: Optional[float], label: str, missing: str) -> str:
    if value is None:
        return missing
    return f"{value:.2f}% {label}"


class MarkdownSummaryFormatter:
    """Plain Markdown formatter shared by every platform."""

    def format_summary(self, analysis: AnalysisResult) -> str:
        counts = count_issues_by_type(analysis.issues)
        status = "Quality Gate passed" if analysis.passed else "Quality Gate failed"

        lines: List[str] = [f"**{status}**", ""]
        if analysis.failed_conditions:
            lines.extend(f"- {condition}" for condition in analysis.failed_conditions)
            lines.append("")

        vulnerabilities = counts[IssueType.VULNERABILITY] + counts[IssueType.SECURITY_HOTSPOT]
        lines.extend(
            [
                "# Analysis Details",
                f"## {_plural(len(analysis.issues), 'Issue', 'Issues')}",
                f"- {_plural(counts[IssueType.BUG], 'Bug', 'Bugs')}",
                f"- {_plural(vulnerabilities, 'Vulnerability', 'Vulnerabilities')}",
                f"- {_plural(counts[IssueType.CODE_SMELL], 'Code Smell', 'Code Smells')}",
                "",
                "## Coverage and Duplications",
                f"- {_percentage(analysis.new_coverage, 'Coverage', 'No coverage information')}",
                f"- {_percentage(analysis.new_duplication, 'Duplicated Code', 'No duplication information')}",
                "",
                f"**Project ID:** {analysis.project_key}",
                "",
                f"[{VIEW_LINK_LABEL}]({analysis.dashboard_url})",
            ]
        )
        return "\n".join(lines)

    def format_issue(self, issue: Issue, analysis: AnalysisResult) -> str:
        lines = [
            f"**Type:** {issue.type.name}",
            "",
            f"**Severity:** {issue.severity.name}",
            "",
            f"**Message:** {issue.message}",
            "",
        ]
        if issue.effort_minutes is not None:
            lines.extend([f"**Duration (min):** {issue.effort_minutes}", ""])
        lines.extend(
            [
                f"**Project ID:** {analysis.project_key} **Issue ID:** {issue.key}",
                "",
                f"[{VIEW_LINK_LABEL}]({analysis.issue_url(issue.key)})",
            ]
        )
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class CommentMarker:
    """Project and issue a decorator comment was posted for."""

    project_key: str
    issue_key: str

    @property
    def is_summary(self) -> bool:
        return self.issue_key == SUMMARY_ISSUE_KEY


def _marker_from_url(url: str) -> Optional[CommentMarker]:
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    project_keys = query.get("id")
    if not project_keys:
        return None

    if parsed.path.endswith("/dashboard"):
        return CommentMarker(project_keys[0], SUMMARY_ISSUE_KEY)

    parameter = "hotspots" if parsed.path.endswith("security_hotspots") else "issues"
    issue_keys = query.get(parameter)
    if not issue_keys:
        return None
    return CommentMarker(project_keys[0], issue_keys[0])


def parse_marker(body: Optional[str]) -> Optional[CommentMarker]:
    """Recover the marker of a comment body, or ``None`` for foreign comments."""
    if not body:
        return None

    for line in body.splitlines():
        if VIEW_LINK_LABEL not in line:
            continue
        match = _VIEW_LINK_PATTERN.match(line.strip())
        if match is None:
            continue
        marker = _marker_from_url(match.group(1))
        if marker is not None:
            return marker
    return None
