"""Tests for Markdown rendering and comment markers."""

import sys
from datetime import datetime, timezone
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prdecorator.formatting import SUMMARY_ISSUE_KEY, MarkdownSummaryFormatter, parse_marker
from prdecorator.models import AnalysisResult, Issue, IssueType, QualityGateStatus, Severity


def _analysis(issues=(), gate=QualityGateStatus.OK, project_key="my-project") -> AnalysisResult:
    return AnalysisResult(
        commit_sha="abc123",
        pull_request_id="7",
        quality_gate=gate,
        issues=tuple(issues),
        server_url="https://sonar.example.com/",
        project_key=project_key,
        project_name="My Project",
        analysis_id="AX-1",
        analysis_date=datetime(2026, 2, 1, tzinfo=timezone.utc),
        failed_conditions=("Reliability Rating on New Code is worse than A",) if gate is QualityGateStatus.ERROR else (),
        new_coverage=81.0,
    )


def _issue(key="AXissue", issue_type=IssueType.BUG, effort=None) -> Issue:
    return Issue(
        key=key,
        severities=(Severity.HIGH,),
        type=issue_type,
        message="Remove this unused variable.",
        path="src/app.py",
        line=4,
        effort_minutes=effort,
    )


def test_summary_ends_with_dashboard_marker():
    """Verify the summary's last line links to the project dashboard."""
    analysis = _analysis()

    summary = MarkdownSummaryFormatter().format_summary(analysis)

    assert summary.splitlines()[-1] == (
        "[View in SonarQube](https://sonar.example.com/dashboard?id=my-project&pullRequest=7)"
    )
    assert summary.startswith("**Quality Gate passed**")


def test_summary_counts_hotspots_as_vulnerabilities_and_lists_conditions():
    """Verify failed gates list their conditions and metrics are formatted."""
    analysis = _analysis(
        [_issue("a", IssueType.VULNERABILITY), _issue("b", IssueType.SECURITY_HOTSPOT)],
        gate=QualityGateStatus.ERROR,
    )

    summary = MarkdownSummaryFormatter().format_summary(analysis)

    assert "**Quality Gate failed**" in summary
    assert "- Reliability Rating on New Code is worse than A" in summary
    assert "- 2 Vulnerabilities" in summary
    assert "- 81.00% Coverage" in summary
    assert "- No duplication information" in summary


def test_issue_comment_carries_issue_marker():
    """Verify issue comments round-trip to their project and issue keys."""
    analysis = _analysis()

    body = MarkdownSummaryFormatter().format_issue(_issue(effort=15), analysis)
    marker = parse_marker(body)

    assert "**Duration (min):** 15" in body
    assert marker.project_key == "my-project"
    assert marker.issue_key == "AXissue"
    assert not marker.is_summary


def test_parse_marker_recognizes_summary():
    """Verify dashboard links are read as the summary marker."""
    body = MarkdownSummaryFormatter().format_summary(_analysis(project_key="group:module"))

    marker = parse_marker(body)

    assert marker.is_summary
    assert marker.issue_key == SUMMARY_ISSUE_KEY
    assert marker.project_key == "group:module"


def test_parse_marker_reads_hotspot_links():
    """Verify security hotspot links use the hotspots parameter."""
    body = "text\n[View in SonarQube](https://sonar.example.com/security_hotspots?id=proj&pullRequest=1&hotspots=HS1)"

    marker = parse_marker(body)

    assert marker.project_key == "proj"
    assert marker.issue_key == "HS1"


def test_parse_marker_ignores_foreign_comments():
    """Verify comments without a well-formed marker line are foreign."""
    assert parse_marker(None) is None
    assert parse_marker("LGTM, thanks!") is None
    assert parse_marker("see [View in SonarQube](https://sonar.example.com/dashboard?id=p) inline") is None
    assert parse_marker("[View in SonarQube](https://sonar.example.com/project/issues?pullRequest=1)") is None
