"""Tests for the shared decoration pipeline."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prdecorator.ado_decorator import AzureDevOpsDecorator
from prdecorator.batching import UploadLimit
from prdecorator.bitbucket_decorator import BitbucketDecorator
from prdecorator.config import HostBinding, Platform
from prdecorator.decorator import PullRequestDecorator, create_decorator
from prdecorator.errors import ApiError, ConfigurationError, DecorationFailedError
from prdecorator.github_decorator import GithubDecorator
from prdecorator.gitlab_decorator import GitlabDecorator
from prdecorator.models import AnalysisResult, AuthToken, Issue, IssueType, QualityGateStatus, Severity
from prdecorator.selection import build_selection_policy


class RecordingDecorator(PullRequestDecorator):
    """Concrete decorator that records the steps it is asked to run."""

    platform = "recording"

    def __init__(self, *args, fail_on=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.steps = []
        self.published = None
        self._fail_on = fail_on

    def _step(self, name):
        self.steps.append(name)
        if name == self._fail_on:
            raise ApiError(f"{name} failed", status_code=500)

    def validate_token(self, token):
        return None

    def connect(self, token):
        self._step("connect")

    def cleanup(self, analysis):
        self._step("cleanup")

    def publish(self, analysis, selected):
        self.published = selected
        self._step("publish")

    def reconcile_summary(self, analysis):
        self._step("summary")

    def pull_request_url(self, analysis):
        return f"https://example.com/pr/{analysis.pull_request_id}"


def _binding(summary_comment_enabled=True, upload_limit_override=None) -> HostBinding:
    return HostBinding(
        Platform.GITLAB,
        "https://gitlab.com/api/v4",
        "group/project",
        personal_access_token="pat",
        summary_comment_enabled=summary_comment_enabled,
        upload_limit_override=upload_limit_override,
    )


def _analysis(issues=()) -> AnalysisResult:
    return AnalysisResult(
        commit_sha="abc123",
        pull_request_id="3",
        quality_gate=QualityGateStatus.ERROR,
        issues=tuple(issues),
        server_url="https://sonar.example.com",
        project_key="proj",
        project_name="Project",
        analysis_id="AX-1",
        analysis_date=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )


def _provider():
    provider = Mock()
    provider.acquire.return_value = AuthToken("token")
    return provider


def test_decorate_runs_steps_in_order_and_returns_url():
    """Verify authentication, cleanup, publication, and summary happen in sequence."""
    provider = _provider()
    decorator = RecordingDecorator(_binding(), credential_provider=provider)

    result = decorator.decorate(_analysis())

    assert decorator.steps == ["connect", "cleanup", "publish", "summary"]
    provider.acquire.assert_called_once_with()
    assert result.pull_request_url == "https://example.com/pr/3"


def test_decorate_publishes_selected_issues_only():
    """Verify the selection policy shapes what gets published."""
    issues = [
        Issue("low", (Severity.LOW,), IssueType.BUG, "m"),
        Issue("high", (Severity.HIGH,), IssueType.BUG, "m"),
        Issue("info", (Severity.INFO,), IssueType.BUG, "m"),
    ]
    decorator = RecordingDecorator(
        _binding(),
        policy=build_selection_policy(severity_exclusions="info", max_issues=1),
        credential_provider=_provider(),
    )

    decorator.decorate(_analysis(issues))

    assert [issue.key for issue in decorator.published] == ["high"]


def test_decorate_skips_summary_when_disabled():
    """Verify summary reconciliation is skipped when summary comments are off."""
    decorator = RecordingDecorator(_binding(summary_comment_enabled=False), credential_provider=_provider())

    decorator.decorate(_analysis())

    assert "summary" not in decorator.steps


def test_failure_aborts_remaining_steps():
    """Verify a failing step stops the run and wraps the cause."""
    decorator = RecordingDecorator(_binding(), credential_provider=_provider(), fail_on="cleanup")

    with pytest.raises(DecorationFailedError) as exc_info:
        decorator.decorate(_analysis())

    assert decorator.steps == ["connect", "cleanup"]
    assert exc_info.value.platform == "recording"
    assert isinstance(exc_info.value.cause, ApiError)
    assert "Could not decorate pull request on recording" in str(exc_info.value)


def test_credential_failure_is_wrapped():
    """Verify credential errors surface as a failed decoration before any call."""
    provider = Mock()
    provider.acquire.side_effect = ConfigurationError("no installation")
    decorator = RecordingDecorator(_binding(), credential_provider=provider)

    with pytest.raises(DecorationFailedError) as exc_info:
        decorator.decorate(_analysis())

    assert isinstance(exc_info.value.cause, ConfigurationError)
    assert decorator.steps == []


def test_upload_in_batches_uses_binding_limit():
    """Verify batches follow the binding's upload limit and report the items sent."""
    decorator = RecordingDecorator(
        _binding(upload_limit_override=UploadLimit(batch_size=2, total_cap=5)),
        credential_provider=_provider(),
    )
    uploads = []

    sent = decorator.upload_in_batches(list(range(9)), lambda index, batch: uploads.append((index, batch)))

    assert sent == 5
    assert uploads == [(0, [0, 1]), (1, [2, 3]), (2, [4])]


@pytest.mark.parametrize(
    "binding, expected",
    [
        (
            HostBinding(Platform.GITHUB, "https://api.github.com", "owner/repo", app_id="1", private_key="key"),
            GithubDecorator,
        ),
        (HostBinding(Platform.GITLAB, "https://gitlab.com/api/v4", "g/p", personal_access_token="t"), GitlabDecorator),
        (
            HostBinding(Platform.BITBUCKET, "https://bitbucket.example.com", "PRJ", slug="repo", personal_access_token="t"),
            BitbucketDecorator,
        ),
        (
            HostBinding(Platform.AZURE_DEVOPS, "https://dev.azure.com/org", "proj", slug="repo", personal_access_token="t"),
            AzureDevOpsDecorator,
        ),
    ],
)
def test_create_decorator_selects_platform(binding, expected):
    """Verify each platform maps to its decorator."""
    assert isinstance(create_decorator(binding), expected)
