"""Tests for application orchestration in the main module."""

import sys
from argparse import Namespace
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prdecorator.config import HostBinding, Platform
from prdecorator.errors import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    ContractViolationError,
    DecorationFailedError,
)
from prdecorator.main import exit_code_for, main, orchestrate_decoration
from prdecorator.models import AnalysisResult, DecorationResult, QualityGateStatus


def _args(**overrides) -> Namespace:
    values = dict(
        binding=Path("binding.json"),
        analysis=Path("analysis.json"),
        max_issues=None,
        severity_exclusions=None,
        type_exclusions=None,
        verbose=False,
    )
    values.update(overrides)
    return Namespace(**values)


def _binding() -> HostBinding:
    return HostBinding(Platform.GITLAB, "https://gitlab.com/api/v4", "group/project", personal_access_token="secret")


def _analysis() -> AnalysisResult:
    return AnalysisResult(
        commit_sha="abc123",
        pull_request_id="7",
        quality_gate=QualityGateStatus.OK,
        issues=(),
        server_url="https://sonar.example.com",
        project_key="proj",
        project_name="Project",
        analysis_id="AX-1",
        analysis_date=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )


def test_orchestrate_decoration_success(capsys):
    """Verify orchestration returns 0 and wires components correctly on success."""
    decorator = Mock()
    decorator.decorate.return_value = DecorationResult("https://gitlab.com/group/project/-/merge_requests/7")
    binding = _binding()
    analysis = _analysis()

    with patch("prdecorator.main.parse_args", return_value=_args(max_issues=10, severity_exclusions="info")), patch(
        "prdecorator.main.load_binding", return_value=binding
    ) as load_binding_mock, patch(
        "prdecorator.main.load_analysis", return_value=analysis
    ) as load_analysis_mock, patch(
        "prdecorator.main.create_decorator", return_value=decorator
    ) as create_mock:
        exit_code = orchestrate_decoration()

    assert exit_code == 0
    load_binding_mock.assert_called_once_with(Path("binding.json"))
    load_analysis_mock.assert_called_once_with(Path("analysis.json"))
    policy = create_mock.call_args.kwargs["policy"]
    assert policy.max_issues == 10
    assert len(policy.predicates) == 1
    decorator.decorate.assert_called_once_with(analysis)
    output = capsys.readouterr().out
    assert "Decorating pull request 7 on gitlab for project 'proj'..." in output
    assert "https://gitlab.com/group/project/-/merge_requests/7" in output


def test_orchestrate_decoration_missing_token_returns_auth_error():
    """Verify missing credentials return the authentication exit code."""
    with patch("prdecorator.main.parse_args", return_value=_args()), patch(
        "prdecorator.main.load_binding",
        side_effect=AuthenticationError("Missing required personal access token."),
    ):
        exit_code = orchestrate_decoration()

    assert exit_code == 3


def test_orchestrate_decoration_invalid_config_returns_config_error(capsys):
    """Verify configuration problems return the configuration exit code."""
    with patch("prdecorator.main.parse_args", return_value=_args()), patch(
        "prdecorator.main.load_binding",
        side_effect=ConfigurationError("Unsupported platform 'svn'."),
    ):
        exit_code = orchestrate_decoration()

    assert exit_code == 2
    assert "ERROR: Unsupported platform 'svn'." in capsys.readouterr().err


@pytest.mark.parametrize(
    "cause, expected",
    [
        (ApiError("boom", status_code=500), 4),
        (AuthenticationError("expired"), 3),
        (ConfigurationError("no installation"), 2),
        (ContractViolationError("no severity"), 5),
        (RuntimeError("surprise"), 1),
    ],
)
def test_failed_decoration_maps_cause_to_exit_code(cause, expected):
    """Verify a failed decoration exits with the code of its underlying cause."""
    decorator = Mock()
    decorator.decorate.side_effect = DecorationFailedError("gitlab", cause)

    with patch("prdecorator.main.parse_args", return_value=_args()), patch(
        "prdecorator.main.load_binding", return_value=_binding()
    ), patch("prdecorator.main.load_analysis", return_value=_analysis()), patch(
        "prdecorator.main.create_decorator", return_value=decorator
    ):
        exit_code = orchestrate_decoration()

    assert exit_code == expected


def test_unexpected_error_returns_generic_exit_code(capsys):
    """Verify unexpected failures are reported and return exit code 1."""
    with patch("prdecorator.main.parse_args", return_value=_args()), patch(
        "prdecorator.main.load_binding", side_effect=RuntimeError("disk on fire")
    ):
        exit_code = orchestrate_decoration()

    assert exit_code == 1
    assert "Unexpected failure: disk on fire" in capsys.readouterr().err


def test_exit_code_for_plain_errors():
    """Verify errors raised outside a decoration map directly."""
    assert exit_code_for(ApiError("x")) == 4
    assert exit_code_for(ContractViolationError("x")) == 5


def test_main_delegates_to_orchestration():
    """Verify the console entrypoint returns the orchestration exit code."""
    with patch("prdecorator.main.orchestrate_decoration", return_value=4) as orchestrate_mock:
        assert main() == 4

    orchestrate_mock.assert_called_once_with()
