"""Tests for command-line argument parsing."""

import sys
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prdecorator.cli import parse_args


def test_parse_args_with_valid_arguments(monkeypatch):
    """Verify CLI parsing succeeds when all arguments are provided."""
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "pr-decorator",
            "--binding",
            "binding.json",
            "--analysis",
            "analysis.json",
            "--max-issues",
            "25",
            "--severity-exclusions",
            "info,low",
            "--type-exclusions",
            "code_smell",
            "--verbose",
        ],
    )

    args = parse_args()

    assert args.binding == Path("binding.json")
    assert args.analysis == Path("analysis.json")
    assert args.max_issues == 25
    assert args.severity_exclusions == "info,low"
    assert args.type_exclusions == "code_smell"
    assert args.verbose is True


def test_parse_args_defaults(monkeypatch):
    """Verify optional settings default to no limit, no exclusions, and quiet logging."""
    monkeypatch.setattr(sys, "argv", ["pr-decorator", "--binding", "b.json", "--analysis", "a.json"])

    args = parse_args()

    assert args.max_issues is None
    assert args.severity_exclusions is None
    assert args.type_exclusions is None
    assert args.verbose is False


def test_parse_args_requires_binding(monkeypatch):
    """Verify CLI parsing exits when the binding file is missing."""
    monkeypatch.setattr(sys, "argv", ["pr-decorator", "--analysis", "a.json"])

    with pytest.raises(SystemExit):
        parse_args()


@pytest.mark.parametrize("value", ["0", "-1", "many"])
def test_parse_args_with_invalid_max_issues_fails_validation(monkeypatch, value):
    """Verify CLI parsing exits with an error when --max-issues is not a positive integer."""
    monkeypatch.setattr(
        sys,
        "argv",
        ["pr-decorator", "--binding", "b.json", "--analysis", "a.json", "--max-issues", value],
    )

    with pytest.raises(SystemExit):
        parse_args()
