"""Command-line argument parsing for the pull-request decorator."""

from __future__ import annotations

import argparse
from pathlib import Path


def _positive_int(value: str) -> int:
    """Parse and validate a positive integer CLI value.

    Args:
        value: Raw command-line argument value.

    Returns:
        The validated positive integer.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")

    return parsed


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments for one decoration run.

    Returns:
        Parsed CLI arguments containing the binding and analysis file paths,
        the issue selection settings and the verbosity flag.
    """
    parser = argparse.ArgumentParser(
        prog="pr-decorator",
        description=(
            "Decorate a pull or merge request with the result of a code-quality analysis "
            "(status, summary and line annotations)."
        ),
    )

    parser.add_argument(
        "--binding",
        required=True,
        type=Path,
        help="JSON file describing the hosting platform, repository and credentials.",
    )
    parser.add_argument(
        "--analysis",
        required=True,
        type=Path,
        help="JSON file holding the analysis result to publish.",
    )
    parser.add_argument(
        "--max-issues",
        type=_positive_int,
        default=None,
        help="Maximum number of issues to publish, most severe first (default: no limit).",
    )
    parser.add_argument(
        "--severity-exclusions",
        default=None,
        help="Comma separated severities to leave out, e.g. 'info,low'.",
    )
    parser.add_argument(
        "--type-exclusions",
        default=None,
        help="Comma separated issue types to leave out, e.g. 'code_smell'.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser.parse_args()
