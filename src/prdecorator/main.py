"""Application entrypoint for the pull-request decorator."""

from __future__ import annotations

import logging
import sys

from .cli import parse_args
from .config import load_analysis, load_binding
from .decorator import create_decorator
from .errors import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    ContractViolationError,
    DecorationFailedError,
)
from .selection import build_selection_policy

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_GENERIC_ERROR = 1
EXIT_CONFIGURATION_ERROR = 2
EXIT_AUTHENTICATION_ERROR = 3
EXIT_API_ERROR = 4
EXIT_CONTRACT_VIOLATION = 5


def exit_code_for(error: BaseException) -> int:
    """Map an error, or the cause of a failed decoration, to a process exit code."""
    if isinstance(error, DecorationFailedError):
        error = error.cause

    if isinstance(error, AuthenticationError):
        return EXIT_AUTHENTICATION_ERROR
    if isinstance(error, ConfigurationError):
        return EXIT_CONFIGURATION_ERROR
    if isinstance(error, ApiError):
        return EXIT_API_ERROR
    if isinstance(error, ContractViolationError):
        return EXIT_CONTRACT_VIOLATION
    return EXIT_GENERIC_ERROR


def orchestrate_decoration() -> int:
    """Run the end-to-end decoration flow and return a process exit code."""
    try:
        args = parse_args()
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        binding = load_binding(args.binding)
        analysis = load_analysis(args.analysis)
        policy = build_selection_policy(
            severity_exclusions=args.severity_exclusions,
            type_exclusions=args.type_exclusions,
            max_issues=args.max_issues,
        )

        print(
            f"Decorating pull request {analysis.pull_request_id} on {binding.platform.value} "
            f"for project '{analysis.project_key}'..."
        )
        decorator = create_decorator(binding, policy=policy)
        result = decorator.decorate(analysis)

        if result.pull_request_url:
            print(result.pull_request_url)
        return EXIT_OK
    except (ConfigurationError, ApiError, ContractViolationError, DecorationFailedError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return exit_code_for(exc)
    except Exception as exc:
        logger.exception("Unexpected error during decoration")
        print(f"ERROR: Unexpected failure: {exc}", file=sys.stderr)
        return EXIT_GENERIC_ERROR


def main() -> int:
    """Console script entrypoint."""
    return orchestrate_decoration()


if __name__ == "__main__":
    raise SystemExit(main())
