"""Custom exception types for the pull-request decorator."""

from __future__ import annotations

from typing import Optional


class DecoratorError(Exception):
    """Base exception for all decoration errors."""


class ConfigurationError(DecoratorError):
    """Raised when a host binding or runtime setting is missing or invalid."""


class AuthenticationError(ConfigurationError):
    """Raised when credentials are unavailable, rejected, or expired."""


class ApiError(DecoratorError):
    """Raised when a hosting platform API call fails or returns an unexpected response."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.url = url
        self.status_code = status_code


class ContractViolationError(DecoratorError):
    """Raised when analysis output does not satisfy what a platform requires."""


class DecorationFailedError(DecoratorError):
    """Raised when a decoration run did not complete every step."""

    def __init__(self, platform: str, cause: BaseException) -> None:
        super().__init__(f"Could not decorate pull request on {platform}: {cause}")
        self.platform = platform
        self.cause = cause
