"""Application-level exception types.

This module defines domain errors used across adapters and the HTTP layer,
enabling consistent error handling, logging, and API responses.

Rate limit rejections are not errors at the limiter level (they are ordinary
decisions); ``RateLimitedAppError`` exists only so route dependencies can
short-circuit a request into the standard error envelope.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep shapes consistent without forcing every
    error to fill every field.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: int
    policy: str
    policy_id: str
    field: str
    value: Any
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when request input validation fails."""


class AuthenticationAppError(AppError):
    """Raised when a caller fails authentication."""


class ConfigurationError(AppError):
    """Raised on limiter misconfiguration (unknown or invalid policy)."""


class RateLimitedAppError(AppError):
    """Raised by route dependencies when a request is rejected by a policy."""

    @property
    def retry_after(self) -> int:
        return int((self.details or {}).get("retry_after", 0))
