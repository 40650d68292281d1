"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses. Each error class
carries the HTTP status it is rendered with; ``details["http_status"]``
overrides it for errors that echo an upstream status.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    parameter: str
    endpoint: str
    http_status: int
    upstream_status: int
    retry_after: float
    limit: int
    window_seconds: int
    attempts: int
    upstream_body: Any
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message (safe to show to clients).
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    status_code: ClassVar[int] = 500

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        if self.details and self.details.get("http_status"):
            return int(self.details["http_status"])
        return self.status_code


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""

    status_code = 400


class MissingParameterError(ValidationAppError):
    """Raised when a required query parameter is absent or empty."""


class AuthenticationAppError(AppError):
    """Raised when a caller fails admin authentication."""

    status_code = 403


class UpstreamAuthorizationError(AppError):
    """Raised when the upstream secret is unconfigured or rejected upstream."""

    status_code = 500


class NotFoundError(AppError):
    """Raised when the upstream resource does not exist."""

    status_code = 404


class RateLimitExceededError(AppError):
    """Raised when the local quota is exhausted or upstream keeps answering 429."""

    status_code = 429


class UpstreamError(AppError):
    """Raised for any other non-2xx upstream answer or an unreadable payload."""

    status_code = 502


class UpstreamNetworkError(AppError):
    """Raised when the upstream cannot be reached (connection/protocol failure)."""

    status_code = 502


class UpstreamTimeoutError(UpstreamNetworkError):
    """Raised when a single upstream attempt exceeds its timeout budget."""

    status_code = 504
