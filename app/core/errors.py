"""Application-level exception types.

This module defines the error taxonomy shared by the gates, validators and
upstream adapters. Every failure is raised as an ``AppError`` subclass and
converted to the JSON envelope by the global exception handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, NotRequired, TypedDict


class ErrorCode:
    """Stable, machine-readable error codes returned in the ``code`` field."""

    # Client errors (4xx)
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Server errors (5xx)
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    GATEWAY_TIMEOUT = "GATEWAY_TIMEOUT"

    # Business-specific errors
    INVALID_PROMPT = "INVALID_PROMPT"
    PROMPT_TOO_LONG = "PROMPT_TOO_LONG"
    INVALID_IMAGE_SIZE = "INVALID_IMAGE_SIZE"
    INVALID_AUDIO_FORMAT = "INVALID_AUDIO_FORMAT"
    AUDIO_TOO_LARGE = "AUDIO_TOO_LARGE"
    TEXT_TOO_LONG = "TEXT_TOO_LONG"
    API_LIMIT_EXCEEDED = "API_LIMIT_EXCEEDED"

    # Human verification
    TURNSTILE_MISSING = "TURNSTILE_MISSING"
    TURNSTILE_FAILED = "TURNSTILE_FAILED"


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Only exposed to clients outside production deployments.
    """

    field: str
    fields: list[str]
    upstream_status: int
    error_codes: list[str]
    retryable: bool
    limit: int
    reason: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code (see ``ErrorCode``).
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
        field: Name of the offending request parameter, when known.
        status_code: HTTP status; defaults to the class ``default_status``.
        title: Short error title returned as the envelope ``error`` field.
        headers: Extra response headers (e.g. rate-limit metadata).
    """

    code: str
    message: str
    details: ErrorDetails | None = None
    field: str | None = None
    status_code: int | None = None
    title: str | None = None
    headers: dict[str, str] | None = None

    default_status: ClassVar[int] = 500

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)
        if self.status_code is None:
            self.status_code = self.default_status


class ValidationAppError(AppError):
    """Raised when request input is malformed, missing or out of range."""

    default_status = 400


class VerificationAppError(AppError):
    """Raised when human verification is missing or rejected."""

    default_status = 403


@dataclass
class RateLimitAppError(AppError):
    """Raised when the caller exceeded its request quota."""

    retry_after: int | None = None

    default_status: ClassVar[int] = 429


class UpstreamAppError(AppError):
    """Raised when the generative API fails, times out or is unreachable."""

    default_status = 500


# --- Factories -------------------------------------------------------------


def validation_failed(
    message: str = "Parameter validation failed",
    *,
    field: str | None = None,
    details: ErrorDetails | None = None,
) -> ValidationAppError:
    return ValidationAppError(
        code=ErrorCode.VALIDATION_ERROR,
        message=message,
        field=field,
        details=details,
    )


def internal(message: str = "Internal server error", details: ErrorDetails | None = None) -> UpstreamAppError:
    return UpstreamAppError(code=ErrorCode.INTERNAL_SERVER_ERROR, message=message, details=details)


def service_unavailable(
    message: str = "Service temporarily unavailable",
    details: ErrorDetails | None = None,
) -> UpstreamAppError:
    return UpstreamAppError(
        code=ErrorCode.SERVICE_UNAVAILABLE,
        message=message,
        details=details,
        status_code=503,
    )


def gateway_timeout(message: str = "Request timeout", details: ErrorDetails | None = None) -> UpstreamAppError:
    return UpstreamAppError(
        code=ErrorCode.GATEWAY_TIMEOUT,
        message=message,
        details=details,
        status_code=504,
    )


def api_limit_exceeded(limit: str) -> RateLimitAppError:
    return RateLimitAppError(
        code=ErrorCode.API_LIMIT_EXCEEDED,
        message=f"API call frequency exceeds limit: {limit}",
    )
