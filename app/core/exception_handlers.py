"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain, framework and unexpected) and return one JSON envelope:

    {"error", "status", "message", "code", "field"?, "details"?,
     "timestamp", "path", "retryAfter"?}

Design:
- AppError subclasses carry their own HTTP status and extra headers
- Starlette HTTP errors (404, 405, ...) and FastAPI request validation errors
  are mapped into the same envelope
- Unexpected Exception -> generic 500 (safety net, nothing leaked)
- ``details`` is only exposed outside production
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any, Mapping

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.errors import AppError, ErrorCode, RateLimitAppError
from app.core.logging import get_request_id, utc_now_iso

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."

_HTTP_STATUS_CODES: dict[int, str] = {
    400: ErrorCode.BAD_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
    429: ErrorCode.TOO_MANY_REQUESTS,
    503: ErrorCode.SERVICE_UNAVAILABLE,
    504: ErrorCode.GATEWAY_TIMEOUT,
}


def _status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def build_error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    title: str | None = None,
    field: str | None = None,
    details: Mapping[str, Any] | None = None,
    retry_after: int | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Render the error envelope.

    Args:
        request: Request being answered (for ``path``).
        status_code: HTTP status.
        code: Stable error code.
        message: Human-readable message.
        title: Short title; defaults to the HTTP reason phrase.
        field: Offending parameter, when known.
        details: Debug context, dropped in production.
        retry_after: Seconds until retry, for 429 responses.
        headers: Extra response headers.

    Returns:
        JSONResponse with ``Cache-Control: no-cache``.
    """

    content: dict[str, Any] = {
        "error": title or _status_phrase(status_code),
        "status": status_code,
        "message": message,
        "code": code,
    }
    if field:
        content["field"] = field
    if details and not settings.is_production:
        content["details"] = jsonable_encoder(details)
    content["timestamp"] = utc_now_iso()
    content["path"] = request.url.path
    if retry_after is not None:
        content["retryAfter"] = retry_after

    response_headers = {"Cache-Control": "no-cache"}
    if headers:
        response_headers.update(headers)

    return JSONResponse(status_code=status_code, content=content, headers=response_headers)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with the shared envelope.

    The status code comes from the error itself (see ``AppError`` subclasses);
    server-side failures are logged at error level, client faults at warning.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the error's status, headers and envelope.
    """
    status_code = exc.status_code or 500
    level = logging.ERROR if status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )

    retry_after = exc.retry_after if isinstance(exc, RateLimitAppError) else None
    return build_error_response(
        request,
        status_code=status_code,
        code=exc.code,
        message=exc.message,
        title=exc.title,
        field=exc.field,
        details=exc.details,
        retry_after=retry_after,
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Map framework HTTP errors (unknown route, wrong method, ...) to the envelope."""

    status_code = exc.status_code
    code = _HTTP_STATUS_CODES.get(
        status_code,
        ErrorCode.INTERNAL_SERVER_ERROR if status_code >= 500 else ErrorCode.BAD_REQUEST,
    )
    message = exc.detail if isinstance(exc.detail, str) else _status_phrase(status_code)

    logger.info(
        "http_error_handled",
        extra={"status_code": status_code, "request_path": request.url.path},
    )
    return build_error_response(
        request,
        status_code=status_code,
        code=code,
        message=message,
        headers=exc.headers,
    )


async def request_validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Map FastAPI parameter validation errors to 400 ``VALIDATION_ERROR``."""

    errors = exc.errors()
    first_loc = errors[0].get("loc", ()) if errors else ()
    field = str(first_loc[-1]) if first_loc else None

    logger.info(
        "request_validation_failed",
        extra={"request_path": request.url.path, "error_count": len(errors)},
    )
    return build_error_response(
        request,
        status_code=400,
        code=ErrorCode.VALIDATION_ERROR,
        title="Validation failed",
        message="Parameter validation failed",
        field=field,
        details={"context": {"errors": errors}},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Catches any exception not handled by specific handlers.
    Logs detailed information for debugging while returning generic message.
    Prevents information leakage (no stack traces to client).

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with generic error (no implementation details leaked).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return build_error_response(
        request,
        status_code=500,
        code=ErrorCode.INTERNAL_SERVER_ERROR,
        message=GENERIC_ERROR_MESSAGE,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with FastAPI app.

    Order matters: specific handlers registered before general fallback.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(request_validation_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)
