"""Request body parsing and validation for gated routes.

Routes never touch raw JSON: ``read_json_body`` parses the body once per
request (FastAPI caches dependency results) and ``validate_payload`` turns it
into the endpoint's schema, translating pydantic failures into
``ValidationAppError`` with a stable public code.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from app.core.errors import ErrorCode, ValidationAppError, validation_failed
from app.core.logging import log_security_event

logger = logging.getLogger(__name__)

# Consumed by the verification gate; never part of an endpoint schema.
VERIFICATION_FIELDS: tuple[str, ...] = ("turnstileToken", "cf-turnstile-response")

RULE_ERROR_CODES: frozenset[str] = frozenset(
    {
        ErrorCode.VALIDATION_ERROR,
        ErrorCode.INVALID_PROMPT,
        ErrorCode.PROMPT_TOO_LONG,
        ErrorCode.INVALID_IMAGE_SIZE,
        ErrorCode.INVALID_AUDIO_FORMAT,
        ErrorCode.AUDIO_TOO_LARGE,
        ErrorCode.TEXT_TOO_LONG,
    }
)

RequestModelT = TypeVar("RequestModelT", bound=BaseModel)


async def read_json_body(request: Request) -> dict[str, Any]:
    """FastAPI dependency returning the request body as a JSON object.

    Raises:
        ValidationAppError: When the body is empty, not JSON, or not an object.
    """

    raw = await request.body()
    try:
        payload = json.loads(raw) if raw else None
    except ValueError:
        payload = None

    if not isinstance(payload, dict):
        logger.info(
            "request.invalid_body",
            extra={"path": request.url.path, "body_size": len(raw)},
        )
        raise validation_failed("Invalid request body format", field="body")
    return payload


def strip_verification_fields(body: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in body.items() if key not in VERIFICATION_FIELDS}


def _error_field(error: Mapping[str, Any]) -> str:
    ctx = error.get("ctx") or {}
    if ctx.get("field"):
        return str(ctx["field"])
    loc = error.get("loc") or ()
    return str(loc[0]) if loc else "body"


def translate_validation_error(exc: ValidationError) -> ValidationAppError:
    """Convert a pydantic ``ValidationError`` into the first public error.

    Unknown keys are reported together and take precedence; otherwise the
    first failing rule wins.

    Args:
        exc: Error raised by ``model_validate``.

    Returns:
        ValidationAppError ready to be raised.
    """

    errors = exc.errors(include_url=False)

    unknown = [str(err["loc"][0]) for err in errors if err["type"] == "extra_forbidden" and err["loc"]]
    if unknown:
        log_security_event("validation_bypass_attempt", fields=unknown, schema=exc.title)
        return validation_failed(
            f"Unknown fields: {', '.join(unknown)}",
            field="body",
            details={"fields": unknown},
        )

    first = errors[0]
    field = _error_field(first)
    error_type = first["type"]

    if error_type in RULE_ERROR_CODES:
        return ValidationAppError(code=error_type, message=first["msg"], field=field)

    if error_type == "missing":
        message = f"{field} parameter cannot be empty"
    else:
        message = f"{field}: {first['msg']}"
    return validation_failed(message, field=field, details={"reason": error_type})


def validate_payload(model: type[RequestModelT], body: Mapping[str, Any]) -> RequestModelT:
    """Validate a parsed body against an endpoint schema.

    Verification fields are removed first so they never count as unknown.

    Args:
        model: Endpoint request schema.
        body: Parsed JSON object from ``read_json_body``.

    Returns:
        Validated (and sanitized) request model.

    Raises:
        ValidationAppError: On the first failing rule.
    """

    try:
        return model.model_validate(strip_verification_fields(body))
    except ValidationError as exc:
        error = translate_validation_error(exc)
        logger.info(
            "request.validation_failed",
            extra={"schema": model.__name__, "error_code": error.code, "field": error.field},
        )
        raise error from exc
