"""Cloudflare Turnstile verification gate.

This module provides the human-verification step that runs after rate
limiting and before request validation on every gated route.

Design principles:
- Fail closed: missing keys never let a request through unless the operator
  explicitly sets ``TURNSTILE_SKIP_VERIFICATION=true``.
- Dependency Injection: the verifier is a FastAPI dependency so tests can
  swap it with ``app.dependency_overrides``.
- Pure helpers (message table, retryable classification) are kept free of
  FastAPI for easy testing.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Iterable, Mapping

from fastapi import Depends, Request

from app.adapters.turnstile import AbstractVerifier, TurnstileVerifier, VerificationOutcome
from app.core.client_identity import resolve_client_identity
from app.core.config import settings
from app.core.errors import ErrorCode, ValidationAppError, VerificationAppError
from app.core.logging import log_turnstile_event
from app.services.request_validator import VERIFICATION_FIELDS, read_json_body

logger = logging.getLogger(__name__)

UNGATED_PATHS: frozenset[str] = frozenset({"/api/health"})

ERROR_MESSAGES: dict[str, str] = {
    "missing-secret-key": "Verification service not configured",
    "missing-input-secret": "Service configuration error",
    "invalid-input-secret": "Service configuration error",
    "missing-input-response": "Please complete the verification challenge",
    "invalid-input-response": "Verification has expired, please try again",
    "bad-request": "Invalid request format",
    "timeout-or-duplicate": "Verification timeout or duplicate submission",
    "internal-error": "Verification service temporarily unavailable",
}

DEFAULT_ERROR_MESSAGE = "Verification failed, please try again"

RETRYABLE_ERROR_CODES: frozenset[str] = frozenset(
    {"timeout-or-duplicate", "internal-error", "invalid-input-response"}
)


def get_error_message(error_codes: Iterable[str] | None) -> str:
    """Map Turnstile error codes to a user-facing message.

    The first code decides the message; unknown or empty lists fall back to a
    generic prompt to retry.

    Examples:
        >>> get_error_message(["timeout-or-duplicate", "bad-request"])
        'Verification timeout or duplicate submission'
        >>> get_error_message([])
        'Verification failed, please try again'
    """

    codes = list(error_codes or [])
    if not codes:
        return DEFAULT_ERROR_MESSAGE
    return ERROR_MESSAGES.get(codes[0], DEFAULT_ERROR_MESSAGE)


def is_retryable_error(error_codes: Iterable[str] | None) -> bool:
    """Whether re-solving the challenge could succeed.

    An absent list is treated as retryable (nothing says otherwise).
    """

    if error_codes is None:
        return True
    return any(code in RETRYABLE_ERROR_CODES for code in error_codes)


def extract_token(body: Mapping[str, Any]) -> str | None:
    """Return the verification token from a parsed JSON body, if any."""

    for field in VERIFICATION_FIELDS:
        value = body.get(field)
        if isinstance(value, str) and value:
            return value
    return None


def should_skip_verification(path: str) -> bool:
    """Decide whether the gate is bypassed for this request path.

    Args:
        path: Request URL path.

    Returns:
        True for health probes or when verification is explicitly disabled.
        Missing keys return False so the request is rejected downstream.
    """

    if path in UNGATED_PATHS:
        return True

    if settings.turnstile.skip_verification:
        log_turnstile_event("verification_skipped", url=path, reason="explicitly_disabled")
        return True

    if not settings.turnstile.is_configured:
        logger.warning(
            "turnstile.keys_not_configured",
            extra={
                "secret_key_present": bool(settings.turnstile.secret_key),
                "site_key_present": bool(settings.turnstile.site_key),
                "action": "blocking_request",
            },
        )
    return False


_verifier: AbstractVerifier | None = None
_verifier_config: tuple[Any, ...] | None = None


def get_turnstile_verifier() -> AbstractVerifier:
    """Return the process-wide Turnstile verifier.

    Rebuilt when the secret, endpoint or timeout changes (primarily in tests).
    """

    global _verifier, _verifier_config

    config = (
        settings.turnstile.secret_key,
        settings.turnstile.verify_url,
        settings.turnstile.timeout_seconds,
    )
    if _verifier is None or _verifier_config != config:
        _verifier = TurnstileVerifier(
            settings.turnstile.secret_key,
            verify_url=settings.turnstile.verify_url,
            timeout_seconds=settings.turnstile.timeout_seconds,
        )
        _verifier_config = config
    return _verifier


async def close_turnstile_verifier() -> None:
    """Close the shared verifier's HTTP client (called on shutdown)."""

    global _verifier, _verifier_config
    if _verifier is not None:
        await _verifier.aclose()
    _verifier = None
    _verifier_config = None


async def enforce_turnstile(
    request: Request,
    body: Annotated[dict[str, Any], Depends(read_json_body)],
    verifier: Annotated[AbstractVerifier, Depends(get_turnstile_verifier)],
) -> None:
    """FastAPI dependency enforcing Turnstile verification.

    Usage:
        @router.post(
            "/api/text-to-image",
            dependencies=[Depends(enforce_rate_limit), Depends(enforce_turnstile)],
        )

    Args:
        request: FastAPI request.
        body: Parsed JSON body (shared with the route handler).
        verifier: Verification client.

    Raises:
        ValidationAppError: 400 ``TURNSTILE_MISSING`` when no token is sent.
        VerificationAppError: 403 ``TURNSTILE_FAILED`` when verification fails.
    """

    path = request.url.path
    if should_skip_verification(path):
        return

    token = extract_token(body)
    if not token:
        raise ValidationAppError(
            code=ErrorCode.TURNSTILE_MISSING,
            title="Verification required",
            message="Please complete the verification challenge",
        )

    client_ip = resolve_client_identity(request.headers)
    user_agent = request.headers.get("user-agent")
    if settings.turnstile.is_configured:
        outcome = await verifier.verify(token, client_ip)
    else:
        outcome = VerificationOutcome.failed("missing-secret-key")

    if not outcome.success:
        log_turnstile_event(
            "verification_failed",
            ip=client_ip,
            error_codes=outcome.error_codes,
            user_agent=user_agent,
            url=str(request.url),
        )
        raise VerificationAppError(
            code=ErrorCode.TURNSTILE_FAILED,
            title="Verification failed",
            message=get_error_message(outcome.error_codes),
            details={
                "error_codes": list(outcome.error_codes),
                "retryable": is_retryable_error(outcome.error_codes),
            },
        )

    log_turnstile_event(
        "verification_success",
        ip=client_ip,
        hostname=outcome.hostname,
        action=outcome.action,
        user_agent=user_agent,
        url=str(request.url),
    )
