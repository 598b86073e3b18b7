"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency function only.
- Swap-friendly: storage backend can be replaced (e.g., Redis) behind an
  abstract interface.
- One limiter per process; each route keeps its own counters per client.

Rate limiting strategy:
- Fixed-window limit per client IP and route (see ``app.core.client_identity``).
- Runs before Turnstile verification so abusive clients are rejected before
  any outbound call is made.
"""

from __future__ import annotations

import hashlib
import logging

from fastapi import Request, Response

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from app.core.client_identity import resolve_client_identity
from app.core.config import settings
from app.core.errors import ErrorCode, RateLimitAppError
from app.core.logging import log_security_event

logger = logging.getLogger(__name__)


_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple[int, int] | None = None


def get_rate_limiter() -> AbstractRateLimiter:
    """Return the process-wide rate limiter instance.

    The instance is cached in-module to preserve state across requests.
    If configuration changes (primarily in tests), the limiter is rebuilt.

    Returns:
        AbstractRateLimiter: Configured limiter instance.
    """

    global _limiter, _limiter_config

    config = (
        settings.app.rate_limit_requests,
        settings.app.rate_limit_window_seconds,
    )

    if _limiter is None or _limiter_config != config:
        _limiter = InMemoryFixedWindowRateLimiter(
            max_requests=settings.app.rate_limit_requests,
            window_seconds=settings.app.rate_limit_window_seconds,
        )
        _limiter_config = config

    return _limiter


def reset_rate_limiter() -> None:
    """Forget the shared limiter so the next request starts from empty counters."""

    global _limiter, _limiter_config
    _limiter = None
    _limiter_config = None


def _build_rate_limit_key(identity: str, route_path: str) -> str:
    return f"ip:{identity}:{route_path}"


def _route_path(request: Request) -> str:
    """Path template of the matched route, falling back to the request path."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client IPs."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def describe_window(window_seconds: int) -> str:
    """Human phrasing for a window length (``minute``, ``2 minutes``, ``90 seconds``)."""

    if window_seconds == 60:
        return "minute"
    if window_seconds % 60 == 0:
        return f"{window_seconds // 60} minutes"
    return f"{window_seconds} seconds"


def build_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Build the ``X-RateLimit-*`` headers (plus ``Retry-After`` when denied)."""

    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": result.reset_at_iso,
    }
    if not result.allowed:
        headers["Retry-After"] = str(result.retry_after_seconds or 0)
    return headers


async def enforce_rate_limit(request: Request, response: Response) -> None:
    """FastAPI dependency enforcing the per-IP, per-route rate limit.

    When enabled, counts one request against the caller's window for the
    matched route. Allowed requests get quota headers on the response;
    denied requests raise 429.

    Args:
        request: FastAPI request.
        response: Response whose headers are merged into the route's response.

    Raises:
        RateLimitAppError: 429 Too Many Requests when the window is exhausted.
    """

    if not settings.app.rate_limit_enabled:
        return

    limiter = get_rate_limiter()
    key = _build_rate_limit_key(resolve_client_identity(request.headers), _route_path(request))
    key_hash = _hash_limiter_key(key)

    result = limiter.check_limit(key)
    headers = build_rate_limit_headers(result) if settings.app.rate_limit_include_headers else {}

    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
                "window_s": settings.app.rate_limit_window_seconds,
            },
        )
        response.headers.update(headers)
        return

    retry_after = result.retry_after_seconds or 0
    log_security_event(
        "rate_limit_exceeded",
        key_hash=key_hash,
        limit=result.limit,
        window_s=settings.app.rate_limit_window_seconds,
        retry_after_s=retry_after,
        path=request.url.path,
    )

    window = describe_window(settings.app.rate_limit_window_seconds)
    raise RateLimitAppError(
        code=ErrorCode.TOO_MANY_REQUESTS,
        title="Too many requests",
        message=f"Each IP can make up to {result.limit} requests per {window}",
        headers=headers or None,
        retry_after=retry_after,
    )
