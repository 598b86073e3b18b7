"""HTTP middleware for request correlation, timing and security headers.

The middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for access throughout the request lifecycle
- Injects request_id and X-Response-Time into response headers
- Adds baseline security headers to every response
- Logs one ``request.completed`` line per request (client identity hashed)
- Clears context after request completion to prevent context leaks

Usage:
    app.middleware("http")(request_context_middleware)
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid

from fastapi import Request, Response

from app.core.client_identity import resolve_client_identity
from app.core.config import settings
from app.core.logging import clear_request_id, set_request_id

logger = logging.getLogger("app.request")

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def _hash_identity(identity: str) -> str:
    return hashlib.sha256(identity.encode()).hexdigest()[:16]


async def request_context_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID propagation, timing and hardening.

    If the client provides an X-Request-ID header (configurable via
    LOG_REQUEST_ID_HEADER), that value is used. Otherwise, a new UUID is
    generated. The ID is propagated back in the response headers and stored
    in contextvars for log correlation.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response from the next handler with request id, timing
            and security headers added.

    Example:
        >>> # Request arrives with custom ID
        >>> # Headers: {"X-Request-ID": "req-abc-123"}
        >>> # Response includes:
        >>> # {"X-Request-ID": "req-abc-123", "X-Response-Time": "45ms"}
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers[header_name] = request_id
        response.headers.setdefault("X-Response-Time", f"{duration_ms:.0f}ms")
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)

        logger.info(
            "request.completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "client_hash": _hash_identity(resolve_client_identity(request.headers)),
            },
        )
    finally:
        clear_request_id()

    return response
