"""Application lifespan: periodic cleanup of in-memory state and shutdown.

The limiter and the error cache only forget expired entries when touched;
the background sweep keeps memory bounded for clients that never return.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core.config import settings
from app.core.rate_limit import get_rate_limiter
from app.core.turnstile import close_turnstile_verifier
from app.services.generation_service import close_generation_service, get_error_cache

logger = logging.getLogger(__name__)


def sweep_expired_state() -> tuple[int, int]:
    """Drop expired limiter windows and cached failures.

    Returns:
        Tuple of (limiter entries removed, cache entries removed).
    """

    removed_windows = get_rate_limiter().cleanup()
    removed_errors = get_error_cache().purge_expired()
    if removed_windows or removed_errors:
        logger.debug(
            "cleanup.swept",
            extra={"rate_limit_entries": removed_windows, "error_cache_entries": removed_errors},
        )
    return removed_windows, removed_errors


async def run_cleanup_loop(interval_seconds: float) -> None:
    """Sweep expired state every ``interval_seconds`` until cancelled."""

    while True:
        await asyncio.sleep(interval_seconds)
        try:
            sweep_expired_state()
        except Exception:
            # Keep sweeping.
            logger.exception("cleanup.failed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: start the cleanup task. Shutdown: stop it and close clients."""
    cleanup_task = asyncio.create_task(
        run_cleanup_loop(settings.app.rate_limit_cleanup_interval_seconds)
    )
    logger.info(
        "app.started",
        extra={
            "app_env": settings.app_env,
            "rate_limit_enabled": settings.app.rate_limit_enabled,
            "turnstile_configured": settings.turnstile.is_configured,
            "turnstile_skip": settings.turnstile.skip_verification,
        },
    )
    yield
    cleanup_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await cleanup_task
    await close_turnstile_verifier()
    await close_generation_service()
    logger.info("app.stopped")
