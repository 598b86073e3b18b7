"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state. ``check_limit`` never awaits,
  so concurrent requests on one event loop cannot lose updates either.
- Windows start at a key's first request (not aligned to the clock), so a
  burst straddling two windows may admit up to ``2 * max_requests`` requests.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


@dataclass
class _WindowEntry:
    count: int
    reset_at: float


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a fixed time window per key.

    Limits requests per key within a window that opens on the key's first
    request (e.g. 20 requests per 60 seconds). A denied request neither
    increments the counter nor moves the window end.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        *,
        max_requests: int = 20,
        window_seconds: float = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            max_requests: Maximum number of allowed requests per window.
            window_seconds: Size of the fixed window in seconds.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If max_requests or window_seconds are invalid.
        """
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _WindowEntry] = {}

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def check_limit(self, key: str) -> RateLimitResult:
        """Count one request for ``key`` and decide whether it is allowed.

        Args:
            key: Unique identifier for rate limiting (e.g., client IP).

        Returns:
            RateLimitResult with allowance decision and metadata.
        """
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)

            if entry is None or entry.reset_at <= now:
                entry = _WindowEntry(count=1, reset_at=now + self._window_seconds)
                self._entries[key] = entry
                return RateLimitResult(
                    allowed=True,
                    limit=self._max_requests,
                    remaining=self._max_requests - 1,
                    reset_at=entry.reset_at,
                )

            if entry.count >= self._max_requests:
                return RateLimitResult(
                    allowed=False,
                    limit=self._max_requests,
                    remaining=0,
                    reset_at=entry.reset_at,
                    retry_after_seconds=max(0, math.ceil(entry.reset_at - now)),
                )

            entry.count += 1
            return RateLimitResult(
                allowed=True,
                limit=self._max_requests,
                remaining=self._max_requests - entry.count,
                reset_at=entry.reset_at,
            )

    def cleanup(self) -> int:
        """Remove entries whose window has ended.

        Removing an expired entry is equivalent to it never having existed,
        so this is safe to call at any time.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.reset_at <= now]
            for key in expired:
                del self._entries[key]
            return len(expired)
