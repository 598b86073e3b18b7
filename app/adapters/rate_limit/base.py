"""Rate limiter interfaces.

The API should depend on this abstraction (not the concrete implementation)
so the in-memory store can be swapped for a shared counter store (e.g. Redis
INCR + EXPIRE) without changing the ``check_limit`` contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when denied).
        reset_at: UNIX epoch seconds when the current window ends.
        retry_after_seconds: Suggested wait time in seconds when denied.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None = None

    @property
    def reset_at_iso(self) -> str:
        """Window end as an ISO-8601 UTC string (``X-RateLimit-Reset``)."""
        reset = datetime.fromtimestamp(self.reset_at, tz=timezone.utc)
        return reset.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def check_limit(self, key: str) -> RateLimitResult:
        """Count one request for ``key`` and decide whether it is allowed.

        Args:
            key: Client identity (typically an IP address).

        Returns:
            RateLimitResult describing the decision and quota metadata.
        """
        raise NotImplementedError

    @abstractmethod
    def cleanup(self) -> int:
        """Drop expired state.

        Returns:
            Number of keys removed.
        """
        raise NotImplementedError
