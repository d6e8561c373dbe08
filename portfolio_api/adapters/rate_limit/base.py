"""Rate limiter interfaces.

The API depends on this abstraction (not the concrete implementation) so the
Redis-backed limiter and the in-memory fallback are interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check/consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for fixed-window rate limiters.

    The first request for a key opens its window; the window length and the
    default limit are fixed at construction time, while ``limit`` may be
    overridden per call (the anonymous bucket uses a stricter limit).
    """

    backend: str = "abstract"

    def __init__(self, *, limit: int, window_seconds: int) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self._limit = limit
        self._window_seconds = window_seconds

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def _resolve_limit(self, limit: int | None, cost: int, key: str) -> int:
        if cost < 1:
            raise ValueError("cost must be >= 1")
        if not key:
            raise ValueError("key must be a non-empty string")
        if limit is None:
            return self._limit
        if limit < 1:
            raise ValueError("limit must be >= 1")
        return limit

    @abstractmethod
    async def consume(
        self,
        key: str,
        *,
        limit: int | None = None,
        cost: int = 1,
    ) -> RateLimitResult:
        """Consume rate limit budget for a given key.

        Args:
            key: Unique identifier (e.g., client IP address).
            limit: Per-call limit override (defaults to the configured limit).
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release backend resources (no-op by default)."""
