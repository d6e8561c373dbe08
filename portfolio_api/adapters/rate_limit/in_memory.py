"""In-memory fixed-window rate limiter.

Used when no Redis URL is configured, and as the degraded path when Redis is
unreachable and the failure policy is ``memory``.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, so it also works under
  threaded servers.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from portfolio_api.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

logger = logging.getLogger(__name__)


@dataclass
class _WindowState:
    count: int
    reset_at: float


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting requests in a window opened by the first request.

    Each key gets its own window: the first request sets ``reset_at`` to
    ``now + window_seconds`` and later requests count against it until it
    passes. Expired entries are purged every ``sweep_interval_seconds``.
    """

    backend = "memory"

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: int = 300,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            limit: Maximum number of allowed units per window.
            window_seconds: Size of the window in seconds.
            clock: Time source function returning UNIX time in seconds.
            sweep_interval_seconds: Minimum time between purges of expired keys.

        Raises:
            ValueError: If limit or window_seconds are invalid.
        """
        super().__init__(limit=limit, window_seconds=window_seconds)

        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._last_sweep = clock()
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._state_by_key)

    def purge_expired(self) -> int:
        """Drop every entry whose window has passed.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        with self._lock:
            expired = [k for k, state in self._state_by_key.items() if now > state.reset_at]
            for key in expired:
                del self._state_by_key[key]
            self._last_sweep = now

        if expired:
            logger.debug("rate_limit.memory_swept", extra={"removed": len(expired)})
        return len(expired)

    def reset(self) -> None:
        """Forget all counters."""
        with self._lock:
            self._state_by_key.clear()

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep >= self._sweep_interval:
            self.purge_expired()

    def consume_sync(
        self,
        key: str,
        *,
        limit: int | None = None,
        cost: int = 1,
    ) -> RateLimitResult:
        """Synchronous core of :meth:`consume`.

        Raises:
            ValueError: If key is empty or cost/limit are invalid.
        """
        effective_limit = self._resolve_limit(limit, cost, key)
        now = self._clock()
        self._maybe_sweep(now)

        with self._lock:
            state = self._state_by_key.get(key)

            if state is None or now > state.reset_at:
                state = _WindowState(count=0, reset_at=now + self._window_seconds)
                self._state_by_key[key] = state

            if state.count + cost <= effective_limit:
                state.count += cost
                return RateLimitResult(
                    allowed=True,
                    limit=effective_limit,
                    remaining=max(0, effective_limit - state.count),
                    reset_at=int(math.ceil(state.reset_at)),
                    retry_after_seconds=None,
                )

            return RateLimitResult(
                allowed=False,
                limit=effective_limit,
                remaining=max(0, effective_limit - state.count),
                reset_at=int(math.ceil(state.reset_at)),
                retry_after_seconds=max(1, int(math.ceil(state.reset_at - now))),
            )

    async def consume(
        self,
        key: str,
        *,
        limit: int | None = None,
        cost: int = 1,
    ) -> RateLimitResult:
        return self.consume_sync(key, limit=limit, cost=cost)
