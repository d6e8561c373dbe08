"""Redis-backed fixed-window rate limiter.

Counters live in Redis so every worker shares the same budget. Each request
runs one Lua script, atomically on the server:

- the counter is incremented only when ``count + cost`` fits the limit, so a
  stored count never exceeds the limit
- a counter without expiry (first increment, or a lost TTL) gets the window
  as its TTL, which anchors the window at the first admitted request
- the script returns ``[allowed, count, ttl_ms]``
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable

from redis import exceptions as redis_exceptions

from portfolio_api.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from portfolio_api.adapters.store.redis_connection import RedisConnectionManager
from portfolio_api.core.errors import StoreUnavailableAppError

logger = logging.getLogger(__name__)


# KEYS[1] counter key; ARGV: limit, cost, window_ms
CONSUME_SCRIPT = """
local limit = tonumber(ARGV[1])
local cost = tonumber(ARGV[2])
local window_ms = tonumber(ARGV[3])
local count = tonumber(redis.call('GET', KEYS[1]) or '0')
local allowed = 0
if count + cost <= limit then
    count = redis.call('INCRBY', KEYS[1], cost)
    allowed = 1
end
local ttl = redis.call('PTTL', KEYS[1])
if ttl == -1 then
    redis.call('PEXPIRE', KEYS[1], window_ms)
    ttl = window_ms
elseif ttl == -2 then
    ttl = window_ms
end
return {allowed, count, ttl}
"""


class RedisFixedWindowRateLimiter(AbstractRateLimiter):
    """Fixed-window limiter whose counters are Redis keys with a TTL."""

    backend = "redis"

    def __init__(
        self,
        connection: RedisConnectionManager,
        *,
        limit: int,
        window_seconds: int,
        key_prefix: str = "ratelimit:",
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(limit=limit, window_seconds=window_seconds)
        self._connection = connection
        self._key_prefix = key_prefix
        self._clock = clock

    @property
    def connection(self) -> RedisConnectionManager:
        return self._connection

    async def consume(
        self,
        key: str,
        *,
        limit: int | None = None,
        cost: int = 1,
    ) -> RateLimitResult:
        """Count one request against ``key`` in Redis.

        Raises:
            ValueError: If key is empty or cost/limit are invalid.
            StoreUnavailableAppError: Redis could not be reached.
            ConfigurationAppError: Redis rejected the connection.
        """
        effective_limit = self._resolve_limit(limit, cost, key)
        client = await self._connection.get_client()

        redis_key = f"{self._key_prefix}{key}"
        window_ms = self._window_seconds * 1000

        try:
            script = client.register_script(CONSUME_SCRIPT)
            allowed, count, ttl_ms = await script(
                keys=[redis_key],
                args=[effective_limit, cost, window_ms],
            )
        except (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError) as exc:
            logger.warning(
                "rate_limit.store_command_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            await self._connection.invalidate(client)
            raise StoreUnavailableAppError(
                code="store_unavailable",
                message="Rate limit store temporarily unavailable - please try again",
                details={"backend": self.backend},
            ) from exc

        count = int(count)
        ttl_ms = int(ttl_ms)
        now = self._clock()
        reset_at = int(math.ceil(now + ttl_ms / 1000))

        if int(allowed):
            return RateLimitResult(
                allowed=True,
                limit=effective_limit,
                remaining=max(0, effective_limit - count),
                reset_at=reset_at,
                retry_after_seconds=None,
            )

        return RateLimitResult(
            allowed=False,
            limit=effective_limit,
            remaining=max(0, effective_limit - count),
            reset_at=reset_at,
            retry_after_seconds=max(1, int(math.ceil(ttl_ms / 1000))),
        )

    async def aclose(self) -> None:
        await self._connection.close()
