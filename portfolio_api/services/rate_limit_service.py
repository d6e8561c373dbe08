"""Process-wide rate limiting service.

Built once by the app factory, stored on ``app.state`` and closed on shutdown.
It decides which limiter serves a request:

- no Redis URL (optional mode): in-memory counters only
- Redis URL configured: Redis counters, with ``store_failure_policy`` applied
  when Redis is unreachable (503, in-memory degradation, or admit)
- unexpected limiter failures: logged, then admitted when ``fail_open`` is set

Store URL validation happens here as well. An invalid or missing (when
required) URL does not prevent startup; it is reported on every request as a
configuration error so the endpoint answers 500.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Annotated, Any, Callable

from pydantic import AnyUrl, TypeAdapter, UrlConstraints, ValidationError

from portfolio_api.adapters.rate_limit.base import RateLimitResult
from portfolio_api.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from portfolio_api.adapters.rate_limit.redis_store import RedisFixedWindowRateLimiter
from portfolio_api.adapters.store.redis_connection import (
    Connector,
    RedisConnectionManager,
    Sleeper,
)
from portfolio_api.core.config import RateLimitSettings, RedisSettings, Settings
from portfolio_api.core.errors import ConfigurationAppError, StoreUnavailableAppError
from portfolio_api.core.logging import redact_url_credentials

logger = logging.getLogger(__name__)


RedisUrl = Annotated[AnyUrl, UrlConstraints(allowed_schemes=["redis", "rediss", "unix"])]
_redis_url_adapter: TypeAdapter[AnyUrl] = TypeAdapter(RedisUrl)


def validate_store_url(url: str | None, *, required: bool) -> str | None:
    """Validate the configured Redis URL.

    Args:
        url: Raw value of REDIS_URL (empty strings count as missing).
        required: Whether a missing URL is a misconfiguration.

    Returns:
        The URL, or None when it is absent and optional.

    Raises:
        ConfigurationAppError: The URL is missing while required, or invalid.
    """

    if url is None or not url.strip():
        if required:
            raise ConfigurationAppError(
                code="store_url_missing",
                message="Server misconfigured: REDIS_URL missing",
                details={"hint": "Set REDIS_URL or use REDIS_MODE=optional"},
            )
        return None

    url = url.strip()
    try:
        _redis_url_adapter.validate_python(url)
    except ValidationError as exc:
        raise ConfigurationAppError(
            code="store_url_invalid",
            message="Server misconfigured: REDIS_URL invalid",
            details={"hint": "Expected redis://, rediss:// or unix:// URL"},
        ) from exc
    return url


class RateLimitService:
    """Chooses and drives the limiter for every request.

    Args:
        rate_limit: Limits, window and failure policies.
        redis: Store URL, mode and retry budget.
        connector: Optional coroutine ``(url) -> client`` replacing the real
            Redis connection (tests).
        sleep: Coroutine used for connection backoff.
        clock: Time source shared by both limiters.
    """

    def __init__(
        self,
        rate_limit: RateLimitSettings,
        redis: RedisSettings,
        *,
        connector: Connector | None = None,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = rate_limit
        self._clock = clock
        self._config_error: ConfigurationAppError | None = None

        self._memory = InMemoryFixedWindowRateLimiter(
            limit=rate_limit.requests,
            window_seconds=rate_limit.window_seconds,
            clock=clock,
            sweep_interval_seconds=rate_limit.sweep_interval_seconds,
        )
        self._redis: RedisFixedWindowRateLimiter | None = None

        try:
            url = validate_store_url(redis.url, required=redis.mode == "required")
        except ConfigurationAppError as exc:
            self._config_error = exc
            logger.error(
                "rate_limit.store_misconfigured",
                extra={
                    "error_code": exc.code,
                    "store_url": redact_url_credentials(redis.url),
                    "mode": redis.mode,
                },
            )
            return

        if url is None:
            logger.info("rate_limit.store_not_configured", extra={"backend": "memory"})
            return

        connection = RedisConnectionManager(
            url,
            max_retries=redis.max_retries,
            backoff_base=redis.backoff_base_seconds,
            backoff_max=redis.backoff_max_seconds,
            connect_timeout=redis.connect_timeout_seconds,
            socket_timeout=redis.socket_timeout_seconds,
            connector=connector,
            sleep=sleep,
        )
        self._redis = RedisFixedWindowRateLimiter(
            connection,
            limit=rate_limit.requests,
            window_seconds=rate_limit.window_seconds,
            key_prefix=redis.key_prefix,
            clock=clock,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "RateLimitService":
        return cls(settings.rate_limit, settings.redis, **kwargs)

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def limit_preflight(self) -> bool:
        return self._settings.limit_preflight

    @property
    def include_headers(self) -> bool:
        return self._settings.include_headers

    @property
    def window_seconds(self) -> int:
        return self._settings.window_seconds

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "memory"

    @property
    def store_state(self) -> str:
        if self._config_error is not None:
            return "misconfigured"
        if self._redis is None:
            return "not_configured"
        return self._redis.connection.state.value

    @property
    def memory_limiter(self) -> InMemoryFixedWindowRateLimiter:
        return self._memory

    def validate_configuration(self) -> None:
        """Raise the store configuration error recorded at startup, if any."""

        if self._config_error is not None:
            raise self._config_error

    def limit_for(self, *, anonymous: bool) -> int:
        return self._settings.anonymous_requests if anonymous else self._settings.requests

    async def check(self, key: str, *, anonymous: bool = False) -> RateLimitResult:
        """Count one request for ``key`` and return the decision.

        Raises:
            ConfigurationAppError: Store URL invalid or rejected by Redis.
            StoreUnavailableAppError: Redis unreachable under the
                ``unavailable`` policy, or limiter failure with fail_open off.
        """

        self.validate_configuration()
        limit = self.limit_for(anonymous=anonymous)

        if self._redis is None:
            return await self._memory.consume(key, limit=limit)

        try:
            return await self._redis.consume(key, limit=limit)
        except StoreUnavailableAppError as exc:
            return await self._on_store_unavailable(exc, key, limit)
        except ConfigurationAppError:
            raise
        except Exception as exc:
            logger.error(
                "rate_limit.unexpected_failure",
                extra={
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                    "fail_open": self._settings.fail_open,
                },
            )
            if self._settings.fail_open:
                return self._admit(limit)
            raise StoreUnavailableAppError(
                code="rate_limit_failure",
                message="Rate limiting temporarily unavailable - please try again",
                details={"backend": self.backend},
            ) from exc

    async def _on_store_unavailable(
        self,
        exc: StoreUnavailableAppError,
        key: str,
        limit: int,
    ) -> RateLimitResult:
        policy = self._settings.store_failure_policy

        if policy == "memory":
            logger.warning("rate_limit.degraded_to_memory", extra={"error_code": exc.code})
            return await self._memory.consume(key, limit=limit)

        if policy == "open":
            logger.warning("rate_limit.store_failed_open", extra={"error_code": exc.code})
            return self._admit(limit)

        raise exc

    def _admit(self, limit: int) -> RateLimitResult:
        """Decision used when failing open: allowed, nothing counted."""

        return RateLimitResult(
            allowed=True,
            limit=limit,
            remaining=limit,
            reset_at=int(math.ceil(self._clock() + self._settings.window_seconds)),
            retry_after_seconds=None,
        )

    async def aclose(self) -> None:
        """Close the Redis connection (if any) and drop in-memory counters."""

        if self._redis is not None:
            await self._redis.aclose()
        self._memory.reset()
