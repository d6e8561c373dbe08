"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before any import of the settings module so
no .env file or real REDIS_URL leaks into the tests.
"""

import asyncio
import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ["APP_ENV"] = "testing"
os.environ.pop("REDIS_URL", None)
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Any, Callable

import pytest
from redis import exceptions as redis_exceptions

from portfolio_api.core.config import RateLimitSettings, RedisSettings
from portfolio_api.services.rate_limit_service import RateLimitService


REDIS_URL = "redis://localhost:6379/0"


class FakeClock:
    """Deterministic clock used to test window expiration."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeScript:
    """Stand-in for a registered Lua script; mirrors the consume script step by step."""

    def __init__(self, redis: "FakeRedis", source: str) -> None:
        self._redis = redis
        self.source = source

    async def __call__(self, keys: list[str], args: list[Any]) -> list[int]:
        redis = self._redis
        if redis.fail_with is not None:
            raise redis.fail_with
        redis.evals += 1

        key = keys[0]
        limit, cost, window_ms = (int(a) for a in args)
        count = redis._get(key)
        allowed = 0
        if count + cost <= limit:
            count = redis._incrby(key, cost)
            allowed = 1
        ttl = redis._pttl(key)
        if ttl == -1:
            redis._pexpire(key, window_ms)
            ttl = window_ms
        elif ttl == -2:
            ttl = window_ms
        return [allowed, count, ttl]


class FakeRedis:
    """In-process stand-in for the handful of Redis commands the limiter uses.

    Values are stored as ``[value, expires_at_ms | None]``; keys expire once the
    shared clock reaches their deadline, as in Redis.
    """

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.store: dict[str, list[Any]] = {}
        self.fail_with: BaseException | None = None
        self.evals = 0
        self.scripts: list[str] = []
        self.closed = False

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _expire_stale(self, key: str) -> None:
        entry = self.store.get(key)
        if entry is not None and entry[1] is not None and self._now_ms() >= entry[1]:
            del self.store[key]

    def _get(self, key: str) -> int:
        self._expire_stale(key)
        entry = self.store.get(key)
        return 0 if entry is None else int(entry[0])

    def _incrby(self, key: str, amount: int) -> int:
        self._expire_stale(key)
        entry = self.store.setdefault(key, [0, None])
        entry[0] += amount
        return entry[0]

    def _pttl(self, key: str) -> int:
        self._expire_stale(key)
        entry = self.store.get(key)
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return entry[1] - self._now_ms()

    def _pexpire(self, key: str, ms: int) -> bool:
        self._expire_stale(key)
        if key not in self.store:
            return False
        self.store[key][1] = self._now_ms() + ms
        return True

    def register_script(self, source: str) -> FakeScript:
        self.scripts.append(source)
        return FakeScript(self, source)

    async def aclose(self) -> None:
        self.closed = True


class FakeConnector:
    """Connector returning ``client`` after ``failures`` failed attempts."""

    def __init__(
        self,
        client: Any,
        *,
        failures: int = 0,
        exc: BaseException | None = None,
        delay: float = 0.0,
    ) -> None:
        self.client = client
        self.failures = failures
        self.exc = exc or redis_exceptions.ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")
        self.delay = delay
        self.calls = 0
        self.urls: list[str] = []

    async def __call__(self, url: str) -> Any:
        self.calls += 1
        self.urls.append(url)
        # yield so concurrent callers get a chance to pile up on the same attempt
        await asyncio.sleep(self.delay)
        if self.calls <= self.failures:
            raise self.exc
        return self.client


class RecordingSleep:
    """Backoff sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(fake_clock: FakeClock) -> FakeRedis:
    return FakeRedis(fake_clock)


@pytest.fixture
def make_redis(fake_clock: FakeClock) -> Callable[[], FakeRedis]:
    """Factory for extra fake servers sharing the test clock."""
    return lambda: FakeRedis(fake_clock)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_connector() -> Callable[..., FakeConnector]:
    return FakeConnector


@pytest.fixture
def make_service(
    fake_clock: FakeClock,
    recording_sleep: RecordingSleep,
) -> Callable[..., RateLimitService]:
    """Build a RateLimitService with test-friendly defaults.

    Keyword arguments are split between RateLimitSettings and RedisSettings
    (``redis_*`` prefixed ones go to RedisSettings); ``connector`` is passed
    through.
    """

    def _factory(*, connector: FakeConnector | None = None, **overrides: Any) -> RateLimitService:
        redis_kwargs: dict[str, Any] = {"url": None, "max_retries": 0}
        rate_kwargs: dict[str, Any] = {}
        for key, value in overrides.items():
            if key.startswith("redis_"):
                redis_kwargs[key.removeprefix("redis_")] = value
            else:
                rate_kwargs[key] = value

        return RateLimitService(
            RateLimitSettings(**rate_kwargs),
            RedisSettings(**redis_kwargs),
            connector=connector,
            sleep=recording_sleep,
            clock=fake_clock,
        )

    return _factory
