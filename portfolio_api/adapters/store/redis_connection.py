"""Lazy, shared Redis connection with bounded retry.

One ``RedisConnectionManager`` exists per process. It opens the connection on
first use, hands the same client to every request afterwards, and makes sure
concurrent first requests wait on a single connection attempt instead of
racing to open several.

Lifecycle::

    disconnected -> connecting -> connected
                        |             |
                        v             v (invalidate / close)
                      failed ----> connecting (next request)
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable

from redis import exceptions as redis_exceptions
from redis.asyncio import Redis

from portfolio_api.core.errors import ConfigurationAppError, StoreUnavailableAppError
from portfolio_api.core.logging import redact_url_credentials

logger = logging.getLogger(__name__)


Connector = Callable[[str], Awaitable[Any]]
Sleeper = Callable[[float], Awaitable[None]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


def backoff_delay(retry: int, *, base: float, cap: float) -> float:
    """Delay before the ``retry``-th retry (0-based): doubling, capped.

    Examples:
        >>> [backoff_delay(n, base=1.0, cap=5.0) for n in range(4)]
        [1.0, 2.0, 4.0, 5.0]
    """

    return min(base * (2 ** retry), cap)


def is_transient_error(exc: BaseException) -> bool:
    """Return True for failures a later attempt may recover from.

    Authentication errors subclass redis ``ConnectionError`` but will not fix
    themselves, so they count as misconfiguration.
    """

    if isinstance(exc, redis_exceptions.AuthenticationError):
        return False
    return isinstance(
        exc,
        (
            redis_exceptions.ConnectionError,
            redis_exceptions.TimeoutError,
            asyncio.TimeoutError,
            OSError,
        ),
    )


async def open_redis_client(
    url: str,
    *,
    connect_timeout: float,
    socket_timeout: float,
) -> Redis:
    """Create a client for ``url`` and verify it answers PING."""

    client = Redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=connect_timeout,
        socket_timeout=socket_timeout,
    )
    try:
        await client.ping()
    except BaseException:
        await client.aclose()
        raise
    return client


class RedisConnectionManager:
    """Owns the process-wide Redis client.

    Args:
        url: Validated Redis URL.
        max_retries: Retries after the first failed attempt.
        backoff_base: Delay before the first retry, doubled for each next one.
        backoff_max: Cap for any single delay.
        connect_timeout: Socket connect timeout for the default connector.
        socket_timeout: Socket read/write timeout for the default connector.
        connector: Coroutine function ``(url) -> client``; the client must
            expose ``aclose()``. Defaults to :func:`open_redis_client`.
        sleep: Coroutine used for backoff waits (``asyncio.sleep``).
    """

    def __init__(
        self,
        url: str,
        *,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 300.0,
        connect_timeout: float = 5.0,
        socket_timeout: float = 5.0,
        connector: Connector | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self._url = url
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._connector: Connector = connector or partial(
            open_redis_client,
            connect_timeout=connect_timeout,
            socket_timeout=socket_timeout,
        )
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._client: Any | None = None
        self._connect_task: asyncio.Task[Any] | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def safe_url(self) -> str | None:
        return redact_url_credentials(self._url)

    async def get_client(self) -> Any:
        """Return a connected client, connecting first if needed.

        Raises:
            StoreUnavailableAppError: The store stayed unreachable through the
                whole retry budget.
            ConfigurationAppError: The store rejected the connection for a
                non-transient reason (e.g. bad credentials).
        """

        if self._state is ConnectionState.CONNECTED and self._client is not None:
            return self._client

        if self._connect_task is None:
            self._state = ConnectionState.CONNECTING
            self._connect_task = asyncio.ensure_future(self._connect_with_retry())

        task = self._connect_task
        try:
            # shield: a cancelled request must not cancel the shared attempt
            return await asyncio.shield(task)
        finally:
            if task.done() and self._connect_task is task:
                self._connect_task = None

    async def _connect_with_retry(self) -> Any:
        last_exc: BaseException | None = None
        attempts = 0

        for retry in range(self._max_retries + 1):
            if retry:
                delay = backoff_delay(retry - 1, base=self._backoff_base, cap=self._backoff_max)
                logger.info(
                    "store.connect_retry",
                    extra={"retry": retry, "delay_s": delay, "store_url": self.safe_url},
                )
                await self._sleep(delay)

            attempts += 1
            try:
                client = await self._connector(self._url)
            except Exception as exc:
                last_exc = exc
                logger.warning(
                    "store.connect_attempt_failed",
                    extra={
                        "attempt": attempts,
                        "error_type": type(exc).__name__,
                        "error_msg": str(exc),
                        "store_url": self.safe_url,
                    },
                )
                if not is_transient_error(exc):
                    break
                continue

            self._client = client
            self._state = ConnectionState.CONNECTED
            logger.info("store.connected", extra={"attempts": attempts, "store_url": self.safe_url})
            return client

        self._client = None
        self._state = ConnectionState.FAILED
        logger.error(
            "store.connect_failed",
            extra={
                "attempts": attempts,
                "error_type": type(last_exc).__name__,
                "error_msg": str(last_exc),
                "store_url": self.safe_url,
            },
        )

        if last_exc is not None and not is_transient_error(last_exc):
            raise ConfigurationAppError(
                code="store_misconfigured",
                message="Server misconfigured: rate limit store unavailable",
                details={"attempts": attempts},
            ) from last_exc

        raise StoreUnavailableAppError(
            code="store_unavailable",
            message="Rate limit store temporarily unavailable - please try again",
            details={"attempts": attempts},
        ) from last_exc

    async def invalidate(self, client: Any) -> None:
        """Drop ``client`` after a connection error on it.

        Only the current client resets the connection; the next
        :meth:`get_client` call then opens a fresh one. A stale client (one
        already replaced by a reconnect) is closed without touching the
        current connection.
        """

        if client is not self._client:
            logger.debug("store.stale_client_closed", extra={"store_url": self.safe_url})
            await self._close_client(client)
            return

        self._client = None
        if self._state is ConnectionState.CONNECTED:
            self._state = ConnectionState.DISCONNECTED
        logger.warning("store.connection_invalidated", extra={"store_url": self.safe_url})
        await self._close_client(client)

    async def close(self) -> None:
        """Close the client and forget all cached state."""

        task, self._connect_task = self._connect_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass

        client, self._client = self._client, None
        self._state = ConnectionState.DISCONNECTED
        await self._close_client(client)
        logger.info("store.connection_closed", extra={"store_url": self.safe_url})

    async def _close_client(self, client: Any | None) -> None:
        if client is None:
            return
        try:
            await client.aclose()
        except Exception as exc:
            logger.warning(
                "store.close_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
