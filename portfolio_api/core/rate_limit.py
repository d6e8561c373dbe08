"""Rate limiting dependencies for FastAPI routes.

This module wires the RateLimitService into the HTTP layer.

Rate limiting strategy:
- Fixed window per client IP, taken from X-Forwarded-For, X-Real-IP or the
  socket peer (in that order).
- Clients without any identifiable address share one ``anonymous_clients``
  bucket with a stricter limit.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from portfolio_api.services.rate_limit_service import RateLimitService

logger = logging.getLogger(__name__)


ANONYMOUS_KEY = "anonymous_clients"


@dataclass(frozen=True)
class ClientIdentity:
    """Rate limit bucket for the current request."""

    key: str
    anonymous: bool


def get_client_ip(request: Request) -> str | None:
    """Best-effort client IP for rate limiting.

    Args:
        request: FastAPI request.

    Returns:
        First address of X-Forwarded-For, else X-Real-IP, else the socket
        peer; None when none of them is available.
    """

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for and forwarded_for.strip():
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return None


def resolve_client_identity(request: Request) -> ClientIdentity:
    ip = get_client_ip(request)
    if ip is None:
        return ClientIdentity(key=ANONYMOUS_KEY, anonymous=True)
    return ClientIdentity(key=f"ip:{ip}", anonymous=False)


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def get_rate_limit_service(request: Request) -> RateLimitService:
    """Return the process-wide service built by the app factory."""

    return request.app.state.rate_limit_service


RateLimitServiceDep = Annotated[RateLimitService, Depends(get_rate_limit_service)]


async def validate_environment(service: RateLimitServiceDep) -> None:
    """FastAPI dependency failing fast on store misconfiguration.

    Raises:
        ConfigurationAppError: REDIS_URL invalid, or missing while required.
    """

    service.validate_configuration()


async def apply_rate_limit(request: Request, service: RateLimitService) -> None:
    """Consume one unit of the caller's budget.

    Raises:
        HTTPException: 429 Too Many Requests when the budget is exhausted.
        ConfigurationAppError: Store misconfigured.
        StoreUnavailableAppError: Store unreachable under a strict policy.
    """

    if not service.enabled:
        return

    identity = resolve_client_identity(request)
    key_hash = _hash_limiter_key(identity.key)

    if identity.anonymous:
        logger.info(
            "rate_limit.anonymous_client",
            extra={
                "user_agent": request.headers.get("user-agent") or "unknown",
                "path": request.url.path,
            },
        )

    result = await service.check(identity.key, anonymous=identity.anonymous)
    if result.allowed:
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "anonymous": identity.anonymous,
                "backend": service.backend,
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        return

    retry_after = result.retry_after_seconds or 1
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": key_hash,
            "anonymous": identity.anonymous,
            "backend": service.backend,
            "limit": result.limit,
            "window_s": service.window_seconds,
            "retry_after_s": retry_after,
        },
    )

    headers = {"Retry-After": str(retry_after)}
    if service.include_headers:
        headers["X-RateLimit-Limit"] = str(result.limit)
        headers["X-RateLimit-Remaining"] = str(result.remaining)
        headers["X-RateLimit-Reset"] = str(result.reset_at)

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too Many Requests",
        headers=headers,
    )


async def enforce_rate_limit(request: Request, service: RateLimitServiceDep) -> None:
    """FastAPI dependency enforcing rate limits on a route."""

    await apply_rate_limit(request, service)
