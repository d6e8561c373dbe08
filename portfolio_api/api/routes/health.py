from __future__ import annotations

from fastapi import APIRouter

from portfolio_api.core.rate_limit import RateLimitServiceDep

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(service: RateLimitServiceDep) -> dict:
    """Health check endpoint.

    Reports liveness plus the limiter backend ("redis" or "memory") and the
    store connection state. It never opens a store connection itself, so it
    stays cheap for load balancers.

    Returns:
        dict: ``status`` plus a ``rate_limit`` section.
    """

    return {
        "status": "ok",
        "rate_limit": {
            "enabled": service.enabled,
            "backend": service.backend,
            "store_state": service.store_state,
        },
    }
