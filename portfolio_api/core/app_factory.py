from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
owns the lifecycle of the rate limiting service: it is built here, stored on
``app.state`` and closed when the application shuts down.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from portfolio_api.api.routes import health_router, me_router
from portfolio_api.core.config import settings
from portfolio_api.core.exception_handlers import setup_exception_handlers
from portfolio_api.core.logging import configure_logging
from portfolio_api.core.middleware import api_headers_middleware, request_id_middleware
from portfolio_api.core.openapi import apply_openapi_customizations
from portfolio_api.services.rate_limit_service import RateLimitService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    service: RateLimitService = app.state.rate_limit_service
    logger.info(
        "app.startup",
        extra={"rate_limit_backend": service.backend, "store_state": service.store_state},
    )
    try:
        yield
    finally:
        await service.aclose()
        logger.info("app.shutdown")


def create_app(
    *,
    rate_limit_service: RateLimitService | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limit_service: Pre-built service (tests inject one with fake
            store connectors); built from global settings when omitted.
        configure_logs: Install the JSON root handler.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(settings.log)

    app = FastAPI(
        title="Portfolio API",
        description=(
            "Public profile metadata for the portfolio dashboard. GET /api/me is "
            "rate limited per client IP with a fixed window backed by Redis, "
            "falling back to in-memory counters when Redis is not configured."
        ),
        version="0.1.0",
        contact={
            "name": "Barry Henry",
            "url": settings.app.documentation_url,
        },
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        debug=settings.app.debug,
        lifespan=lifespan,
    )

    # Built eagerly: the service connects lazily on first use, so this is cheap
    app.state.rate_limit_service = rate_limit_service or RateLimitService.from_settings(settings)

    # Middleware (last added runs outermost)
    app.middleware("http")(api_headers_middleware)
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(me_router)
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
