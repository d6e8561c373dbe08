from __future__ import annotations

from portfolio_api.api.routes.health import router as health_router
from portfolio_api.api.routes.me import router as me_router

__all__ = ["health_router", "me_router"]
