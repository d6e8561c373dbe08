"""HTTP middleware for request correlation and API response headers.

- ``request_id_middleware`` accepts an incoming X-Request-ID header or
  generates a UUID, keeps it in contextvars for log correlation, and echoes it
  back together with the request duration.
- ``api_headers_middleware`` stamps permissive CORS headers and cache-disabling
  directives on every /api response, so rate-limited answers are never cached
  at the edge.

Usage:
    app.middleware("http")(request_id_middleware)
    app.middleware("http")(api_headers_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from portfolio_api.core.config import settings
from portfolio_api.core.logging import clear_request_id, set_request_id

API_PREFIX = "/api"


def build_standard_headers() -> dict[str, str]:
    """Headers carried by every /api response, whatever its status."""

    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
        "Access-Control-Max-Age": "86400",
        "Cache-Control": "no-cache, no-store, must-revalidate, private",
        "Pragma": "no-cache",
        "Expires": "0",
    }


def is_api_path(path: str) -> bool:
    return path == API_PREFIX or path.startswith(API_PREFIX + "/")


async def request_id_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID generation and propagation.

    If the client provides the configured request id header (X-Request-ID by
    default), that value is used; otherwise a new UUID is generated.

    Side Effects:
        - Sets request_id in contextvars (accessible via get_request_id())
        - Clears request_id from contextvars after request completes
        - Adds the request id header and X-Request-Duration-ms to the response
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def api_headers_middleware(request: Request, call_next) -> Response:
    """Apply CORS and no-store headers to /api responses."""

    response: Response = await call_next(request)
    if is_api_path(request.url.path):
        for name, value in build_standard_headers().items():
            response.headers[name] = value
    return response
