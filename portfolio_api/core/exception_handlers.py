"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- ConfigurationAppError → 500 (misconfiguration, not retried)
- StoreUnavailableAppError → 503 (transient, client may retry)
- HTTPException on /api (429 rate limit) → same envelope, headers kept
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for log correlation; diagnostics such as
  error details stay in the server logs.
"""

import logging
from http import HTTPStatus

from fastapi import Request, Response
from fastapi.exception_handlers import http_exception_handler as default_http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from portfolio_api.core.errors import AppError, StoreUnavailableAppError
from portfolio_api.core.logging import get_request_id
from portfolio_api.core.middleware import build_standard_headers, is_api_path

logger = logging.getLogger(__name__)


def _error_headers(request: Request) -> dict[str, str] | None:
    # The generic handler runs outside the middleware stack, so /api headers are set here too.
    if is_api_path(request.url.path):
        return build_standard_headers()
    return None


def status_code_for(exc: AppError) -> int:
    """Map a domain error to its HTTP status.

    ConfigurationAppError and any other server-side AppError map to 500.
    """

    if isinstance(exc, StoreUnavailableAppError):
        return 503
    return 500


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message, free of internal details
    - error.request_id: For log correlation

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = status_code_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "error_details": exc.details,
            "status_code": status_code,
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "request_id": get_request_id(),
            }
        },
        headers=_error_headers(request),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Render HTTP errors on /api paths in the ``{"error": {...}}`` envelope.

    Headers set on the exception (``Retry-After``, ``X-RateLimit-*`` on 429)
    are kept. Paths outside /api keep FastAPI's default ``{"detail": ...}``.
    """
    if not is_api_path(request.url.path):
        return await default_http_exception_handler(request, exc)

    if exc.status_code == 429:
        code = "rate_limited"
    else:
        code = f"http_{exc.status_code}"
    message = exc.detail if isinstance(exc.detail, str) else HTTPStatus(exc.status_code).phrase

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "request_id": get_request_id(),
            }
        },
        headers={**build_standard_headers(), **(exc.headers or {})},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic
    message. No stack traces reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
        headers=_error_headers(request),
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Must be called during app initialization, before route registration.

    Example:
        >>> from fastapi import FastAPI
        >>> from portfolio_api.core.exception_handlers import setup_exception_handlers
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)
