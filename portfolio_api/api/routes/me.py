import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from portfolio_api.core.errors import AppError
from portfolio_api.core.rate_limit import (
    RateLimitServiceDep,
    apply_rate_limit,
    enforce_rate_limit,
    validate_environment,
)
from portfolio_api.schemas.profile import MeResponse
from portfolio_api.services.profile_service import (
    ProfileCatalogDep,
    build_profile,
    validate_profile_data,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Profile"])


@router.get(
    "/me",
    response_model=MeResponse,
    # Resolved in order: environment, data integrity, then rate limiting.
    dependencies=[
        Depends(validate_environment),
        Depends(validate_profile_data),
        Depends(enforce_rate_limit),
    ],
    responses={
        429: {
            "description": "Rate limit exceeded",
            "headers": {"Retry-After": {"description": "Seconds until the window resets"}},
        },
        500: {"description": "Server misconfigured"},
        503: {"description": "Rate limit store temporarily unavailable"},
    },
)
async def get_me(catalog: ProfileCatalogDep) -> MeResponse:
    """Return public profile metadata.

    Raises:
        HTTPException: 429 when the caller's rate limit is exhausted.
        ConfigurationAppError: Misconfigured store URL or empty data tables (500).
        StoreUnavailableAppError: Rate limit store unreachable (503).
    """
    return build_profile(catalog)


@router.options("/me", status_code=status.HTTP_204_NO_CONTENT)
async def preflight_me(request: Request, service: RateLimitServiceDep) -> Response:
    """CORS preflight.

    Only rate limited when RATE_LIMIT_LIMIT_PREFLIGHT is on. Limiter failures
    never block a preflight: the answer is still 204.
    """
    if service.limit_preflight:
        try:
            await apply_rate_limit(request, service)
        except HTTPException:
            raise
        except AppError as exc:
            logger.warning(
                "preflight.rate_limit_skipped",
                extra={"error_code": exc.code, "backend": service.backend},
            )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
