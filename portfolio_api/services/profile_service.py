"""Profile payload assembly for GET /api/me."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends

from portfolio_api.core.config import settings
from portfolio_api.core.errors import ConfigurationAppError
from portfolio_api.data.profile import DEFAULT_CATALOG
from portfolio_api.schemas.profile import MeResponse, ProfileCatalog

logger = logging.getLogger(__name__)


def get_profile_catalog() -> ProfileCatalog:
    """FastAPI dependency returning the catalog (overridable in tests)."""

    return DEFAULT_CATALOG


ProfileCatalogDep = Annotated[ProfileCatalog, Depends(get_profile_catalog)]


def validate_catalog(catalog: ProfileCatalog) -> None:
    """Check the tables the payload depends on are populated.

    Raises:
        ConfigurationAppError: EXPERIENCE or PROJECTS is empty.
    """

    if not catalog.experience:
        raise ConfigurationAppError(
            code="experience_empty",
            message="Server misconfigured: EXPERIENCE is empty",
        )
    if not catalog.projects:
        raise ConfigurationAppError(
            code="projects_empty",
            message="Server misconfigured: PROJECTS is empty",
        )


async def validate_profile_data(catalog: ProfileCatalogDep) -> None:
    """FastAPI dependency running :func:`validate_catalog` before rate limiting."""

    validate_catalog(catalog)


def build_profile(
    catalog: ProfileCatalog,
    *,
    documentation_url: str | None = None,
) -> MeResponse:
    """Assemble the public profile from the catalog.

    Args:
        catalog: Validated catalog (non-empty experience and projects).
        documentation_url: Overrides the configured documentation URL.

    Returns:
        MeResponse with the current title, Expert-level stack names, latest
        project and contact links.
    """

    validate_catalog(catalog)

    stack = [item.name for item in catalog.stack if item.proficiency == "Expert"]

    logger.debug(
        "profile.built",
        extra={"stack_count": len(stack), "project_count": len(catalog.projects)},
    )

    return MeResponse(
        name=catalog.name,
        status=catalog.status,
        title=catalog.experience[0].role,
        stack=stack,
        latest_project=catalog.projects[0],
        contact=catalog.social_links,
        documentation=documentation_url or settings.app.documentation_url,
    )
