"""Pydantic schemas for the portfolio catalog and the /api/me payload."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


MeStatus = Literal["operational", "open_to_work"]
Proficiency = Literal["Expert", "Advanced", "Intermediate"]
StackCategory = Literal["Frontend", "Backend", "Infrastructure", "Design", "Tooling"]


class ExperienceItem(BaseModel):
    """One position on the experience timeline."""

    model_config = ConfigDict(frozen=True)

    company: str
    role: str
    period: str
    description: list[str] = Field(default_factory=list)
    tech: list[str] = Field(default_factory=list)


class Project(BaseModel):
    """A project card; ``href`` is ``#`` when there is no live deployment."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    tech: list[str] = Field(default_factory=list)
    icon: str = Field("Package", description="Icon name used by the frontend")
    href: str = "#"
    github: str | None = None


class StackItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    category: StackCategory
    proficiency: Proficiency
    icon: str
    description: str = ""


class SocialLinks(BaseModel):
    model_config = ConfigDict(frozen=True)

    github: str
    linkedin: str
    email: str


class ProfileCatalog(BaseModel):
    """Static tables the profile payload is assembled from."""

    model_config = ConfigDict(frozen=True)

    name: str
    status: MeStatus
    experience: tuple[ExperienceItem, ...]
    projects: tuple[Project, ...]
    stack: tuple[StackItem, ...]
    social_links: SocialLinks


class MeResponse(BaseModel):
    """Public profile metadata served by GET /api/me."""

    name: str = Field(..., description="Display name.")
    status: MeStatus = Field(..., description="Availability status.")
    title: str = Field(..., description="Current role (first experience entry).")
    stack: list[str] = Field(
        default_factory=list,
        description="Technologies at Expert proficiency, in catalog order.",
    )
    latest_project: Project = Field(..., description="Most recent project (first entry).")
    contact: SocialLinks = Field(..., description="Contact and social links.")
    documentation: str = Field(..., description="Documentation URL for this API.")
