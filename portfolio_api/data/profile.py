"""Portfolio content served by the API.

The name and status are the live values. EXPERIENCE, PROJECTS, STACK and
SOCIAL_LINKS are placeholder tables: companies, projects and contact links
are illustrative (contacts point at example.com) and must be replaced with
the real portfolio content before deployment.

Order matters: the first experience entry provides the current title and the
first project is reported as the latest one.
"""

from __future__ import annotations

from portfolio_api.schemas.profile import (
    ExperienceItem,
    ProfileCatalog,
    Project,
    SocialLinks,
    StackItem,
)

NAME = "Barry Henry"
STATUS = "operational"

SOCIAL_LINKS = SocialLinks(
    github="https://github.com/example",
    linkedin="https://www.linkedin.com/in/example",
    email="hello@example.com",
)

EXPERIENCE: tuple[ExperienceItem, ...] = (
    ExperienceItem(
        company="Northwind Labs",
        role="Senior Full Stack Engineer",
        period="2023 - Present",
        description=[
            "Lead development of the customer analytics dashboard used by 40+ teams.",
            "Moved public APIs behind a shared Redis rate limiter and edge cache.",
            "Mentor engineers on testing practices and code review.",
        ],
        tech=["TypeScript", "Next.js", "Python", "FastAPI", "Redis", "PostgreSQL"],
    ),
    ExperienceItem(
        company="Brightline Studio",
        role="Full Stack Engineer",
        period="2020 - 2023",
        description=[
            "Built and shipped client web applications from design to deployment.",
            "Introduced containerised preview environments for every pull request.",
        ],
        tech=["React", "Node.js", "Docker", "AWS"],
    ),
    ExperienceItem(
        company="Pixel & Co",
        role="Frontend Developer",
        period="2018 - 2020",
        description=[
            "Implemented responsive marketing sites and a shared component library.",
        ],
        tech=["JavaScript", "React", "Sass", "Figma"],
    ),
)

PROJECTS: tuple[Project, ...] = (
    Project(
        id="portfolio-dashboard",
        title="Portfolio Dashboard",
        description=(
            "Personal site presented as an admin dashboard, with a public "
            "rate-limited profile API."
        ),
        tech=["Next.js", "TypeScript", "Tailwind CSS", "Redis"],
        icon="LayoutDashboard",
        href="https://example.com",
        github="https://github.com/example/portfolio",
    ),
    Project(
        id="release-radar",
        title="Release Radar",
        description="Changelog aggregator that tracks releases across a team's dependencies.",
        tech=["Python", "FastAPI", "PostgreSQL"],
        icon="Radar",
        href="#",
        github="https://github.com/example/release-radar",
    ),
    Project(
        id="snapshot-cli",
        title="Snapshot CLI",
        description="Command line tool that captures and diffs visual snapshots of web pages.",
        tech=["Node.js", "Playwright"],
        icon="Camera",
        href="#",
    ),
)

STACK: tuple[StackItem, ...] = (
    StackItem(
        name="TypeScript",
        category="Frontend",
        proficiency="Expert",
        icon="FileCode",
        description="Typed JavaScript across frontend and backend.",
    ),
    StackItem(
        name="React",
        category="Frontend",
        proficiency="Expert",
        icon="Atom",
        description="Component-driven user interfaces.",
    ),
    StackItem(
        name="Next.js",
        category="Frontend",
        proficiency="Expert",
        icon="Layers",
        description="Server rendering and API routes.",
    ),
    StackItem(
        name="Tailwind CSS",
        category="Design",
        proficiency="Advanced",
        icon="Palette",
        description="Utility-first styling.",
    ),
    StackItem(
        name="Node.js",
        category="Backend",
        proficiency="Advanced",
        icon="Server",
        description="Services and tooling.",
    ),
    StackItem(
        name="Python",
        category="Backend",
        proficiency="Advanced",
        icon="Code",
        description="APIs, scripts and data work.",
    ),
    StackItem(
        name="PostgreSQL",
        category="Backend",
        proficiency="Advanced",
        icon="Database",
        description="Relational data modelling.",
    ),
    StackItem(
        name="Redis",
        category="Backend",
        proficiency="Intermediate",
        icon="Database",
        description="Caching and rate limiting.",
    ),
    StackItem(
        name="Docker",
        category="Infrastructure",
        proficiency="Advanced",
        icon="Container",
        description="Containerised builds and local environments.",
    ),
    StackItem(
        name="AWS",
        category="Infrastructure",
        proficiency="Intermediate",
        icon="Cloud",
        description="Hosting, storage and queues.",
    ),
    StackItem(
        name="Figma",
        category="Design",
        proficiency="Intermediate",
        icon="PenTool",
        description="Interface design and prototyping.",
    ),
    StackItem(
        name="Git",
        category="Tooling",
        proficiency="Expert",
        icon="GitBranch",
        description="Version control and release workflows.",
    ),
)

DEFAULT_CATALOG = ProfileCatalog(
    name=NAME,
    status=STATUS,
    experience=EXPERIENCE,
    projects=PROJECTS,
    stack=STACK,
    social_links=SOCIAL_LINKS,
)
