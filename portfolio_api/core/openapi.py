"""OpenAPI metadata and customization utilities.

Provides a helper to enrich the generated OpenAPI schema with:
- Tags metadata
- An explicit empty security requirement (the API is public)
- The CORS/no-store headers every /api response carries

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from portfolio_api.core.middleware import build_standard_headers, is_api_path


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata.

    - Adds tags metadata if not present
    - Marks the schema as requiring no authentication
    - Documents the standard headers on every /api response
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        schema.setdefault("security", [])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Profile",
                "description": "Public, rate-limited profile metadata.",
            },
            {
                "name": "Health",
                "description": "Liveness and rate limiter status.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        standard_headers = {
            name: {"schema": {"type": "string"}, "description": f"Always {value!r}"}
            for name, value in build_standard_headers().items()
        }
        for path, methods in schema.get("paths", {}).items():
            if not is_api_path(path):
                continue
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                for response in method_obj.get("responses", {}).values():
                    headers = response.setdefault("headers", {})
                    for name, header in standard_headers.items():
                        headers.setdefault(name, header)

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
