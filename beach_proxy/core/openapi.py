"""OpenAPI schema customization.

Admin routes are documented as requiring the ``X-API-Key`` header; proxy and
resource routes are called directly by browsers and stay unauthenticated.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

ADMIN_SECURITY_SCHEME = "AdminApiKey"

TAGS_METADATA = [
    {"name": "Proxy", "description": "Generic upstream proxy with caching, rate limiting and retry."},
    {"name": "Resources", "description": "Fixed-endpoint shortcuts used by the dashboard widgets."},
    {"name": "Admin", "description": "Cache inspection and invalidation (requires X-API-Key)."},
    {"name": "Health", "description": "Liveness and readiness checks."},
]


def _secure_admin_operations(paths: Dict[str, Any]) -> None:
    for path, operations in paths.items():
        if path.startswith("/admin"):
            for operation in operations.values():
                operation["security"] = [{ADMIN_SECURITY_SCHEME: []}]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Install a cached schema builder with tags and the admin security scheme."""

    def build_schema() -> Dict[str, Any]:
        if app.openapi_schema is None:
            schema = get_openapi(
                title=app.title,
                version=app.version,
                description=app.description,
                routes=app.routes,
                tags=TAGS_METADATA,
            )
            schema.setdefault("components", {}).setdefault("securitySchemes", {})[
                ADMIN_SECURITY_SCHEME
            ] = {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin key from APP_ADMIN_API_KEYS.",
            }
            _secure_admin_operations(schema.get("paths", {}))
            app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = build_schema  # type: ignore[method-assign]
