"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers and
the ProxyService that owns the cache and rate limit state) so tests can
build isolated apps with their own collaborators.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from beach_proxy.adapters.upstream.factory import create_upstream_client
from beach_proxy.api.routes import admin_router, health_router, proxy_router, resources_router
from beach_proxy.core.config import Settings, settings as global_settings
from beach_proxy.core.exception_handlers import setup_exception_handlers
from beach_proxy.core.logging import configure_logging
from beach_proxy.core.middleware import request_id_middleware
from beach_proxy.core.openapi import apply_openapi_customizations
from beach_proxy.services.proxy_service import ProxyService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    service: ProxyService = app.state.proxy_service
    logger.info(
        "app.startup",
        extra={
            "endpoint_classes": [c.name for c in service.endpoint_classes],
            "upstream_credentials": service.upstream.has_credentials,
        },
    )
    try:
        yield
    finally:
        await service.aclose()
        logger.info("app.shutdown")


def create_app(
    proxy_service: ProxyService | None = None,
    app_settings: Settings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        proxy_service: Prebuilt service (tests inject fakes); built from
            settings when omitted.
        app_settings: Settings override; defaults to the global settings.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = app_settings or global_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log, secrets=[cfg.upstream.api_key])

    app = FastAPI(
        title="Solana Beach API Proxy",
        description=(
            "Forwards dashboard requests to the Solana Beach REST API with an "
            "injected API key, a short-TTL cache, per-endpoint-class rate "
            "limiting and retry with exponential backoff."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=_lifespan,
    )

    app.state.proxy_service = proxy_service or ProxyService.from_settings(
        create_upstream_client(cfg.upstream), cfg
    )

    # Middleware (last added runs first: CORS wraps request-id)
    app.middleware("http")(request_id_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.app.cors_allow_origins,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["X-Cache", cfg.log.request_id_header, "X-Request-Duration-ms"],
    )

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(proxy_router)
    app.include_router(resources_router)
    app.include_router(admin_router)
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags)
    apply_openapi_customizations(app)

    return app
