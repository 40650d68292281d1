from __future__ import annotations

from beach_proxy.api.routes.admin import router as admin_router
from beach_proxy.api.routes.health import router as health_router
from beach_proxy.api.routes.proxy import router as proxy_router
from beach_proxy.api.routes.resources import router as resources_router

__all__ = ["admin_router", "health_router", "proxy_router", "resources_router"]
