from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from beach_proxy.api.dependencies import get_proxy_service
from beach_proxy.services.proxy_service import ProxyService

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check; never calls the upstream API."""

    return {"status": "ok"}


@router.get("/health/ready")
def readiness_check(service: ProxyService = Depends(get_proxy_service)) -> JSONResponse:
    """Readiness: 503 until an upstream API key is configured.

    Without a key every proxied call is answered with 401, so the instance
    should not receive traffic. Upstream itself is not contacted.
    """

    ready = service.upstream.has_credentials
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "not_ready",
            "upstream_credentials": ready,
            "cache_entries": len(service.cache),
        },
    )
