"""Shared FastAPI dependencies and response rendering for proxy routes."""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from beach_proxy.core.config import NO_STORE_CACHE_CONTROL
from beach_proxy.schemas.proxy import ProxyRequest, ProxyResult
from beach_proxy.services.proxy_service import ProxyService


def get_proxy_service(request: Request) -> ProxyService:
    """Return the process-wide ProxyService built by the app factory."""
    return request.app.state.proxy_service


def forwarded_params(request: Request, *, exclude: tuple[str, ...] = ()) -> list[tuple[str, str]]:
    """Inbound query parameters to pass upstream verbatim, in arrival order."""
    return [(k, v) for k, v in request.query_params.multi_items() if k not in exclude]


def render_proxy_result(result: ProxyResult) -> JSONResponse:
    """Render a proxied payload with cache headers for browsers and CDNs."""
    headers = {
        "Cache-Control": result.cache_control,
        "X-Cache": result.cache_status,
        "X-Endpoint-Class": result.endpoint_class,
    }
    if result.cache_control == NO_STORE_CACHE_CONTROL:
        headers["Pragma"] = "no-cache"
    return JSONResponse(content=result.payload, headers=headers)


async def forward(service: ProxyService, endpoint: str | None, request: Request, *, exclude: tuple[str, ...] = ()) -> JSONResponse:
    proxy_request = ProxyRequest(
        endpoint=endpoint,
        query_params=forwarded_params(request, exclude=exclude),
    )
    result = await service.fetch(proxy_request)
    return render_proxy_result(result)
