from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request

from beach_proxy.api.dependencies import forwarded_params, get_proxy_service
from beach_proxy.core.auth import verify_admin_key
from beach_proxy.schemas.proxy import CacheInvalidationResponse, CacheStatsResponse
from beach_proxy.services.proxy_service import ProxyService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(verify_admin_key)],
)


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def cache_stats(service: ProxyService = Depends(get_proxy_service)) -> CacheStatsResponse:
    """Cache counters (entries, hits, misses, evictions); values are never exposed."""
    return CacheStatsResponse(**service.cache.stats())


@router.delete("/cache", response_model=CacheStatsResponse)
async def clear_cache(service: ProxyService = Depends(get_proxy_service)) -> CacheStatsResponse:
    """Flush every cached payload. Returns the (reset) counters."""
    service.cache.clear()
    logger.info("admin.cache_cleared")
    return CacheStatsResponse(**service.cache.stats())


@router.delete("/cache/entry", response_model=CacheInvalidationResponse)
async def delete_cache_entry(
    request: Request,
    endpoint: str | None = Query(None, description="Upstream path whose cached payload is dropped"),
    service: ProxyService = Depends(get_proxy_service),
) -> CacheInvalidationResponse:
    """Drop one cached payload, addressed the same way as a proxy request.

    Extra query parameters take part in the cache key exactly as they do
    for ``/api/proxy``.
    """
    cache_key, removed = service.invalidate(
        endpoint, forwarded_params(request, exclude=("endpoint",))
    )
    logger.info("admin.cache_entry_deleted", extra={"cache_key": cache_key[:16], "removed": removed})
    return CacheInvalidationResponse(removed=removed, cache_key=cache_key)
