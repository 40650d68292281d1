from fastapi import APIRouter, Depends, Query, Request, Response

from beach_proxy.api.dependencies import forward, get_proxy_service
from beach_proxy.schemas.proxy import ErrorResponse
from beach_proxy.services.proxy_service import ProxyService

router = APIRouter(tags=["Proxy"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or invalid endpoint/parameters"},
    401: {"model": ErrorResponse, "description": "Upstream API key is not configured"},
    404: {"model": ErrorResponse, "description": "Upstream resource not found"},
    429: {"model": ErrorResponse, "description": "Local or upstream rate limit exceeded"},
    500: {"model": ErrorResponse, "description": "Upstream rejected the API key or internal error"},
    502: {"model": ErrorResponse, "description": "Upstream error or unreachable"},
    504: {"model": ErrorResponse, "description": "Upstream timed out after retries"},
}

CORS_PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


@router.get("/api/proxy", responses=_ERROR_RESPONSES)
@router.get("/proxy", include_in_schema=False)
async def proxy(
    request: Request,
    endpoint: str | None = Query(
        None,
        description="Upstream path, e.g. /v1/validators/top (may carry its own query string)",
    ),
    limit: int | None = Query(None, ge=0, description="Passed through to upstream"),
    offset: int | None = Query(None, ge=0, description="Passed through to upstream"),
    service: ProxyService = Depends(get_proxy_service),
) -> Response:
    """Forward a GET to the upstream API.

    The upstream JSON payload is returned unmodified. Cached payloads are
    served without touching the upstream quota; ``X-Cache`` tells which
    path was taken.
    """
    return await forward(service, endpoint, request, exclude=("endpoint",))


@router.options("/api/proxy", include_in_schema=False)
@router.options("/proxy", include_in_schema=False)
async def proxy_preflight() -> Response:
    return Response(status_code=204, headers=CORS_PREFLIGHT_HEADERS)
