"""Fixed-endpoint shortcuts for the dashboard widgets.

Each route forwards to one upstream path through the same ProxyService as
``/api/proxy``, so caching, rate limiting and retry behave identically.
Query parameters (``limit``, ``offset``, ...) are passed through.
"""

from __future__ import annotations

import re
from typing import Callable

from fastapi import APIRouter, Depends, Request, Response

from beach_proxy.api.dependencies import forward, get_proxy_service
from beach_proxy.core.errors import ValidationAppError
from beach_proxy.services.proxy_service import ProxyService

router = APIRouter(prefix="/api", tags=["Resources"])

RESOURCE_ENDPOINTS: dict[str, str] = {
    "/network-status": "/v1/network-status",
    "/supply-breakdown": "/v2/supply-breakdown",
    "/tps": "/v2/transactions-per-second",
    "/market-data": "/v2/market-data",
    "/general-info": "/v1/general-info",
    "/staking-apy": "/v1/staking-apy",
    "/recent-blocks": "/v2/recent-blocks",
    "/recent-transactions": "/v1/latest-transactions",
    "/validators": "/v2/validator-list",
    "/validators/top": "/v1/validators/top",
}

# Solana vote accounts are base58-encoded 32-byte keys.
_VOTE_PUBKEY_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def _resource_handler(upstream_endpoint: str) -> Callable:
    async def handler(
        request: Request,
        service: ProxyService = Depends(get_proxy_service),
    ) -> Response:
        return await forward(service, upstream_endpoint, request)

    return handler


for _path, _upstream_endpoint in RESOURCE_ENDPOINTS.items():
    router.add_api_route(
        _path,
        _resource_handler(_upstream_endpoint),
        methods=["GET"],
        name=f"resource{_path.replace('/', '_').replace('-', '_')}",
        summary=f"Proxy {_upstream_endpoint}",
    )


@router.get("/validators/{vote_pubkey}", summary="Proxy /v1/validators/{vote_pubkey}")
async def validator_details(
    vote_pubkey: str,
    request: Request,
    service: ProxyService = Depends(get_proxy_service),
) -> Response:
    """Details for one validator by vote account public key."""
    if not _VOTE_PUBKEY_RE.match(vote_pubkey):
        raise ValidationAppError(
            code="invalid_vote_pubkey",
            message="vote_pubkey must be a base58-encoded public key",
            details={"parameter": "vote_pubkey"},
        )
    return await forward(service, f"/v1/validators/{vote_pubkey}", request)
