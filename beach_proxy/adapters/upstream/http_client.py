"""httpx-based client for the upstream Solana Beach API."""

from __future__ import annotations

import logging
from typing import Sequence

import httpx

from beach_proxy.adapters.upstream.base import AbstractUpstreamClient, UpstreamResponse
from beach_proxy.core.errors import UpstreamNetworkError, UpstreamTimeoutError

logger = logging.getLogger(__name__)


class HttpxUpstreamClient(AbstractUpstreamClient):
    """Client issuing authenticated GETs through one pooled ``httpx.AsyncClient``.

    The bearer secret is set once on the client's default headers; it is never
    part of a log record or an error message.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the pooled async client.

        Args:
            base_url: Upstream base URL (e.g. ``https://api.solanaview.com``).
            api_key: Bearer secret; ``None`` leaves the client without credentials.
            timeout_seconds: Transport timeout for connect/read/write/pool.
            transport: Optional transport override (``httpx.MockTransport`` in tests).
        """
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._has_credentials = bool(api_key)
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    @property
    def has_credentials(self) -> bool:
        return self._has_credentials

    async def get(
        self,
        path: str,
        params: Sequence[tuple[str, str]] = (),
    ) -> UpstreamResponse:
        try:
            response = await self.client.get(path, params=list(params))
        except httpx.TimeoutException as exc:
            logger.warning(
                "upstream.timeout",
                extra={"endpoint": path, "error_type": type(exc).__name__},
            )
            raise UpstreamTimeoutError(
                code="upstream_timeout",
                message="Request timeout",
                details={"endpoint": path},
            ) from exc
        except httpx.TransportError as exc:
            logger.warning(
                "upstream.network_error",
                extra={"endpoint": path, "error_type": type(exc).__name__},
            )
            raise UpstreamNetworkError(
                code="upstream_unreachable",
                message="Upstream API is unreachable",
                details={"endpoint": path},
            ) from exc

        logger.debug(
            "upstream.response",
            extra={
                "endpoint": path,
                "status_code": response.status_code,
                "bytes": len(response.content),
            },
        )
        return UpstreamResponse(
            status_code=response.status_code,
            body=response.content,
            headers={k.lower(): v for k, v in response.headers.items()},
        )

    async def aclose(self) -> None:
        await self.client.aclose()
