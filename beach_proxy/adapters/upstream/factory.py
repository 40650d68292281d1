"""Factory for the upstream API client."""

import logging

from beach_proxy.adapters.upstream.base import AbstractUpstreamClient
from beach_proxy.adapters.upstream.http_client import HttpxUpstreamClient
from beach_proxy.core.config import UpstreamSettings, settings

logger = logging.getLogger(__name__)


def create_upstream_client(upstream_settings: UpstreamSettings | None = None) -> AbstractUpstreamClient:
    """Instantiate the upstream client from configuration.

    A missing API key is an operational error: it is logged here, at startup,
    and every proxied request is then answered with 401 instead of calling
    upstream without credentials.

    Args:
        upstream_settings: Optional settings; defaults to the global settings.

    Returns:
        AbstractUpstreamClient: Configured client instance.
    """
    cfg = upstream_settings or settings.upstream

    if not cfg.api_key:
        logger.error(
            "upstream.api_key_missing",
            extra={
                "base_url_host": cfg.base_url.split("://")[-1].split("/")[0],
                "hint": "Set UPSTREAM_API_KEY (or SOLANA_BEACH_API_KEY)",
            },
        )

    return HttpxUpstreamClient(
        base_url=cfg.base_url,
        api_key=cfg.api_key,
        timeout_seconds=cfg.timeout_seconds,
    )
