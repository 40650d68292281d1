"""Upstream adapter layer - abstracts the Solana Beach REST API."""

from beach_proxy.adapters.upstream.base import AbstractUpstreamClient, UpstreamResponse
from beach_proxy.adapters.upstream.factory import create_upstream_client
from beach_proxy.adapters.upstream.http_client import HttpxUpstreamClient

__all__ = [
    "AbstractUpstreamClient",
    "HttpxUpstreamClient",
    "UpstreamResponse",
    "create_upstream_client",
]
