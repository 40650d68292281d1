"""Pydantic schemas for proxy requests, results and error bodies."""

from __future__ import annotations

from typing import Any, List, Literal, Tuple

from pydantic import BaseModel, Field


class ProxyRequest(BaseModel):
    """One inbound proxy call: the upstream endpoint and its pass-through parameters."""

    endpoint: str | None = Field(
        default=None,
        description="Upstream path such as '/v1/validators/top'. Required.",
    )
    query_params: List[Tuple[str, str]] = Field(
        default_factory=list,
        description="Query parameters forwarded verbatim to upstream, in order.",
    )


class ProxyResult(BaseModel):
    """Outcome of a successful proxy call, before it is rendered as HTTP."""

    payload: Any = Field(..., description="Upstream JSON payload, unmodified.")
    cache_status: Literal["HIT", "MISS", "SHARED"] = Field(
        ..., description="Whether the payload came from cache, upstream, or a shared in-flight fetch."
    )
    endpoint_class: str = Field(..., description="Endpoint class that governed the call.")
    cache_control: str = Field(..., description="Cache-Control header for the client.")


class ErrorResponse(BaseModel):
    """JSON body of every error response."""

    error: str = Field(..., description="Human-readable error message.")
    code: str = Field(..., description="Stable, machine-readable error code.")
    request_id: str | None = Field(default=None, description="Correlation id of the request.")
    details: dict[str, Any] | None = Field(
        default=None,
        description="Optional structured context (never contains secrets).",
    )


class CacheStatsResponse(BaseModel):
    """Cache counters exposed to administrators."""

    default_ttl_seconds: float
    max_entries: int | None
    entries: int
    hits: int
    misses: int
    evictions: int
    expirations: int


class CacheInvalidationResponse(BaseModel):
    removed: bool
    cache_key: str | None = None
