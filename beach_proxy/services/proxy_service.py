"""Proxy service: validate, serve from cache, rate limit, fetch upstream with retry.

Flow for one request:

1. Validate the ``endpoint`` parameter (required, an absolute upstream path).
2. Build the cache key from the endpoint and its sorted query parameters.
3. Serve a cache hit immediately; hits never consume upstream quota.
4. On a miss, apply the endpoint class's rate limit policy (reject or wait).
5. Call upstream through the retry controller with the bearer secret.
6. Cache successful JSON payloads with the class TTL and return them.
7. Map upstream failures to domain errors with sanitized details.

The cache and the limiters are injected, so each ``ProxyService`` owns its
state explicitly; the application builds one per process.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Sequence
from urllib.parse import parse_qsl, unquote

from beach_proxy.adapters.upstream.base import AbstractUpstreamClient, UpstreamResponse
from beach_proxy.core.config import Settings, settings as global_settings
from beach_proxy.core.errors import (
    MissingParameterError,
    NotFoundError,
    RateLimitExceededError,
    UpstreamAuthorizationError,
    UpstreamError,
    ValidationAppError,
)
from beach_proxy.core.logging import redact_payload
from beach_proxy.schemas.proxy import ProxyRequest, ProxyResult
from beach_proxy.services.endpoint_classes import EndpointClass, EndpointClassRegistry
from beach_proxy.services.retry import RetryPolicy, execute_with_retry, parse_retry_after
from beach_proxy.utils.simple_cache import SimpleTTLCache, build_cache_key
from beach_proxy.utils.single_flight import SingleFlight

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

INTEGER_PARAMS = ("limit", "offset")
MAX_ECHOED_ERROR_BYTES = 4096

_MISS = object()


def _abandoned_fetch_error(cache_key: str) -> UpstreamError:
    return UpstreamError(
        code="upstream_fetch_abandoned",
        message="Shared upstream request was cancelled before it completed",
    )


def parse_endpoint(
    raw_endpoint: str | None,
    query_params: Iterable[tuple[str, str]] = (),
) -> tuple[str, list[tuple[str, str]]]:
    """Validate the requested endpoint and merge any query string it carries.

    Args:
        raw_endpoint: Value of the ``endpoint`` parameter, possibly with ``?query``.
        query_params: Other inbound query parameters, forwarded verbatim.

    Returns:
        Tuple of (upstream path, forwarded parameters).

    Raises:
        MissingParameterError: If the endpoint is absent or blank.
        ValidationAppError: If the endpoint is not a safe absolute path, or
            ``limit``/``offset`` are not non-negative integers.
    """
    if raw_endpoint is None or not raw_endpoint.strip():
        raise MissingParameterError(
            code="missing_parameter",
            message="Endpoint is required",
            details={"parameter": "endpoint"},
        )

    path, _, embedded_query = raw_endpoint.strip().partition("?")
    decoded = unquote(path)

    if (
        not path.startswith("/")
        or path.startswith("//")
        or "://" in decoded
        or "#" in path
        or "\\" in decoded
        or ".." in decoded.split("/")
        or any(ch.isspace() or ord(ch) < 32 for ch in decoded)
    ):
        raise ValidationAppError(
            code="invalid_endpoint",
            message="Endpoint must be an absolute upstream path such as /v1/network-status",
            details={"parameter": "endpoint"},
        )

    params = parse_qsl(embedded_query, keep_blank_values=True) + [
        (str(k), str(v)) for k, v in query_params
    ]

    for name, value in params:
        if name in INTEGER_PARAMS and not (value.isascii() and value.isdigit()):
            raise ValidationAppError(
                code="invalid_parameter",
                message=f"'{name}' must be a non-negative integer",
                details={"parameter": name},
            )

    return path, params


class ProxyService:
    """Forward GET requests to the upstream API with caching, rate limiting and retry."""

    def __init__(
        self,
        upstream: AbstractUpstreamClient,
        cache: SimpleTTLCache,
        endpoint_classes: EndpointClassRegistry,
        retry_policy: RetryPolicy,
        *,
        single_flight_enabled: bool = False,
        expose_upstream_error_details: bool = True,
        redact_values: Sequence[str | None] = (),
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.upstream = upstream
        self.cache = cache
        self.endpoint_classes = endpoint_classes
        self.retry_policy = retry_policy
        self._single_flight = SingleFlight(_abandoned_fetch_error) if single_flight_enabled else None
        self._expose_upstream_error_details = expose_upstream_error_details
        self._redact_values = tuple(v for v in redact_values if v)
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        upstream: AbstractUpstreamClient,
        app_settings: Settings | None = None,
    ) -> "ProxyService":
        """Build a service with its own cache and limiters from configuration."""
        cfg = app_settings or global_settings
        return cls(
            upstream=upstream,
            cache=SimpleTTLCache(max_entries=cfg.proxy.cache_max_entries),
            endpoint_classes=EndpointClassRegistry(cfg.proxy),
            retry_policy=RetryPolicy.from_settings(cfg.upstream),
            single_flight_enabled=cfg.proxy.single_flight_enabled,
            expose_upstream_error_details=cfg.proxy.expose_upstream_error_details,
            redact_values=[cfg.upstream.api_key],
        )

    async def fetch(self, request: ProxyRequest) -> ProxyResult:
        """Serve one proxy request.

        Args:
            request: Endpoint and pass-through query parameters.

        Returns:
            ProxyResult: Upstream payload plus cache/header metadata.

        Raises:
            AppError: A subclass describing the failure (see module docstring).
        """
        endpoint, params = parse_endpoint(request.endpoint, request.query_params)

        if not self.upstream.has_credentials:
            raise UpstreamAuthorizationError(
                code="api_key_missing",
                message="API key is required",
                details={"http_status": 401},
            )

        endpoint_class = self.endpoint_classes.resolve(endpoint)
        cache_key = build_cache_key(endpoint, params)

        cached = self._cache_get(cache_key)
        if cached is not _MISS:
            logger.info(
                "proxy.cache_hit",
                extra={
                    "endpoint": endpoint,
                    "endpoint_class": endpoint_class.name,
                    "cache_key": cache_key[:16],
                },
            )
            return self._result(cached, "HIT", endpoint_class)

        if self._single_flight is None:
            payload = await self._fetch_and_store(endpoint, params, cache_key, endpoint_class)
            return self._result(payload, "MISS", endpoint_class)

        payload, shared = await self._single_flight.do(
            cache_key,
            lambda: self._fetch_and_store(endpoint, params, cache_key, endpoint_class),
        )
        return self._result(payload, "SHARED" if shared else "MISS", endpoint_class)

    def invalidate(self, endpoint: str | None, query_params: Iterable[tuple[str, str]] = ()) -> tuple[str, bool]:
        """Drop the cached payload for an endpoint/parameter combination."""
        path, params = parse_endpoint(endpoint, query_params)
        cache_key = build_cache_key(path, params)
        return cache_key, self.cache.delete(cache_key)

    async def aclose(self) -> None:
        await self.upstream.aclose()

    @staticmethod
    def _result(payload: Any, cache_status: str, endpoint_class: EndpointClass) -> ProxyResult:
        return ProxyResult(
            payload=payload,
            cache_status=cache_status,
            endpoint_class=endpoint_class.name,
            cache_control=endpoint_class.policy.cache_control,
        )

    async def _fetch_and_store(
        self,
        endpoint: str,
        params: list[tuple[str, str]],
        cache_key: str,
        endpoint_class: EndpointClass,
    ) -> Any:
        await self._enforce_rate_limit(endpoint, endpoint_class)

        start = time.perf_counter()
        response = await execute_with_retry(
            lambda: self.upstream.get(endpoint, params),
            self.retry_policy,
            sleep=self._sleep,
            endpoint=endpoint,
        )
        duration_ms = (time.perf_counter() - start) * 1000

        if not response.is_success:
            logger.warning(
                "proxy.upstream_error",
                extra={
                    "endpoint": endpoint,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            raise self._map_upstream_error(endpoint, response)

        payload = self._decode_payload(endpoint, response)

        ttl = endpoint_class.policy.cache_ttl_seconds
        if ttl > 0:
            self._cache_set(cache_key, payload, ttl)

        logger.info(
            "proxy.upstream_success",
            extra={
                "endpoint": endpoint,
                "endpoint_class": endpoint_class.name,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "cached_ttl_s": ttl,
            },
        )
        return payload

    async def _enforce_rate_limit(self, endpoint: str, endpoint_class: EndpointClass) -> None:
        """Consume one unit of the endpoint's quota, waiting once if the policy allows."""
        limiter = endpoint_class.limiter
        policy = endpoint_class.policy

        result = limiter.consume(endpoint)
        if result.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "endpoint": endpoint,
                    "endpoint_class": endpoint_class.name,
                    "remaining": result.remaining,
                },
            )
            return

        wait_s = result.retry_after_seconds or 0
        if policy.on_limit == "wait" and wait_s <= policy.max_wait_seconds:
            logger.info(
                "rate_limit.waiting",
                extra={
                    "endpoint": endpoint,
                    "endpoint_class": endpoint_class.name,
                    "wait_s": wait_s,
                },
            )
            await self._sleep(wait_s)
            result = limiter.consume(endpoint)
            if result.allowed:
                return

        retry_after = result.retry_after_seconds or 0
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "endpoint": endpoint,
                "endpoint_class": endpoint_class.name,
                "limit": result.limit,
                "window_s": limiter.window_seconds,
                "retry_after_s": retry_after,
                "policy": policy.on_limit,
            },
        )
        raise RateLimitExceededError(
            code="rate_limit_exceeded",
            message="Rate limit exceeded. Try again later.",
            details={
                "endpoint": endpoint,
                "limit": result.limit,
                "window_seconds": limiter.window_seconds,
                "retry_after": retry_after,
            },
        )

    def _map_upstream_error(self, endpoint: str, response: UpstreamResponse) -> Exception:
        status = response.status_code

        if status in (401, 403):
            return UpstreamAuthorizationError(
                code="upstream_unauthorized",
                message="API key is invalid or has insufficient permissions",
                details={"upstream_status": status},
            )

        if status == 404:
            return NotFoundError(
                code="not_found",
                message="Resource not found",
                details={"endpoint": endpoint},
            )

        if status == 429:
            details: dict[str, Any] = {
                "endpoint": endpoint,
                "attempts": self.retry_policy.max_retries + 1,
            }
            retry_after = parse_retry_after(response.header("retry-after"))
            if retry_after is not None:
                details["retry_after"] = retry_after
            return RateLimitExceededError(
                code="upstream_rate_limited",
                message="Rate limit exceeded. Upstream API is throttling requests.",
                details=details,  # type: ignore[arg-type]
            )

        error_details: dict[str, Any] = {
            "http_status": status if 400 <= status < 600 else 502,
            "upstream_status": status,
        }
        body = self._sanitized_error_body(response)
        if body is not None:
            error_details["upstream_body"] = body
        return UpstreamError(
            code="upstream_error",
            message=f"API error: {status}",
            details=error_details,  # type: ignore[arg-type]
        )

    def _sanitized_error_body(self, response: UpstreamResponse) -> Any | None:
        """Return the upstream error body only when it is small, JSON, and redacted."""
        if not self._expose_upstream_error_details:
            return None
        if not response.body or len(response.body) > MAX_ECHOED_ERROR_BYTES:
            return None
        try:
            decoded = json.loads(response.body)
        except (UnicodeDecodeError, ValueError):
            return None
        if not isinstance(decoded, (dict, list)):
            return None
        return redact_payload(decoded, secrets=self._redact_values)

    @staticmethod
    def _decode_payload(endpoint: str, response: UpstreamResponse) -> Any:
        if not response.body:
            return None
        try:
            return json.loads(response.body)
        except (UnicodeDecodeError, ValueError) as exc:
            logger.error(
                "proxy.invalid_upstream_json",
                extra={"endpoint": endpoint, "bytes": len(response.body)},
            )
            raise UpstreamError(
                code="upstream_invalid_json",
                message="Upstream returned an invalid JSON payload",
                details={"endpoint": endpoint},
            ) from exc

    def _cache_get(self, key: str) -> Any:
        """Cached payload for ``key``, or ``_MISS``; a cached JSON null is a hit."""
        try:
            return self.cache.get(key, _MISS)
        except Exception:
            # Fail open: a broken cache must not block upstream access.
            logger.warning("proxy.cache_get_failed", extra={"cache_key": key[:16]}, exc_info=True)
            return _MISS

    def _cache_set(self, key: str, value: Any, ttl: float) -> None:
        try:
            self.cache.set(key, value, ttl)
        except Exception:
            logger.warning("proxy.cache_set_failed", extra={"cache_key": key[:16]}, exc_info=True)
