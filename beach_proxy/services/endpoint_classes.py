"""Endpoint classes: which rate limit and cache policy applies to an upstream path."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterator

from beach_proxy.adapters.rate_limit.base import AbstractRateLimiter
from beach_proxy.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from beach_proxy.core.config import EndpointClassSettings, ProxySettings


@dataclass(frozen=True)
class EndpointClass:
    """A named policy plus the limiter that enforces its quota."""

    name: str
    policy: EndpointClassSettings
    limiter: AbstractRateLimiter


class EndpointClassRegistry:
    """Resolve upstream paths to endpoint classes by longest matching prefix.

    Each class owns one limiter; counters inside it are keyed by endpoint
    path, so two endpoints of the same class have independent quotas with
    the same configuration.
    """

    def __init__(
        self,
        proxy_settings: ProxySettings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._default_name = proxy_settings.default_class
        self._classes: dict[str, EndpointClass] = {
            name: EndpointClass(
                name=name,
                policy=policy,
                limiter=InMemoryFixedWindowRateLimiter(
                    limit=policy.requests_per_window,
                    window_seconds=policy.window_seconds,
                    clock=clock,
                ),
            )
            for name, policy in proxy_settings.endpoint_classes.items()
        }
        # Longest prefix first so "/v1/validators/top" beats "/v1/validators".
        self._prefixes: list[tuple[str, str]] = sorted(
            (
                (prefix, name)
                for name, policy in proxy_settings.endpoint_classes.items()
                for prefix in policy.prefixes
            ),
            key=lambda item: len(item[0]),
            reverse=True,
        )

    def __iter__(self) -> Iterator[EndpointClass]:
        return iter(self._classes.values())

    def get(self, name: str) -> EndpointClass:
        return self._classes[name]

    def resolve(self, endpoint: str) -> EndpointClass:
        for prefix, name in self._prefixes:
            if endpoint == prefix or endpoint.startswith(prefix.rstrip("/") + "/"):
                return self._classes[name]
        return self._classes[self._default_name]
