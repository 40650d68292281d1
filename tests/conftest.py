"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any import that might build the
global settings, so tests never depend on a local .env file.
"""

import os
from typing import Callable

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("UPSTREAM_API_KEY", "test-upstream-secret")
os.environ.setdefault("UPSTREAM_BASE_URL", "https://upstream.test")
os.environ.setdefault("APP_ADMIN_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_ADMIN_API_KEYS", "test-admin-key-123,test-admin-key-456")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from fakes import FakeClock, FakeUpstream, endpoint_classes

from beach_proxy.adapters.upstream.base import AbstractUpstreamClient
from beach_proxy.core.app_factory import create_app
from beach_proxy.core.config import EndpointClassSettings, ProxySettings
from beach_proxy.services.endpoint_classes import EndpointClassRegistry
from beach_proxy.services.proxy_service import ProxyService
from beach_proxy.services.retry import RetryPolicy
from beach_proxy.utils.simple_cache import SimpleTTLCache


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_service(fake_clock: FakeClock) -> Callable[..., ProxyService]:
    """Factory building a ProxyService wired to fakes and the fake clock."""

    def _make(
        upstream: AbstractUpstreamClient | None = None,
        *,
        classes: dict[str, EndpointClassSettings] | None = None,
        max_retries: int = 3,
        initial_delay_seconds: float = 1.0,
        retry_on_server_errors: bool = False,
        single_flight_enabled: bool = False,
        expose_upstream_error_details: bool = True,
        cache: SimpleTTLCache | None = None,
        sleep=None,
    ) -> ProxyService:
        proxy_settings = ProxySettings(
            endpoint_classes=classes or endpoint_classes(),
            default_class="default",
        )
        return ProxyService(
            upstream=upstream or FakeUpstream(),
            cache=cache if cache is not None else SimpleTTLCache(max_entries=None),
            endpoint_classes=EndpointClassRegistry(proxy_settings, clock=fake_clock.time),
            retry_policy=RetryPolicy(
                max_retries=max_retries,
                initial_delay_seconds=initial_delay_seconds,
                attempt_timeout_seconds=None,
                retry_on_server_errors=retry_on_server_errors,
            ),
            single_flight_enabled=single_flight_enabled,
            expose_upstream_error_details=expose_upstream_error_details,
            redact_values=["test-upstream-secret"],
            sleep=sleep or fake_clock.sleep,
        )

    return _make


@pytest.fixture
def make_client() -> Callable[[ProxyService], TestClient]:
    """Build a TestClient around a fresh app using the given service."""

    def _make(service: ProxyService) -> TestClient:
        return TestClient(create_app(proxy_service=service), raise_server_exceptions=False)

    return _make
