"""Tests for the httpx upstream client using httpx.MockTransport."""

import json
import logging

import httpx
import pytest

from beach_proxy.adapters.upstream import HttpxUpstreamClient, create_upstream_client
from beach_proxy.core.config import UpstreamSettings
from beach_proxy.core.errors import UpstreamNetworkError, UpstreamTimeoutError


def _client(handler, api_key: str | None = "upstream-secret") -> HttpxUpstreamClient:
    return HttpxUpstreamClient(
        base_url="https://upstream.test/",
        api_key=api_key,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_get_injects_bearer_and_forwards_params() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"epoch": 512}, headers={"X-RateLimit-Remaining": "9"})

    client = _client(handler)
    response = await client.get("/v2/validator-list", [("limit", "10"), ("offset", "0")])
    await client.aclose()

    request = seen[0]
    assert request.url.path == "/v2/validator-list"
    assert request.url.params.multi_items() == [("limit", "10"), ("offset", "0")]
    assert request.headers["Authorization"] == "Bearer upstream-secret"
    assert request.headers["Accept"] == "application/json"
    assert response.is_success
    assert response.header("X-RateLimit-Remaining") == "9"
    assert json.loads(response.body) == {"epoch": 512}


@pytest.mark.asyncio
async def test_non_2xx_is_returned_not_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"Retry-After": "3"})

    client = _client(handler)
    response = await client.get("/v1/network-status")

    assert response.status_code == 429
    assert response.header("retry-after") == "3"


@pytest.mark.asyncio
async def test_without_key_no_authorization_header() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    client = _client(handler, api_key=None)
    await client.get("/v1/general-info")

    assert client.has_credentials is False
    assert "Authorization" not in seen[0].headers


@pytest.mark.asyncio
async def test_timeout_maps_to_upstream_timeout_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(handler)

    with pytest.raises(UpstreamTimeoutError) as exc_info:
        await client.get("/v1/network-status")

    assert exc_info.value.message == "Request timeout"
    assert "upstream-secret" not in str(exc_info.value.details)


@pytest.mark.asyncio
async def test_connection_error_maps_to_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)

    with pytest.raises(UpstreamNetworkError) as exc_info:
        await client.get("/v1/network-status")

    assert not isinstance(exc_info.value, UpstreamTimeoutError)
    assert exc_info.value.http_status == 502


def test_factory_logs_missing_key(
    caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("UPSTREAM_API_KEY", raising=False)
    monkeypatch.delenv("SOLANA_BEACH_API_KEY", raising=False)
    cfg = UpstreamSettings(base_url="https://upstream.test")

    with caplog.at_level(logging.ERROR, logger="beach_proxy.adapters.upstream.factory"):
        client = create_upstream_client(cfg)

    assert client.has_credentials is False
    assert any(r.getMessage() == "upstream.api_key_missing" for r in caplog.records)


def test_factory_builds_authenticated_client(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("UPSTREAM_API_KEY", "k")
    cfg = UpstreamSettings(base_url="https://upstream.test")

    client = create_upstream_client(cfg)

    assert isinstance(client, HttpxUpstreamClient)
    assert client.has_credentials is True
