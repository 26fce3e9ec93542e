"""Tests for the authenticated, retrying API gateway."""

from __future__ import annotations

import json

import httpx
import pytest

from knowledge_bridge.sdk import gateway as gateway_module
from knowledge_bridge.sdk.errors import ApiError, MalformedResponseError
from knowledge_bridge.sdk.gateway import USER_AGENT, ApiGateway


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []

    async def _fake_sleep(delay):
        recorded.append(delay)

    monkeypatch.setattr(gateway_module.asyncio, "sleep", _fake_sleep)
    return recorded


@pytest.mark.asyncio
async def test_injects_credential_and_user_agent(api_stub, make_config):
    api_stub.add("GET", "/health", httpx.Response(200, json={"status": "ok"}))

    async with api_stub.client() as http_client:
        gateway = ApiGateway(make_config(), client=http_client)
        result = await gateway.request("/health")

    assert result == {"status": "ok"}
    request = api_stub.calls[0]
    assert request.headers["X-API-Key"] == "employee-myproject-secret123"
    assert request.headers["User-Agent"] == USER_AGENT
    assert str(request.url) == "http://knowledge.test/health"


@pytest.mark.asyncio
async def test_server_errors_use_full_retry_budget_with_linear_backoff(api_stub, make_config, sleeps):
    api_stub.add("GET", "/notes", httpx.Response(503, json={"error": "unavailable"}))

    async with api_stub.client() as http_client:
        gateway = ApiGateway(make_config(retries=3, retry_delay=0.5), client=http_client)
        with pytest.raises(ApiError) as excinfo:
            await gateway.request("/notes")

    assert len(api_stub.calls) == 4
    assert sleeps == [0.5, 1.0, 1.5]
    assert excinfo.value.status_code == 503
    assert excinfo.value.path == "/notes"
    assert excinfo.value.detail == "unavailable"


@pytest.mark.asyncio
async def test_zero_retries_means_single_attempt(api_stub, make_config, sleeps):
    api_stub.add("GET", "/notes", httpx.Response(500))

    async with api_stub.client() as http_client:
        gateway = ApiGateway(make_config(retries=0), client=http_client)
        with pytest.raises(ApiError):
            await gateway.request("/notes")

    assert len(api_stub.calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_client_errors_are_retried_by_default(api_stub, make_config, sleeps):
    api_stub.add("GET", "/notes/9", httpx.Response(404, json={"error": "Note not found"}))

    async with api_stub.client() as http_client:
        gateway = ApiGateway(make_config(retries=2), client=http_client)
        with pytest.raises(ApiError) as excinfo:
            await gateway.request("/notes/9")

    assert len(api_stub.calls) == 3
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_client_errors_fail_fast_when_disabled(api_stub, make_config, sleeps):
    api_stub.add("GET", "/notes/9", httpx.Response(404, json={"error": "Note not found"}))

    async with api_stub.client() as http_client:
        gateway = ApiGateway(make_config(retries=3, retry_client_errors=False), client=http_client)
        with pytest.raises(ApiError):
            await gateway.request("/notes/9")

    assert len(api_stub.calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_two_connection_errors_then_success_takes_three_attempts(api_stub, make_config, sleeps):
    api_stub.add(
        "GET",
        "/health",
        httpx.ConnectError("connection refused"),
        httpx.ConnectError("connection refused"),
        httpx.Response(200, json={"ok": True}),
    )

    async with api_stub.client() as http_client:
        gateway = ApiGateway(make_config(retries=3, retry_delay=1.0), client=http_client)
        result = await gateway.request("/health")

    assert result == {"ok": True}
    assert len(api_stub.calls) == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_persistent_connection_error_raises_api_error(api_stub, make_config, sleeps):
    api_stub.add("GET", "/health", httpx.ConnectError("connection refused"))

    async with api_stub.client() as http_client:
        gateway = ApiGateway(make_config(retries=1), client=http_client)
        with pytest.raises(ApiError, match="Failed to connect"):
            await gateway.request("/health")

    assert len(api_stub.calls) == 2


@pytest.mark.asyncio
async def test_timeout_is_retried(api_stub, make_config, sleeps):
    api_stub.add("GET", "/slow", httpx.ReadTimeout("too slow"), httpx.Response(200, json={"done": True}))

    async with api_stub.client() as http_client:
        gateway = ApiGateway(make_config(retries=1), client=http_client)
        assert await gateway.request("/slow") == {"done": True}


@pytest.mark.asyncio
async def test_empty_json_body_becomes_empty_dict(api_stub, make_config):
    api_stub.add("DELETE", "/x", httpx.Response(200, content=b"", headers={"content-type": "application/json"}))

    async with api_stub.client() as http_client:
        gateway = ApiGateway(make_config(), client=http_client)
        assert await gateway.request("/x", method="DELETE") == {}


@pytest.mark.asyncio
async def test_non_json_content_type_returns_text(api_stub, make_config):
    api_stub.add("GET", "/health", httpx.Response(200, text="OK"))

    async with api_stub.client() as http_client:
        gateway = ApiGateway(make_config(), client=http_client)
        assert await gateway.request("/health") == "OK"


@pytest.mark.asyncio
async def test_malformed_json_is_not_retried(api_stub, make_config, sleeps):
    api_stub.add(
        "GET",
        "/broken",
        httpx.Response(200, content=b"{not json", headers={"content-type": "application/json"}),
    )

    async with api_stub.client() as http_client:
        gateway = ApiGateway(make_config(retries=3), client=http_client)
        with pytest.raises(MalformedResponseError) as excinfo:
            await gateway.request("/broken")

    assert excinfo.value.raw_text == "{not json"
    assert len(api_stub.calls) == 1


@pytest.mark.asyncio
async def test_json_body_and_repeated_params(api_stub, make_config):
    api_stub.add("POST", "/notes", httpx.Response(201, json={"success": True}))

    async with api_stub.client() as http_client:
        gateway = ApiGateway(make_config(), client=http_client)
        await gateway.request(
            "/notes",
            method="POST",
            json_body={"title": "T"},
            params=[("tags", "a"), ("tags", "b")],
        )

    request = api_stub.calls[0]
    assert request.url.params.get_list("tags") == ["a", "b"]
    assert json.loads(request.content) == {"title": "T"}


@pytest.mark.asyncio
async def test_probe_never_raises(api_stub, make_config):
    api_stub.add("GET", "/health", httpx.Response(200, json={}))
    async with api_stub.client() as http_client:
        gateway = ApiGateway(make_config(), client=http_client)
        assert await gateway.probe() == (True, None)

    failing = type(api_stub)()
    failing.add("GET", "/health", httpx.ConnectError("refused"))
    async with failing.client() as http_client:
        gateway = ApiGateway(make_config(retries=3), client=http_client)
        ok, error = await gateway.probe()
    assert ok is False
    assert "refused" in error
    assert len(failing.calls) == 1

    down = type(api_stub)()
    down.add("GET", "/health", httpx.Response(503))
    async with down.client() as http_client:
        gateway = ApiGateway(make_config(), client=http_client)
        assert await gateway.probe() == (False, "API returned 503")
