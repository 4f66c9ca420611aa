"""Tests for tokenfolio.prices.http (ProviderClient)."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from tokenfolio.core.exceptions import (
    MalformedResponseError,
    ProviderError,
    RateLimitError,
    TransientProviderError,
)
from tokenfolio.prices import ProviderClient

BASE = "https://provider.test/api"


@pytest.fixture
async def client() -> ProviderClient:
    async with ProviderClient("test", BASE, rate_limit=1000.0, timeout=5.0) as c:
        yield c


class TestProviderClient:
    def test_url_joins_path(self):
        c = ProviderClient("test", BASE + "/")
        assert c.url("/prices") == f"{BASE}/prices"
        assert c.url("prices") == f"{BASE}/prices"

    @respx.mock
    async def test_get_json(self, client):
        route = respx.get(f"{BASE}/things").mock(
            return_value=httpx.Response(200, json={"ok": True})
        )
        assert await client.get_json("things", params={"a": "1"}) == {"ok": True}
        assert route.call_count == 1
        assert route.calls.last.request.url.params["a"] == "1"

    @respx.mock
    async def test_post_json(self, client):
        route = respx.post(f"{BASE}/things").mock(return_value=httpx.Response(200, json=[1, 2]))
        assert await client.post_json("things", json={"x": 1}) == [1, 2]
        assert json.loads(route.calls.last.request.content) == {"x": 1}

    @respx.mock
    async def test_sends_user_agent(self, client):
        route = respx.get(f"{BASE}/ua").mock(return_value=httpx.Response(200, json={}))
        await client.get_json("ua")
        assert route.calls.last.request.headers["User-Agent"].startswith("tokenfolio/")

    @respx.mock
    async def test_429_raises_rate_limit_with_retry_after(self, client):
        respx.get(f"{BASE}/limited").mock(
            return_value=httpx.Response(429, headers={"Retry-After": "12"})
        )
        with pytest.raises(RateLimitError) as exc_info:
            await client.get_json("limited")
        assert exc_info.value.retry_after == 12.0
        assert exc_info.value.retryable
        assert exc_info.value.context["status_code"] == 429

    @respx.mock
    async def test_429_without_header(self, client):
        respx.get(f"{BASE}/limited").mock(return_value=httpx.Response(429))
        with pytest.raises(RateLimitError) as exc_info:
            await client.get_json("limited")
        assert exc_info.value.retry_after is None

    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    @respx.mock
    async def test_server_errors_are_transient(self, client, status):
        respx.get(f"{BASE}/down").mock(return_value=httpx.Response(status))
        with pytest.raises(TransientProviderError) as exc_info:
            await client.get_json("down")
        assert exc_info.value.context["provider"] == "test"

    @respx.mock
    async def test_client_error_not_retryable(self, client):
        respx.get(f"{BASE}/missing").mock(return_value=httpx.Response(404))
        with pytest.raises(ProviderError) as exc_info:
            await client.get_json("missing")
        assert not isinstance(exc_info.value, TransientProviderError)
        assert not exc_info.value.retryable

    @respx.mock
    async def test_timeout_is_transient(self, client):
        respx.get(f"{BASE}/slow").mock(side_effect=httpx.ReadTimeout("timed out"))
        with pytest.raises(TransientProviderError, match="timed out"):
            await client.get_json("slow")

    @respx.mock
    async def test_connection_error_is_transient(self, client):
        respx.get(f"{BASE}/gone").mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(TransientProviderError, match="connection failed"):
            await client.get_json("gone")

    @respx.mock
    async def test_non_json_body(self, client):
        respx.get(f"{BASE}/html").mock(return_value=httpx.Response(200, text="<html>"))
        with pytest.raises(MalformedResponseError):
            await client.get_json("html")

    async def test_close(self):
        c = ProviderClient("test", BASE)
        await c.close()
        assert c.is_closed

    async def test_does_not_close_injected_client(self):
        inner = httpx.AsyncClient()
        c = ProviderClient("test", BASE, client=inner)
        await c.close()
        assert not inner.is_closed
        await inner.aclose()
