"""
Tests for BaseAPIClient - HTTP failure mapping shared by every source client.
"""

from __future__ import annotations

import httpx
import pytest

from searchmatic.infrastructure.sources.base_client import BaseAPIClient
from searchmatic.shared.exceptions import (
    NetworkError,
    ParseError,
    RateLimitError,
    ServiceUnavailableError,
    UpstreamAPIError,
)


class DummyClient(BaseAPIClient):
    _service_name = "dummy"


def _client(handler) -> DummyClient:
    return DummyClient(base_url="https://api.example.org/", min_interval=0, transport=httpx.MockTransport(handler))


class TestErrorMapping:
    """Non-success responses raise typed exceptions, without retries."""

    async def test_rate_limit(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, headers={"Retry-After": "12"})

        client = _client(handler)
        with pytest.raises(RateLimitError) as exc_info:
            await client._make_request("/items")

        assert len(calls) == 1
        assert exc_info.value.context.retry_after == 12.0
        assert exc_info.value.context.database == "dummy"
        await client.close()

    async def test_server_error(self):
        client = _client(lambda request: httpx.Response(503))
        with pytest.raises(ServiceUnavailableError, match="dummy: HTTP 503"):
            await client._make_request("/items")
        await client.close()

    async def test_client_error(self):
        client = _client(lambda request: httpx.Response(400))
        with pytest.raises(UpstreamAPIError) as exc_info:
            await client._make_request("/items")
        assert exc_info.value.status_code == 400
        await client.close()

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(NetworkError, match="Connection failed"):
            await client._make_request("/items")
        await client.close()

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = _client(handler)
        with pytest.raises(NetworkError, match="timeout"):
            await client._make_request("/items")
        await client.close()

    async def test_invalid_json(self):
        client = _client(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(ParseError):
            await client._make_request("/items")
        await client.close()


class TestRequests:
    async def test_url_building_and_text(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, text="plain")

        async with _client(handler) as client:
            assert await client._make_request("/items", expect_json=False) == "plain"
            await client._make_request("https://other.example.org/x", expect_json=False)

        assert seen == ["https://api.example.org/items", "https://other.example.org/x"]

    def test_retry_after_non_numeric(self):
        response = httpx.Response(429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"})
        assert BaseAPIClient._get_retry_after(response) is None
