"""
Outbound HTTP tests — retry policy, Places client, Perplexity client.

All wire traffic goes through httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from services.api.community.perplexity.client import PERPLEXITY_API_URL, PerplexityClient
from services.api.community.places.client import (
    SEARCH_FIELD_MASK,
    PlacesClient,
    display_name,
    generative_summary,
)
from services.api.community.retry import backoff_delay, is_retryable_status, request_with_retry
from services.api.tests.community.conftest import make_place

pytestmark = pytest.mark.asyncio


def _http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _sequence(*responses):
    """Handler that replays responses (or raises exceptions) in order and records requests."""
    calls: list[httpx.Request] = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    return handler, calls


class TestRetry:
    async def test_policy(self):
        assert is_retryable_status(429)
        assert is_retryable_status(503)
        assert not is_retryable_status(404)
        assert [backoff_delay(a) for a in range(5)] == [0.2, 0.4, 0.8, 1.6, 2.0]

    async def test_retries_server_errors(self):
        handler, calls = _sequence(httpx.Response(503), httpx.Response(429), httpx.Response(200, json={}))
        sleep = AsyncMock()
        async with _http(handler) as http:
            resp = await request_with_retry(http, "GET", "https://example.test/x", sleep=sleep)
        assert resp.status_code == 200
        assert len(calls) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [0.2, 0.4]

    async def test_client_error_returned_immediately(self):
        handler, calls = _sequence(httpx.Response(400))
        sleep = AsyncMock()
        async with _http(handler) as http:
            resp = await request_with_retry(http, "GET", "https://example.test/x", sleep=sleep)
        assert resp.status_code == 400
        assert len(calls) == 1
        sleep.assert_not_awaited()

    async def test_exhausted_server_errors_return_last_response(self):
        handler, calls = _sequence(httpx.Response(502))
        async with _http(handler) as http:
            resp = await request_with_retry(http, "GET", "https://example.test/x", sleep=AsyncMock())
        assert resp.status_code == 502
        assert len(calls) == 3

    async def test_transport_errors_exhaust_to_none(self):
        handler, calls = _sequence(httpx.ConnectError("refused"))
        async with _http(handler) as http:
            resp = await request_with_retry(http, "GET", "https://example.test/x", sleep=AsyncMock())
        assert resp is None
        assert len(calls) == 3

    async def test_transport_error_then_success(self):
        handler, _ = _sequence(httpx.ReadTimeout("slow"), httpx.Response(200, json={"ok": True}))
        async with _http(handler) as http:
            resp = await request_with_retry(http, "GET", "https://example.test/x", sleep=AsyncMock())
        assert resp.json() == {"ok": True}

    async def test_other_http_errors_are_not_retried(self):
        handler, calls = _sequence(httpx.DecodingError("corrupt body"))
        sleep = AsyncMock()
        async with _http(handler) as http:
            resp = await request_with_retry(http, "GET", "https://example.test/x", sleep=sleep)
        assert resp is None
        assert len(calls) == 1
        sleep.assert_not_awaited()


class TestPlacesClient:
    async def test_search_request_shape(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"places": [make_place("p1", "Uchi")]})

        async with _http(handler) as http:
            client = PlacesClient(http, api_key="test-key")
            places = await client.search_text("sushi", 30.27, -97.74, max_results=5)

        assert [display_name(p) for p in places] == ["Uchi"]
        request = seen[0]
        assert request.headers["X-Goog-Api-Key"] == "test-key"
        assert request.headers["X-Goog-FieldMask"] == SEARCH_FIELD_MASK
        body = json.loads(request.content)
        assert body["textQuery"] == "sushi"
        assert body["maxResultCount"] == 5
        assert body["locationBias"]["circle"]["radius"] == 15000
        assert client.search_calls == 1

    async def test_missing_key_makes_no_request(self):
        handler, calls = _sequence(httpx.Response(200, json={}))
        async with _http(handler) as http:
            client = PlacesClient(http, api_key="")
            assert await client.search_text("sushi", 30.0, -97.0) == []
            assert await client.place_details("p1") is None
        assert calls == []

    async def test_non_200_is_empty(self):
        handler, _ = _sequence(httpx.Response(403, json={"error": "denied"}))
        async with _http(handler) as http:
            client = PlacesClient(http, api_key="k")
            assert await client.search_text("sushi", 30.0, -97.0) == []
            assert await client.place_details("p1") is None

    async def test_unexpected_body_is_empty(self):
        handler, _ = _sequence(httpx.Response(200, json={"places": "nope"}))
        async with _http(handler) as http:
            client = PlacesClient(http, api_key="k")
            assert await client.search_text("sushi", 30.0, -97.0) == []

    async def test_decoding_error_is_empty(self):
        handler, _ = _sequence(httpx.DecodingError("corrupt body"))
        async with _http(handler) as http:
            client = PlacesClient(http, api_key="k")
            assert await client.search_text("sushi", 30.0, -97.0) == []
            assert await client.place_details("p1") is None

    async def test_identical_concurrent_searches_share_one_call(self):
        handler, calls = _sequence(httpx.Response(200, json={"places": [make_place("p1", "Uchi")]}))
        async with _http(handler) as http:
            client = PlacesClient(http, api_key="k")
            first, second = await asyncio.gather(
                client.search_text("sushi", 30.0, -97.0),
                client.search_text("sushi", 30.0, -97.0),
            )
        assert first == second
        assert len(calls) == 1
        assert client.search_calls == 1

    async def test_details(self):
        details = {
            "displayName": {"text": "Uchi"},
            "generativeSummary": {"overview": {"text": "  Inventive sushi.  "}},
        }
        handler, calls = _sequence(httpx.Response(200, json=details))
        async with _http(handler) as http:
            client = PlacesClient(http, api_key="k")
            result = await client.place_details("ChIJ123")
        assert calls[0].url.path == "/v1/places/ChIJ123"
        assert generative_summary(result) == "Inventive sushi."
        assert client.details_calls == 1

    async def test_helpers_tolerate_shapes(self):
        assert display_name({"displayName": "Plain"}) == "Plain"
        assert display_name({}) == ""
        assert generative_summary({"generativeSummary": {"overview": {"text": " "}}}) is None


class TestPerplexityClient:
    async def test_request_shape(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"choices": [{"message": {"content": "{}"}}]})

        async with _http(handler) as http:
            client = PerplexityClient(http, api_key="pplx", model="sonar", max_tokens=900, temperature=0.1)
            result = await client.request([{"role": "user", "content": "hi"}], {"type": "json_schema"})

        assert result["choices"][0]["message"]["content"] == "{}"
        request = seen[0]
        assert str(request.url) == PERPLEXITY_API_URL
        assert request.headers["Authorization"] == "Bearer pplx"
        body = json.loads(request.content)
        assert body["model"] == "sonar"
        assert body["max_tokens"] == 900
        assert body["temperature"] == 0.1
        assert body["response_format"] == {"type": "json_schema"}

    async def test_missing_key(self):
        handler, calls = _sequence(httpx.Response(200, json={}))
        async with _http(handler) as http:
            client = PerplexityClient(http, api_key="")
            assert await client.request([]) is None
        assert calls == []

    async def test_http_error_is_none(self):
        handler, _ = _sequence(httpx.Response(401, text="unauthorized"))
        async with _http(handler) as http:
            assert await PerplexityClient(http, api_key="k").request([]) is None

    async def test_non_json_is_none(self):
        handler, _ = _sequence(httpx.Response(200, text="<html>"))
        async with _http(handler) as http:
            assert await PerplexityClient(http, api_key="k").request([]) is None

    async def test_decoding_error_is_none(self):
        handler, _ = _sequence(httpx.DecodingError("corrupt body"))
        async with _http(handler) as http:
            assert await PerplexityClient(http, api_key="k").request([]) is None
