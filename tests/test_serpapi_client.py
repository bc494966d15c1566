from __future__ import annotations

import json
from typing import Callable, List

import httpx
import pytest

from config import static_resolver
from core import SearchRequest
from scrapers import SerpApiSearchClient
from utils.exceptions import (
    EmptyResponseError,
    MalformedRequestError,
    MissingCredentialError,
    SearchDecodeError,
    SearchTransportError,
)

_KEY = static_resolver({"serpapi_api_key": "secret-key"})


def _organic(start: int, count: int) -> List[dict]:
    return [
        {
            "position": start + idx + 1,
            "title": f"Result {start + idx + 1}",
            "link": f"https://example.com/{start + idx + 1}",
            "snippet": "snippet",
        }
        for idx in range(count)
    ]


def _client(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> SerpApiSearchClient:
    kwargs.setdefault("max_retries", 1)
    kwargs.setdefault("requests_per_second", 1000.0)
    client = SerpApiSearchClient(_KEY, transport=httpx.MockTransport(handler), **kwargs)
    client._search_settings = client._search_settings.model_copy(update={"page_size": 10})
    return client


def test_build_params_maps_request_fields() -> None:
    client = SerpApiSearchClient(_KEY)
    request = SearchRequest(
        query="  rust async  ",
        language="en",
        region="us",
        location="Berlin, Germany",
        safe="active",
        result_type="nws",
        time_range="qdr:d",
        filter="0",
    )

    params = client.build_params(request, api_key="k", count=10, start=20)

    assert params["q"] == "rust async"
    assert params["api_key"] == "k"
    assert (params["num"], params["start"]) == ("10", "20")
    assert (params["hl"], params["gl"]) == ("en", "us")
    assert params["location"] == "Berlin, Germany"
    assert params["safe"] == "active"
    assert params["tbm"] == "nws"
    assert params["tbs"] == "qdr:d"
    assert params["filter"] == "0"
    assert "as_qdr" not in params and "nfpr" not in params


def test_build_params_rejects_empty_query() -> None:
    client = SerpApiSearchClient(_KEY)
    with pytest.raises(MalformedRequestError):
        client.build_params(SearchRequest(query="   "), api_key="k", count=10, start=0)


@pytest.mark.asyncio
async def test_search_paginates_until_max_results() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        start, num = int(request.url.params["start"]), int(request.url.params["num"])
        seen.append((start, num))
        return httpx.Response(200, json={"organic_results": _organic(start, num)})

    async with _client(handler) as client:
        results = await client.search(SearchRequest(query="python", max_results=15))

    assert seen == [(0, 10), (10, 5)]
    assert [item.position for item in results] == list(range(1, 16))
    assert results[0].url == "https://example.com/1"


@pytest.mark.asyncio
async def test_short_page_stops_pagination() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.params["start"])
        return httpx.Response(200, json={"organic_results": _organic(0, 3)})

    async with _client(handler) as client:
        results = await client.search(SearchRequest(query="python", max_results=20))

    assert calls == ["0"]
    assert len(results) == 3


@pytest.mark.asyncio
async def test_later_page_failure_keeps_earlier_results() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["start"] == "0":
            return httpx.Response(200, json={"organic_results": _organic(0, 10)})
        return httpx.Response(502)

    async with _client(handler) as client:
        results = await client.search(SearchRequest(query="python", max_results=20))

    assert len(results) == 10


@pytest.mark.asyncio
async def test_first_page_http_error_raises_transport_error() -> None:
    async with _client(lambda request: httpx.Response(500)) as client:
        with pytest.raises(SearchTransportError) as exc:
            await client.search(SearchRequest(query="python"))

    assert exc.value.status_code == 500
    assert exc.value.provider == "serpapi"


@pytest.mark.asyncio
async def test_transient_error_is_retried() -> None:
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(429)
        return httpx.Response(200, json={"organic_results": _organic(0, 2)})

    async with _client(handler, max_retries=2) as client:
        results = await client.search(SearchRequest(query="python", max_results=2))

    assert len(attempts) == 2
    assert len(results) == 2


@pytest.mark.asyncio
async def test_client_error_is_not_retried() -> None:
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        return httpx.Response(401)

    async with _client(handler, max_retries=3) as client:
        with pytest.raises(SearchTransportError):
            await client.search(SearchRequest(query="python"))

    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_undecodable_body_raises_decode_error() -> None:
    async with _client(lambda request: httpx.Response(200, content=b"<html>not json</html>")) as client:
        with pytest.raises(SearchDecodeError):
            await client.search(SearchRequest(query="python"))


@pytest.mark.asyncio
async def test_no_results_raises_empty_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "Google hasn't returned any results for this query. No results."})

    async with _client(handler) as client:
        with pytest.raises(EmptyResponseError):
            await client.search(SearchRequest(query="zzzz"))


@pytest.mark.asyncio
async def test_results_without_link_are_dropped() -> None:
    organic = [{"title": "no link"}, {"title": "ok", "link": "https://example.com/ok", "position": 2}]

    async with _client(lambda request: httpx.Response(200, json={"organic_results": organic})) as client:
        results = await client.search(SearchRequest(query="python", max_results=10))

    assert [(item.title, item.url, item.position) for item in results] == [("ok", "https://example.com/ok", 2)]


@pytest.mark.asyncio
async def test_missing_credential_raises_before_any_request() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    client = SerpApiSearchClient(static_resolver({}), transport=httpx.MockTransport(handler))
    try:
        assert client.is_configured() is False
        with pytest.raises(MissingCredentialError) as exc:
            await client.search(SearchRequest(query="python"))
    finally:
        await client.close()

    assert exc.value.credential == "serpapi_api_key"
    assert calls == []


@pytest.mark.asyncio
async def test_account_info() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/account.json")
        assert request.url.params["api_key"] == "secret-key"
        body = {"plan_name": "Free", "searches_per_month": 100, "total_searches_left": 42}
        return httpx.Response(200, content=json.dumps(body).encode())

    async with _client(handler) as client:
        info = await client.account_info()

    assert info == {"credits_remaining": 42, "credits_limit": 100, "plan": "Free"}
