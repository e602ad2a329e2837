import json

import httpx
import pytest

from integrations.web_search import EXCEPTION_ERROR, MISSING_KEY_ERROR, perform_web_search

SEARCH_URL = "https://search.test/search"


def client_for(handler: object) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_missing_key_returns_error_without_request() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    async with client_for(handler) as client:
        result = await perform_web_search("tea", api_key=None, http_client=client, url=SEARCH_URL)

    assert json.loads(result) == {"error": MISSING_KEY_ERROR}
    assert calls == []


@pytest.mark.asyncio
async def test_successful_search_returns_provider_json() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"answer": "Green tea", "results": [{"title": "Tea"}]})

    async with client_for(handler) as client:
        result = await perform_web_search("best tea", api_key="tvly-key", http_client=client, url=SEARCH_URL)

    assert json.loads(result) == {"answer": "Green tea", "results": [{"title": "Tea"}]}
    assert captured["auth"] == "Bearer tvly-key"
    assert captured["body"] == {
        "query": "best tea",
        "search_depth": "advanced",
        "max_results": 5,
        "include_answer": True,
        "include_raw_content": False,
    }


@pytest.mark.asyncio
async def test_non_success_status_returns_error_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="slow down")

    async with client_for(handler) as client:
        result = await perform_web_search("tea", api_key="tvly-key", http_client=client, url=SEARCH_URL)

    assert json.loads(result) == {"error": "Search failed with status: 429", "details": "slow down"}


@pytest.mark.asyncio
async def test_transport_exception_returns_error_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with client_for(handler) as client:
        result = await perform_web_search("tea", api_key="tvly-key", http_client=client, url=SEARCH_URL)

    assert json.loads(result) == {"error": EXCEPTION_ERROR}
