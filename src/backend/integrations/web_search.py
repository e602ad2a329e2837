"""
Web search tool backed by the Tavily search API.

The model calls this through a function tool while a run is streaming, so it
must never raise: every failure is returned as an error-shaped JSON string
that the model can read.
"""

from __future__ import annotations

import json

import httpx

from core.constants import TAVILY_SEARCH_URL, WEB_SEARCH_DEPTH, WEB_SEARCH_MAX_RESULTS
from utils.logger import logger

MISSING_KEY_ERROR = "Web search is not available, TAVILY_API_KEY is not configured."
EXCEPTION_ERROR = "An exception occurred during web search"


def _error_payload(message: str, **extra: object) -> str:
    return json.dumps({"error": message, **extra})


async def perform_web_search(
    query: str,
    *,
    api_key: str | None,
    http_client: httpx.AsyncClient,
    url: str = TAVILY_SEARCH_URL,
    timeout: float = 30.0,
) -> str:
    """Search the web and return the provider's JSON response as a string.

    Args:
        query: Search query chosen by the model
        api_key: Tavily API key (None disables the tool)
        http_client: Shared async HTTP client
        url: Search endpoint
        timeout: Request timeout in seconds

    Returns:
        JSON string with the search results, or ``{"error": ...}`` on failure
    """
    if not api_key:
        return _error_payload(MISSING_KEY_ERROR)

    logger.info(f"Performing web search for {query!r}")
    try:
        response = await http_client.post(
            url,
            headers={"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"},
            json={
                "query": query,
                "search_depth": WEB_SEARCH_DEPTH,
                "max_results": WEB_SEARCH_MAX_RESULTS,
                "include_answer": True,
                "include_raw_content": False,
            },
            timeout=timeout,
        )

        if not response.is_success:
            error_text = response.text
            logger.warning(f"Web search failed for {query!r} with status {response.status_code}: {error_text}")
            return _error_payload(f"Search failed with status: {response.status_code}", details=error_text)

        data = response.json()
        logger.info(f"Web search succeeded for {query!r}")
        return json.dumps(data)
    except Exception as e:
        logger.error(f"Exception during web search for {query!r}: {e}", exc_info=True)
        return _error_payload(EXCEPTION_ERROR)


__all__ = ["EXCEPTION_ERROR", "MISSING_KEY_ERROR", "perform_web_search"]
