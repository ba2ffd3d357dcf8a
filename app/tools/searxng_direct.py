from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from app.models.chat import SearchResult


async def search_direct(
    base_url: str,
    query: str,
    *,
    limit: int = 5,
    timeout: float = 15.0,
) -> list[SearchResult]:
    """Query the SearXNG JSON API directly.

    API: GET {base_url}/search?q=<query>&format=json&categories=general
    Response: {"results": [{"title", "url", "content", "engine"}, ...]}

    Returns an empty list on any failure; this is the last acquisition tier.
    """
    params: dict[str, Any] = {
        "q": query,
        "format": "json",
        "categories": "general",
    }
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(
                f"{base_url.rstrip('/')}/search",
                params=params,
                headers={"Accept": "application/json"},
            )
            if not response.is_success:
                logger.error(f"SearXNG error: {response.status_code}")
                return []
            payload = response.json()
    except Exception as e:
        logger.error(f"Direct SearXNG search failed: {e}")
        return []

    raw_results = payload.get("results") if isinstance(payload, dict) else None
    if not isinstance(raw_results, list):
        logger.error("Direct SearXNG search returned a body without a results array")
        return []

    return [
        SearchResult(
            title=item.get("title") or "Untitled",
            url=item.get("url") or "",
            content=item.get("content") or "",
            engine=item.get("engine") or "unknown",
        )
        for item in raw_results[:limit]
        if isinstance(item, dict)
    ]
