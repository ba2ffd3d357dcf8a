from __future__ import annotations

import json
from typing import Any

import httpx

NO_RESULTS_MESSAGE = "No good results found."

WEB_SEARCH_TOOL: dict[str, Any] = {
    "name": "web_search",
    "description": (
        "Search the web for current information about people, places, events, "
        "facts and news. Returns titles, URLs and snippets."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "The search query. Be specific and keyword-focused.",
            },
        },
        "required": ["query"],
    },
}


class SearxngSearchTool:
    """Search tool backed by a SearXNG instance.

    Like agent-framework search tools, ``invoke`` returns a plain string:
    comma-joined JSON hits ``{"title", "link", "snippet", "engine"}`` or
    ``NO_RESULTS_MESSAGE``. Parsing is left to the result normalizer.
    """

    name = WEB_SEARCH_TOOL["name"]

    def __init__(
        self,
        base_url: str,
        *,
        num_results: int = 10,
        engines: list[str] | None = None,
        timeout: float = 15.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.num_results = num_results
        self.engines = engines or []
        self.timeout = timeout

    def _params(self, query: str) -> dict[str, Any]:
        params: dict[str, Any] = {
            "q": query,
            "format": "json",
            "categories": "general",
        }
        if self.engines:
            params["engines"] = ",".join(self.engines)
        return params

    async def invoke(self, query: str) -> str:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                f"{self.base_url}/search",
                params=self._params(query),
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            payload = response.json()

        hits = [
            {
                "title": item.get("title", ""),
                "link": item.get("url", ""),
                "snippet": item.get("content", ""),
                "engine": item.get("engine", ""),
            }
            for item in (payload.get("results") or [])[: self.num_results]
            if isinstance(item, dict)
        ]
        if not hits:
            return NO_RESULTS_MESSAGE
        return ",".join(json.dumps(hit) for hit in hits)
