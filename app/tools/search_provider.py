from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from app.models.chat import SearchResult
from app.services import logger as log_service
from app.tools import searxng_direct
from app.tools.search_cache import SearchCache
from app.tools.search_normalizer import normalize_search_response


class SearchTool(Protocol):
    name: str

    async def invoke(self, query: str) -> Any: ...


@dataclass
class SearchResponse:
    results: list[SearchResult]
    provider: str
    fallback_from: str | None = None
    fallback_reason: str | None = None
    from_cache: bool = False


class SearchGateway:
    """Two-tier search acquisition behind a short-lived cache.

    Tier 1 invokes the configured search tool and normalizes its loosely
    structured output. Tier 2 calls the SearXNG JSON API directly. The
    gateway never raises; an empty list is the only failure signal.
    """

    def __init__(
        self,
        tool: SearchTool,
        cache: SearchCache,
        *,
        base_url: str,
        default_limit: int = 5,
        timeout: float = 15.0,
    ):
        self.tool = tool
        self.cache = cache
        self.base_url = base_url
        self.default_limit = default_limit
        self.timeout = timeout

    async def _search_primary(self, query: str, limit: int) -> tuple[list[SearchResult], str | None]:
        try:
            raw = await self.tool.invoke(query)
        except Exception as e:
            return [], f"{self.tool.name} failed: {e}"

        results = normalize_search_response(raw, limit)
        if not results:
            return [], f"{self.tool.name} returned zero results"
        return results, None

    async def search(self, query: str, limit: int | None = None) -> list[SearchResult]:
        response = await self.search_with_metadata(query, limit)
        return response.results

    async def search_with_metadata(self, query: str, limit: int | None = None) -> SearchResponse:
        query = query.strip()
        limit = self.default_limit if limit is None else limit
        if not query or limit <= 0:
            return SearchResponse(results=[], provider="none")

        cached = self.cache.load(query, limit)
        if cached is not None:
            response = SearchResponse(results=cached, provider="cache", from_cache=True)
        else:
            results, failure = await self._search_primary(query, limit)
            if failure is None:
                response = SearchResponse(results=results, provider=self.tool.name)
            else:
                fallback_results = await searxng_direct.search_direct(
                    self.base_url,
                    query,
                    limit=limit,
                    timeout=self.timeout,
                )
                response = SearchResponse(
                    results=fallback_results,
                    provider="searxng_direct",
                    fallback_from=self.tool.name,
                    fallback_reason=failure,
                )
            self.cache.save(query, limit, response.results)

        log_service.log_search(
            query,
            provider=response.provider,
            results=len(response.results),
            fallback_from=response.fallback_from,
            fallback_reason=response.fallback_reason,
            from_cache=response.from_cache,
        )
        return response


def format_source_block(index: int, result: SearchResult) -> str:
    return f"[{index}] {result.title}\nURL: {result.url}\n{result.content}"


def format_sources_for_prompt(results: list[SearchResult], *, start: int = 1) -> str:
    """Render numbered source blocks for the model's context."""
    return "\n\n".join(
        format_source_block(index, r) for index, r in enumerate(results, start=start)
    )


def sources_to_dicts(results: list[SearchResult], *, start: int = 1) -> list[dict[str, Any]]:
    """Numbered, JSON-serializable sources for the client and for persistence."""
    return [
        {"index": index, **r.to_dict()}
        for index, r in enumerate(results, start=start)
    ]
