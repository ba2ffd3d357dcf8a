from __future__ import annotations

from typing import Any

from loguru import logger

from app.agents.base import BaseToolAgent
from app.llm_client import ModelClient
from app.models.chat import SearchResult
from app.services.prompt_store import render_prompt
from app.tools.search_provider import SearchGateway, format_source_block
from app.tools.searxng_tool import WEB_SEARCH_TOOL


class SearchToolAgent(BaseToolAgent):
    """Lets the model decide whether to call web_search.

    The query actually searched is always `search_query`, computed from the
    conversation before the loop starts, whatever the model puts in its
    tool arguments. Sources accumulate across calls with stable 1-based
    indices; a URL seen earlier keeps its first index.
    """

    name = "search"
    tools = [WEB_SEARCH_TOOL]

    def __init__(
        self,
        model_client: ModelClient,
        gateway: SearchGateway,
        *,
        search_query: str,
        limit: int = 5,
        max_iterations: int = 5,
    ):
        super().__init__(model_client, max_iterations=max_iterations)
        self.gateway = gateway
        self.search_query = search_query
        self.limit = limit
        self.sources: list[SearchResult] = []
        self._index_by_url: dict[str, int] = {}

    def _register(self, result: SearchResult) -> int:
        if result.url and result.url in self._index_by_url:
            return self._index_by_url[result.url]
        self.sources.append(result)
        index = len(self.sources)
        if result.url:
            self._index_by_url[result.url] = index
        return index

    async def handle_tool_call(self, tool_name: str, tool_input: dict[str, Any]) -> str:
        if tool_name != WEB_SEARCH_TOOL["name"]:
            return await super().handle_tool_call(tool_name, tool_input)

        requested = str(tool_input.get("query") or "").strip()
        if requested and requested != self.search_query:
            logger.debug(f"Ignoring model search query {requested!r}, using {self.search_query!r}")

        results = await self.gateway.search(self.search_query, self.limit)
        if not results:
            return render_prompt("tool_agent.no_results", query=self.search_query)

        blocks = [format_source_block(self._register(r), r) for r in results]
        return render_prompt(
            "tool_agent.search_result",
            query=self.search_query,
            sources="\n\n".join(blocks),
        )
