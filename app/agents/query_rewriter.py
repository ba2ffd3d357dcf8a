from __future__ import annotations

from loguru import logger

from app.agents.classifier import format_history, strip_deliberation
from app.llm_client import ModelClient
from app.models.chat import ChatMessage
from app.services.prompt_store import render_prompt

_PREFIXES = ("rewritten query:", "search query:", "query:")


def _clean(output: str) -> str:
    visible, _ = strip_deliberation(output or "")
    lines = [line.strip() for line in visible.splitlines() if line.strip()]
    if not lines:
        return ""
    text = lines[0]
    lowered = text.lower()
    for prefix in _PREFIXES:
        if lowered.startswith(prefix):
            text = text[len(prefix):].strip()
            break
    return text.strip("\"'`").strip()


class QueryRewriter:
    """Turns a context-dependent follow-up into a standalone search query."""

    def __init__(self, model_client: ModelClient):
        self.model_client = model_client

    async def rewrite(self, query: str, history: list[ChatMessage] | None = None) -> str:
        if not history:
            return query

        messages = [
            {"role": "system", "content": render_prompt("rewriter.system")},
            {
                "role": "user",
                "content": render_prompt("rewriter.user", history=format_history(history), query=query),
            },
        ]
        try:
            output = await self.model_client.complete(messages, profile="rewrite")
        except Exception as e:
            logger.warning(f"[Query Rewrite] Failed, using original query: {e}")
            return query

        rewritten = _clean(output)
        logger.info(f"[Query Rewrite] {query[:100]!r} -> {rewritten[:100]!r}")
        return rewritten or query
