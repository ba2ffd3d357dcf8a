from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, AsyncGenerator, Callable

from loguru import logger

from app.agents.classifier import QueryClassifier
from app.agents.query_rewriter import QueryRewriter
from app.agents.search_agent import SearchToolAgent
from app.llm_client import ModelClient
from app.models.chat import ChatMessage, ChatRequestError, GenerationError, SearchResult
from app.models.events import SSEEvent
from app.services import streaming
from app.services.background import run_best_effort, spawn_best_effort
from app.services.chat_store import ChatStore
from app.services.prompt_store import render_prompt
from app.tools.search_provider import SearchGateway, format_sources_for_prompt, sources_to_dicts

MODE_CLASSIFY = "classify"
MODE_TOOL_LOOP = "tool_loop"
ORCHESTRATION_MODES = (MODE_CLASSIFY, MODE_TOOL_LOOP)

TITLE_MAX_CHARS = 50


def make_title(text: str) -> str:
    """Conversation title from the first user message."""
    text = " ".join(text.split())
    if len(text) > TITLE_MAX_CHARS:
        return text[: TITLE_MAX_CHARS - 3] + "..."
    return text


def _history_window(history: list[ChatMessage], window: int) -> list[dict[str, str]]:
    recent = history[-window:] if window > 0 else []
    return [
        {"role": m.role, "content": m.text}
        for m in recent
        if m.role in ("user", "assistant") and m.text
    ]


def build_answer_messages(
    query: str,
    history: list[ChatMessage],
    sources: list[SearchResult],
    window: int = 6,
    *,
    today: date | None = None,
) -> list[dict[str, Any]]:
    """Prompt for the streamed answer.

    With sources, the final user turn carries the numbered source list right
    before the question; the numbering matches `sources_to_dicts`.
    """
    today_iso = (today or date.today()).isoformat()
    if sources:
        system = render_prompt("answer.system_with_sources", today=today_iso)
        question = render_prompt(
            "answer.augmented_question",
            sources=format_sources_for_prompt(sources),
            question=query,
        )
    else:
        system = render_prompt("answer.system_without_sources", today=today_iso)
        question = query

    return [
        {"role": "system", "content": system},
        *_history_window(history, window),
        {"role": "user", "content": question},
    ]


def build_tool_messages(
    query: str,
    history: list[ChatMessage],
    window: int = 6,
    *,
    today: date | None = None,
) -> list[dict[str, Any]]:
    """Starting message list for the tool-calling loop."""
    today_iso = (today or date.today()).isoformat()
    return [
        {"role": "system", "content": render_prompt("tool_agent.system", today=today_iso)},
        *_history_window(history, window),
        {"role": "user", "content": query},
    ]


class ChatOrchestrator:
    """Per-request controller producing a streamed, cited answer.

    Flow (both modes):
      1. Validate the message list (the only stage that may fail the request)
      2. Persist the user message in the background
      3. classify: classify, then search and update the title concurrently
         tool_loop: rewrite and update the title concurrently, then let the
         model call web_search with the rewritten query
      4. Await the first answer delta, emit sources, stream text
      5. Persist the assistant message, emit done

    Everything after validation degrades instead of failing, except a model
    stream that breaks before its first delta, which raises GenerationError.
    """

    def __init__(
        self,
        model_client: ModelClient,
        gateway: SearchGateway,
        store: ChatStore,
        *,
        classifier: QueryClassifier,
        rewriter: QueryRewriter,
        mode: str = MODE_CLASSIFY,
        history_window: int = 6,
        search_limit: int = 5,
        max_tool_iterations: int = 5,
        today: Callable[[], date] = date.today,
    ):
        mode = str(mode).lower().strip()
        if mode not in ORCHESTRATION_MODES:
            raise ValueError(f"Unknown orchestration mode: {mode}")
        self.model_client = model_client
        self.gateway = gateway
        self.store = store
        self.classifier = classifier
        self.rewriter = rewriter
        self.mode = mode
        self.history_window = max(int(history_window), 0)
        self.search_limit = max(int(search_limit), 1)
        self.max_tool_iterations = max(int(max_tool_iterations), 1)
        self._today = today

    @staticmethod
    def validate(messages: list[ChatMessage]) -> str:
        """Return the query text of the final user turn."""
        if not messages:
            raise ChatRequestError("Messages are required")
        last = messages[-1]
        if last.role != "user":
            raise ChatRequestError("Last message must be from user")
        query = last.text.strip()
        if not query:
            raise ChatRequestError("Message content is required")
        return query

    async def answer(
        self,
        messages: list[ChatMessage],
        chat_id: str | None = None,
    ) -> AsyncGenerator[SSEEvent, None]:
        query = self.validate(messages)
        history = list(messages[:-1])
        logger.info(f"Chat request mode={self.mode} chat_id={chat_id} query={query[:100]!r}")

        user_task: asyncio.Task | None = None
        if chat_id:
            user_task = spawn_best_effort(
                "persist_user_message",
                self.store.append_message(chat_id, "user", query),
                chat_id=chat_id,
            )

        if self.mode == MODE_TOOL_LOOP:
            prompt_messages, results = await self._prepare_tool_loop(query, history, chat_id, user_task)
        else:
            prompt_messages, results = await self._prepare_classified(query, history, chat_id, user_task)

        async for event in self._stream_answer(prompt_messages, results, chat_id, user_task):
            yield event

    async def _prepare_classified(
        self,
        query: str,
        history: list[ChatMessage],
        chat_id: str | None,
        user_task: asyncio.Task | None,
    ) -> tuple[list[dict[str, Any]], list[SearchResult]]:
        classification = await self.classifier.classify(query, history)

        async def retrieve() -> list[SearchResult]:
            if not classification.needs_search:
                return []
            return await self.gateway.search(classification.query, self.search_limit)

        results, _ = await asyncio.gather(
            retrieve(),
            self._update_title(chat_id, query, user_task),
        )
        logger.info(
            f"Classified {classification.decision.value}: "
            f"search_query={classification.query[:100]!r} sources={len(results)}"
        )
        prompt_messages = build_answer_messages(
            query,
            history,
            results,
            self.history_window,
            today=self._today(),
        )
        return prompt_messages, results

    async def _prepare_tool_loop(
        self,
        query: str,
        history: list[ChatMessage],
        chat_id: str | None,
        user_task: asyncio.Task | None,
    ) -> tuple[list[dict[str, Any]], list[SearchResult]]:
        rewritten, _ = await asyncio.gather(
            self.rewriter.rewrite(query, history),
            self._update_title(chat_id, query, user_task),
        )
        agent = SearchToolAgent(
            self.model_client,
            self.gateway,
            search_query=rewritten,
            limit=self.search_limit,
            max_iterations=self.max_tool_iterations,
        )
        try:
            running = await agent.run(
                build_tool_messages(rewritten, history, self.history_window, today=self._today())
            )
        except Exception as e:
            logger.warning(f"Tool loop failed after {agent.iterations} iteration(s), answering directly: {e}")
            fallback = build_answer_messages(query, history, [], self.history_window, today=self._today())
            return fallback, []

        logger.info(f"Tool loop finished in {agent.iterations} iteration(s) with {len(agent.sources)} sources")
        return running, list(agent.sources)

    async def _update_title(
        self,
        chat_id: str | None,
        query: str,
        user_task: asyncio.Task | None,
    ) -> None:
        if not chat_id:
            return

        async def update() -> None:
            # The count must include the user message persisted for this turn.
            if user_task is not None:
                await user_task
            if await self.store.count_messages(chat_id) <= 1:
                await self.store.update_title(chat_id, make_title(query))

        await run_best_effort("update_title", update(), chat_id=chat_id)

    async def _stream_answer(
        self,
        prompt_messages: list[dict[str, Any]],
        results: list[SearchResult],
        chat_id: str | None,
        user_task: asyncio.Task | None,
    ) -> AsyncGenerator[SSEEvent, None]:
        parts: list[str] = []
        started = False

        try:
            async with self.model_client.stream(prompt_messages, profile="answer") as stream:
                async for chunk in stream.text_stream:
                    if not started:
                        started = True
                        if results:
                            yield streaming.sources(results)
                    parts.append(chunk)
                    yield streaming.text_delta(chunk)
        except Exception as e:
            if not started:
                raise GenerationError(str(e) or type(e).__name__) from e
            logger.warning(f"Answer stream failed after {len(parts)} chunk(s), not persisting: {e}")
            yield streaming.error("Answer generation was interrupted")
            return

        if not started and results:
            yield streaming.sources(results)

        answer_text = "".join(parts)
        if chat_id and answer_text:
            if user_task is not None:
                await user_task
            await run_best_effort(
                "persist_assistant_message",
                self.store.append_message(
                    chat_id,
                    "assistant",
                    answer_text,
                    sources_to_dicts(results) or None,
                ),
                chat_id=chat_id,
            )

        logger.info(f"Answer complete: {len(answer_text)} chars, {len(results)} sources")
        yield streaming.done(chat_id=chat_id, sources_count=len(results))
