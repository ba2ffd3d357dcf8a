from __future__ import annotations

from typing import Any

from app.models.chat import SearchResult
from app.models.events import EventType, SSEEvent
from app.tools.search_provider import sources_to_dicts


def sources(results: list[SearchResult]) -> SSEEvent:
    """Emit the numbered source list ahead of the first answer token."""
    return SSEEvent(event=EventType.SOURCES, data={"sources": sources_to_dicts(results)})


def text_delta(chunk: str) -> SSEEvent:
    return SSEEvent(event=EventType.TEXT, data={"chunk": chunk})


def done(chat_id: str | None = None, sources_count: int = 0, **kwargs: Any) -> SSEEvent:
    data: dict[str, Any] = {"sources_count": sources_count}
    if chat_id:
        data["chat_id"] = chat_id
    data.update(kwargs)
    return SSEEvent(event=EventType.DONE, data=data)


def error(message: str) -> SSEEvent:
    return SSEEvent(event=EventType.ERROR, data={"message": message})
