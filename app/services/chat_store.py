from __future__ import annotations

import itertools
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import uuid4

from app.config import settings

DEFAULT_TITLE = "New Chat"


class ChatStore(Protocol):
    async def open(self) -> None: ...
    async def close(self) -> None: ...
    async def list_conversations(self) -> list[dict[str, Any]]: ...
    async def create_conversation(self, title: str = DEFAULT_TITLE) -> dict[str, Any]: ...
    async def get_conversation(self, conversation_id: str) -> dict[str, Any] | None: ...
    async def get_messages(self, conversation_id: str) -> list[dict[str, Any]]: ...
    async def delete_conversation(self, conversation_id: str) -> bool: ...
    async def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        sources: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]: ...
    async def update_title(self, conversation_id: str, title: str) -> None: ...
    async def count_messages(self, conversation_id: str) -> int: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryChatStore:
    """Process-local store used when no DATABASE_URL is configured."""

    def __init__(self) -> None:
        self._conversations: dict[str, dict[str, Any]] = {}
        self._messages: dict[str, list[dict[str, Any]]] = {}
        # Write order breaks updated_at ties from coarse clocks.
        self._touched = itertools.count()
        self._recency: dict[str, int] = {}

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def list_conversations(self) -> list[dict[str, Any]]:
        rows = []
        for conversation_id, conversation in self._conversations.items():
            messages = self._messages.get(conversation_id, [])
            if not messages:
                continue
            rows.append({**conversation, "messages": [dict(messages[-1])]})
        rows.sort(key=lambda row: (row["updated_at"], self._recency.get(row["id"], 0)), reverse=True)
        return rows

    async def create_conversation(self, title: str = DEFAULT_TITLE) -> dict[str, Any]:
        now = _utc_now()
        conversation = {
            "id": str(uuid4()),
            "title": title,
            "created_at": now,
            "updated_at": now,
        }
        self._conversations[conversation["id"]] = conversation
        self._messages[conversation["id"]] = []
        self._recency[conversation["id"]] = next(self._touched)
        return dict(conversation)

    async def get_conversation(self, conversation_id: str) -> dict[str, Any] | None:
        conversation = self._conversations.get(conversation_id)
        return dict(conversation) if conversation else None

    async def get_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        return [dict(m) for m in self._messages.get(conversation_id, [])]

    async def delete_conversation(self, conversation_id: str) -> bool:
        self._messages.pop(conversation_id, None)
        self._recency.pop(conversation_id, None)
        return self._conversations.pop(conversation_id, None) is not None

    async def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        sources: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise KeyError(f"Conversation not found: {conversation_id}")

        now = _utc_now()
        message = {
            "id": str(uuid4()),
            "conversation_id": conversation_id,
            "role": role,
            "content": content,
            "sources": list(sources) if sources else None,
            "created_at": now,
        }
        self._messages[conversation_id].append(message)
        conversation["updated_at"] = now
        self._recency[conversation_id] = next(self._touched)
        return dict(message)

    async def update_title(self, conversation_id: str, title: str) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise KeyError(f"Conversation not found: {conversation_id}")
        conversation["title"] = title
        conversation["updated_at"] = _utc_now()
        self._recency[conversation_id] = next(self._touched)

    async def count_messages(self, conversation_id: str) -> int:
        return len(self._messages.get(conversation_id, []))


def get_chat_store() -> ChatStore:
    if settings.database_url:
        from app.services.database import PostgresChatStore

        return PostgresChatStore(settings.database_url)
    return InMemoryChatStore()
