from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.models.chat import ChatMessage


# --- Requests ---


class WireMessage(BaseModel):
    """Inbound message as sent by chat clients.

    `content` may be a plain string or a list of parts; some clients send a
    separate `parts` list instead. Parts are `{"type": "text", "text": ...}`
    objects or bare strings; non-text parts are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    role: str
    content: str | list[Any] | None = None
    parts: list[Any] | None = None

    @staticmethod
    def _parts_text(parts: list[Any]) -> str:
        texts: list[str] = []
        for part in parts:
            if isinstance(part, str):
                texts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                text = part.get("text")
                if isinstance(text, str):
                    texts.append(text)
        return "".join(texts)

    def text(self) -> str:
        if isinstance(self.content, str) and self.content:
            return self.content
        if isinstance(self.content, list):
            joined = self._parts_text(self.content)
            if joined:
                return joined
        if self.parts:
            return self._parts_text(self.parts)
        return ""


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[WireMessage] = Field(default_factory=list)
    chat_id: str | None = Field(default=None, alias="chatId")

    def to_chat_messages(self) -> list[ChatMessage]:
        """The one place wire shapes become internal messages."""
        return [ChatMessage(role=m.role, text=m.text()) for m in self.messages]


# --- Responses ---


class ConversationResponse(BaseModel):
    id: str
    title: str
    created_at: datetime
    updated_at: datetime


class StoredMessageResponse(BaseModel):
    id: str
    conversation_id: str
    role: str
    content: str
    sources: list[dict[str, Any]] | None = None
    created_at: datetime


class ConversationSummaryResponse(ConversationResponse):
    """List entry carrying only the latest message."""

    messages: list[StoredMessageResponse] = Field(default_factory=list)


class ConversationDetailResponse(ConversationResponse):
    messages: list[StoredMessageResponse] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    success: bool
