from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ChatRequestError(ValueError):
    """The inbound chat request is malformed and will not be retried."""


class GenerationError(RuntimeError):
    """The answer stream failed before producing any output."""


@dataclass(slots=True)
class ChatMessage:
    role: str  # "user" | "assistant"
    text: str


@dataclass(slots=True)
class SearchResult:
    """Normalized web search hit, only ever persisted inside a message's sources."""

    title: str = "Untitled"
    url: str = ""
    content: str = ""
    engine: str = "searxng"

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "content": self.content,
            "engine": self.engine,
        }


class SearchDecision(str, Enum):
    SEARCH = "search"
    NO_SEARCH = "no_search"
    AMBIGUOUS = "ambiguous"


@dataclass(slots=True)
class ClassificationResult:
    decision: SearchDecision
    query: str

    @property
    def needs_search(self) -> bool:
        return self.decision is SearchDecision.SEARCH
