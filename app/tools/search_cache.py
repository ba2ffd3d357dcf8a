from __future__ import annotations

import time
from typing import Callable

from app.models.chat import SearchResult


def _cache_key(query: str, limit: int) -> tuple[str, int]:
    return " ".join(query.split()), int(limit)


class SearchCache:
    """In-process TTL cache for search results.

    Expired entries are swept on every write, so the cache only holds
    queries seen within the last TTL window. Writes are idempotent so
    concurrent requests may overwrite each other freely.
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = max(float(ttl_seconds), 0.0)
        self._clock = clock
        self._entries: dict[tuple[str, int], tuple[float, list[SearchResult]]] = {}

    def load(self, query: str, limit: int) -> list[SearchResult] | None:
        if self.ttl_seconds == 0:
            return None

        key = _cache_key(query, limit)
        entry = self._entries.get(key)
        if entry is None:
            return None

        expires_at, results = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return list(results)

    def save(self, query: str, limit: int, results: list[SearchResult]) -> None:
        if self.ttl_seconds == 0 or not results:
            return
        now = self._clock()
        self._entries = {k: entry for k, entry in self._entries.items() if entry[0] > now}
        key = _cache_key(query, limit)
        self._entries[key] = (now + self.ttl_seconds, list(results))

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
