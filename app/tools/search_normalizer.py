from __future__ import annotations

import json
from typing import Any

from app.models.chat import SearchResult

NO_RESULTS_SENTINELS = (
    "no good results found",
    "no good search result was found",
    "no results found",
)


def is_no_results(text: str) -> bool:
    lowered = text.strip().lower()
    return any(lowered.startswith(sentinel) for sentinel in NO_RESULTS_SENTINELS)


def _first_text(item: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = item.get(key)
        if value is None:
            continue
        text = value if isinstance(value, str) else str(value)
        if text.strip():
            return text
    return ""


def _is_result_like(value: Any) -> bool:
    return isinstance(value, dict) and bool(value.get("title") or value.get("url") or value.get("link"))


def _extract_items(parsed: Any) -> list[dict[str, Any]]:
    """Accept a result array, an object with a ``results`` array, or a single result object."""
    if isinstance(parsed, list):
        items: list[dict[str, Any]] = []
        for element in parsed:
            if not isinstance(element, dict):
                continue
            nested = element.get("results")
            if isinstance(nested, list) and not _is_result_like(element):
                # wrapped ``{"results": [...]}`` envelope
                items.extend(e for e in nested if isinstance(e, dict))
            else:
                items.append(element)
        return items

    if isinstance(parsed, dict):
        nested = parsed.get("results")
        if isinstance(nested, list):
            return [e for e in nested if isinstance(e, dict)]
        if _is_result_like(parsed):
            return [parsed]

    return []


def _parse_text(text: str) -> Any:
    # Some tools emit comma-joined JSON objects without an enclosing array.
    candidates = [text] if text.startswith("[") else [f"[{text}]", text]
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def to_search_result(item: dict[str, Any], *, default_engine: str) -> SearchResult:
    return SearchResult(
        title=_first_text(item, "title") or "Untitled",
        url=_first_text(item, "link", "url"),
        content=_first_text(item, "snippet", "content"),
        engine=_first_text(item, "engine") or default_engine,
    )


def normalize_search_response(
    payload: Any,
    limit: int = 5,
    *,
    default_engine: str = "searxng",
) -> list[SearchResult]:
    """Convert a raw search payload into at most ``limit`` SearchResults.

    Never raises. An empty list means the payload was a "no results"
    sentinel, could not be parsed, or held nothing result-like; callers
    treat that as a signal to try another acquisition path.
    """
    if limit <= 0 or payload is None:
        return []

    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")

    if isinstance(payload, str):
        text = payload.strip()
        if not text or is_no_results(text):
            return []
        parsed = _parse_text(text)
        if parsed is None:
            return []
    else:
        parsed = payload

    items = _extract_items(parsed)
    return [to_search_result(item, default_engine=default_engine) for item in items[:limit]]
