"""Two-stage search routing: regex heuristics first, model second."""
from __future__ import annotations

import re
from datetime import date
from typing import Callable

from loguru import logger

from app.llm_client import ModelClient
from app.models.chat import ChatMessage, ClassificationResult, SearchDecision
from app.services.prompt_store import render_prompt

_NO_SEARCH_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p)
    for p in (
        # greetings
        r"^(hi|hello|hey|heya|hiya|howdy|yo|sup|greetings|what'?s up|good (morning|afternoon|evening|day))"
        r"( there| everyone| all| friend)?[\s!.,?]*$",
        # thanks
        r"^(thanks|thank you|thank u|thx|ty|cheers|much appreciated)( (so|very) much| a lot)?"
        r"( for (the|your) help)?[\s!.,]*$",
        # farewells
        r"^(bye|goodbye|bye bye|see you|see ya|cya|later|good night|take care)( later| soon)?[\s!.,]*$",
        # acknowledgements
        r"^(ok|okay|cool|great|nice|awesome|got it|sure|yes|no|yep|nope|perfect)[\s!.,]*$",
        # questions about the assistant
        r"^(who|what) are you\b",
        r"^what (can|do) you do\b",
        r"^how are you\b",
        r"^are you (a |an )?(bot|ai|robot|human|real)\b",
        r"^what'?s your name\b|^what is your name\b",
        r"^(help|can you help me)[\s!?.]*$",
        # arithmetic
        r"^(what is |what'?s |calculate |compute |solve )?\(?[\d.,()]+(\s*[+\-*/x×÷^%]\s*[\d.,()]+)+\s*(=\s*)?\??$",
    )
)

_SEARCH_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p)
    for p in (
        # wh-questions with auxiliaries
        r"^(who|what|when|where|which|whose|why|how)('s|\s+(is|are|was|were|did|does|do|has|have|had|will"
        r"|would|can|could|should|much|many|old|long|far|big|tall))\b",
        r"^(tell me about|what do you know about|look up|search( for)?|find)\b",
        # recency
        r"\b(latest|current|currently|recent|recently|today|tonight|yesterday|tomorrow|this (week|month|year)"
        r"|right now|upcoming|breaking|new(est)?)\b",
        # news, prices, weather, scores
        r"\b(news|headlines?|price|prices|cost|stocks?|shares|market|exchange rate|weather|forecast"
        r"|temperature|scores?|standings|results|election|release date)\b",
        # biographical
        r"\b(born|died|death|age|married|wife|husband|children|net worth|biography|birthday|nationality)\b",
        # how-to
        r"\b(how to|how do i|how can i|tutorial|guide|step by step|install|set ?up)\b",
        # superlatives and comparisons
        r"\b(best|worst|top \d+|fastest|largest|biggest|smallest|tallest|richest|cheapest|most popular"
        r"|vs\.?|versus|compare|comparison|difference between)\b",
        # years
        r"\b(19|20)\d{2}\b",
        # role titles
        r"\b(president|prime minister|ceo|founder|king|queen|mayor|governor|senator|minister|chancellor"
        r"|pope|director|coach|captain|chairman)\b",
        # geography and demographics
        r"\b(capital|population|country|countries|city|cities|continent|located|border|currency|gdp"
        r"|official language)\b",
    )
)

# Longer messages skip the regex stage and go to the model.
HEURISTIC_MAX_CHARS = 500

_PROPER_NOUN_RE = re.compile(r"^[\"'(]?[A-Z][a-zA-Z]+")

_DELIBERATION_BLOCK_RE = re.compile(
    r"<(think|thinking|reasoning|reflection)>(.*?)</\1>",
    re.DOTALL | re.IGNORECASE,
)
_UNCLOSED_DELIBERATION_RE = re.compile(
    r"<(think|thinking|reasoning|reflection)>(.*)$",
    re.DOTALL | re.IGNORECASE,
)
_SEARCH_LINE_RE = re.compile(r"^[\s*>`#-]*SEARCH\s*:\s*(.*)$", re.IGNORECASE)


def _has_embedded_proper_noun(query: str) -> bool:
    words = query.split()
    return any(_PROPER_NOUN_RE.match(word) for word in words[1:])


def classify_heuristic(query: str) -> SearchDecision:
    """Zero-latency routing decision; AMBIGUOUS defers to the model stage."""
    normalized = query.strip().lower()
    if not normalized:
        return SearchDecision.NO_SEARCH
    if len(normalized) > HEURISTIC_MAX_CHARS:
        return SearchDecision.AMBIGUOUS

    for pattern in _NO_SEARCH_PATTERNS:
        if pattern.search(normalized):
            return SearchDecision.NO_SEARCH

    for pattern in _SEARCH_PATTERNS:
        if pattern.search(normalized):
            return SearchDecision.SEARCH

    if _has_embedded_proper_noun(query.strip()):
        return SearchDecision.SEARCH

    return SearchDecision.AMBIGUOUS


def strip_deliberation(text: str) -> tuple[str, str]:
    """Split model output into (visible answer, deliberation block text)."""
    deliberation: list[str] = []

    def collect(match: re.Match[str]) -> str:
        deliberation.append(match.group(2))
        return ""

    visible = _DELIBERATION_BLOCK_RE.sub(collect, text)
    # Token-capped output can cut a block before its closing tag.
    visible = _UNCLOSED_DELIBERATION_RE.sub(collect, visible)
    return visible.strip(), "\n".join(deliberation).strip()


def parse_classifier_output(text: str, original_query: str) -> ClassificationResult:
    visible, deliberation = strip_deliberation(text or "")
    candidate = visible or deliberation

    for line in candidate.splitlines():
        match = _SEARCH_LINE_RE.match(line)
        if match:
            rewritten = match.group(1).strip().strip("\"'`*").strip()
            return ClassificationResult(SearchDecision.SEARCH, rewritten or original_query)

    if "NO_SEARCH" in candidate.upper():
        return ClassificationResult(SearchDecision.NO_SEARCH, original_query)

    return ClassificationResult(SearchDecision.SEARCH, original_query)


def format_history(history: list[ChatMessage], *, max_chars: int | None = None) -> str:
    lines: list[str] = []
    for message in history:
        label = "User" if message.role == "user" else "Assistant"
        text = message.text if max_chars is None else message.text[:max_chars]
        lines.append(f"{label}: {text}")
    return "\n".join(lines)


class QueryClassifier:
    """Decides whether a query needs retrieval and, if so, what to search for."""

    def __init__(
        self,
        model_client: ModelClient,
        *,
        history_messages: int = 4,
        history_chars: int = 200,
        today: Callable[[], date] = date.today,
    ):
        self.model_client = model_client
        self.history_messages = history_messages
        self.history_chars = history_chars
        self._today = today

    async def classify(self, query: str, history: list[ChatMessage] | None = None) -> ClassificationResult:
        history = history or []
        decision = classify_heuristic(query)

        if decision is SearchDecision.NO_SEARCH:
            logger.debug(f"Heuristic classifier: NO_SEARCH for {query[:80]!r}")
            return ClassificationResult(SearchDecision.NO_SEARCH, query)

        if decision is SearchDecision.SEARCH and not history:
            logger.debug(f"Heuristic classifier: SEARCH for {query[:80]!r}")
            return ClassificationResult(SearchDecision.SEARCH, query)

        return await self._classify_with_model(query, history)

    def _build_messages(self, query: str, history: list[ChatMessage]) -> list[dict[str, str]]:
        recent = history[-self.history_messages:] if self.history_messages > 0 else []
        context = format_history(recent, max_chars=self.history_chars) or "(no previous messages)"
        return [
            {
                "role": "system",
                "content": render_prompt("classifier.system", current_year=self._today().year),
            },
            {
                "role": "user",
                "content": render_prompt("classifier.user", history=context, query=query),
            },
        ]

    async def _classify_with_model(self, query: str, history: list[ChatMessage]) -> ClassificationResult:
        try:
            output = await self.model_client.complete(
                self._build_messages(query, history),
                profile="classifier",
            )
        except Exception as e:
            logger.warning(f"Classifier model call failed, defaulting to search: {e}")
            return ClassificationResult(SearchDecision.SEARCH, query)

        result = parse_classifier_output(output, query)
        logger.info(f"Model classifier: {result.decision.value} query={result.query[:100]!r}")
        return result
