from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from app.agents.classifier import QueryClassifier
from app.agents.orchestrator import ChatOrchestrator
from app.agents.query_rewriter import QueryRewriter
from app.config import settings
from app.llm_client import ModelClient, get_client
from app.services.chat_store import ChatStore, get_chat_store
from app.tools.search_cache import SearchCache
from app.tools.search_provider import SearchGateway
from app.tools.searxng_tool import SearxngSearchTool


@dataclass
class Services:
    """Process-wide collaborators, built once and shared across requests."""

    model_client: ModelClient
    cache: SearchCache
    gateway: SearchGateway
    store: ChatStore
    classifier: QueryClassifier
    rewriter: QueryRewriter
    orchestrator: ChatOrchestrator


def build_services(
    *,
    model_client: ModelClient | None = None,
    store: ChatStore | None = None,
    mode: str | None = None,
) -> Services:
    model_client = model_client or get_client()
    store = store or get_chat_store()

    cache = SearchCache(ttl_seconds=settings.search_cache_ttl_seconds)
    tool = SearxngSearchTool(
        settings.searxng_url,
        num_results=max(settings.search_result_limit * 2, 10),
        engines=settings.searxng_engine_list or None,
        timeout=settings.search_timeout_seconds,
    )
    gateway = SearchGateway(
        tool,
        cache,
        base_url=settings.searxng_url,
        default_limit=settings.search_result_limit,
        timeout=settings.search_timeout_seconds,
    )
    classifier = QueryClassifier(
        model_client,
        history_messages=settings.classifier_history_messages,
        history_chars=settings.classifier_history_chars,
    )
    rewriter = QueryRewriter(model_client)
    orchestrator = ChatOrchestrator(
        model_client,
        gateway,
        store,
        classifier=classifier,
        rewriter=rewriter,
        mode=mode or settings.orchestration_mode,
        history_window=settings.history_window,
        search_limit=settings.search_result_limit,
        max_tool_iterations=settings.max_tool_iterations,
    )
    return Services(
        model_client=model_client,
        cache=cache,
        gateway=gateway,
        store=store,
        classifier=classifier,
        rewriter=rewriter,
        orchestrator=orchestrator,
    )


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services()
        request.app.state.services = services
    return services


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return get_services(request).orchestrator


def get_chat_store(request: Request) -> ChatStore:
    return get_services(request).store
