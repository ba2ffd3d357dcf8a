"""Best-effort side effects.

Contract: the awaitable runs to completion or failure, any exception is
logged and absorbed, and the caller's response is never blocked or failed
by it. Cancellation is not absorbed.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, TypeVar

from app.services import logger as log_service

T = TypeVar("T")


async def run_best_effort(operation: str, awaitable: Awaitable[T], **context: Any) -> T | None:
    try:
        return await awaitable
    except Exception as e:
        log_service.log_event(
            event_type="side_effect_failed",
            message=f"Best-effort operation failed: {operation}",
            operation=operation,
            error=str(e) or type(e).__name__,
            **context,
        )
        return None


def spawn_best_effort(operation: str, awaitable: Awaitable[T], **context: Any) -> asyncio.Task[T | None]:
    """Start `awaitable` concurrently under the best-effort contract."""
    return asyncio.create_task(
        run_best_effort(operation, awaitable, **context),
        name=f"best-effort:{operation}",
    )
