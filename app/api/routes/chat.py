from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from app.agents.orchestrator import ChatOrchestrator
from app.api.deps import get_orchestrator
from app.models.chat import ChatRequestError
from app.models.events import SSEEvent
from app.models.schemas import ChatRequest
from app.services import logger as log_service
from app.services import streaming

router = APIRouter(prefix="/api/chat", tags=["chat"])

FAILED_MESSAGE = "Failed to process chat request"


@router.post("")
async def chat(request: Request, orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    """Answer the last user message as an SSE stream of sources, text and done events.

    Everything up to the first event runs before the response starts, so
    request errors and generation failures still map to JSON 400/500.
    """
    try:
        chat_request = ChatRequest.model_validate(await request.json())
    except ValueError:
        return JSONResponse({"error": "Invalid request body"}, status_code=400)

    events = orchestrator.answer(chat_request.to_chat_messages(), chat_request.chat_id)
    first: SSEEvent | None = None
    try:
        first = await events.__anext__()
    except StopAsyncIteration:
        pass
    except ChatRequestError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except Exception as e:
        log_service.log_event(
            event_type="chat_failed",
            message="Chat request failed before streaming",
            error=str(e) or type(e).__name__,
            chat_id=chat_request.chat_id,
        )
        return JSONResponse({"error": FAILED_MESSAGE}, status_code=500)

    async def event_generator():
        try:
            if first is not None:
                yield first.to_sse()
            async for event in events:
                yield event.to_sse()
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in chat stream",
                error=str(e) or type(e).__name__,
                chat_id=chat_request.chat_id,
            )
            yield streaming.error(FAILED_MESSAGE).to_sse()
        finally:
            await events.aclose()

    return EventSourceResponse(event_generator())
