from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.deps import get_chat_store
from app.models.schemas import (
    ConversationDetailResponse,
    ConversationResponse,
    ConversationSummaryResponse,
    DeleteResponse,
)
from app.services import logger as log_service
from app.services.chat_store import ChatStore

router = APIRouter(prefix="/api/chats", tags=["chats"])


def _failed(message: str, e: Exception, **context) -> JSONResponse:
    log_service.log_event(
        event_type="chat_store_error",
        message=message,
        error=str(e) or type(e).__name__,
        **context,
    )
    return JSONResponse({"error": message}, status_code=500)


def _not_found() -> JSONResponse:
    return JSONResponse({"error": "Chat not found"}, status_code=404)


@router.get("", response_model=list[ConversationSummaryResponse])
async def list_chats(store: ChatStore = Depends(get_chat_store)):
    """Conversations with at least one message, most recently updated first."""
    try:
        return await store.list_conversations()
    except Exception as e:
        return _failed("Failed to fetch chats", e)


@router.post("", response_model=ConversationResponse)
async def create_chat(store: ChatStore = Depends(get_chat_store)):
    try:
        return await store.create_conversation()
    except Exception as e:
        return _failed("Failed to create chat", e)


@router.get("/{chat_id}", response_model=ConversationDetailResponse)
async def get_chat(chat_id: str, store: ChatStore = Depends(get_chat_store)):
    try:
        conversation = await store.get_conversation(chat_id)
        if conversation is None:
            return _not_found()
        messages = await store.get_messages(chat_id)
    except Exception as e:
        return _failed("Failed to fetch chat", e, chat_id=chat_id)
    return {**conversation, "messages": messages}


@router.delete("/{chat_id}", response_model=DeleteResponse)
async def delete_chat(chat_id: str, store: ChatStore = Depends(get_chat_store)):
    try:
        deleted = await store.delete_conversation(chat_id)
    except Exception as e:
        return _failed("Failed to delete chat", e, chat_id=chat_id)
    if not deleted:
        return _not_found()
    return DeleteResponse(success=True)
