"""Chat history router: CRUD over the caller's chats.

Chats of other callers are reported as not found.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse

from docchat.auth import get_current_user_id
from docchat.config import get_config
from docchat.storage import CatalogService, Chat

from .relay import DEFAULT_CHAT_TITLE
from .schemas import ChatDetail, ChatSummary, CreateChatRequest, MessageOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chats", tags=["chats"])


def _catalog() -> CatalogService:
    return CatalogService.get_instance(get_config().database.path)


def _summary(chat: Chat) -> ChatSummary:
    return ChatSummary(id=chat.id, title=chat.title, created_at=chat.created_at)


def _owned_chat(chat_id: str, user_id: str) -> Optional[Chat]:
    chat = _catalog().get_chat(chat_id)
    if chat is None or chat.owner_id != user_id:
        return None
    return chat


def _not_found() -> JSONResponse:
    return JSONResponse({"error": "Chat not found"}, status_code=404)


@router.get("", response_model=List[ChatSummary])
async def list_chats(
    query: Optional[str] = Query(None, description="Case-insensitive title filter"),
    user_id: str = Depends(get_current_user_id),
) -> List[ChatSummary]:
    """List the caller's chats, newest first."""
    return [_summary(chat) for chat in _catalog().list_chats(user_id, query=query)]


@router.post("", response_model=ChatSummary, status_code=201)
async def create_chat(
    body: Optional[CreateChatRequest] = None,
    user_id: str = Depends(get_current_user_id),
) -> ChatSummary:
    """Create an empty chat."""
    title = (body.title if body else None) or DEFAULT_CHAT_TITLE
    chat = _catalog().create_chat(user_id, title)
    logger.info("[chats] Created %s for user=%s", chat.id, user_id)
    return _summary(chat)


@router.get("/{chat_id}", response_model=ChatDetail)
async def get_chat(chat_id: str, user_id: str = Depends(get_current_user_id)):
    """Return a chat and its messages in turn order.

    Returns:
        ChatDetail, or 404 if the chat is unknown or not the caller's.
    """
    chat = _owned_chat(chat_id, user_id)
    if chat is None:
        return _not_found()
    messages = [
        MessageOut(id=m.id, role=m.role.value, content=m.content, created_at=m.created_at)
        for m in _catalog().list_messages(chat.id)
    ]
    return ChatDetail(chat=_summary(chat), messages=messages)


@router.delete("/{chat_id}", status_code=204)
async def delete_chat(chat_id: str, user_id: str = Depends(get_current_user_id)):
    """Delete a chat and all of its messages."""
    chat = _owned_chat(chat_id, user_id)
    if chat is None:
        return _not_found()
    _catalog().delete_chat(chat.id)
    return Response(status_code=204)
