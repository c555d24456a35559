"""FastAPI router for the streaming chat endpoint.

    POST /api/chat: ``{messages: [...], chatId?}`` in, assistant text out

The reply is streamed as ``text/plain``; the chat id (new or continued)
is returned in the ``chat.chat_id_header`` response header.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from docchat.ai_provider import ChatMessage, get_chat_provider
from docchat.auth import get_current_user_id
from docchat.config import get_config
from docchat.errors import ChatNotFound, DocChatError
from docchat.storage import CatalogService, MessageRole

from .relay import ChatStreamRelay
from .schemas import ChatRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

_MODEL_ROLES = {MessageRole.USER.value, MessageRole.ASSISTANT.value}


def _internal_error(details: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        {"error": "Internal Server Error", "details": details},
        status_code=status_code,
    )


@router.post("/chat")
async def chat(
    payload: Optional[ChatRequest] = None,
    user_id: str = Depends(get_current_user_id),
):
    """Run one chat turn and stream the assistant reply.

    Error responses:
        400: Missing messages / no user message
        401: No caller identity
        404: ``chatId`` unknown or owned by another caller
        500: Storage or model failure before streaming began
    """
    if payload is None or not payload.messages:
        return JSONResponse({"error": "Missing messages"}, status_code=400)

    messages = [
        ChatMessage(role=m.role, content=m.content)
        for m in payload.messages
        if m.role in _MODEL_ROLES
    ]
    if not any(m.role == MessageRole.USER.value for m in messages):
        return JSONResponse({"error": "Missing user message"}, status_code=400)

    config = get_config()
    relay = ChatStreamRelay(
        catalog=CatalogService.get_instance(config.database.path),
        provider=get_chat_provider(),
        settings=config.chat,
    )

    try:
        turn = await relay.start_turn(user_id, messages, chat_id=payload.chatId)
    except ChatNotFound as e:
        return JSONResponse({"error": e.message}, status_code=e.status_code)
    except DocChatError as e:
        logger.error("[chat] turn failed before streaming: %s", e.message)
        return _internal_error(e.message, e.status_code)
    except Exception as e:
        logger.exception("[chat] unexpected failure: %s", e)
        return _internal_error(str(e) or type(e).__name__)

    return StreamingResponse(
        turn.stream(),
        media_type="text/plain; charset=utf-8",
        headers={config.chat.chat_id_header: turn.chat.id},
    )
