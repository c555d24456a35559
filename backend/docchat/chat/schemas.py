"""Pydantic schemas for the chat and chat-history endpoints."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ChatRequestMessage(BaseModel):
    """One message of the conversation sent by the client."""
    role: str = Field(..., description="user, assistant or system")
    content: str = Field("", description="Message text")


class ChatRequest(BaseModel):
    """Body of POST /api/chat.

    ``messages`` is the whole visible conversation; its last user message is
    the one this turn persists.
    """
    messages: List[ChatRequestMessage] = Field(default_factory=list)
    chatId: Optional[str] = Field(None, description="Existing chat to continue")


class CreateChatRequest(BaseModel):
    title: Optional[str] = Field(None, description="Chat title (default: New Chat)")


class ChatSummary(BaseModel):
    id: str
    title: str
    created_at: datetime


class MessageOut(BaseModel):
    id: str
    role: str
    content: str
    created_at: datetime


class ChatDetail(BaseModel):
    """A chat with its messages in turn order."""
    chat: ChatSummary
    messages: List[MessageOut]
