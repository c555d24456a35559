"""Pydantic schemas for catalog rows.

- Document: an uploaded file, its local copy and its content-store reference
- Chat: a conversation owned by one caller
- Message: one side of a chat turn
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Who authored a message."""
    USER = "user"
    ASSISTANT = "assistant"


class Document(BaseModel):
    """A file that was fully persisted locally and handed to the content store.

    ``external_uri`` stays ``None`` only for rows written without a content
    store reference; the upload pipeline never writes such rows.
    """
    id: str = Field(..., description="Unique document ID")
    filename: str = Field(..., description="Original, user-supplied filename")
    mime_type: str = Field(..., description="MIME type")
    storage_path: str = Field(..., description="Path of the local copy")
    external_uri: Optional[str] = Field(None, description="Content store reference")
    upload_date: datetime = Field(..., description="When the row was written (UTC)")

    @property
    def synced(self) -> bool:
        return self.external_uri is not None


class Chat(BaseModel):
    id: str = Field(..., description="Chat ID")
    owner_id: str = Field(..., description="Caller who owns the chat")
    title: str = Field(..., description="Display title")
    created_at: datetime = Field(..., description="Creation time (UTC)")


class Message(BaseModel):
    id: str = Field(..., description="Message ID")
    chat_id: str = Field(..., description="Chat the message belongs to")
    role: MessageRole = Field(..., description="user or assistant")
    content: str = Field(..., description="Message text")
    created_at: datetime = Field(..., description="Creation time (UTC)")
