"""Catalog storage for documents, chats and messages (DuckDB)."""
from .schemas import Chat, Document, Message, MessageRole
from .service import CatalogService

__all__ = ["CatalogService", "Chat", "Document", "Message", "MessageRole"]
