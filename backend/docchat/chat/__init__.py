"""Chat turns streamed from the model, and the caller's chat history."""
from .relay import ChatStreamRelay, ChatTurn, TurnState, derive_title

__all__ = ["ChatStreamRelay", "ChatTurn", "TurnState", "derive_title"]
