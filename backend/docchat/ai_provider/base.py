"""ChatProvider abstract interface for streaming LLM integrations.

Every provider turns a conversation into an async stream of text deltas.

Usage:
    from docchat.ai_provider import GeminiChatProvider, ChatMessage

    provider = GeminiChatProvider(api_key="...")
    async for text in provider.stream_chat([ChatMessage(role="user", content="Hi")]):
        print(text, end="")
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, List, Literal, Optional


@dataclass
class ChatMessage:
    """A single conversation message with role and content.

    Attributes:
        role: Who wrote the message (user or assistant).
        content: The message text.
    """
    role: Literal["user", "assistant"]
    content: str


class ChatProvider(ABC):
    """Abstract base class for streaming chat providers.

    Attributes:
        name: Provider type (gemini, openai, anthropic).
        model: Model identifier passed to the provider API.
    """

    name: str = "unknown"

    def __init__(self, model: str) -> None:
        self.model = model

    @abstractmethod
    def stream_chat(
        self,
        messages: List[ChatMessage],
        system: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> AsyncIterator[str]:
        """Stream the assistant reply for ``messages``.

        Implementations are async generators: the network call starts on the
        first iteration, and text deltas are yielded in generation order.

        Args:
            messages: Conversation so far, oldest first.
            system: Optional system instruction.
            max_tokens: Upper bound on generated tokens.

        Yields:
            str: Text deltas; their concatenation is the full reply.

        Raises:
            Exception: Provider errors, either when the call is made or mid-stream.
        """
