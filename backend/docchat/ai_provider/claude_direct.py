"""Claude Direct API provider implementation.

Streams replies from Anthropic's Messages API using the official SDK.
"""
import logging
from typing import AsyncIterator, List, Optional

from .base import ChatMessage, ChatProvider

logger = logging.getLogger(__name__)


class ClaudeDirectProvider(ChatProvider):
    """ChatProvider implementation using Anthropic's Claude API directly.

    Attributes:
        api_key: Anthropic API key for authentication.
        model: Claude model to use.
        base_url: Anthropic API base URL.
    """

    name = "anthropic"
    DEFAULT_MODEL = "claude-sonnet-4-20250514"
    DEFAULT_BASE_URL = "https://api.anthropic.com"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> None:
        super().__init__(model or self.DEFAULT_MODEL)
        self.api_key = api_key
        self.base_url = base_url or self.DEFAULT_BASE_URL
        self._client: Optional[object] = None

    def _get_client(self) -> object:
        """Get or create the AsyncAnthropic client.

        Raises:
            ImportError: If anthropic package is not installed.
        """
        if self._client is None:
            try:
                import anthropic
            except ImportError:
                raise ImportError(
                    "anthropic package is required for ClaudeDirectProvider. "
                    "Install it with: pip install anthropic"
                )
            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key,
                base_url=self.base_url,
            )
        return self._client

    async def stream_chat(
        self,
        messages: List[ChatMessage],
        system: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> AsyncIterator[str]:
        client = self._get_client()

        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if system:
            kwargs["system"] = system

        logger.debug("[chat] anthropic stream: model=%s messages=%d", self.model, len(messages))
        async with client.messages.stream(**kwargs) as stream:
            async for text in stream.text_stream:
                if text:
                    yield text
