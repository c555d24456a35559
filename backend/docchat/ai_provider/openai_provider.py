"""OpenAI chat provider implementation.

Streams chat completions through the official SDK's async client.
"""
import logging
from typing import AsyncIterator, List, Optional

from .base import ChatMessage, ChatProvider

logger = logging.getLogger(__name__)


class OpenAIChatProvider(ChatProvider):
    """ChatProvider implementation using OpenAI's API.

    Attributes:
        api_key: OpenAI API key for authentication.
        model: OpenAI model to use (default: gpt-4o).
        organization: Optional organization ID.
    """

    name = "openai"
    DEFAULT_MODEL = "gpt-4o"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        organization: Optional[str] = None,
    ) -> None:
        super().__init__(model or self.DEFAULT_MODEL)
        self.api_key = api_key
        self.organization = organization
        self._client: Optional[object] = None

    def _get_client(self) -> object:
        """Get or create the AsyncOpenAI client.

        Raises:
            ImportError: If openai package is not installed.
        """
        if self._client is None:
            try:
                import openai
            except ImportError:
                raise ImportError(
                    "openai package is required for OpenAIChatProvider. "
                    "Install it with: pip install openai"
                )
            kwargs = {"api_key": self.api_key}
            if self.organization:
                kwargs["organization"] = self.organization
            self._client = openai.AsyncOpenAI(**kwargs)
        return self._client

    async def stream_chat(
        self,
        messages: List[ChatMessage],
        system: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> AsyncIterator[str]:
        client = self._get_client()

        payload = []
        if system:
            payload.append({"role": "system", "content": system})
        payload.extend({"role": m.role, "content": m.content} for m in messages)

        logger.debug("[chat] openai stream: model=%s messages=%d", self.model, len(payload))
        stream = await client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=payload,
            stream=True,
        )
        async for event in stream:
            if not event.choices:
                continue
            delta = event.choices[0].delta.content
            if delta:
                yield delta
