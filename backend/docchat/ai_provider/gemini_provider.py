"""Gemini chat provider implementation.

Streams replies through ``google.generativeai``'s async API. Gemini names
the assistant role ``model``.
"""
import logging
from typing import AsyncIterator, List, Optional

from .base import ChatMessage, ChatProvider

logger = logging.getLogger(__name__)


class GeminiChatProvider(ChatProvider):
    """ChatProvider implementation using the Gemini API.

    Attributes:
        api_key: Google AI API key.
        model: Gemini model to use (default: gemini-2.5-flash).
    """

    name = "gemini"
    DEFAULT_MODEL = "gemini-2.5-flash"

    def __init__(self, api_key: str, model: Optional[str] = None) -> None:
        super().__init__(model or self.DEFAULT_MODEL)
        self.api_key = api_key
        self._genai: Optional[object] = None

    def _get_client(self) -> object:
        """Return the configured ``google.generativeai`` module.

        Raises:
            ImportError: If google-generativeai is not installed.
        """
        if self._genai is None:
            try:
                import google.generativeai as genai
            except ImportError:
                raise ImportError(
                    "google-generativeai package is required for GeminiChatProvider. "
                    "Install it with: pip install google-generativeai"
                )
            genai.configure(api_key=self.api_key)
            self._genai = genai
        return self._genai

    @staticmethod
    def _to_contents(messages: List[ChatMessage]) -> list:
        return [
            {"role": "model" if m.role == "assistant" else "user", "parts": [m.content]}
            for m in messages
        ]

    async def stream_chat(
        self,
        messages: List[ChatMessage],
        system: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> AsyncIterator[str]:
        logger.debug("[chat] gemini stream: model=%s messages=%d", self.model, len(messages))
        genai = self._get_client()
        model = genai.GenerativeModel(self.model, system_instruction=system)
        response = await model.generate_content_async(
            self._to_contents(messages),
            generation_config={"max_output_tokens": max_tokens},
            stream=True,
        )
        async for chunk in response:
            # chunk.parts raises when there are no candidates, as on a blocked prompt
            if not chunk.candidates:
                block_reason = getattr(chunk.prompt_feedback, "block_reason", None)
                if block_reason:
                    raise ValueError(
                        f"Prompt blocked: {getattr(block_reason, 'name', block_reason)}"
                    )
                continue
            # A trailing finish_reason chunk carries no parts
            if not chunk.parts:
                continue
            text = chunk.text
            if text:
                yield text
