"""AI Provider module for streaming chat models.

Three implementations share the ChatProvider interface: GeminiChatProvider,
OpenAIChatProvider and ClaudeDirectProvider.

Usage:
    from docchat.ai_provider import ChatMessage, get_chat_provider

    provider = get_chat_provider()
    async for text in provider.stream_chat([ChatMessage(role="user", content="Hello")]):
        ...
"""
from .base import ChatMessage, ChatProvider
from .claude_direct import ClaudeDirectProvider
from .gemini_provider import GeminiChatProvider
from .openai_provider import OpenAIChatProvider
from .prompts import build_system_prompt
from .resolver import ProviderType, get_chat_provider, resolve_chat_provider, set_chat_provider

__all__ = [
    "ChatMessage",
    "ChatProvider",
    "ClaudeDirectProvider",
    "GeminiChatProvider",
    "OpenAIChatProvider",
    "ProviderType",
    "build_system_prompt",
    "get_chat_provider",
    "resolve_chat_provider",
    "set_chat_provider",
]
