"""Provider resolution for the chat model.

Builds the provider named in ``chat.provider`` when its API key is present.
A module-level singleton is initialised in ``docchat/main.py`` from config.

Usage:
    from docchat.ai_provider.resolver import resolve_chat_provider, set_chat_provider
    from docchat.config import get_config

    set_chat_provider(resolve_chat_provider(get_config()))
"""
import logging
from enum import Enum
from typing import Optional

from docchat.config import AppConfig

from .base import ChatProvider
from .claude_direct import ClaudeDirectProvider
from .gemini_provider import GeminiChatProvider
from .openai_provider import OpenAIChatProvider

logger = logging.getLogger(__name__)


class ProviderType(str, Enum):
    """Supported chat provider types."""
    GEMINI = "gemini"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


def resolve_chat_provider(config: AppConfig) -> Optional[ChatProvider]:
    """Create the configured chat provider.

    Returns:
        The provider, or None if its API key is not configured.
    """
    provider_type = ProviderType(config.chat.provider)
    model = config.chat.model
    secrets = config.secrets

    if provider_type == ProviderType.GEMINI:
        api_key = secrets.google.api_key
        factory = lambda: GeminiChatProvider(api_key=api_key, model=model)
    elif provider_type == ProviderType.OPENAI:
        api_key = secrets.openai.api_key
        factory = lambda: OpenAIChatProvider(api_key=api_key, model=model)
    else:
        api_key = secrets.anthropic.api_key
        factory = lambda: ClaudeDirectProvider(api_key=api_key, model=model)

    if not api_key:
        logger.warning("Chat provider '%s' has no API key configured", provider_type.value)
        return None

    provider = factory()
    logger.info("Chat provider ready: provider=%s model=%s", provider.name, provider.model)
    return provider


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_provider: Optional[ChatProvider] = None


def get_chat_provider() -> Optional[ChatProvider]:
    """Return the global ChatProvider, or None if not configured."""
    return _provider


def set_chat_provider(provider: Optional[ChatProvider]) -> None:
    """Set (or clear) the global ChatProvider."""
    global _provider
    _provider = provider
