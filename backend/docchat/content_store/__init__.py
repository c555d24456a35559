"""External content store for uploaded documents.

A module-level singleton is initialised in ``docchat/main.py`` from config.
"""
import logging
from typing import Optional

from docchat.config import AppConfig

from .base import ContentStore, StoredContent
from .gemini import GeminiFileStore

logger = logging.getLogger(__name__)

_store: Optional[ContentStore] = None


def get_content_store() -> Optional[ContentStore]:
    """Return the global ContentStore, or None if not configured."""
    return _store


def set_content_store(store: Optional[ContentStore]) -> None:
    """Set (or clear) the global ContentStore."""
    global _store
    _store = store


def resolve_content_store(config: AppConfig) -> Optional[ContentStore]:
    """Build the content store named in config, or None when unavailable."""
    provider = config.content_store.provider
    if provider == "none":
        logger.info("Content store disabled in config")
        return None
    api_key = config.secrets.google.api_key
    if not api_key:
        logger.warning("Content store '%s' has no API key configured; uploads will fail", provider)
        return None
    return GeminiFileStore(api_key=api_key)


__all__ = [
    "ContentStore",
    "GeminiFileStore",
    "StoredContent",
    "get_content_store",
    "resolve_content_store",
    "set_content_store",
]
