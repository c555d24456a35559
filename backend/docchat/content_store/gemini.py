"""Gemini Files API content store.

Uploads go through ``google.generativeai.upload_file``; the returned file's
``uri`` is what the chat system prompt refers to. The SDK call is blocking,
so it runs in the default executor.
"""
import asyncio
import functools
import logging
from pathlib import Path
from typing import Optional

from docchat.errors import ExternalStoreFailure

from .base import ContentStore, StoredContent

logger = logging.getLogger(__name__)


class GeminiFileStore(ContentStore):
    """ContentStore backed by the Gemini Files API.

    Args:
        api_key: Google AI API key.
    """

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key
        self._genai: Optional[object] = None

    @property
    def name(self) -> str:
        return "gemini"

    def _get_client(self) -> object:
        """Return the configured ``google.generativeai`` module."""
        if self._genai is None:
            try:
                import google.generativeai as genai
            except ImportError:
                raise ImportError(
                    "google-generativeai package is required for GeminiFileStore. "
                    "Install it with: pip install google-generativeai"
                )
            genai.configure(api_key=self.api_key)
            self._genai = genai
        return self._genai

    def _upload_blocking(self, path: Path, mime_type: str) -> StoredContent:
        genai = self._get_client()
        uploaded = genai.upload_file(
            path=str(path),
            mime_type=mime_type,
            display_name=path.name,
        )
        return StoredContent(
            uri=uploaded.uri,
            mime_type=getattr(uploaded, "mime_type", None) or mime_type,
            name=getattr(uploaded, "name", "") or "",
        )

    async def upload(self, path: Path, mime_type: str) -> StoredContent:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None, functools.partial(self._upload_blocking, Path(path), mime_type)
            )
        except Exception as e:
            logger.error("[content-store] gemini upload failed for %s: %s", path, e)
            raise ExternalStoreFailure(str(e)) from e
