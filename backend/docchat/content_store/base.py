"""Abstract ContentStore interface.

A content store takes a completed local file and keeps its own durable copy,
returning an opaque reference the chat model can be pointed at.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path


@dataclass
class StoredContent:
    """Reference returned by the content store.

    Attributes:
        uri: Opaque, stable reference to the stored file.
        mime_type: Content type confirmed by the store.
        name: Store-internal resource name.
    """
    uri: str
    mime_type: str
    name: str = ""


class ContentStore(ABC):
    """Abstract base class for content stores.

    ``upload`` is all-or-nothing: any failure surfaces as
    ``ExternalStoreFailure`` and nothing is retried here. Uploading the same
    local file twice creates two independent entries.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short provider name used in logs."""

    @abstractmethod
    async def upload(self, path: Path, mime_type: str) -> StoredContent:
        """Hand ``path`` to the store.

        Args:
            path: Completely written local file.
            mime_type: Content type to declare.

        Returns:
            StoredContent with the external reference.

        Raises:
            ExternalStoreFailure: On any failure (network, quota, rejected format, ...).
        """
