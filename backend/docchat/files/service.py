"""Upload ingestion pipeline.

    request body -> ByteStreamBridge -> MultipartFieldExtractor
                 -> BoundedFileSink -> ContentStore -> CatalogService

Order is strict: the document row is written only after the content store
accepted the file, which happens only after the local file is complete.
Nothing is written to the catalog when any step fails.
"""
import asyncio
import functools
import logging
from contextlib import aclosing
from pathlib import Path
from typing import AsyncIterator, Optional

from docchat.config import UploadSettings
from docchat.content_store import ContentStore
from docchat.errors import ExternalStoreFailure, MissingFile
from docchat.storage import CatalogService, Document

from .bridge import ByteStreamBridge
from .multipart import MultipartFieldExtractor, parse_boundary
from .sink import BoundedFileSink, SavedUpload, remove_if_exists

logger = logging.getLogger(__name__)


class UploadService:
    """Runs one upload request through the pipeline.

    Args:
        catalog: Catalog receiving the document row.
        content_store: External store, or None when not configured.
        settings: Upload directory, size cap and field name.
    """

    def __init__(
        self,
        catalog: CatalogService,
        content_store: Optional[ContentStore],
        settings: UploadSettings,
    ) -> None:
        self._catalog = catalog
        self._content_store = content_store
        self._settings = settings

    async def persist_multipart_file(
        self,
        body: AsyncIterator[bytes],
        content_type: Optional[str],
    ) -> SavedUpload:
        """Stream the designated file field of a multipart body to disk.

        Only the first file part named ``settings.field_name`` is kept; every
        other part is drained and discarded.

        Raises:
            MalformedUpload: Not a well-formed multipart/form-data body.
            MissingFile: The body finished without the file field.
            SizeLimitExceeded: The file exceeded ``settings.max_file_size_mb``.
            WriteFailure: Local disk error.
        """
        boundary = parse_boundary(content_type)
        upload_dir = Path(self._settings.upload_dir)
        await asyncio.get_running_loop().run_in_executor(
            None, functools.partial(upload_dir.mkdir, parents=True, exist_ok=True)
        )
        sink = BoundedFileSink(upload_dir, self._settings.max_file_size_bytes)
        field_name = self._settings.field_name

        saved: Optional[SavedUpload] = None
        try:
            async with ByteStreamBridge(body, max_pending=self._settings.queue_size) as stream:
                extractor = MultipartFieldExtractor(stream, boundary)
                async with aclosing(extractor.parts()) as parts:
                    async for part in parts:
                        if part.field_name != field_name or not part.is_file:
                            logger.debug("[upload] ignoring field %r", part.field_name)
                            continue
                        if saved is not None:
                            logger.info("[upload] ignoring repeated %r file part", field_name)
                            continue
                        saved = await sink.receive(part)
        except BaseException:
            # The file itself was complete, but the request as a whole failed.
            if saved is not None:
                remove_if_exists(saved.filepath)
            raise

        if saved is None:
            logger.info("[upload] body finished without a %r file field", field_name)
            raise MissingFile()
        return saved

    async def ingest(
        self,
        body: AsyncIterator[bytes],
        content_type: Optional[str],
    ) -> Document:
        """Persist the upload, hand it to the content store and record it.

        Raises:
            Everything :meth:`persist_multipart_file` raises, plus
            ExternalStoreFailure and PersistenceFailure.
        """
        saved = await self.persist_multipart_file(body, content_type)

        if self._content_store is None:
            logger.error("[content-store] not configured; keeping local copy %s", saved.filepath)
            raise ExternalStoreFailure("Content store is not configured")

        logger.info(
            "[content-store] upload start: store=%s path=%s mime=%s",
            self._content_store.name,
            saved.filepath,
            saved.mime_type,
        )
        try:
            stored = await self._content_store.upload(saved.filepath, saved.mime_type)
        except ExternalStoreFailure:
            logger.warning("[content-store] upload failed; keeping local copy %s", saved.filepath)
            raise
        logger.info("[content-store] upload complete: uri=%s", stored.uri)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            functools.partial(
                self._catalog.create_document,
                filename=saved.filename,
                mime_type=stored.mime_type or saved.mime_type,
                storage_path=str(saved.filepath),
                external_uri=stored.uri,
            ),
        )
