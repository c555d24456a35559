"""Bounded file sink for the upload pipeline.

Streams one part's payload into a uniquely named file under the upload
directory. Blocking file operations run in the default executor, so each
chunk written is a suspension point of the request task only.

Postcondition (success or failure): the upload directory holds either the
one complete file for this upload or nothing from it. Any failure,
including task cancellation, removes the partially written file.
"""
import asyncio
import functools
import logging
import os
import re
import uuid
from contextlib import aclosing
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from docchat.errors import SizeLimitExceeded, WriteFailure

from .multipart import DEFAULT_CONTENT_TYPE, MultipartPart

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "upload"
MAX_FILENAME_CHARS = 200
PROGRESS_LOG_INTERVAL = 5 * 1024 * 1024

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._ -]")


def sanitize_filename(filename: Optional[str]) -> str:
    """Reduce a client-supplied filename to a safe single path component.

    Examples:
        >>> sanitize_filename("../../etc/passwd")
        'passwd'
        >>> sanitize_filename("C:\\\\Users\\\\me\\\\report (final).pdf")
        'report _final_.pdf'
    """
    name = (filename or "").replace("\\", "/").split("/")[-1]
    name = _UNSAFE_CHARS.sub("_", name).strip().lstrip(".")
    if len(name) > MAX_FILENAME_CHARS:
        stem, dot, ext = name.rpartition(".")
        if dot and len(ext) < 16:
            name = stem[: MAX_FILENAME_CHARS - len(ext) - 1] + "." + ext
        else:
            name = name[:MAX_FILENAME_CHARS]
    return name or DEFAULT_FILENAME


@dataclass
class UploadSession:
    """State of the file currently being received; never leaves the request."""
    field_name: str
    original_filename: str
    mime_type: str
    temp_path: Path
    bytes_written: int = 0


@dataclass
class SavedUpload:
    """A completely written upload.

    Attributes:
        filepath: Final path of the local file.
        filename: Original filename as presented by the client.
        mime_type: Declared content type (``application/octet-stream`` if none).
        size_bytes: Number of bytes written.
    """
    filepath: Path
    filename: str
    mime_type: str
    size_bytes: int


class BoundedFileSink:
    """Writes a file part to disk, enforcing a maximum byte count.

    Args:
        upload_dir: Directory that receives the file.
        max_bytes: Largest accepted payload; one more byte fails the upload.
    """

    def __init__(self, upload_dir: Path, max_bytes: int) -> None:
        self.upload_dir = Path(upload_dir)
        self.max_bytes = max_bytes

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    def _open(self, path: Path) -> BinaryIO:
        # "x": never reuse or truncate an existing file
        return open(path, "xb")

    def _allocate_path(self, original_filename: str) -> Path:
        return self.upload_dir / f"{uuid.uuid4().hex}-{sanitize_filename(original_filename)}"

    async def receive(self, part: MultipartPart) -> SavedUpload:
        """Persist ``part``'s payload.

        Raises:
            SizeLimitExceeded: The payload grew past ``max_bytes``.
            WriteFailure: The file could not be opened, written or closed.
            MalformedUpload: The body ended inside the part.
        """
        original_filename = part.filename or DEFAULT_FILENAME
        session = UploadSession(
            field_name=part.field_name,
            original_filename=original_filename,
            mime_type=part.content_type or DEFAULT_CONTENT_TYPE,
            temp_path=self._allocate_path(original_filename),
        )
        logger.info(
            "[upload] session start: field=%s filename=%s mime=%s path=%s",
            session.field_name,
            session.original_filename,
            session.mime_type,
            session.temp_path,
        )

        try:
            fh = await self._run(self._open, session.temp_path)
        except OSError as e:
            logger.error("[upload] cannot open %s: %s", session.temp_path, e)
            raise WriteFailure(str(e)) from e

        try:
            async with aclosing(part.chunks()) as chunks:
                async for chunk in chunks:
                    if session.bytes_written + len(chunk) > self.max_bytes:
                        logger.warning(
                            "[upload] limit exceeded: filename=%s limit=%d bytes",
                            session.original_filename,
                            self.max_bytes,
                        )
                        raise SizeLimitExceeded(self.max_bytes)
                    try:
                        await self._run(fh.write, chunk)
                    except OSError as e:
                        logger.error("[upload] write failed for %s: %s", session.temp_path, e)
                        raise WriteFailure(str(e)) from e
                    previous = session.bytes_written
                    session.bytes_written += len(chunk)
                    if previous // PROGRESS_LOG_INTERVAL != session.bytes_written // PROGRESS_LOG_INTERVAL:
                        logger.debug(
                            "[upload] streaming %s: %d bytes written",
                            session.original_filename,
                            session.bytes_written,
                        )
            try:
                await self._run(fh.close)
            except OSError as e:
                logger.error("[upload] close failed for %s: %s", session.temp_path, e)
                raise WriteFailure(str(e)) from e
        except BaseException:
            self._discard(fh, session.temp_path)
            raise

        logger.info(
            "[upload] session complete: filename=%s bytes=%d",
            session.original_filename,
            session.bytes_written,
        )
        return SavedUpload(
            filepath=session.temp_path,
            filename=session.original_filename,
            mime_type=session.mime_type,
            size_bytes=session.bytes_written,
        )

    def _discard(self, fh: BinaryIO, path: Path) -> None:
        """Close and delete a partial file. Runs inline so cancellation cannot skip it."""
        try:
            fh.close()
        except OSError as e:
            logger.warning("[upload] closing partial file %s failed: %s", path, e)
        remove_if_exists(path)


def remove_if_exists(path: Path) -> None:
    """Delete ``path``; a missing file is not an error."""
    try:
        os.unlink(path)
        logger.info("[upload] removed partial file %s", path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error("[upload] failed to remove partial file %s: %s", path, e)
