"""Incremental multipart/form-data part extraction.

The body is fed to python-multipart's push parser one chunk at a time. The
parser callbacks only record events; events are then consumed as awaited
steps, so a part's payload is exposed as an async sub-stream that reads
exactly as far into the body as the caller consumes.

Nothing beyond the current chunk is held in memory: parts the caller does
not want are drained (their data events are dropped) before the next part
is presented.

Usage:
    extractor = MultipartFieldExtractor(body, boundary)
    async with aclosing(extractor.parts()) as parts:
        async for part in parts:
            if part.field_name == "file" and part.is_file:
                async for chunk in part.chunks():
                    ...
"""
import logging
from collections import deque
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Deque, List, Optional, Tuple

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from docchat.errors import MalformedUpload

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Parser event kinds
_PART_BEGIN = "part_begin"
_HEADER_FIELD = "header_field"
_HEADER_VALUE = "header_value"
_HEADER_END = "header_end"
_HEADERS_FINISHED = "headers_finished"
_PART_DATA = "part_data"
_PART_END = "part_end"
_END = "end"


def parse_boundary(content_type: Optional[str]) -> bytes:
    """Extract the multipart boundary from a Content-Type header value.

    Raises:
        MalformedUpload: If the header is not multipart/form-data or has no boundary.
    """
    if not content_type:
        raise MalformedUpload("Missing Content-Type header")
    media_type, params = parse_options_header(content_type)
    if media_type != b"multipart/form-data":
        raise MalformedUpload(
            f"Expected multipart/form-data, got {media_type.decode('latin-1') or 'nothing'}"
        )
    boundary = params.get(b"boundary")
    if not boundary:
        raise MalformedUpload("Missing multipart boundary")
    return boundary


@dataclass
class PartHeaders:
    """Header block of one multipart part.

    Attributes:
        field_name: ``name`` parameter of Content-Disposition.
        filename: ``filename`` parameter, ``None`` for plain form fields.
        content_type: Declared part Content-Type, if any.
    """
    field_name: str
    filename: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.filename is not None


class MultipartPart:
    """One part of the body; its payload is read through :meth:`chunks`."""

    def __init__(self, extractor: "MultipartFieldExtractor", headers: PartHeaders) -> None:
        self._extractor = extractor
        self.headers = headers
        self.bytes_read = 0
        self.complete = False

    @property
    def field_name(self) -> str:
        return self.headers.field_name

    @property
    def filename(self) -> Optional[str]:
        return self.headers.filename

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.content_type

    @property
    def is_file(self) -> bool:
        return self.headers.is_file

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield the part's payload in body order until the part ends.

        Raises:
            MalformedUpload: If the body ends before the part is closed.
        """
        while not self.complete:
            event = await self._extractor._next_event()
            if event is None:
                raise MalformedUpload("Multipart body ended before the part was complete")
            kind, data = event
            if kind == _PART_DATA:
                self.bytes_read += len(data)
                yield data
            elif kind == _PART_END:
                self.complete = True
            else:
                raise MalformedUpload(f"Unexpected multipart event inside part: {kind}")

    async def drain(self) -> int:
        """Consume and discard the rest of the payload. Returns bytes discarded."""
        discarded = 0
        async with aclosing(self.chunks()) as remaining:
            async for chunk in remaining:
                discarded += len(chunk)
        return discarded


class MultipartFieldExtractor:
    """Splits a multipart/form-data byte stream into parts, incrementally.

    Args:
        stream: Async iterator of raw body chunks.
        boundary: Boundary token from the request Content-Type.
    """

    def __init__(self, stream: AsyncIterator[bytes], boundary: bytes) -> None:
        self._stream = stream.__aiter__()
        self._events: Deque[Tuple[str, Optional[bytes]]] = deque()
        self._eof = False
        self._parser = MultipartParser(
            boundary,
            callbacks={
                "on_part_begin": self._on_part_begin,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_end": self._on_end,
            },
        )

    # -----------------------------------------------------------------------
    # Parser callbacks (record only)
    # -----------------------------------------------------------------------

    def _on_part_begin(self) -> None:
        self._events.append((_PART_BEGIN, None))

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if end > start:
            self._events.append((_PART_DATA, bytes(data[start:end])))

    def _on_part_end(self) -> None:
        self._events.append((_PART_END, None))

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._events.append((_HEADER_FIELD, bytes(data[start:end])))

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._events.append((_HEADER_VALUE, bytes(data[start:end])))

    def _on_header_end(self) -> None:
        self._events.append((_HEADER_END, None))

    def _on_headers_finished(self) -> None:
        self._events.append((_HEADERS_FINISHED, None))

    def _on_end(self) -> None:
        self._events.append((_END, None))

    # -----------------------------------------------------------------------
    # Event pump
    # -----------------------------------------------------------------------

    async def _next_event(self) -> Optional[Tuple[str, Optional[bytes]]]:
        """Return the next parser event, reading more body only when needed.

        Returns ``None`` once the body is exhausted and all events are consumed.
        """
        while not self._events:
            if self._eof:
                return None
            try:
                chunk = await self._stream.__anext__()
            except StopAsyncIteration:
                self._eof = True
                self._parser.finalize()
                continue
            try:
                self._parser.write(chunk)
            except MultipartParseError as e:
                raise MalformedUpload(f"Invalid multipart body: {e}") from e
        return self._events.popleft()

    async def parts(self) -> AsyncIterator[MultipartPart]:
        """Yield each part once its header block is complete.

        A part left unread (or partly read) by the caller is drained before
        the next one is parsed.
        """
        header_field = b""
        header_value = b""
        headers: List[Tuple[bytes, bytes]] = []

        while True:
            event = await self._next_event()
            if event is None:
                return
            kind, data = event

            if kind == _PART_BEGIN:
                header_field = b""
                header_value = b""
                headers = []
            elif kind == _HEADER_FIELD:
                header_field += data
            elif kind == _HEADER_VALUE:
                header_value += data
            elif kind == _HEADER_END:
                headers.append((header_field.lower(), header_value))
                header_field = b""
                header_value = b""
            elif kind == _HEADERS_FINISHED:
                part = MultipartPart(self, self._build_headers(headers))
                yield part
                if not part.complete:
                    discarded = await part.drain()
                    logger.debug(
                        "[upload] drained field %r (%d bytes)", part.field_name, discarded
                    )
            elif kind == _END:
                return
            else:
                raise MalformedUpload(f"Unexpected multipart event between parts: {kind}")

    @staticmethod
    def _build_headers(raw_headers: List[Tuple[bytes, bytes]]) -> PartHeaders:
        field_name = None
        filename = None
        content_type = None
        for name, value in raw_headers:
            if name == b"content-disposition":
                _, options = parse_options_header(value)
                if b"name" not in options:
                    raise MalformedUpload("Content-Disposition without a field name")
                field_name = options[b"name"].decode("utf-8", errors="replace")
                if b"filename" in options:
                    filename = options[b"filename"].decode("utf-8", errors="replace")
            elif name == b"content-type":
                content_type = value.decode("latin-1").strip() or None
        if field_name is None:
            raise MalformedUpload("Multipart part without Content-Disposition")
        return PartHeaders(field_name=field_name, filename=filename, content_type=content_type)
