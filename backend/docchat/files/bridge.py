"""Byte-stream bridge between the request body and the multipart parser.

A single producer task pulls chunks from the source (``request.stream()``)
and publishes them into a bounded queue; the parser consumes the bridge as
an async iterator. When the queue is full the producer is suspended on
``put`` and stops pulling from the source until the consumer catches up.

Usage:
    async with ByteStreamBridge(request.stream(), max_pending=8) as body:
        async for chunk in body:
            ...
"""
import asyncio
import logging
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)

_CHUNK = "chunk"
_END = "end"
_ERROR = "error"


class ByteStreamBridge:
    """Adapts a pull-based byte source into a consumable, bounded stream.

    Guarantees:
        - chunks are delivered in source order, unmodified;
        - end-of-stream is delivered exactly once, after the last chunk;
        - a source error is re-raised to the consumer after any chunks that
          preceded it, never swallowed;
        - at most ``max_pending`` chunks are buffered.

    Args:
        source: Async iterator of byte chunks.
        max_pending: Queue capacity in chunks.
    """

    def __init__(self, source: AsyncIterator[bytes], max_pending: int = 8) -> None:
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self._source = source
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._producer: Optional[asyncio.Task] = None
        self._finished = False
        self.bytes_received = 0

    async def __aenter__(self) -> "ByteStreamBridge":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def start(self) -> None:
        if self._producer is None:
            self._producer = asyncio.create_task(self._produce())

    async def _produce(self) -> None:
        try:
            async for chunk in self._source:
                if chunk:
                    await self._queue.put((_CHUNK, chunk))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("[upload] request body read failed: %s", exc)
            await self._queue.put((_ERROR, exc))
        else:
            await self._queue.put((_END, None))

    def __aiter__(self) -> "ByteStreamBridge":
        return self

    async def __anext__(self) -> bytes:
        if self._finished:
            raise StopAsyncIteration
        self.start()
        kind, item = await self._queue.get()
        if kind == _CHUNK:
            self.bytes_received += len(item)
            return item
        self._finished = True
        if kind == _ERROR:
            raise item
        raise StopAsyncIteration

    async def close(self) -> None:
        """Stop pulling from the source and wait for the producer to exit."""
        self._finished = True
        if self._producer is None or self._producer.done():
            return
        self._producer.cancel()
        await asyncio.gather(self._producer, return_exceptions=True)
        logger.debug("[upload] body producer cancelled after %d bytes", self.bytes_received)
