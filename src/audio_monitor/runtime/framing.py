"""Newline framing for the child's stdout.

Pipe reads do not line up with records, so bytes are accumulated until a
newline shows up. Splitting happens on bytes before decoding, which keeps
multi-byte UTF-8 sequences that straddle two reads intact.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator

from ..errors import FrameTooLarge

__all__ = [
    "FrameReader",
    "iter_records",
    "DEFAULT_MAX_FRAME_SIZE",
    "READ_CHUNK_SIZE",
]

logger = logging.getLogger(__name__)

DEFAULT_MAX_FRAME_SIZE = 1024 * 1024  # 1 MiB of unterminated data
READ_CHUNK_SIZE = 4096


class FrameReader:
    """Accumulates byte chunks and yields complete text records.

    One instance serves one process session; create a new one per spawn.

    Example:
        reader = FrameReader()
        list(reader.feed(b'{"id": "a"'))   # []
        list(reader.feed(b'}\\n{"id"'))     # ['{"id": "a"}']
        reader.close()                      # drops the '{"id"' fragment

    Attributes:
        max_frame_size: Largest unterminated fragment kept, in bytes
    """

    def __init__(self, max_frame_size: int = DEFAULT_MAX_FRAME_SIZE) -> None:
        self.max_frame_size = max_frame_size
        self._buffer = bytearray()
        self._closed = False

    @property
    def pending(self) -> int:
        """Bytes currently held, terminated or not."""
        return len(self._buffer)

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, chunk: bytes) -> Iterator[str]:
        """Append a chunk and lazily yield every complete record.

        Records not consumed by the caller stay buffered and come out of the
        next call.

        Raises:
            FrameTooLarge: If the unterminated tail exceeds max_frame_size.
                The oversized fragment is dropped right away; the error is
                raised by the iterator once every complete record before it
                has been yielded.
        """
        if self._closed:
            raise RuntimeError("FrameReader is closed")

        self._buffer.extend(chunk)
        overflow: FrameTooLarge | None = None
        tail = len(self._buffer) - (self._buffer.rfind(b"\n") + 1)
        if tail > self.max_frame_size:
            del self._buffer[len(self._buffer) - tail :]
            overflow = FrameTooLarge(tail, self.max_frame_size)

        return self._drain(overflow)

    def _drain(self, overflow: FrameTooLarge | None = None) -> Iterator[str]:
        while True:
            idx = self._buffer.find(b"\n")
            if idx < 0:
                break
            line = bytes(self._buffer[:idx])
            del self._buffer[: idx + 1]
            if line.endswith(b"\r"):
                line = line[:-1]
            yield line.decode("utf-8", errors="replace")
        if overflow is not None:
            raise overflow

    def close(self) -> int:
        """End the session, discarding any trailing partial record.

        Returns:
            Number of discarded bytes
        """
        dropped = len(self._buffer)
        if dropped:
            logger.debug(f"Discarding {dropped} bytes of truncated record at end of stream")
        self._buffer.clear()
        self._closed = True
        return dropped


async def iter_records(
    stream: asyncio.StreamReader,
    reader: FrameReader | None = None,
) -> AsyncIterator[str]:
    """Yield records read from a stream until EOF.

    Args:
        stream: The child's stdout
        reader: Framing state; a fresh FrameReader when omitted

    Raises:
        FrameTooLarge: Propagated from the reader
    """
    reader = reader if reader is not None else FrameReader()
    try:
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            for record in reader.feed(chunk):
                yield record
    finally:
        if not reader.closed:
            reader.close()
