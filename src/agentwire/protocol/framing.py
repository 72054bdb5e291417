"""Line framer — reassembles newline-terminated records from byte chunks."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Protocol

logger = logging.getLogger(__name__)

#: Maximum bytes per JSONL line from subprocess stdout (1 MB).
DEFAULT_MAX_LINE_BYTES = 1_048_576

#: Bytes requested per read from the subprocess pipe.
DEFAULT_CHUNK_SIZE = 65_536


class ByteReader(Protocol):
    """Anything with an asyncio ``StreamReader``-style ``read``."""

    async def read(self, n: int = -1) -> bytes: ...


class LineFramer:
    """Splits an unbounded byte stream into UTF-8 text lines.

    Chunks may arrive at any granularity, including empty reads.  Partial
    lines are buffered until their newline arrives.  At end of stream,
    ``finish()`` flushes a trailing unterminated line (or discards it when
    ``flush_remainder`` is false).  Once finished, the framer is closed.

    Lines longer than ``max_line_bytes`` are dropped with a warning and the
    framer resynchronises at the next newline.
    """

    def __init__(
        self,
        *,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
        flush_remainder: bool = True,
    ) -> None:
        self._max_line_bytes = max_line_bytes
        self._flush_remainder = flush_remainder
        self._buffer = bytearray()
        self._discarding = False
        self._closed = False

    @property
    def buffered(self) -> int:
        """Number of bytes held for an incomplete line."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[str]:
        """Consume *chunk* and return every line it completes."""
        if self._closed:
            msg = "LineFramer is closed"
            raise RuntimeError(msg)
        if not chunk:
            return []

        lines: list[str] = []
        start = 0
        while True:
            newline = chunk.find(b"\n", start)
            if newline == -1:
                self._append_partial(chunk[start:])
                return lines

            piece = chunk[start:newline]
            start = newline + 1
            if self._discarding:
                self._discarding = False
                continue
            if len(self._buffer) + len(piece) > self._max_line_bytes:
                self._warn_oversize()
                self._buffer.clear()
                continue

            self._buffer.extend(piece)
            lines.append(_decode_line(bytes(self._buffer)))
            self._buffer.clear()

    def finish(self) -> list[str]:
        """End the stream, flushing or discarding any buffered remainder."""
        if self._closed:
            return []
        self._closed = True
        remainder = bytes(self._buffer)
        self._buffer.clear()
        if self._discarding or not remainder:
            return []
        if not self._flush_remainder:
            logger.debug("discarding %d bytes of unterminated output", len(remainder))
            return []
        return [_decode_line(remainder)]

    def _append_partial(self, piece: bytes) -> None:
        if self._discarding or not piece:
            return
        if len(self._buffer) + len(piece) > self._max_line_bytes:
            self._warn_oversize()
            self._buffer.clear()
            self._discarding = True
            return
        self._buffer.extend(piece)

    def _warn_oversize(self) -> None:
        logger.warning(
            "stdout line exceeds %d bytes, skipping",
            self._max_line_bytes,
        )


def _decode_line(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")


async def iter_lines(
    reader: ByteReader,
    framer: LineFramer | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> AsyncIterator[str]:
    """Yield lines from *reader* until EOF, then flush the framer."""
    if framer is None:
        framer = LineFramer()
    while True:
        chunk = await reader.read(chunk_size)
        if not chunk:
            break
        for line in framer.feed(chunk):
            yield line
    for line in framer.finish():
        yield line
