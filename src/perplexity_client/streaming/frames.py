"""Event frame decoding for the search SSE stream."""

import codecs
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator, List

from perplexity_client.utils.logger import logger

FRAME_DELIMITER = "\r\n\r\n"
MESSAGE_EVENT_PREFIX = "event: message\r\n"


class FrameDecoder:
    """
    Incremental splitter turning byte pieces into event records.

    Pieces may be of any size and need not line up with frame or UTF-8
    character boundaries. A trailing record without a delimiter is never
    emitted.
    """

    def __init__(self, delimiter: str = FRAME_DELIMITER):
        self.delimiter = delimiter
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, data: bytes) -> List[str]:
        """
        Add a piece of the byte stream.

        Args:
            data: Next piece of raw bytes

        Returns:
            Every record completed by this piece, in stream order
        """
        self._buffer += self._decoder.decode(data)
        if self.delimiter not in self._buffer:
            return []
        *records, self._buffer = self._buffer.split(self.delimiter)
        return records

    def close(self) -> None:
        """Flush the decoder at end of stream, discarding any unterminated record."""
        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer:
            logger.debug(f"Discarding {len(self._buffer)} chars of unterminated frame data")
        self._buffer = ""


def is_message_frame(record: str) -> bool:
    """Return True for records carrying the `message` event type."""
    return record.startswith(MESSAGE_EVENT_PREFIX)


def split_frames(pieces: Iterable[bytes]) -> Iterator[str]:
    """Synchronous counterpart of iter_frames over an iterable of byte pieces."""
    decoder = FrameDecoder()
    for piece in pieces:
        yield from decoder.feed(piece)
    decoder.close()


async def iter_frames(byte_stream: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """
    Yield every complete event record of an async byte stream.

    Args:
        byte_stream: Async iterable of raw byte pieces (e.g. httpx aiter_bytes())

    Yields:
        Raw event-text records, delimiter stripped
    """
    decoder = FrameDecoder()
    async for piece in byte_stream:
        for record in decoder.feed(piece):
            yield record
    decoder.close()


async def iter_message_frames(byte_stream: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Like iter_frames, keeping only `event: message` records."""
    async for record in iter_frames(byte_stream):
        if is_message_frame(record):
            yield record
        else:
            logger.debug(f"Ignoring non-message frame: {record[:40]!r}")
