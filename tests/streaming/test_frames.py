"""Unit tests for SSE frame decoding."""

import pytest

from perplexity_client.streaming.frames import (
    FrameDecoder,
    is_message_frame,
    iter_frames,
    iter_message_frames,
    split_frames,
)

BODY = (
    "event: message\r\ndata: {\"a\": 1}\r\n\r\n"
    "event: ping\r\ndata: {}\r\n\r\n"
    "event: message\r\ndata: {\"text\": \"héllo ✓\"}\r\n\r\n"
    "event: end_of_stream\r\ndata: {}\r\n\r\n"
).encode("utf-8")


def chunked(data: bytes, size: int):
    return [data[i:i + size] for i in range(0, len(data), size)]


class TestFrameDecoder:
    """Tests for FrameDecoder."""

    def test_single_write(self):
        """Test that one write yields every complete record."""
        decoder = FrameDecoder()
        records = decoder.feed(BODY)
        assert len(records) == 4
        assert records[0] == "event: message\r\ndata: {\"a\": 1}"

    def test_partial_record_is_buffered(self):
        """Test that a record without delimiter is held back until completed."""
        decoder = FrameDecoder()
        assert decoder.feed(b"event: message\r\ndata: {") == []
        assert decoder.feed(b"}\r\n") == []
        assert decoder.feed(b"\r\n") == ["event: message\r\ndata: {}"]

    def test_trailing_partial_record_discarded(self):
        """Test that an unterminated trailing record is never emitted."""
        records = list(split_frames([b"event: message\r\ndata: {}\r\n\r\nevent: message\r\ndata: {\"x\""]))
        assert records == ["event: message\r\ndata: {}"]

    @pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 16, 64, len(BODY)])
    def test_chunking_does_not_change_output(self, size):
        """Test that any piece size yields the same records as a single write."""
        expected = list(split_frames([BODY]))
        assert list(split_frames(chunked(BODY, size))) == expected

    def test_multibyte_character_split_across_pieces(self):
        """Test that a UTF-8 sequence split between pieces decodes intact."""
        data = "event: message\r\ndata: \"✓\"\r\n\r\n".encode("utf-8")
        split_at = data.index("✓".encode("utf-8")) + 1
        records = list(split_frames([data[:split_at], data[split_at:]]))
        assert records == ["event: message\r\ndata: \"✓\""]

    def test_delimiter_split_across_pieces(self):
        """Test that a CRLF CRLF split across pieces is still recognized."""
        records = list(split_frames([b"event: message\r\ndata: 1\r\n\r", b"\nevent: message\r\ndata: 2\r\n\r\n"]))
        assert records == ["event: message\r\ndata: 1", "event: message\r\ndata: 2"]


class TestMessageFrames:
    """Tests for event-type filtering."""

    def test_is_message_frame(self):
        """Test the message prefix check."""
        assert is_message_frame("event: message\r\ndata: {}")
        assert not is_message_frame("event: ping\r\ndata: {}")
        assert not is_message_frame("data: {}")

    @pytest.mark.asyncio
    async def test_iter_message_frames_filters_other_events(self, byte_stream):
        """Test that only message events are yielded."""
        records = [r async for r in iter_message_frames(byte_stream(chunked(BODY, 3)))]
        assert len(records) == 2
        assert all(r.startswith("event: message\r\n") for r in records)
        assert "héllo ✓" in records[1]

    @pytest.mark.asyncio
    async def test_iter_frames_byte_at_a_time(self, byte_stream):
        """Test that the async decoder matches the batch decoder one byte at a time."""
        records = [r async for r in iter_frames(byte_stream(chunked(BODY, 1)))]
        assert records == list(split_frames([BODY]))

    @pytest.mark.asyncio
    async def test_empty_stream(self, byte_stream):
        """Test that an empty stream yields nothing."""
        records = [r async for r in iter_message_frames(byte_stream([]))]
        assert records == []
