"""Unit tests for SearchStream dual-mode consumption."""

import json
from unittest.mock import AsyncMock

import pytest

from perplexity_client.exceptions import BackendRejection, IncompleteStreamError
from perplexity_client.streaming.search_stream import SearchStream


def pieces_of(body: bytes, size: int):
    return [body[i:i + size] for i in range(0, len(body), size)]


class TestSearchStream:
    """Tests for SearchStream."""

    @pytest.mark.asyncio
    async def test_streaming_yields_chunks_and_result(self, answer_body, byte_stream):
        """Test that iteration yields every chunk and then exposes the aggregate."""
        stream = SearchStream(byte_stream([answer_body]))
        chunks = [chunk async for chunk in stream]

        assert len(chunks) == 5
        assert chunks[-1].is_final_frame
        assert stream.result.answer == "Rust is a language."
        assert stream.closed

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [1, 7, 100])
    async def test_streaming_and_batch_produce_identical_aggregates(self, answer_body, byte_stream, size):
        """Test that both consumption modes build byte-identical documents."""
        streaming = SearchStream(byte_stream(pieces_of(answer_body, size)))
        async for _ in streaming:
            pass
        batch = await SearchStream(byte_stream([answer_body])).collect()

        assert json.dumps(streaming.result.to_dict(), sort_keys=True) == json.dumps(batch.to_dict(), sort_keys=True)

    @pytest.mark.asyncio
    async def test_blocks_order_in_result(self, answer_body, byte_stream):
        """Test that the merged answer sits between plan and web results."""
        response = await SearchStream(byte_stream([answer_body])).collect()
        kinds = [b["intended_usage"] for b in response.to_dict()["blocks"]]
        assert kinds == ["plan", "ask_text", "web_results"]
        assert response.to_dict()["text"] == ["Rust is ", "a language."]
        assert response.display_model == "pplx_pro"

    @pytest.mark.asyncio
    async def test_result_before_terminal_raises(self, answer_body, byte_stream):
        """Test that result is unavailable until the terminal chunk is folded."""
        stream = SearchStream(byte_stream([answer_body]))
        await stream.__anext__()
        with pytest.raises(IncompleteStreamError):
            _ = stream.result
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_stops_after_terminal_chunk(self, sse_frame, byte_stream):
        """Test that frames after the terminal chunk are never read."""
        body = sse_frame({"text": "a", "final": True}) + sse_frame({"text": "ignored"})
        on_close = AsyncMock()
        stream = SearchStream(byte_stream([body]), on_close=on_close)
        chunks = [c async for c in stream]

        assert len(chunks) == 1
        assert stream.result.to_dict()["text"] == ["a"]
        on_close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_incomplete_stream_raises(self, sse_frame, byte_stream):
        """Test that running out of bytes without a terminal chunk fails."""
        body = sse_frame({"text": "partial"}) + b"event: message\r\ndata: {\"final\": true}"
        on_close = AsyncMock()
        stream = SearchStream(byte_stream([body]), on_close=on_close)

        with pytest.raises(IncompleteStreamError):
            async for _ in stream:
                pass
        on_close.assert_awaited_once()
        with pytest.raises(IncompleteStreamError):
            _ = stream.result

    @pytest.mark.asyncio
    async def test_batch_incomplete_stream_raises(self, sse_frame, byte_stream):
        """Test that collect() surfaces the missing terminal chunk too."""
        with pytest.raises(IncompleteStreamError):
            await SearchStream(byte_stream([sse_frame({"text": "partial"})])).collect()

    @pytest.mark.asyncio
    async def test_rate_limit_mid_stream(self, sse_frame, byte_stream):
        """Test that a rate-limit chunk after valid chunks fails the whole call."""
        body = (
            sse_frame({"text": "valid text"})
            + sse_frame({"error_code": "RATE_LIMITED"})
            + sse_frame({"final": True})
        )
        on_close = AsyncMock()
        stream = SearchStream(byte_stream([body]), on_close=on_close)

        with pytest.raises(BackendRejection):
            await stream.collect()
        on_close.assert_awaited_once()
        with pytest.raises(IncompleteStreamError):
            _ = stream.result

    @pytest.mark.asyncio
    async def test_degraded_frame_is_yielded(self, sse_frame, byte_stream):
        """Test that an undecodable frame reaches the consumer as a raw chunk."""
        body = sse_frame("{broken") + sse_frame({"final": True})
        stream = SearchStream(byte_stream([body]))
        chunks = [c async for c in stream]

        assert chunks[0].degraded
        assert chunks[0].raw == "{broken"
        assert stream.metrics.degraded_frames == 1
        assert stream.result.to_dict()["raw"] == "{broken"

    @pytest.mark.asyncio
    async def test_early_close_releases_connection(self, answer_body, byte_stream):
        """Test that stopping early closes the response without a terminal chunk."""
        on_close = AsyncMock()
        async with SearchStream(byte_stream([answer_body]), on_close=on_close) as stream:
            first = await stream.__anext__()
            assert first.backend_uuid == "b-1"

        on_close.assert_awaited_once()
        assert stream.closed
        assert [c async for c in stream] == []

    @pytest.mark.asyncio
    async def test_break_keeps_stream_open_until_aclose(self, answer_body, byte_stream):
        """Test that break leaves the response open and resumable until aclose()."""
        on_close = AsyncMock()
        stream = SearchStream(byte_stream([answer_body]), on_close=on_close)
        async for _ in stream:
            break

        assert not stream.closed
        on_close.assert_not_awaited()
        second = await stream.__anext__()
        assert second.text == ["Rust is "]

        await stream.aclose()
        assert stream.closed
        on_close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self, answer_body, byte_stream):
        """Test that closing twice releases the connection once."""
        on_close = AsyncMock()
        stream = SearchStream(byte_stream([answer_body]), on_close=on_close)
        await stream.aclose()
        await stream.aclose()
        on_close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, answer_body, byte_stream):
        """Test that bytes, frames and chunks are counted."""
        stream = SearchStream(byte_stream(pieces_of(answer_body, 10)))
        await stream.collect()
        stats = stream.metrics.to_dict()
        assert stats["bytes_received"] == len(answer_body)
        assert stats["frames"] == 5
        assert stats["chunks"] == 5
        assert stream.metrics.end_time is not None
