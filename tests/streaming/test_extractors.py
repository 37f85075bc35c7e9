"""Unit tests for stream text/backend extractors."""

import pytest

from perplexity_client.streaming.extractors import (
    chunk_text_pieces,
    extract_stream_answers,
    extract_stream_backend,
    extract_stream_entries,
)
from perplexity_client.streaming.models import StreamEntry
from perplexity_client.streaming.normalizer import MESSAGE_PREFIX, normalize_frame


def chunk_of(payload: str):
    return normalize_frame(MESSAGE_PREFIX + payload)


async def aiter_list(items):
    for item in items:
        yield item


class TestChunkTextPieces:
    """Tests for chunk_text_pieces."""

    def test_text_and_blocks(self):
        """Test that text, answers, snippets and goals are collected in order."""
        chunk = chunk_of(
            '{"text": ["t"], "blocks": ['
            '{"intended_usage": "ask_text", "markdown_block": {"chunks": ["a", "b"]}},'
            '{"intended_usage": "web_results", "web_result_block": {"web_results": [{"snippet": "s"}, {"snippet": "  "}]}},'
            '{"intended_usage": "plan", "plan_block": {"goals": [{"description": "g"}]}}'
            "]}"
        )
        assert chunk_text_pieces(chunk) == ["t", "ab", "s", "g"]


class TestExtractors:
    """Tests for the async extractors."""

    @pytest.mark.asyncio
    async def test_entries(self):
        """Test that entries carry joined text and backend id."""
        chunks = [
            chunk_of('{"backend_uuid": "b-1"}'),
            chunk_of('{"backend_uuid": "b-1", "text": ["Hello", " world"]}'),
            chunk_of('{"status": "PENDING"}'),
        ]
        entries = [e async for e in extract_stream_entries(aiter_list(chunks))]
        assert entries == [
            StreamEntry(text="", backend_uuid="b-1"),
            StreamEntry(text="Hello world", backend_uuid="b-1"),
        ]

    @pytest.mark.asyncio
    async def test_answers_skip_blank(self):
        """Test that only non-blank text is yielded."""
        chunks = [
            chunk_of('{"backend_uuid": "b-1"}'),
            chunk_of('{"text": ["  "]}'),
            chunk_of('{"text": ["answer"]}'),
        ]
        answers = [a async for a in extract_stream_answers(aiter_list(chunks))]
        assert answers == ["answer"]

    @pytest.mark.asyncio
    async def test_backend_ids_deduplicated(self):
        """Test that each backend id is yielded once, in arrival order."""
        chunks = [
            chunk_of('{"backend_uuid": "b-1"}'),
            chunk_of('{"backend_uuid": "b-1"}'),
            chunk_of('{"text": "x"}'),
            chunk_of('{"backend_uuid": "b-2"}'),
        ]
        ids = [b async for b in extract_stream_backend(aiter_list(chunks))]
        assert ids == ["b-1", "b-2"]
