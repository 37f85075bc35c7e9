"""Helpers that pull readable text and backend ids out of a chunk stream."""

from typing import AsyncIterable, AsyncIterator, List

from perplexity_client.streaming.blocks import AskTextBlock, PlanBlock, WebResultsBlock
from perplexity_client.streaming.models import Chunk, StreamEntry


def chunk_text_pieces(chunk: Chunk) -> List[str]:
    """
    Collect the readable pieces of one chunk, in order.

    `text` fragments come first, then per block: the ask_text answer (or its
    joined fragments), non-blank web-result snippets and plan goal descriptions.
    """
    pieces: List[str] = list(chunk.text)
    for block in chunk.blocks:
        if isinstance(block, AskTextBlock):
            pieces.append(block.text)
        elif isinstance(block, WebResultsBlock):
            for result in block.web_results:
                snippet = result.get("snippet") if isinstance(result, dict) else None
                if isinstance(snippet, str) and snippet.strip():
                    pieces.append(snippet)
        elif isinstance(block, PlanBlock):
            pieces.extend(d for d in block.goal_descriptions if d.strip())
    return pieces


async def extract_stream_entries(stream: AsyncIterable[Chunk]) -> AsyncIterator[StreamEntry]:
    """
    Yield a StreamEntry per chunk that carries text or a backend id.

    Pieces are joined without a separator; they carry their own whitespace.
    """
    async for chunk in stream:
        text = "".join(chunk_text_pieces(chunk))
        if text:
            yield StreamEntry(text=text, backend_uuid=chunk.backend_uuid)
        elif chunk.backend_uuid:
            yield StreamEntry(text="", backend_uuid=chunk.backend_uuid)


async def extract_stream_answers(stream: AsyncIterable[Chunk]) -> AsyncIterator[str]:
    """Yield only the non-blank text of each entry."""
    async for entry in extract_stream_entries(stream):
        if entry.text.strip():
            yield entry.text


async def extract_stream_backend(stream: AsyncIterable[Chunk]) -> AsyncIterator[str]:
    """Yield each distinct backend id once, in arrival order."""
    seen = set()
    async for chunk in stream:
        backend_uuid = chunk.backend_uuid
        if backend_uuid and backend_uuid not in seen:
            seen.add(backend_uuid)
            yield backend_uuid
