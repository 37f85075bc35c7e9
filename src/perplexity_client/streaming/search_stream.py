"""Dual-mode consumption of a search SSE stream."""

from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, Optional

from perplexity_client.exceptions import BackendRejection, IncompleteStreamError
from perplexity_client.streaming.aggregator import ResponseAggregator
from perplexity_client.streaming.frames import iter_message_frames
from perplexity_client.streaming.models import Chunk, SearchResponse
from perplexity_client.streaming.normalizer import normalize_frame
from perplexity_client.telemetry.metrics import StreamMetrics
from perplexity_client.utils.logger import logger
from perplexity_client.utils.structured_logging import log_error, log_search_response


class SearchStream:
    """
    Forward-only stream of Chunks backed by a single aggregation fold.

    Streaming consumers iterate with `async for` and read `result` once the
    iteration ends; batch consumers call `collect()`. Both drive the same
    fold, so the final aggregate is identical either way.

    The stream stops (and releases the connection) right after the terminal
    chunk is yielded. Exhausting the bytes without a terminal chunk raises
    IncompleteStreamError; a rejection chunk raises BackendRejection.

    Leaving an `async for` early with `break` does not close the stream: the
    response stays open (and iteration can resume) until `aclose()` is
    awaited, so early exits should use `async with` or call `aclose()`.

    Example:
        async with await client.stream_search("what is rust?") as stream:
            async for chunk in stream:
                print(chunk.text)
            print(stream.result.answer)
    """

    def __init__(
        self,
        byte_source: AsyncIterable[bytes],
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
        metrics: Optional[StreamMetrics] = None,
    ):
        """
        Initialize the stream.

        Args:
            byte_source: Async iterable of raw response bytes
            on_close: Coroutine function releasing the underlying response
            metrics: Metrics to update; a started StreamMetrics is created if None
        """
        if metrics is None:
            metrics = StreamMetrics()
            metrics.start_timer()
        self.metrics = metrics
        self._on_close = on_close
        self._frames = iter_message_frames(self._count_bytes(byte_source))
        self._aggregator = ResponseAggregator()
        self._result: Optional[SearchResponse] = None
        self._closed = False

    async def _count_bytes(self, source: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        async for piece in source:
            self.metrics.record_bytes(len(piece))
            yield piece

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def result(self) -> SearchResponse:
        """
        The completion value of the stream.

        Raises:
            IncompleteStreamError: If the terminal chunk has not been folded yet
        """
        if self._result is None:
            raise IncompleteStreamError("Stream has not produced a final response yet")
        return self._result

    def __aiter__(self) -> "SearchStream":
        return self

    async def __anext__(self) -> Chunk:
        if self._closed:
            raise StopAsyncIteration

        try:
            record = await self._frames.__anext__()
        except StopAsyncIteration:
            error = IncompleteStreamError("No final response received")
            await self._finish(error_message=error.reason)
            raise error from None

        self.metrics.record_frame()
        chunk = normalize_frame(record)
        self.metrics.record_chunk(degraded=chunk.degraded)

        try:
            terminal = self._aggregator.fold(chunk)
        except BackendRejection as e:
            log_error("backend_rejection", e.reason, context={"backend_uuid": chunk.backend_uuid})
            await self._finish(error_message=e.reason)
            raise

        if terminal:
            self._result = self._aggregator.finalize()
            await self._finish()
        return chunk

    async def collect(self) -> SearchResponse:
        """
        Drive the stream to completion and return the final aggregate.

        Raises:
            BackendRejection: If the backend signalled a rate limit or failure
            IncompleteStreamError: If the stream ended without a terminal chunk
        """
        async for _ in self:
            pass
        return self.result

    async def _finish(self, error_message: Optional[str] = None) -> None:
        if self._closed:
            return
        await self._release()
        self.metrics.stop_timer()
        success = error_message is None and self._result is not None
        logger.info(f"Search stream finished: success={success} {self.metrics.format_stats()}")
        log_search_response(
            success=success,
            metrics=self.metrics.to_dict(),
            backend_uuid=self._result.backend_uuid if self._result else None,
            error_message=error_message,
        )

    async def _release(self) -> None:
        self._closed = True
        try:
            await self._frames.aclose()
        finally:
            if self._on_close is not None:
                await self._on_close()

    async def aclose(self) -> None:
        """Stop the stream early and release the connection. Safe to call repeatedly."""
        if self._closed:
            return
        logger.debug("Search stream closed before completion")
        await self._finish(error_message="stream closed by consumer")

    async def __aenter__(self) -> "SearchStream":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
