"""Telemetry metrics tracking for search streams: latency, frames and bytes."""

import time
from typing import Any, Dict, Optional

from perplexity_client.utils.logger import logger


class StreamMetrics:
    """Track counters and timings for a single search stream."""

    def __init__(self):
        """Initialize metrics tracking."""
        self.start_time: Optional[float] = None
        self.first_chunk_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self.bytes_received: int = 0
        self.frames: int = 0
        self.chunks: int = 0
        self.degraded_frames: int = 0

    def start_timer(self) -> None:
        """Start the latency timer."""
        self.start_time = time.time()
        logger.debug("Stream timer started")

    def stop_timer(self) -> None:
        """Stop the latency timer."""
        if self.end_time is not None:
            return
        self.end_time = time.time()
        if self.start_time:
            logger.debug(f"Stream timer stopped: {self.get_latency_ms()}ms latency")

    def record_bytes(self, size: int) -> None:
        self.bytes_received += size

    def record_frame(self) -> None:
        self.frames += 1

    def record_chunk(self, degraded: bool = False) -> None:
        """Count a normalized chunk; the first one fixes time-to-first-chunk."""
        self.chunks += 1
        if degraded:
            self.degraded_frames += 1
        if self.first_chunk_time is None:
            self.first_chunk_time = time.time()

    def get_latency_ms(self) -> int:
        """
        Get the latency in milliseconds.

        Returns:
            Latency in milliseconds, or 0 if timer wasn't started/stopped
        """
        if self.start_time is None or self.end_time is None:
            return 0
        return int((self.end_time - self.start_time) * 1000)

    def get_time_to_first_chunk_ms(self) -> int:
        """Milliseconds between start and the first decoded chunk, or 0 if unknown."""
        if self.start_time is None or self.first_chunk_time is None:
            return 0
        return int((self.first_chunk_time - self.start_time) * 1000)

    def format_stats(self) -> str:
        """
        Format metrics as a stats string.

        Returns:
            Formatted string: [stats] chunks=X degraded=Y bytes=Z latency=W ms
        """
        return (
            f"[stats] chunks={self.chunks} "
            f"degraded={self.degraded_frames} "
            f"bytes={self.bytes_received} "
            f"latency={self.get_latency_ms()} ms"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to a dictionary."""
        return {
            "frames": self.frames,
            "chunks": self.chunks,
            "degraded_frames": self.degraded_frames,
            "bytes_received": self.bytes_received,
            "latency_ms": self.get_latency_ms(),
            "time_to_first_chunk_ms": self.get_time_to_first_chunk_ms(),
        }
