"""Fold a sequence of chunks into one aggregate search response."""

import copy
import json
from typing import Any, Dict, List, Optional, Set

from perplexity_client.exceptions import BackendRejection, IncompleteStreamError
from perplexity_client.streaming.blocks import ASK_TEXT, AskTextBlock
from perplexity_client.streaming.models import Chunk, SearchResponse
from perplexity_client.utils.logger import logger

RATE_LIMIT_SENTINEL = "RATE_LIMITED"
FAILURE_STATUS = "failed"

# Array fields that are concatenated with structural de-duplication
DEDUP_FIELDS = ("widget_data", "media_items", "attachments", "answer_modes")


def canonical_json(value: Any) -> str:
    """Encoding under which two values are equal only if they are structurally identical."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def rejection_reason(chunk: Chunk) -> Optional[str]:
    """
    Return a failure message when the chunk carries a rate-limit or failure signal.

    Returns:
        Human-readable reason, or None for an ordinary chunk
    """
    fields = chunk.fields
    rate_limited = chunk.error_code == RATE_LIMIT_SENTINEL
    status = chunk.status
    failed = isinstance(status, str) and status.lower() == FAILURE_STATUS
    if not (rate_limited or failed):
        return None
    for key in ("error_message", "message"):
        if isinstance(fields.get(key), str) and fields[key]:
            return fields[key]
    if rate_limited:
        return f"Backend rate limit: {RATE_LIMIT_SENTINEL}"
    return f"Backend reported status {status}"


class ResponseAggregator:
    """
    Incremental fold of normalized chunks into one aggregate document.

    Merge rules per field:
    - `text`: fragments appended in order, duplicates kept
    - widget_data / media_items / attachments / answer_modes: appended,
      skipping values structurally equal to one already present
    - `blocks`: non-ask_text blocks appended in arrival order; every ask_text
      block contributes its fragments to one shared buffer and is replaced
      at finalization by a single merged block at the first-seen position
    - everything else: last write wins (an explicit null overwrites)
    """

    def __init__(self):
        self._document: Dict[str, Any] = {}
        self._seen: Dict[str, Set[str]] = {}
        self._blocks: List[Dict[str, Any]] = []
        self._has_blocks = False
        self._ask_text_fragments: List[str] = []
        self._ask_text_index: Optional[int] = None
        self._terminal = False
        self._response: Optional[SearchResponse] = None

    @property
    def terminal(self) -> bool:
        """True once a chunk with a terminal flag has been folded."""
        return self._terminal

    def fold(self, chunk: Chunk) -> bool:
        """
        Merge one chunk into the aggregate.

        Args:
            chunk: Normalized chunk, in stream order

        Returns:
            True if the chunk was terminal and the caller should stop reading

        Raises:
            BackendRejection: If the chunk signals a rate limit or failure
        """
        if self._terminal:
            logger.debug("Ignoring chunk folded after the terminal chunk")
            return True

        reason = rejection_reason(chunk)
        if reason is not None:
            logger.error(f"Backend rejected the request: {reason}")
            raise BackendRejection(reason, payload=copy.deepcopy(chunk.fields))

        for key, value in chunk.fields.items():
            if key == "blocks":
                continue
            if key == "text":
                self._document.setdefault("text", []).extend(chunk.text)
            elif key in DEDUP_FIELDS:
                self._merge_unique(key, value)
            else:
                self._document[key] = copy.deepcopy(value)

        if "blocks" in chunk.fields:
            self._has_blocks = True
            self._merge_blocks(chunk)

        self._terminal = chunk.is_terminal
        if self._terminal:
            logger.debug("Terminal chunk folded")
        return self._terminal

    def _merge_unique(self, key: str, value: Any) -> None:
        target = self._document.setdefault(key, [])
        seen = self._seen.setdefault(key, set())
        candidates = value if isinstance(value, list) else [value]
        for item in candidates:
            encoded = canonical_json(item)
            if encoded not in seen:
                seen.add(encoded)
                target.append(copy.deepcopy(item))

    def _merge_blocks(self, chunk: Chunk) -> None:
        for block in chunk.blocks:
            if isinstance(block, AskTextBlock):
                if self._ask_text_index is None:
                    self._ask_text_index = len(self._blocks)
                self._ask_text_fragments.extend(block.chunks)
            else:
                self._blocks.append(copy.deepcopy(block.raw))

    def _merged_ask_text(self) -> Dict[str, Any]:
        return {
            "intended_usage": ASK_TEXT,
            "markdown_block": {
                "progress": "finished",
                "chunks": list(self._ask_text_fragments),
                "chunk_starting_offset": 0,
                "answer": "".join(self._ask_text_fragments),
            },
        }

    def snapshot(self) -> Dict[str, Any]:
        """
        Assemble the aggregate document from the current fold state.

        Safe to call at any time; the fold state is left untouched.
        """
        document = copy.deepcopy(self._document)
        if self._has_blocks:
            blocks = copy.deepcopy(self._blocks)
            if self._ask_text_index is not None:
                blocks.insert(self._ask_text_index, self._merged_ask_text())
            document["blocks"] = blocks
        return document

    def finalize(self) -> SearchResponse:
        """
        Produce the final response.

        Raises:
            IncompleteStreamError: If no terminal chunk was folded
        """
        if not self._terminal:
            raise IncompleteStreamError("No final response received")
        if self._response is None:
            self._response = SearchResponse(self.snapshot())
        return self._response
