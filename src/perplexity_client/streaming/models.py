"""Data models for decoded stream chunks and aggregated search responses."""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from perplexity_client.streaming.blocks import (
    ASK_TEXT,
    PLAN,
    PRO_SEARCH_STEPS,
    WEB_RESULTS,
    AskTextBlock,
    Block,
    PlanBlock,
    WebResultsBlock,
    classify_blocks,
)


@dataclass(frozen=True)
class Chunk:
    """
    One decoded SSE event payload.

    Attributes:
        fields: The decoded JSON object, `text` already normalized to a list of strings
        text: Normalized text fragments of this chunk
        blocks: Classified blocks of this chunk, in wire order
        raw: Undecodable frame payload; set only on degraded chunks
    """
    fields: Dict[str, Any] = field(default_factory=dict)
    text: List[str] = field(default_factory=list)
    blocks: List[Block] = field(default_factory=list)
    raw: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.raw is not None

    @property
    def backend_uuid(self) -> Optional[str]:
        return self.fields.get("backend_uuid")

    @property
    def context_uuid(self) -> Optional[str]:
        return self.fields.get("context_uuid")

    @property
    def is_final(self) -> bool:
        return self.fields.get("final") is True

    @property
    def is_final_frame(self) -> bool:
        return self.fields.get("final_sse_message") is True

    @property
    def is_terminal(self) -> bool:
        """A stream is complete when either terminal flag is set."""
        return self.is_final or self.is_final_frame

    @property
    def error_code(self) -> Optional[str]:
        return self.fields.get("error_code")

    @property
    def status(self) -> Optional[str]:
        return self.fields.get("status")


@dataclass(frozen=True)
class StreamEntry:
    """Readable text extracted from one chunk, with the backend id it belongs to."""
    text: str
    backend_uuid: Optional[str] = None


@dataclass(frozen=True)
class FollowUp:
    """
    Linkage to a previous turn, used to continue a conversation.

    Attributes:
        backend_uuid: Backend id of the previous answer
        attachments: Attachment URLs carried over from the previous turn
    """
    backend_uuid: Optional[str] = None
    attachments: List[str] = field(default_factory=list)


class SearchResponse:
    """
    Final aggregate of a search stream.

    The underlying document is never exposed directly; `document` and
    `to_dict()` hand out deep copies.
    """

    def __init__(self, document: Dict[str, Any]):
        self._document = copy.deepcopy(document)
        self._blocks: List[Block] = classify_blocks(self._document.get("blocks"))

    @property
    def document(self) -> Dict[str, Any]:
        return copy.deepcopy(self._document)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the aggregate to a plain dictionary (deep copy)."""
        return copy.deepcopy(self._document)

    def get(self, key: str, default: Any = None) -> Any:
        return copy.deepcopy(self._document.get(key, default))

    @property
    def blocks(self) -> List[Block]:
        return list(self._blocks)

    def blocks_of(self, kind: str) -> List[Block]:
        return [b for b in self._blocks if b.kind == kind]

    @property
    def answer(self) -> Optional[str]:
        """Text of the first ask_text block, or the joined `text` fragments if there is none."""
        for block in self.blocks_of(ASK_TEXT):
            if isinstance(block, AskTextBlock):
                return block.text
        text = self._document.get("text")
        if isinstance(text, list) and text:
            return "".join(t for t in text if isinstance(t, str))
        return None

    @property
    def web_results(self) -> List[WebResultsBlock]:
        return [b for b in self.blocks_of(WEB_RESULTS) if isinstance(b, WebResultsBlock)]

    @property
    def plans(self) -> List[PlanBlock]:
        return [b for b in self.blocks_of(PLAN) if isinstance(b, PlanBlock)]

    @property
    def pro_search_steps(self) -> List[PlanBlock]:
        return [b for b in self.blocks_of(PRO_SEARCH_STEPS) if isinstance(b, PlanBlock)]

    @property
    def backend_uuid(self) -> Optional[str]:
        return self._document.get("backend_uuid")

    @property
    def context_uuid(self) -> Optional[str]:
        return self._document.get("context_uuid")

    @property
    def display_model(self) -> Optional[str]:
        return self._document.get("display_model")

    def follow_up(self) -> FollowUp:
        """Build the linkage for a follow-up question on this answer."""
        attachments = self._document.get("attachments") or []
        return FollowUp(
            backend_uuid=self.backend_uuid,
            attachments=[a for a in attachments if isinstance(a, str)],
        )

    def __repr__(self) -> str:
        return (
            f"SearchResponse(backend_uuid={self.backend_uuid!r}, "
            f"blocks={len(self._blocks)}, display_model={self.display_model!r})"
        )
