"""Typed answer blocks and the classifier that tags raw block objects."""

import copy
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

ASK_TEXT = "ask_text"
WEB_RESULTS = "web_results"
PLAN = "plan"
PRO_SEARCH_STEPS = "pro_search_steps"

DISCRIMINANT = "intended_usage"

# Discriminant value -> companion field that must be present and non-null
COMPANION_FIELDS = {
    ASK_TEXT: "markdown_block",
    WEB_RESULTS: "web_result_block",
    PLAN: "plan_block",
    PRO_SEARCH_STEPS: "plan_block",
}


def flatten_chunks(value: Any) -> List[str]:
    """
    Flatten a chunks value of any nesting into an ordered list of strings.

    None is skipped, lists are walked depth-first left to right, strings are
    kept as-is and every other value is JSON-stringified.

    Examples:
        >>> flatten_chunks(["a", ["b", ["c"]], None, {"k": 1}])
        ['a', 'b', 'c', '{"k":1}']
    """
    out: List[str] = []
    stack = [value]
    while stack:
        item = stack.pop()
        if item is None:
            continue
        if isinstance(item, (list, tuple)):
            stack.extend(reversed(item))
        elif isinstance(item, str):
            out.append(item)
        else:
            out.append(json.dumps(item, separators=(",", ":"), ensure_ascii=False, default=str))
    return out


@dataclass(frozen=True)
class AskTextBlock:
    """
    Incrementally built free-text answer.

    Attributes:
        progress: Backend progress marker (e.g. "in_progress", "finished")
        chunks: Flattened answer fragments
        chunk_starting_offset: Offset of the first fragment within the answer
        answer: Merged answer text when the backend supplies one
        raw: The original block object
    """
    progress: Optional[str]
    chunks: List[str]
    chunk_starting_offset: int = 0
    answer: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    kind = ASK_TEXT

    @property
    def text(self) -> str:
        """The answer, falling back to the joined fragments."""
        if self.answer is not None:
            return self.answer
        return "".join(self.chunks)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.raw)


@dataclass(frozen=True)
class WebResultsBlock:
    """Set of web search results; each item is kept as the backend sent it."""
    progress: Optional[str]
    web_results: List[Dict[str, Any]]
    final: Optional[bool] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    kind = WEB_RESULTS

    @property
    def urls(self) -> List[str]:
        return [r["url"] for r in self.web_results if isinstance(r, dict) and r.get("url")]

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.raw)


@dataclass(frozen=True)
class PlanBlock:
    """
    Plan with goals and optional steps.

    Used for both the `plan` and the `pro_search_steps` discriminants, which
    share the same inner shape.
    """
    kind: str
    progress: Optional[str]
    goals: List[Dict[str, Any]]
    steps: List[Dict[str, Any]] = field(default_factory=list)
    final: Optional[bool] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def goal_descriptions(self) -> List[str]:
        return [
            g["description"] for g in self.goals
            if isinstance(g, dict) and isinstance(g.get("description"), str)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.raw)


@dataclass(frozen=True)
class GenericBlock:
    """Unrecognized or malformed block, preserved verbatim."""
    kind: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.raw)


Block = Union[AskTextBlock, WebResultsBlock, PlanBlock, GenericBlock]


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def classify_block(raw: Any) -> Block:
    """
    Tag a raw block object with its semantic kind.

    A block is typed only when its discriminant names a known kind AND the
    matching companion field is present and not None; everything else becomes
    a GenericBlock holding the original fields.

    Args:
        raw: A block object as decoded from the wire

    Returns:
        AskTextBlock, WebResultsBlock, PlanBlock or GenericBlock
    """
    if not isinstance(raw, dict):
        return GenericBlock(kind=None, raw={"value": raw})

    kind = raw.get(DISCRIMINANT)
    companion_name = COMPANION_FIELDS.get(kind)
    companion = raw.get(companion_name) if companion_name else None
    if not isinstance(companion, dict):
        return GenericBlock(kind=kind if isinstance(kind, str) else None, raw=raw)

    if kind == ASK_TEXT:
        offset = companion.get("chunk_starting_offset")
        answer = companion.get("answer")
        return AskTextBlock(
            progress=companion.get("progress"),
            chunks=flatten_chunks(companion.get("chunks")),
            chunk_starting_offset=offset if isinstance(offset, int) else 0,
            answer=answer if isinstance(answer, str) else None,
            raw=raw,
        )
    if kind == WEB_RESULTS:
        return WebResultsBlock(
            progress=companion.get("progress"),
            web_results=_as_list(companion.get("web_results")),
            final=companion.get("final"),
            raw=raw,
        )
    return PlanBlock(
        kind=kind,
        progress=companion.get("progress"),
        goals=_as_list(companion.get("goals")),
        steps=_as_list(companion.get("steps")),
        final=companion.get("final"),
        raw=raw,
    )


def classify_blocks(raw_blocks: Any) -> List[Block]:
    """Classify every entry of a chunk's `blocks` value, in order."""
    return [classify_block(b) for b in _as_list(raw_blocks)]
