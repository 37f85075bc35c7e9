"""Chunk normalization: event record -> typed Chunk."""

import json
from typing import Any, Dict

from perplexity_client.exceptions import ProtocolError
from perplexity_client.streaming.blocks import classify_blocks, flatten_chunks
from perplexity_client.streaming.frames import MESSAGE_EVENT_PREFIX
from perplexity_client.streaming.models import Chunk
from perplexity_client.utils.logger import logger

DATA_PREFIX = "data: "
MESSAGE_PREFIX = MESSAGE_EVENT_PREFIX + DATA_PREFIX


def decode_text_field(value: Any) -> Any:
    """
    Undo the backend's occasional double encoding of `text`.

    A string holding valid JSON is replaced by the parsed value; any other
    string, a string decoding to null, and any non-string are returned
    unchanged.
    """
    if not isinstance(value, str):
        return value
    try:
        decoded = json.loads(value)
    except (json.JSONDecodeError, ValueError, RecursionError):
        return value
    return value if decoded is None else decoded


def _strip_prefix(record: str) -> str:
    return record[len(MESSAGE_PREFIX):] if record.startswith(MESSAGE_PREFIX) else record


def _parse_payload(record: str) -> Dict[str, Any]:
    payload = _strip_prefix(record)
    try:
        document = json.loads(payload)
    except (json.JSONDecodeError, ValueError, RecursionError) as e:
        raise ProtocolError(f"Undecodable frame payload: {e}", payload=payload) from e
    if not isinstance(document, dict):
        raise ProtocolError(
            f"Frame payload is a JSON {type(document).__name__}, expected an object",
            payload=payload,
        )
    return document


def _decode(record: str) -> Chunk:
    document = _parse_payload(record)
    try:
        if "text" in document:
            document["text"] = flatten_chunks(decode_text_field(document["text"]))
        blocks = classify_blocks(document.get("blocks"))
    except RecursionError as e:
        raise ProtocolError(
            "Frame payload is nested too deeply to normalize", payload=_strip_prefix(record)
        ) from e
    return Chunk(
        fields=document,
        text=list(document.get("text") or []),
        blocks=blocks,
    )


def normalize_frame(record: str) -> Chunk:
    """
    Turn one `message` event record into a Chunk.

    Never raises: a payload that cannot be decoded yields a degraded chunk
    whose only content is the raw payload text.

    Args:
        record: Raw event record, including the event/data prefix

    Returns:
        Normalized Chunk
    """
    try:
        return _decode(record)
    except ProtocolError as e:
        logger.warning(f"Degrading frame to raw passthrough: {e}")
        return Chunk(fields={"raw": e.payload}, raw=e.payload)
