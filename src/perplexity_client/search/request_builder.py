"""Model-preference resolution and search request body construction."""

import re
import uuid
from typing import Any, Dict, List, Optional, Sequence

from perplexity_client.config.settings import settings
from perplexity_client.search.models import SearchMode, Source
from perplexity_client.streaming.models import FollowUp

DEFAULT_KEY = "__default"

# Caller-facing mode -> {model name -> backend model id}
MODEL_PREFERENCES: Dict[str, Dict[str, str]] = {
    "auto": {DEFAULT_KEY: "turbo"},
    "pro": {
        DEFAULT_KEY: "pplx_pro",
        "sonar": "experimental",
        "experimental": "experimental",
        "gpt5": "gpt5",
        "gpt5_nano": "gpt5_nano",
        "gpt45": "gpt45",
        "claude_sonnet_4_0": "claude2",
        "claude37sonnetthinking": "claude37sonnetthinking",
        "o3mini": "o3mini",
        "gemini25pro": "Gemini25Pro",
        "grok": "grok",
    },
    "reasoning": {
        DEFAULT_KEY: "pplx_reasoning",
        "gemini25pro": "Gemini25Pro",
        "gpt5": "gpt5",
        "o3mini": "o3mini",
        "claude37sonnetthinking": "claude37sonnetthinking",
    },
    "deep research": {DEFAULT_KEY: "pplx_alpha"},
}


def _normalize(name: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(name or "").lower())


def compute_model_preference(mode: "SearchMode | str", model: Optional[str] = None) -> Optional[str]:
    """
    Resolve the backend model id for a mode and an optional model name.

    Resolution order: exact key, normalized key, normalized value (callers may
    pass a backend id directly), then the mode's default.

    Args:
        mode: Search mode
        model: Friendly model name or backend id; None selects the default

    Returns:
        Backend model id, or None for an unknown mode
    """
    by_mode = MODEL_PREFERENCES.get(str(mode))
    if by_mode is None:
        return None
    if not model:
        return by_mode[DEFAULT_KEY]
    if model in by_mode:
        return by_mode[model]

    wanted = _normalize(model)
    for key, value in by_mode.items():
        if _normalize(key) == wanted:
            return value
    for value in by_mode.values():
        if _normalize(value) == wanted:
            return value
    return by_mode[DEFAULT_KEY]


def build_search_body(
    query: str,
    mode: SearchMode,
    sources: Sequence[Source],
    model: Optional[str] = None,
    uploaded_files: Optional[List[str]] = None,
    follow_up: Optional[FollowUp] = None,
    incognito: bool = False,
    language: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build the JSON body for the search SSE endpoint.

    Args:
        query: Query text
        mode: Validated search mode
        sources: Validated source types
        model: Optional model name
        uploaded_files: Durable URLs of files uploaded for this request
        follow_up: Linkage to a previous turn
        incognito: Whether the turn is kept out of history
        language: Language tag; defaults to settings.DEFAULT_LANGUAGE

    Returns:
        Request body dictionary
    """
    attachments = list(uploaded_files or [])
    if follow_up is not None:
        attachments.extend(follow_up.attachments)

    return {
        "query_str": query,
        "params": {
            "attachments": attachments,
            "frontend_context_uuid": str(uuid.uuid4()),
            "frontend_uuid": str(uuid.uuid4()),
            "is_incognito": incognito,
            "language": language or settings.DEFAULT_LANGUAGE,
            "last_backend_uuid": follow_up.backend_uuid if follow_up else None,
            "mode": mode.wire_mode,
            "model_preference": compute_model_preference(mode, model),
            "source": "default",
            "sources": [str(s) for s in sources],
            "version": settings.API_VERSION,
        },
    }
