"""Cookie parsing helpers for environment-provided cookie strings."""

import json
import re
from typing import Any, Dict


def parse_cookie_header(header: str) -> Dict[str, str]:
    """
    Parse a `k=v; k2=v2` cookie header into a dict.

    Parts without "=" map to an empty string; values keep any "=" they contain.
    """
    cookies: Dict[str, str] = {}
    for part in header.split(";"):
        part = part.strip()
        if not part:
            continue
        name, sep, value = part.partition("=")
        cookies[name] = value if sep else ""
    return cookies


def _from_mapping(data: Dict[str, Any]) -> Dict[str, str]:
    if isinstance(data.get("cookie"), str):
        return parse_cookie_header(data["cookie"])
    return {str(k): str(v) for k, v in data.items()}


def parse_cookie_env(raw: str | None) -> Dict[str, str]:
    """
    Parse a cookie value taken from the environment.

    Supports:
    - JSON object string: '{"k": "v", ...}'
    - JSON wrapper: '{"cookie": "k=v; k2=v2"}'
    - header-style string: 'k=v; k2=v2'
    - python-style single-quoted object: "{'cookie': 'k=v; ...'}"

    Args:
        raw: Raw environment value (may be None)

    Returns:
        Cookie name -> value mapping, empty for empty input
    """
    text = (raw or "").strip()
    if not text:
        return {}

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        return _from_mapping(data)

    if re.match(r"^\s*\{.*'", text, re.DOTALL):
        try:
            data = json.loads(text.replace("'", '"'))
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return _from_mapping(data)

    return parse_cookie_header(text)
