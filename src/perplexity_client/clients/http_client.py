"""httpx client construction shared by the Perplexity and mailbox clients."""

from typing import Dict, Mapping, Optional

import httpx

from perplexity_client.config.settings import settings
from perplexity_client.utils.logger import logger

DEFAULT_HEADERS = {
    "accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
        "image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
    ),
    "accept-language": "en-US,en;q=0.9",
    "cache-control": "max-age=0",
    "dnt": "1",
}


def build_timeout() -> httpx.Timeout:
    """Connect/write/pool limits from settings; reads are unbounded so the SSE loop never times out."""
    return httpx.Timeout(
        connect=settings.HTTP_CONNECT_TIMEOUT,
        read=None,
        write=settings.HTTP_WRITE_TIMEOUT,
        pool=settings.HTTP_CONNECT_TIMEOUT,
    )


def create_http_client(
    cookies: Optional[Mapping[str, str]] = None,
    base_url: str = "",
    headers: Optional[Dict[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create an httpx.AsyncClient with default browser-like headers.

    Args:
        cookies: Cookie mapping sent with every request
        base_url: Base URL for relative request paths
        headers: Extra headers merged over the defaults
        transport: Custom transport (tests pass an httpx.MockTransport)

    Returns:
        Configured AsyncClient; the caller owns it and must close it
    """
    merged_headers = {**DEFAULT_HEADERS, "user-agent": settings.USER_AGENT, **(headers or {})}
    logger.debug(
        f"Creating HTTP client: base_url={base_url or '-'}, cookies={len(cookies or {})}"
    )
    return httpx.AsyncClient(
        base_url=base_url,
        headers=merged_headers,
        cookies=dict(cookies or {}),
        timeout=build_timeout(),
        follow_redirects=True,
        transport=transport,
    )


def response_snippet(response: httpx.Response, limit: int = 300) -> str:
    """Short text of a response body for error payloads, empty for an unread streamed body."""
    try:
        text = response.text
    except httpx.ResponseNotRead:
        return ""
    return text[:limit]
