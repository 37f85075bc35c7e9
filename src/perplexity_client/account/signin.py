"""Locating the signin artifact in an email and spotting bot-challenge pages."""

import html
import re
from typing import List, Optional, Pattern
from urllib.parse import unquote, urlencode

import httpx

from perplexity_client.account.mailbox import MailMessage
from perplexity_client.exceptions import AccountCreationError
from perplexity_client.utils.logger import logger

SIGNIN_SUBJECT = "Sign in to Perplexity"
CALLBACK_PATH = "/api/auth/callback/email"

CHALLENGE_STATUSES = (403, 429, 503)
CHALLENGE_MARKERS = ("cf-chl", "challenge-platform", "Just a moment", "cf_chl_opt")

_TOKEN_PARAM = re.compile(r"[?&]token=([A-Za-z0-9._~-]+)")
_CODE_NEAR_WORD = re.compile(r"code\D{0,40}?\b(\d{6})\b", re.IGNORECASE)


def is_signin_message(message: MailMessage) -> bool:
    return message.subject == SIGNIN_SUBJECT


def _link_patterns(base_url: str) -> List[Pattern[str]]:
    callback = re.escape(base_url.rstrip("/") + CALLBACK_PATH)
    return [
        re.compile(r'"(' + callback + r'\?callbackUrl=[^"]+)"'),
        re.compile(r"href=['\"]?(" + callback + r"\?[^'\"\s>]+)", re.IGNORECASE),
        re.compile(r"(" + callback + r"\?[^\"'<>\s]+)"),
    ]


def _search_link(text: str, patterns: List[Pattern[str]]) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def build_callback_url(base_url: str, token: str, email: str) -> str:
    """Callback URL for a one-time token received instead of a link."""
    base = base_url.rstrip("/")
    query = urlencode({"callbackUrl": base + "/", "token": token, "email": email})
    return f"{base}{CALLBACK_PATH}?{query}"


def extract_signin_link(content: str, base_url: str, email: str) -> str:
    """
    Find the signin callback URL in a raw email body.

    The body is HTML-unescaped and searched for a quoted link, an href
    attribute and finally any bare callback URL; if none matches, the
    URL-decoded body is searched again. As a last resort a one-time token
    (a `token=` parameter or a 6-digit code) is turned into a callback URL.

    Args:
        content: Raw message body
        base_url: Site base URL, e.g. https://www.perplexity.ai
        email: Address the signin was requested for

    Returns:
        Absolute callback URL

    Raises:
        AccountCreationError: If neither a link nor a token can be found
    """
    unescaped = html.unescape(content)
    patterns = _link_patterns(base_url)

    link = _search_link(unescaped, patterns)
    if link is None:
        link = _search_link(unquote(unescaped), patterns)
    if link is not None:
        return link.replace("&amp;", "&")

    decoded = unquote(unescaped)
    for pattern in (_TOKEN_PARAM, _CODE_NEAR_WORD):
        match = pattern.search(decoded)
        if match:
            logger.info("Signin email carries a one-time token instead of a link")
            return build_callback_url(base_url, match.group(1), email)

    logger.error(f"Signin link not found; email snippet: {unescaped[:400]!r}")
    raise AccountCreationError("Signin link not found", payload=unescaped[:400])


def is_bot_challenge(response: httpx.Response) -> bool:
    """True when the response is an anti-bot interstitial rather than a real page."""
    if response.status_code not in CHALLENGE_STATUSES:
        return False
    if response.headers.get("cf-mitigated", "").lower() == "challenge":
        return True
    body = response.text
    return any(marker in body for marker in CHALLENGE_MARKERS)
