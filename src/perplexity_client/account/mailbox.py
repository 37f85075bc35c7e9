"""Disposable mailbox collaborator and its Emailnator implementation."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Set
from urllib.parse import unquote

import httpx

from perplexity_client.clients.http_client import create_http_client
from perplexity_client.config.settings import settings
from perplexity_client.exceptions import AccountCreationError
from perplexity_client.utils.logger import logger


@dataclass(frozen=True)
class MailMessage:
    """A message listed in a disposable inbox."""
    message_id: str
    subject: str = ""
    sender: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_listing(cls, item: Dict[str, Any]) -> "MailMessage":
        return cls(
            message_id=str(item.get("messageID", "")),
            subject=str(item.get("subject", "")),
            sender=str(item.get("from", "")),
            raw=item,
        )


MessagePredicate = Callable[[MailMessage], bool]


@dataclass(frozen=True)
class AddressOptions:
    """Address kinds the provider may issue."""
    domain: bool = False
    plus_gmail: bool = False
    dot_gmail: bool = False
    google_mail: bool = True

    def to_payload(self) -> List[str]:
        kinds = []
        if self.domain:
            kinds.append("domain")
        if self.plus_gmail:
            kinds.append("plusGmail")
        if self.dot_gmail:
            kinds.append("dotGmail")
        if self.google_mail:
            kinds.append("googleMail")
        return kinds


class TemporaryMailbox(Protocol):
    """Collaborator providing a disposable address and access to its inbox."""

    address: str

    async def generate_address(self, options: Optional[AddressOptions] = None) -> str:
        ...

    async def poll_for_message(self, predicate: MessagePredicate, timeout: float) -> Optional[MailMessage]:
        ...

    async def fetch_message_body(self, message_id: str) -> str:
        ...


class EmailnatorMailbox:
    """
    TemporaryMailbox backed by emailnator.com.

    Messages already in the inbox when the address is generated (provider
    ads) are remembered and never reported as new.
    """

    GENERATE_RETRY_DELAY = 0.5

    def __init__(
        self,
        cookies: Optional[Dict[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        poll_interval: Optional[float] = None,
        max_generate_attempts: int = 20,
    ):
        """
        Initialize the mailbox.

        Args:
            cookies: Provider cookies; defaults to settings.EMAILNATOR_COOKIE
            http_client: Client to use; one is created (and owned) if None
            poll_interval: Seconds between inbox polls; defaults to settings.MAILBOX_POLL_INTERVAL
            max_generate_attempts: Cap on address generation calls
        """
        cookies = settings.emailnator_cookies() if cookies is None else cookies
        self.address = ""
        self.poll_interval = poll_interval if poll_interval is not None else settings.MAILBOX_POLL_INTERVAL
        self.max_generate_attempts = max_generate_attempts
        self._ad_ids: Set[str] = set()
        self._seen: Dict[str, MailMessage] = {}
        self._owns_client = http_client is None
        self.http_client = http_client or create_http_client(
            cookies=cookies,
            base_url=settings.EMAILNATOR_BASE_URL,
            headers=self.build_headers(cookies),
        )

    @staticmethod
    def build_headers(cookies: Dict[str, str]) -> Dict[str, str]:
        """Provider headers; the XSRF cookie is URL-decoded into x-xsrf-token."""
        headers = {
            "accept": "application/json, text/plain, */*",
            "content-type": "application/json",
            "origin": settings.EMAILNATOR_BASE_URL,
            "referer": settings.EMAILNATOR_BASE_URL.rstrip("/") + "/",
            "x-requested-with": "XMLHttpRequest",
        }
        if cookies.get("XSRF-TOKEN"):
            headers["x-xsrf-token"] = unquote(cookies["XSRF-TOKEN"])
        return headers

    async def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        response = await self.http_client.post(path, json=payload)
        try:
            return response.json()
        except ValueError:
            return response.text

    async def _list_messages(self) -> List[MailMessage]:
        listing = await self._post("/message-list", {"email": self.address})
        items = listing.get("messageData") if isinstance(listing, dict) else None
        if not isinstance(items, list):
            return []
        return [MailMessage.from_listing(i) for i in items if isinstance(i, dict)]

    async def generate_address(self, options: Optional[AddressOptions] = None) -> str:
        """
        Request addresses until the provider issues one.

        Raises:
            AccountCreationError: If no address is issued within max_generate_attempts
        """
        payload = {"email": (options or AddressOptions()).to_payload()}
        for attempt in range(1, self.max_generate_attempts + 1):
            response = await self._post("/generate-email", payload)
            emails = response.get("email") if isinstance(response, dict) else None
            if emails:
                self.address = emails[0]
                break
            logger.debug(f"No address issued (attempt {attempt}), retrying")
            await asyncio.sleep(self.GENERATE_RETRY_DELAY)
        else:
            raise AccountCreationError("Mailbox provider did not issue an address")

        self._ad_ids = {m.message_id for m in await self._list_messages()}
        self._seen = {}
        logger.info(f"Disposable address generated: {self.address} ({len(self._ad_ids)} ads ignored)")
        return self.address

    async def poll_for_message(self, predicate: MessagePredicate, timeout: float) -> Optional[MailMessage]:
        """
        Re-poll the inbox until a new message satisfies the predicate.

        Args:
            predicate: Test applied to each new message
            timeout: Seconds to keep polling

        Returns:
            The first matching message, or None on timeout
        """
        deadline = time.monotonic() + timeout
        while True:
            for message in await self._list_messages():
                if message.message_id in self._ad_ids or message.message_id in self._seen:
                    continue
                self._seen[message.message_id] = message
                logger.debug(f"New message: {message.subject!r}")
                if predicate(message):
                    return message

            if time.monotonic() >= deadline:
                logger.warning(f"No matching message within {timeout}s")
                return None
            await asyncio.sleep(self.poll_interval)

    async def fetch_message_body(self, message_id: str) -> str:
        response = await self.http_client.post(
            "/message-list", json={"email": self.address, "messageID": message_id}
        )
        return response.text

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()
