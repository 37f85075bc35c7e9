"""High-level asynchronous client for the Perplexity conversational search API."""

import copy
import json
import re
from typing import Any, Dict, Iterable, Mapping, Optional, Union
from urllib.parse import unquote

import httpx

from perplexity_client.account.creator import AccountCreator
from perplexity_client.account.interactive import InteractiveLogin
from perplexity_client.account.mailbox import EmailnatorMailbox, TemporaryMailbox
from perplexity_client.clients.http_client import create_http_client, response_snippet
from perplexity_client.clients.uploads import BlobUploader, PerplexityUploader, upload_files
from perplexity_client.config.settings import settings
from perplexity_client.exceptions import BackendRejection
from perplexity_client.search.models import SearchMode, Source
from perplexity_client.search.quota import QuotaGate, SessionQuota
from perplexity_client.search.request_builder import MODEL_PREFERENCES, build_search_body
from perplexity_client.streaming.models import FollowUp, SearchResponse
from perplexity_client.streaming.search_stream import SearchStream
from perplexity_client.telemetry.metrics import StreamMetrics
from perplexity_client.utils.logger import logger
from perplexity_client.utils.structured_logging import log_error, log_search_request

SEARCH_PATH = "/rest/sse/perplexity_ask"
SESSION_PATH = "/api/auth/session"
MODEL_ENDPOINTS = ("/api/search/models", "/rest/models", "/api/models", "/api/public/models")
MODEL_COOKIES = ("pplx.search-models-v4", "pplx.search-models-v3")

FollowUpLike = Union[FollowUp, SearchResponse, Mapping[str, Any]]


def _as_follow_up(follow_up: Optional[FollowUpLike]) -> Optional[FollowUp]:
    if follow_up is None or isinstance(follow_up, FollowUp):
        return follow_up
    if isinstance(follow_up, SearchResponse):
        return follow_up.follow_up()
    return FollowUp(
        backend_uuid=follow_up.get("backend_uuid"),
        attachments=list(follow_up.get("attachments") or []),
    )


class PerplexityClient:
    """
    Asynchronous Perplexity client.

    A client built with cookies has unlimited premium and upload allowance;
    without cookies both are zero until `create_account()` succeeds.

    Example:
        async with await PerplexityClient.create(settings.perplexity_cookies()) as client:
            response = await client.search("what is rust?", mode="pro")
            print(response.answer)
    """

    def __init__(
        self,
        cookies: Optional[Mapping[str, str]] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        uploader: Optional[BlobUploader] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client. No network call is made here; see `warm_up()`.

        Args:
            cookies: Session cookies of an existing account
            http_client: Client to use; one is created (and owned) if None
            base_url: Site base URL; defaults to settings.PERPLEXITY_BASE_URL
            uploader: File upload collaborator; defaults to PerplexityUploader
            transport: Transport for the created client (tests pass httpx.MockTransport)
        """
        cookies = dict(cookies or {})
        self.base_url = (base_url or settings.PERPLEXITY_BASE_URL).rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or create_http_client(
            cookies=cookies, base_url=self.base_url, transport=transport
        )
        if http_client is not None and cookies:
            self.http_client.cookies.update(cookies)

        self.authenticated = bool(cookies)
        self.quota_gate = QuotaGate(SessionQuota.for_session(self.authenticated))
        self.uploader = uploader or PerplexityUploader(self.http_client)
        logger.info(f"PerplexityClient initialized (authenticated={self.authenticated})")

    @classmethod
    async def create(cls, cookies: Optional[Mapping[str, str]] = None, **kwargs: Any) -> "PerplexityClient":
        """Build a client and await its session warm-up."""
        client = cls(cookies, **kwargs)
        await client.warm_up()
        return client

    async def warm_up(self) -> bool:
        """
        Open the session with a GET to the auth session endpoint.

        Returns:
            True if the endpoint answered with a success status

        Raises:
            httpx.HTTPError: On transport failures
        """
        response = await self.http_client.get(SESSION_PATH)
        if not response.is_success:
            logger.warning(f"Session warm-up returned status {response.status_code}")
            return False
        logger.debug("Session warm-up complete")
        return True

    @property
    def premium_remaining(self) -> float:
        return self.quota_gate.premium_remaining

    @property
    def uploads_remaining(self) -> float:
        return self.quota_gate.uploads_remaining

    async def stream_search(
        self,
        query: str,
        mode: Union[SearchMode, str] = SearchMode.AUTO,
        model: Optional[str] = None,
        sources: Iterable[Union[Source, str]] = (Source.WEB,),
        files: Optional[Mapping[str, Any]] = None,
        language: Optional[str] = None,
        follow_up: Optional[FollowUpLike] = None,
        incognito: bool = False,
    ) -> SearchStream:
        """
        Send a search and return the live stream of chunks.

        Validation and quota accounting run before any network call.

        Args:
            query: Query text
            mode: auto, pro, reasoning or "deep research"
            model: Optional model name, resolved per mode
            sources: Source types (web, scholar, social)
            files: Filename -> content of files to attach
            language: Language tag; defaults to settings.DEFAULT_LANGUAGE
            follow_up: Previous turn to continue (FollowUp, SearchResponse or mapping)
            incognito: Keep the turn out of history

        Returns:
            SearchStream over the response

        Raises:
            ValidationError: Invalid mode/sources or exhausted quota
            UploadError: A file upload failed
            BackendRejection: The search endpoint returned a non-success status
        """
        sources = list(sources)
        parsed_mode, parsed_sources = await self.quota_gate.check_and_consume(mode, sources, files)
        linkage = _as_follow_up(follow_up)
        log_search_request(
            query,
            mode=str(parsed_mode),
            sources=[str(s) for s in parsed_sources],
            file_count=len(files or {}),
            follow_up=linkage is not None,
        )

        uploaded = await upload_files(self.uploader, files) if files else []
        body = build_search_body(
            query,
            parsed_mode,
            parsed_sources,
            model=model,
            uploaded_files=uploaded,
            follow_up=linkage,
            incognito=incognito,
            language=language,
        )

        metrics = StreamMetrics()
        metrics.start_timer()
        request = self.http_client.build_request(
            "POST", SEARCH_PATH, json=body, headers={"accept": "text/event-stream"}
        )
        response = await self.http_client.send(request, stream=True)
        if not response.is_success:
            await response.aread()
            await response.aclose()
            snippet = response_snippet(response)
            log_error("search_http_error", f"status {response.status_code}", context={"body": snippet})
            raise BackendRejection(
                "Search request was rejected", status_code=response.status_code, payload=snippet
            )

        logger.debug(f"Search stream opened (mode={parsed_mode}, status={response.status_code})")
        return SearchStream(response.aiter_bytes(), on_close=response.aclose, metrics=metrics)

    async def search(self, query: str, **kwargs: Any) -> SearchResponse:
        """
        Run a search to completion and return the aggregate.

        Takes the same arguments as `stream_search()`.
        """
        stream = await self.stream_search(query, **kwargs)
        async with stream:
            return await stream.collect()

    async def create_account(
        self,
        mailbox: Optional[TemporaryMailbox] = None,
        interactive_login: Optional[InteractiveLogin] = None,
    ) -> Dict[str, str]:
        """
        Create a fresh account and sign this client in with it.

        Args:
            mailbox: Disposable mailbox; an EmailnatorMailbox is used if None
            interactive_login: Fallback for bot-challenged callbacks

        Returns:
            Session cookies of the new account
        """
        owned_mailbox = mailbox is None
        mailbox = mailbox or EmailnatorMailbox()
        try:
            creator = AccountCreator(self.http_client, self.quota_gate, base_url=self.base_url)
            cookies = await creator.create(mailbox, interactive_login)
        finally:
            if owned_mailbox:
                await mailbox.aclose()
        self.authenticated = True
        return cookies

    async def get_models(self) -> Any:
        """
        Discover the available models.

        Tries the known model endpoints, then the model cookies, then the
        session endpoint, and finally returns the built-in preference table.
        """
        for path in MODEL_ENDPOINTS:
            try:
                response = await self.http_client.get(path, headers={"accept": "application/json"})
            except httpx.HTTPError as e:
                logger.debug(f"Model endpoint {path} failed: {e}")
                continue
            if response.is_success and "application/json" in response.headers.get("content-type", ""):
                try:
                    return response.json()
                except ValueError:
                    continue

        for name in MODEL_COOKIES:
            value = self.http_client.cookies.get(name)
            if not value:
                continue
            decoded = unquote(value)
            if not decoded.startswith("{"):
                decoded = re.sub(r"^pplx\.search-models-v\d+=", "", decoded)
            try:
                return json.loads(decoded)
            except ValueError:
                logger.debug(f"Cookie {name} does not hold JSON")

        try:
            response = await self.http_client.get(SESSION_PATH, headers={"accept": "application/json"})
            if response.is_success:
                body = response.json()
                if isinstance(body, dict) and (
                    body.get("search_models") or body.get("pplx.search-models-v4") or body.get("user")
                ):
                    return body
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Session model hints unavailable: {e}")

        logger.info("Falling back to the built-in model preference table")
        return copy.deepcopy(MODEL_PREFERENCES)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "PerplexityClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
