"""Account creation through an email signin link received in a disposable mailbox."""

import asyncio
from typing import Dict, Optional

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from perplexity_client.account.interactive import InteractiveLogin
from perplexity_client.account.mailbox import TemporaryMailbox
from perplexity_client.account.signin import extract_signin_link, is_bot_challenge, is_signin_message
from perplexity_client.clients.http_client import response_snippet
from perplexity_client.config.settings import settings
from perplexity_client.exceptions import AccountCreationError
from perplexity_client.search.quota import QuotaGate
from perplexity_client.utils.logger import logger
from perplexity_client.utils.structured_logging import log_account_event

CSRF_COOKIE = "next-auth.csrf-token"


class _TransientSigninError(Exception):
    """Signin request failure worth retrying."""

    def __init__(self, status_code: Optional[int], body: str = ""):
        super().__init__(f"signin request failed with status {status_code}")
        self.status_code = status_code
        self.body = body


class _SigninRateLimited(_TransientSigninError):
    pass


class AccountCreator:
    """
    Drives the signin-by-email flow for a fresh account.

    Stages: generate address, obtain CSRF token, request the signin email
    (retried), wait for the email (one resend on timeout), extract the link,
    open it (or hand over to an interactive login on a bot challenge), then
    grant the new account's starting quota.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        quota_gate: QuotaGate,
        base_url: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        rate_limit_backoff_seconds: Optional[float] = None,
        mailbox_timeout: Optional[float] = None,
        interactive_timeout: Optional[float] = None,
    ):
        self.http_client = http_client
        self.quota_gate = quota_gate
        self.base_url = (base_url or settings.PERPLEXITY_BASE_URL).rstrip("/")
        self.max_attempts = max_attempts if max_attempts is not None else settings.SIGNIN_MAX_ATTEMPTS
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.SIGNIN_BACKOFF_SECONDS
        )
        self.rate_limit_backoff_seconds = (
            rate_limit_backoff_seconds
            if rate_limit_backoff_seconds is not None
            else settings.SIGNIN_RATE_LIMIT_BACKOFF_SECONDS
        )
        self.mailbox_timeout = mailbox_timeout if mailbox_timeout is not None else settings.MAILBOX_TIMEOUT
        self.interactive_timeout = (
            interactive_timeout if interactive_timeout is not None else settings.INTERACTIVE_LOGIN_TIMEOUT
        )

    async def create(
        self,
        mailbox: TemporaryMailbox,
        interactive_login: Optional[InteractiveLogin] = None,
    ) -> Dict[str, str]:
        """
        Create and sign in a new account.

        Args:
            mailbox: Disposable mailbox collaborator
            interactive_login: Fallback used when the callback hits a bot challenge

        Returns:
            The session cookies after signin

        Raises:
            AccountCreationError: If any stage fails or runs out of retries
        """
        log_account_event("mailbox", "started")
        address = await mailbox.generate_address()
        log_account_event("mailbox", "success", email=address)

        csrf_token = await self._csrf_token()
        await self._request_signin(address, csrf_token)

        message = await mailbox.poll_for_message(is_signin_message, self.mailbox_timeout)
        if message is None:
            log_account_event("await_email", "retry", email=address, detail="resending signin email")
            await self._request_signin(address, csrf_token)
            message = await mailbox.poll_for_message(is_signin_message, self.mailbox_timeout)
        if message is None:
            log_account_event("await_email", "failure", email=address)
            raise AccountCreationError("No signin email received")
        log_account_event("await_email", "success", email=address)

        body = await mailbox.fetch_message_body(message.message_id)
        link = extract_signin_link(body, self.base_url, address)
        log_account_event("extract_link", "success", email=address)

        await self._complete_callback(link, address, interactive_login)

        await self.quota_gate.reset(
            settings.NEW_ACCOUNT_PREMIUM_QUOTA, settings.NEW_ACCOUNT_UPLOAD_QUOTA
        )
        logger.success(f"Account created for {address}")
        return dict(self.http_client.cookies)

    async def _csrf_token(self) -> str:
        cookie_value = self.http_client.cookies.get(CSRF_COOKIE) or ""
        token = cookie_value.split("%")[0]
        if token:
            logger.debug("CSRF token taken from cookie")
            return token

        try:
            response = await self.http_client.get(f"{self.base_url}/api/auth/csrf")
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch CSRF token: {e}")
            return ""
        if not response.is_success:
            logger.warning(f"/api/auth/csrf responded with status {response.status_code}")
            return ""
        try:
            data = response.json()
        except ValueError:
            return ""
        if not isinstance(data, dict):
            return ""
        token = data.get("csrfToken") or data.get("csrf_token") or ""
        log_account_event("csrf", "success" if token else "failure")
        return token

    def _signin_wait(self, retry_state: RetryCallState) -> float:
        """Linear backoff; rate-limited attempts wait on the longer scale."""
        attempt = retry_state.attempt_number
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, _SigninRateLimited):
            return self.rate_limit_backoff_seconds * attempt
        return self.backoff_seconds * attempt

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        log_account_event(
            "signin_request",
            "retry",
            attempt=retry_state.attempt_number,
            detail=str(error),
        )

    async def _post_signin(self, address: str, csrf_token: str) -> None:
        response = await self.http_client.post(
            f"{self.base_url}/api/auth/signin/email",
            data={
                "email": address,
                "csrfToken": csrf_token,
                "callbackUrl": f"{self.base_url}/",
                "json": "true",
            },
        )
        if response.is_success:
            return
        body = response_snippet(response)
        if response.status_code == 429:
            raise _SigninRateLimited(429, body)
        if 400 <= response.status_code < 500:
            log_account_event("signin_request", "failure", email=address, detail=body[:100])
            raise AccountCreationError(
                "Signin request rejected", status_code=response.status_code, payload=body
            )
        raise _TransientSigninError(response.status_code, body)

    async def _request_signin(self, address: str, csrf_token: str) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._signin_wait,
            retry=retry_if_exception_type((_TransientSigninError, httpx.TransportError)),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._post_signin(address, csrf_token)
        except (_TransientSigninError, httpx.TransportError) as e:
            log_account_event("signin_request", "failure", email=address, detail=str(e))
            raise AccountCreationError(
                f"Signin request failed after {self.max_attempts} attempts",
                status_code=getattr(e, "status_code", None),
                payload=getattr(e, "body", None),
            ) from e
        log_account_event("signin_request", "success", email=address)

    async def _complete_callback(
        self,
        link: str,
        address: str,
        interactive_login: Optional[InteractiveLogin],
    ) -> None:
        response = await self.http_client.get(link)
        if is_bot_challenge(response):
            log_account_event("callback", "retry", email=address, detail="bot challenge")
            if interactive_login is None:
                raise AccountCreationError(
                    "Signin callback hit a bot challenge and no interactive login is available",
                    status_code=response.status_code,
                )
            try:
                cookies = await asyncio.wait_for(
                    interactive_login.attempt_interactive_login(address, self.interactive_timeout),
                    timeout=self.interactive_timeout,
                )
            except asyncio.TimeoutError:
                cookies = None
            if not cookies:
                log_account_event("callback", "failure", email=address, detail="interactive login failed")
                raise AccountCreationError("Interactive login did not complete")
            self.http_client.cookies.update(cookies)
        elif not response.is_success:
            log_account_event("callback", "failure", email=address)
            raise AccountCreationError(
                "Signin callback failed",
                status_code=response.status_code,
                payload=response_snippet(response),
            )
        log_account_event("callback", "success", email=address)
