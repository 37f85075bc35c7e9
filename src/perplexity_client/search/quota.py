"""Pre-flight validation and per-session quota counters."""

import asyncio
import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from perplexity_client.exceptions import QuotaExceededError
from perplexity_client.search.models import SearchMode, Source
from perplexity_client.utils.logger import logger


@dataclass
class SessionQuota:
    """
    Remaining premium-query and file-upload allowance of a session.

    `math.inf` stands for an unlimited allowance.
    """
    premium: float = 0
    uploads: float = 0

    @classmethod
    def for_session(cls, authenticated: bool) -> "SessionQuota":
        """Unlimited for a session with cookies, zero otherwise."""
        if authenticated:
            return cls(premium=math.inf, uploads=math.inf)
        return cls(premium=0, uploads=0)


def charge_policy(quota: SessionQuota, mode: SearchMode, file_count: int) -> None:
    """
    Decrement the counters for one admitted request, clamped at zero.

    Runs before the request is sent, so a failed send still consumes
    allowance.
    """
    if mode.is_premium:
        quota.premium = max(0, quota.premium - 1)
    if file_count:
        quota.uploads = max(0, quota.uploads - file_count)


class QuotaGate:
    """
    Validation and quota check run once per request.

    Checks and decrements happen under one asyncio.Lock, so concurrent
    premium requests on one client never over-issue allowance.
    """

    def __init__(self, quota: Optional[SessionQuota] = None):
        self.quota = quota or SessionQuota()
        self._lock = asyncio.Lock()

    @property
    def premium_remaining(self) -> float:
        return self.quota.premium

    @property
    def uploads_remaining(self) -> float:
        return self.quota.uploads

    async def check_and_consume(
        self,
        mode: "SearchMode | str",
        sources: Iterable["Source | str"],
        files: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[SearchMode, List[Source]]:
        """
        Validate a request and charge its quota.

        Args:
            mode: Requested search mode
            sources: Requested source types
            files: Filename -> content mapping of files to upload

        Returns:
            The parsed mode and sources

        Raises:
            ValidationError: Unknown mode or source
            QuotaExceededError: Premium or upload allowance exhausted
        """
        parsed_mode = SearchMode.parse(mode)
        parsed_sources = Source.parse_many(sources)
        file_count = len(files or {})

        async with self._lock:
            if parsed_mode.is_premium and self.quota.premium <= 0:
                logger.warning(f"Premium mode '{parsed_mode}' requested with no allowance left")
                raise QuotaExceededError("No remaining pro queries.")
            if file_count and self.quota.uploads - file_count < 0:
                logger.warning(
                    f"{file_count} file(s) requested with {self.quota.uploads} uploads left"
                )
                raise QuotaExceededError("File upload limit exceeded.")
            charge_policy(self.quota, parsed_mode, file_count)

        logger.debug(
            f"Quota charged: mode={parsed_mode}, files={file_count}, "
            f"premium_left={self.quota.premium}, uploads_left={self.quota.uploads}"
        )
        return parsed_mode, parsed_sources

    async def reset(self, premium: float, uploads: float) -> None:
        """Replace both counters, e.g. with a new account's starting allowance."""
        async with self._lock:
            self.quota.premium = premium
            self.quota.uploads = uploads
        logger.info(f"Quota reset: premium={premium}, uploads={uploads}")
