"""Custom exception hierarchy for the Perplexity client."""

from typing import Any, Optional


class PerplexityClientError(Exception):
    """
    Base exception for Perplexity client errors.

    Attributes:
        reason: Human-readable reason for the failure
        status_code: HTTP status code, when the failure came from a response
        payload: Raw diagnostic payload (response snippet, offending chunk, ...)
    """

    def __init__(
        self,
        reason: str,
        status_code: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code
        self.payload = payload

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.reason} (status={self.status_code})"
        return self.reason


class ConfigurationError(PerplexityClientError):
    """Configuration errors."""
    pass


class ProtocolError(PerplexityClientError):
    """A frame or JSON payload that cannot be decoded."""
    pass


class BackendRejection(PerplexityClientError):
    """The backend signalled a rate limit or a failure."""
    pass


class IncompleteStreamError(PerplexityClientError):
    """The stream ended before any terminal chunk was received."""
    pass


class ValidationError(PerplexityClientError):
    """Invalid search arguments, raised before any network call."""
    pass


class QuotaExceededError(ValidationError):
    """Premium-query or file-upload allowance exhausted."""
    pass


class UploadError(PerplexityClientError):
    """Either stage of a file upload returned a non-success response."""
    pass


class AccountCreationError(PerplexityClientError):
    """A stage of the account-creation flow failed or ran out of retries."""
    pass
