"""Structured logging helpers for request tracing."""

import contextvars
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from perplexity_client.config.settings import settings
from perplexity_client.utils.logger import logger

# Context variable for correlation ID
_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)


def generate_correlation_id() -> str:
    """
    Generate a unique correlation ID for request tracking.

    Returns:
        Unique correlation ID string (e.g., "req-abc123")
    """
    return f"req-{uuid.uuid4().hex[:8]}"


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from context."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID in the current context."""
    _correlation_id.set(correlation_id)


class CorrelationContext:
    """Context manager for correlation ID tracking."""

    def __init__(self, correlation_id: Optional[str] = None):
        """
        Initialize correlation context.

        Args:
            correlation_id: Optional correlation ID. If None, generates a new one.
        """
        self.correlation_id = correlation_id or generate_correlation_id()
        self._token = None

    def __enter__(self):
        self._token = _correlation_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token is not None:
            try:
                _correlation_id.reset(self._token)
            except ValueError:
                # Token was created in a different context (e.g., another task)
                pass
            self._token = None


def _truncate(text: str, limit: int = 200) -> str:
    return text[:limit] if len(text) > limit else text


def _log_structured_event(
    event_type: str,
    level: str = "INFO",
    message: Optional[str] = None,
    **kwargs: Any
) -> None:
    """
    Log a structured event with consistent format.

    Args:
        event_type: Type of event (e.g., "search_request", "account_event")
        level: Log level (INFO, DEBUG, WARNING, ERROR)
        message: Optional message to log
        **kwargs: Additional fields to include in the log
    """
    now = datetime.now()
    log_data = {
        "event_type": event_type,
        "timestamp_iso": now.isoformat(),
        "timestamp_unix": now.timestamp(),
        **kwargs
    }

    correlation_id = get_correlation_id()
    if correlation_id and settings.ENABLE_CORRELATION_IDS:
        log_data.setdefault("correlation_id", correlation_id)

    bound_logger = logger.bind(**log_data)
    log_func = getattr(bound_logger, level.lower())
    log_func(message or f"{event_type} event")


def log_search_request(
    query: str,
    mode: str,
    sources: List[str],
    file_count: int = 0,
    follow_up: bool = False,
    **kwargs: Any
) -> str:
    """
    Log an outbound search request.

    Args:
        query: The query text
        mode: Caller-facing search mode
        sources: Requested source types
        file_count: Number of attached files
        follow_up: Whether the request continues a previous turn
        **kwargs: Additional fields to include

    Returns:
        Correlation ID for this request
    """
    correlation_id = get_correlation_id() or generate_correlation_id()
    if not get_correlation_id():
        set_correlation_id(correlation_id)

    _log_structured_event(
        event_type="search_request",
        correlation_id=correlation_id,
        query=_truncate(query),
        query_length=len(query),
        mode=mode,
        sources=sources,
        file_count=file_count,
        follow_up=follow_up,
        **kwargs
    )
    return correlation_id


def log_search_response(
    success: bool,
    metrics: Dict[str, Any],
    backend_uuid: Optional[str] = None,
    error_message: Optional[str] = None,
    **kwargs: Any
) -> None:
    """
    Log the outcome of a search stream.

    Args:
        success: Whether a final aggregate was produced
        metrics: StreamMetrics.to_dict() output
        backend_uuid: Backend id of the answered turn, if known
        error_message: Error message if the stream failed
        **kwargs: Additional fields to include
    """
    _log_structured_event(
        event_type="search_response",
        level="INFO" if success else "WARNING",
        success=success,
        backend_uuid=backend_uuid,
        error_message=error_message,
        **metrics,
        **kwargs
    )


def log_account_event(
    stage: str,
    status: str,  # "started", "success", "retry" or "failure"
    email: Optional[str] = None,
    attempt: Optional[int] = None,
    detail: Optional[str] = None,
    **kwargs: Any
) -> None:
    """
    Log a stage transition of the account-creation flow.

    Args:
        stage: Stage name (mailbox, csrf, signin_request, await_email, extract_link, callback)
        status: Status of the stage
        email: Disposable address in use
        attempt: Attempt number for retried stages
        detail: Short free-form detail
        **kwargs: Additional fields to include
    """
    _log_structured_event(
        event_type="account_event",
        level="WARNING" if status in ("retry", "failure") else "INFO",
        message=f"account {stage}: {status}",
        stage=stage,
        status=status,
        email=email,
        attempt=attempt,
        detail=detail,
        **kwargs
    )


def log_error(
    error_type: str,
    error_message: str,
    context: Optional[Dict[str, Any]] = None,
    **kwargs: Any
) -> None:
    """
    Log a structured error event.

    Args:
        error_type: Type of error (e.g., "backend_rejection", "upload_error")
        error_message: Error message
        context: Additional context about the error
        **kwargs: Additional fields to include
    """
    _log_structured_event(
        event_type="error",
        level="ERROR",
        error_type=error_type,
        error_message=error_message,
        context=context,
        **kwargs
    )
