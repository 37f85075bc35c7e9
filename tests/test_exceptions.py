"""Unit tests for the exception hierarchy."""

import pytest

from perplexity_client.exceptions import (
    AccountCreationError,
    BackendRejection,
    IncompleteStreamError,
    PerplexityClientError,
    ProtocolError,
    QuotaExceededError,
    UploadError,
    ValidationError,
)


class TestExceptions:
    """Tests for PerplexityClientError and subclasses."""

    def test_str_with_status(self):
        """Test that the status code is shown when present."""
        assert str(BackendRejection("Search request was rejected", 429)) == (
            "Search request was rejected (status=429)"
        )

    def test_str_without_status(self):
        """Test the plain reason without status."""
        error = ProtocolError("bad frame", payload="data: {")
        assert str(error) == "bad frame"
        assert error.payload == "data: {"

    @pytest.mark.parametrize(
        "cls",
        [ProtocolError, BackendRejection, IncompleteStreamError, ValidationError, UploadError, AccountCreationError],
    )
    def test_hierarchy(self, cls):
        """Test that every error derives from the base error."""
        assert issubclass(cls, PerplexityClientError)

    def test_quota_is_validation(self):
        """Test that quota failures are validation failures."""
        with pytest.raises(ValidationError):
            raise QuotaExceededError("No remaining pro queries.")
