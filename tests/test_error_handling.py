"""Tests for error handling module."""

from chaz.error_handling import (
    BackendError,
    ErrorCategory,
    UnknownCommandError,
    UnknownModelSelectorError,
    categorize_error,
    get_user_friendly_error_message,
)


class TestErrorCategorization:
    """Test error categorization logic."""

    def test_api_key_errors(self):
        """Credential failures, by status or by message."""
        errors = [
            BackendError("openai returned HTTP 401: nope", status_code=401),
            BackendError("forbidden", status_code=403),
            Exception("Invalid API key provided"),
            Exception("Authentication failed"),
        ]

        for error in errors:
            assert categorize_error(error) == ErrorCategory.API_KEY

    def test_rate_limit_errors(self):
        """Rate limiting, by status or by message."""
        errors = [
            BackendError("slow down", status_code=429),
            Exception("Rate limit exceeded"),
            Exception("Quota exceeded"),
        ]

        for error in errors:
            assert categorize_error(error) == ErrorCategory.RATE_LIMIT

    def test_timeout_before_network(self):
        """A connection timeout is a timeout."""
        assert categorize_error(Exception("Connection timed out")) == ErrorCategory.TIMEOUT
        assert categorize_error(TimeoutError()) == ErrorCategory.TIMEOUT

    def test_network_errors(self):
        """Unreachable hosts."""
        errors = [
            Exception("Connection refused"),
            Exception("Network unreachable"),
            Exception("SSL certificate verification failed"),
        ]

        for error in errors:
            assert categorize_error(error) == ErrorCategory.NETWORK

    def test_adapter_errors(self):
        """Adapter process failures."""
        assert categorize_error(BackendError("Adapter exited with exit code 1: x")) == ErrorCategory.ADAPTER
        assert categorize_error(BackendError("Adapter produced no output")) == ErrorCategory.ADAPTER

    def test_unknown_errors(self):
        """Anything else."""
        assert categorize_error(ValueError("weird")) == ErrorCategory.UNKNOWN


class TestUserFriendlyMessages:
    """Test the text shown in the room."""

    def test_message_includes_detail(self):
        """The raw error is always visible."""
        message = get_user_friendly_error_message(BackendError("Rate limit exceeded\nretry later", status_code=429))
        assert message == "The backend is rate limiting requests, try again shortly. (Rate limit exceeded retry later)"

    def test_unknown_error_is_shown_verbatim(self):
        """Uncategorised errors are passed through."""
        assert BackendError("model not found").user_message() == "model not found"

    def test_resolution_errors(self):
        """Command errors read well on their own."""
        assert UnknownCommandError("frob", ["help", "list"]).user_message() == (
            "Unknown command 'frob'. Valid commands: help, list"
        )
        assert str(UnknownModelSelectorError("x")) == "Unknown model 'x'"
