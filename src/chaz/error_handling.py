"""Error kinds raised by the conversation core and their user-facing messages.

Everything here is recovered locally and reported back into the room as plain
text. Nothing in this module terminates the process.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from .logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = get_logger(__name__)


class ChazError(Exception):
    """Base class for errors that are reported back into the room."""

    def user_message(self) -> str:
        """Text shown to the room."""
        return str(self)


class UnknownCommandError(ChazError):
    """The subcommand after the prefix is not recognised."""

    def __init__(self, command: str, valid_commands: Sequence[str]) -> None:
        self.command = command
        self.valid_commands = list(valid_commands)
        super().__init__(f"Unknown command '{command}'. Valid commands: {', '.join(self.valid_commands)}")


class UnknownModelSelectorError(ChazError):
    """A model selector did not resolve to exactly one backend and model."""

    def __init__(self, selector: str, reason: str | None = None) -> None:
        self.selector = selector
        self.reason = reason
        message = f"Unknown model '{selector}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnknownRoleError(ChazError):
    """The requested role is not in the catalog."""

    def __init__(self, role: str, known_roles: Sequence[str]) -> None:
        self.role = role
        self.known_roles = list(known_roles)
        super().__init__(f"Unknown role '{role}'. Known roles: {', '.join(self.known_roles)}")


class BackendNameCollisionError(ChazError):
    """An ad-hoc backend reused the name of an existing backend."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"A backend named '{name}' already exists")


class MalformedInviteError(ChazError):
    """The room is larger than the configured room size limit."""

    def __init__(self, room_id: str, member_count: int, limit: int) -> None:
        self.room_id = room_id
        self.member_count = member_count
        self.limit = limit
        super().__init__(f"Room {room_id} has {member_count} members, the limit is {limit}")


class CommandUsageError(ChazError):
    """A recognised command was given the wrong arguments."""


class BackendError(ChazError):
    """The backend could not produce a completion.

    Covers unreachable hosts, timeouts, non-2xx responses, malformed payloads and
    adapter processes that exit non-zero or print nothing.
    """

    def __init__(self, message: str, *, backend: str | None = None, status_code: int | None = None) -> None:
        self.backend = backend
        self.status_code = status_code
        super().__init__(message)

    def user_message(self) -> str:
        """Text shown to the room."""
        return get_user_friendly_error_message(self)


class ErrorCategory(Enum):
    """Categories of backend failures for appropriate user messaging."""

    API_KEY = "api_key"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    NETWORK = "network"
    ADAPTER = "adapter"
    UNKNOWN = "unknown"


def categorize_error(error: Exception) -> ErrorCategory:  # noqa: PLR0911
    """Categorize an exception for appropriate user messaging.

    Args:
        error: The exception to categorize

    Returns:
        The error category

    """
    error_str = str(error).lower()
    error_type = type(error).__name__.lower()
    status_code = getattr(error, "status_code", None)

    if status_code in {401, 403} or any(
        keyword in error_str for keyword in ["api key", "api_key", "unauthorized", "invalid key", "authentication"]
    ):
        return ErrorCategory.API_KEY

    if status_code == 429 or any(keyword in error_str for keyword in ["rate limit", "too many requests", "quota"]):
        return ErrorCategory.RATE_LIMIT

    # Checked before network, "connection timed out" is a timeout
    if "timeout" in error_type or any(keyword in error_str for keyword in ["timeout", "timed out"]):
        return ErrorCategory.TIMEOUT

    if any(keyword in error_str for keyword in ["connection", "network", "unreachable", "dns", "ssl", "certificate"]):
        return ErrorCategory.NETWORK

    if any(keyword in error_str for keyword in ["exit code", "adapter", "no output"]):
        return ErrorCategory.ADAPTER

    return ErrorCategory.UNKNOWN


def get_user_friendly_error_message(error: Exception) -> str:
    """Generate a user-friendly error message based on the error category.

    The raw error text is always included so the room can see what went wrong.
    """
    category = categorize_error(error)
    detail = str(error).replace("\n", " ")

    headlines = {
        ErrorCategory.API_KEY: "The backend rejected the credentials.",
        ErrorCategory.RATE_LIMIT: "The backend is rate limiting requests, try again shortly.",
        ErrorCategory.TIMEOUT: "The backend took too long to answer, try again.",
        ErrorCategory.NETWORK: "Could not reach the backend.",
        ErrorCategory.ADAPTER: "The LLM adapter failed.",
    }
    headline = headlines.get(category)
    if headline is None:
        logger.error(f"Uncategorized error: {error}")
        return detail
    return f"{headline} ({detail})"
