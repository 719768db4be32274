"""Command parsing for messages addressed to the bot."""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .constants import DEFAULT_COMMAND_PREFIX
from .logging_config import get_logger

logger = get_logger(__name__)


class CommandType(Enum):
    """Types of commands supported."""

    CONVERSE = "converse"  # bare prefix, or prefix followed by free text
    PRINT = "print"
    SEND = "send"
    MODEL = "model"
    BACKEND = "backend"
    ROLE = "role"
    LIST = "list"
    CLEAR = "clear"
    RENAME = "rename"
    HELP = "help"
    UNKNOWN = "unknown"


# Command documentation for each command type, "{prefix}" is filled in by get_command_list
COMMAND_DOCS = {
    CommandType.CONVERSE: ("{prefix} [message]", "Respond using the conversation so far"),
    CommandType.PRINT: ("{prefix} print", "Print the conversation"),
    CommandType.SEND: ("{prefix} send <message>", "Send a message without context"),
    CommandType.MODEL: ("{prefix} model <model>", "Select the model to use"),
    CommandType.BACKEND: ("{prefix} backend <name> <api_base> <api_key>", "Add an OpenAI compatible backend"),
    CommandType.ROLE: ("{prefix} role [name] [prompt]", "Show, select or define a role"),
    CommandType.LIST: ("{prefix} list", "List available models"),
    CommandType.CLEAR: ("{prefix} clear", "Ignore all messages before this point"),
    CommandType.RENAME: ("{prefix} rename", "Rename the room and set the topic based on the chat content"),
    CommandType.HELP: ("{prefix} help", "Show this message"),
}

# Subcommands recognised after the prefix
SUBCOMMANDS: dict[str, CommandType] = {
    command_type.value: command_type
    for command_type in CommandType
    if command_type not in {CommandType.CONVERSE, CommandType.UNKNOWN}
}

# Commands that send a turn to a backend and therefore count against the message limit
MODEL_TURN_COMMANDS = frozenset({CommandType.CONVERSE, CommandType.SEND, CommandType.RENAME})

_COMMAND_SIGILS = ("/", ".", "-")
_TYPO_CUTOFF = 0.75


def get_command_list(prefix: str = DEFAULT_COMMAND_PREFIX) -> str:
    """Get a formatted list of all available commands."""
    lines = ["Available commands:"]
    for cmd_type in CommandType:
        if cmd_type in COMMAND_DOCS:
            syntax, description = COMMAND_DOCS[cmd_type]
            lines.append(f"- {syntax.format(prefix=prefix)} - {description}")
    return "\n".join(lines)


def _unquote(text: str) -> str:
    """Strip one pair of matching surrounding quotes."""
    if len(text) >= 2 and text[0] == text[-1] and text[0] in {'"', "'"}:
        return text[1:-1]
    return text


@dataclass
class Command:
    """Parsed command with arguments."""

    type: CommandType
    args: dict[str, Any] = field(default_factory=dict)
    raw_text: str = ""

    @property
    def uses_model_turn(self) -> bool:
        """Whether running this command sends a turn to a backend."""
        return self.type in MODEL_TURN_COMMANDS


class CommandParser:
    """Parser for messages that start with the command prefix."""

    def __init__(self, prefix: str = DEFAULT_COMMAND_PREFIX) -> None:
        self.prefix = prefix

    def strip_prefix(self, message: str) -> str | None:
        """Return the text after the prefix, or None if the message is not addressed with it."""
        message = message.strip()
        if not message.startswith(self.prefix):
            return None
        rest = message[len(self.prefix) :]
        # "!chazzy" is not "!chaz"
        if rest and not rest[0].isspace():
            return None
        return rest.strip()

    def is_addressed(self, message: str) -> bool:
        """Whether the message starts with the command prefix."""
        return self.strip_prefix(message) is not None

    def parse(self, message: str) -> Command | None:  # noqa: PLR0911
        """Parse a message for commands.

        Args:
            message: The message text to parse

        Returns:
            Parsed command, or None if the message does not carry the prefix

        """
        rest = self.strip_prefix(message)
        if rest is None:
            return None
        raw_text = message.strip()

        if not rest:
            return Command(type=CommandType.CONVERSE, args={"text": None}, raw_text=raw_text)

        parts = rest.split(maxsplit=1)
        first = parts[0]
        remainder = parts[1].strip() if len(parts) > 1 else ""
        command_type = SUBCOMMANDS.get(first.lower())

        if command_type is None:
            if self._looks_like_command(first, remainder):
                logger.debug(f"Unknown command: {raw_text}")
                return Command(type=CommandType.UNKNOWN, args={"command": first}, raw_text=raw_text)
            return Command(type=CommandType.CONVERSE, args={"text": rest}, raw_text=raw_text)

        if command_type == CommandType.SEND:
            return Command(type=command_type, args={"message": remainder}, raw_text=raw_text)

        if command_type == CommandType.MODEL:
            selector = remainder.split()[0] if remainder else None
            return Command(type=command_type, args={"selector": selector}, raw_text=raw_text)

        if command_type == CommandType.BACKEND:
            return Command(type=command_type, args={"params": remainder.split()}, raw_text=raw_text)

        if command_type == CommandType.ROLE:
            role_parts = remainder.split(maxsplit=1)
            name = role_parts[0] if role_parts else None
            prompt = _unquote(role_parts[1].strip()) if len(role_parts) > 1 else None
            return Command(
                type=command_type,
                args={"name": name, "prompt": prompt or None},
                raw_text=raw_text,
            )

        return Command(type=command_type, args={}, raw_text=raw_text)

    @staticmethod
    def _looks_like_command(token: str, remainder: str) -> bool:
        """Distinguish a mistyped subcommand from free conversational text."""
        if token.startswith(_COMMAND_SIGILS):
            return True
        if remainder or not token.isalpha() or not token.islower():
            return False
        return bool(difflib.get_close_matches(token, SUBCOMMANDS, n=1, cutoff=_TYPO_CUTOFF))


def get_command_help(prefix: str = DEFAULT_COMMAND_PREFIX) -> str:
    """Get help text for commands."""
    return (
        f"{get_command_list(prefix)}\n\n"
        "In a direct conversation every message is answered. "
        f"In a group room, start a message with {prefix} or mention the bot to get a reply."
    )
