"""Tests for command parsing."""

from __future__ import annotations

import pytest

from chaz.commands import COMMAND_DOCS, SUBCOMMANDS, CommandParser, CommandType, get_command_help, get_command_list

parser = CommandParser("!chaz")


def test_message_without_prefix_is_not_a_command() -> None:
    """Room chatter is not parsed."""
    assert parser.parse("hello everyone") is None
    assert parser.parse("what does !chaz do?") is None


def test_prefix_must_be_a_whole_token() -> None:
    """A longer word starting with the prefix does not address the bot."""
    assert parser.parse("!chazzy help") is None
    assert not parser.is_addressed("!chazzy")


def test_bare_prefix_is_converse() -> None:
    """A bare prefix asks for a reply using the full context."""
    command = parser.parse("  !chaz  ")
    assert command is not None
    assert command.type == CommandType.CONVERSE
    assert command.args["text"] is None


def test_prefix_with_free_text_is_converse() -> None:
    """Trailing free text becomes the final user turn."""
    command = parser.parse("!chaz explain that")
    assert command is not None
    assert command.type == CommandType.CONVERSE
    assert command.args["text"] == "explain that"


def test_prefix_with_multiline_text() -> None:
    """The prefix may be followed by a newline."""
    command = parser.parse("!chaz\nwrite a haiku\nabout rust")
    assert command is not None
    assert command.type == CommandType.CONVERSE
    assert command.args["text"] == "write a haiku\nabout rust"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("!chaz print", CommandType.PRINT),
        ("!chaz list", CommandType.LIST),
        ("!chaz clear", CommandType.CLEAR),
        ("!chaz rename", CommandType.RENAME),
        ("!chaz help", CommandType.HELP),
        ("!chaz HELP", CommandType.HELP),
    ],
)
def test_argumentless_commands(text: str, expected: CommandType) -> None:
    """Simple subcommands are recognised case-insensitively."""
    command = parser.parse(text)
    assert command is not None
    assert command.type == expected
    assert command.args == {}


def test_send_command() -> None:
    """Send keeps the rest of the message verbatim."""
    command = parser.parse("!chaz send what is  2+2?")
    assert command is not None
    assert command.type == CommandType.SEND
    assert command.args["message"] == "what is  2+2?"


def test_model_command() -> None:
    """Model takes one selector."""
    command = parser.parse("!chaz model openai:gpt-4o")
    assert command is not None
    assert command.type == CommandType.MODEL
    assert command.args["selector"] == "openai:gpt-4o"

    command = parser.parse("!chaz model")
    assert command is not None
    assert command.args["selector"] is None


def test_backend_command() -> None:
    """Backend splits its parameters on whitespace."""
    command = parser.parse("!chaz backend b1 https://x/v1 KEY")
    assert command is not None
    assert command.type == CommandType.BACKEND
    assert command.args["params"] == ["b1", "https://x/v1", "KEY"]


def test_role_command_forms() -> None:
    """Role can show, select or define."""
    command = parser.parse("!chaz role")
    assert command is not None
    assert command.type == CommandType.ROLE
    assert command.args == {"name": None, "prompt": None}

    command = parser.parse("!chaz role bash")
    assert command is not None
    assert command.args == {"name": "bash", "prompt": None}

    command = parser.parse('!chaz role newrole "You are terse."')
    assert command is not None
    assert command.args == {"name": "newrole", "prompt": "You are terse."}

    command = parser.parse("!chaz role pirate Talk like a pirate")
    assert command is not None
    assert command.args == {"name": "pirate", "prompt": "Talk like a pirate"}


def test_command_like_tokens_are_unknown() -> None:
    """Sigils and near-miss subcommands are reported as unknown."""
    for text in ["!chaz /help", "!chaz --list", "!chaz .print", "!chaz halp", "!chaz modle"]:
        command = parser.parse(text)
        assert command is not None, text
        assert command.type == CommandType.UNKNOWN, text


def test_ordinary_words_are_conversation() -> None:
    """Single words that are not near a subcommand are conversation."""
    command = parser.parse("!chaz hello")
    assert command is not None
    assert command.type == CommandType.CONVERSE
    assert command.args["text"] == "hello"


def test_uses_model_turn() -> None:
    """Only commands that send a turn to a backend count against the quota."""
    counted = {CommandType.CONVERSE, CommandType.SEND, CommandType.RENAME}
    for text, command_type in [
        ("!chaz", CommandType.CONVERSE),
        ("!chaz send hi", CommandType.SEND),
        ("!chaz rename", CommandType.RENAME),
        ("!chaz list", CommandType.LIST),
        ("!chaz help", CommandType.HELP),
        ("!chaz print", CommandType.PRINT),
    ]:
        command = parser.parse(text)
        assert command is not None
        assert command.type == command_type
        assert command.uses_model_turn == (command_type in counted)


def test_custom_prefix() -> None:
    """The prefix comes from configuration."""
    custom = CommandParser("!bot")
    command = custom.parse("!bot list")
    assert command is not None
    assert command.type == CommandType.LIST
    assert custom.parse("!chaz list") is None


def test_help_lists_every_command() -> None:
    """Every documented command appears in the help text with the prefix."""
    help_text = get_command_help("!chaz")
    for syntax, _ in COMMAND_DOCS.values():
        assert syntax.format(prefix="!chaz") in help_text
    assert "!bot list" in get_command_list("!bot")
    assert set(SUBCOMMANDS) == {"print", "send", "model", "backend", "role", "list", "clear", "rename", "help"}
