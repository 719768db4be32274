"""Tests for the role catalog."""

from __future__ import annotations

import pytest

from chaz.config import RoleConfig
from chaz.error_handling import UnknownRoleError
from chaz.roles import Role, RoleCatalog


def test_builtin_roles_are_available() -> None:
    """The catalog ships the built-in personas and shell helpers."""
    catalog = RoleCatalog.from_config([])
    assert catalog.names() == ["chaz", "chazmina", "cave-chaz", "cave-chazmina", "bash", "fish", "zsh", "nu"]

    chaz = catalog.get("chaz")
    assert "third person" in chaz.prompt
    assert [example.speaker for example in chaz.examples] == ["user", "assistant"]
    assert chaz.examples[1].text == "Chaz is ready."

    assert "Nushell" in catalog.get("nu").prompt
    assert catalog.get("bash").examples == ()


def test_config_roles_shadow_builtins() -> None:
    """A configured role with a built-in's name replaces it."""
    catalog = RoleCatalog.from_config(
        [
            RoleConfig(name="chaz", prompt="You are plain Chaz."),
            RoleConfig(
                name="pirate",
                description="Arr",
                prompt="Talk like a pirate.",
                example=[{"user": "User", "message": "Hi"}, {"user": "assistant", "message": "Ahoy"}],
            ),
        ],
    )
    assert catalog.get("chaz").prompt == "You are plain Chaz."
    assert catalog.get("chaz").examples == ()
    assert "pirate" in catalog
    assert len(catalog) == 9
    pirate = catalog.get("pirate")
    assert [(e.speaker, e.text) for e in pirate.examples] == [("user", "Hi"), ("assistant", "Ahoy")]


def test_unknown_role_lists_known_roles() -> None:
    """Looking up a missing role is a user-facing error."""
    catalog = RoleCatalog([Role(name="a"), Role(name="b")])
    with pytest.raises(UnknownRoleError) as exc_info:
        catalog.get("c")
    assert exc_info.value.known_roles == ["a", "b"]
    assert "Unknown role 'c'" in str(exc_info.value)
    assert catalog.find("c") is None


def test_upsert_replaces_whole_definition() -> None:
    """Redefining a role is last-write-wins."""
    catalog = RoleCatalog()
    assert catalog.upsert(Role(name="newrole", prompt="You are terse.")) is None
    previous = catalog.upsert(Role(name="newrole", prompt="Say less."))
    assert previous is not None
    assert previous.prompt == "You are terse."
    assert catalog.get("newrole").prompt == "Say less."
    assert catalog.names() == ["newrole"]


def test_describe() -> None:
    """The description shows every part that is set."""
    catalog = RoleCatalog.from_config([])
    text = catalog.get("chaz").describe()
    assert text.startswith("Role: chaz\nDescription: Chaz is Chaz\nPrompt: ")
    assert "Example Messages:\n  USER: Are you ready?\n  ASSISTANT: Chaz is ready." in text

    assert Role(name="bare").describe() == "Role: bare"
