"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from chaz.config import BackendType, Config

CONFIG_YAML = """
homeserver_url: https://matrix.example.org
username: chaz
allow_list: "@.*:example.org"
message_limit: 10
room_size_limit: 5
state_dir: ~/chaz-state
chat_summary_model: openai:gpt-4o-mini
role: cave-chaz
disable_media_context: true
roles:
  - name: pirate
    description: Arr
    prompt: Talk like a pirate.
    example:
      - user: User
        message: Hi
      - user: Assistant
        message: Ahoy
backends:
  - type: openai
    api_base: https://api.example.org/v1
    api_key: mock_test_key
    models:
      - name: gpt-4o
      - name: gpt-4o-mini
  - type: aichat
    name: local
    config_dir: ~/aichat
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


def test_from_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Every field is read from YAML."""
    monkeypatch.delenv("CHAZ_PASSWORD", raising=False)
    config = Config.from_yaml(_write(tmp_path, CONFIG_YAML))

    assert config.homeserver_url == "https://matrix.example.org"
    assert config.password is None
    assert config.message_limit == 10
    assert config.room_size_limit == 5
    assert config.state_path == Path("~/chaz-state").expanduser()
    assert config.default_role == "cave-chaz"
    assert config.disable_media_context
    assert config.command_prefix == "!chaz"
    assert config.roles[0].example[0].user == "user"
    assert [b.backend_name for b in config.backends] == ["openai", "local"]
    assert config.backends[1].type == BackendType.AICHAT
    assert [m.name for m in config.backends[0].models] == ["gpt-4o", "gpt-4o-mini"]


def test_password_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """The password may come from the environment."""
    monkeypatch.setenv("CHAZ_PASSWORD", "from-env")
    config = Config.from_yaml(_write(tmp_path, "homeserver_url: https://m.org\nusername: chaz\n"))
    assert config.password == "from-env"


def test_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Optional fields fall back to safe defaults."""
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "state"))
    config = Config.from_yaml(_write(tmp_path, "homeserver_url: https://m.org\nusername: chaz\nbackends:\n"))
    assert config.allow_list == ""
    assert config.message_limit == 0
    assert config.room_size_limit == 0
    assert config.default_role == "chaz"
    assert config.backends == []
    assert [b.type for b in config.effective_backends()] == [BackendType.AICHAT]
    assert config.state_path == tmp_path / "state" / "chaz"


def test_missing_file(tmp_path: Path) -> None:
    """A missing config file is fatal."""
    with pytest.raises(FileNotFoundError):
        Config.from_yaml(tmp_path / "nope.yaml")


def test_invalid_values() -> None:
    """Bad values are rejected by validation."""
    with pytest.raises(ValidationError):
        Config(homeserver_url="https://m.org", username="chaz", allow_list="([unclosed")
    with pytest.raises(ValidationError):
        Config(homeserver_url="https://m.org", username="chaz", message_limit=-1)
    with pytest.raises(ValidationError):
        Config.model_validate(
            {
                "homeserver_url": "https://m.org",
                "username": "chaz",
                "roles": [{"name": "x", "example": [{"user": "narrator", "message": "hi"}]}],
            },
        )


def test_round_trip_through_yaml(tmp_path: Path) -> None:
    """A dumped config loads back unchanged."""
    config = Config.from_yaml(_write(tmp_path, CONFIG_YAML))
    dumped = yaml.safe_dump(config.model_dump(mode="json"))
    assert Config.from_yaml(_write(tmp_path, dumped)) == config


def test_example_config_loads(monkeypatch: pytest.MonkeyPatch) -> None:
    """The shipped example config is valid."""
    monkeypatch.delenv("CHAZ_PASSWORD", raising=False)
    config = Config.from_yaml(Path(__file__).parent.parent / "config.example.yaml")
    assert [backend.backend_name for backend in config.backends] == ["openai", "aichat"]
    assert config.roles[0].example[1].user == "assistant"
