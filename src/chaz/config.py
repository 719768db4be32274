"""Pydantic models for configuration."""

from __future__ import annotations

import os
import re
from enum import Enum
from pathlib import Path
from typing import Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .constants import (
    AICHAT_BACKEND_NAME,
    DEFAULT_COMMAND_PREFIX,
    DEFAULT_ROLE,
    OPENAI_BACKEND_NAME,
    default_state_dir,
)
from .logging_config import get_logger

logger = get_logger(__name__)

load_dotenv()


class BackendType(str, Enum):
    """How a backend is invoked."""

    AICHAT = "aichat"
    OPENAI = "openai"


class ModelConfig(BaseModel):
    """A model known to a backend."""

    name: str = Field(description="Model id passed to the backend, e.g. gpt-4o")


class BackendConfig(BaseModel):
    """Configuration for a single LLM backend."""

    type: BackendType = Field(description="Either the aichat adapter or an OpenAI compatible API")
    name: str | None = Field(default=None, description="Backend name, used as the model prefix")
    api_base: str | None = Field(default=None, description="Base URL of an OpenAI compatible API")
    api_key: str | None = Field(default=None, description="API key for an OpenAI compatible API")
    models: list[ModelConfig] = Field(default_factory=list, description="Models known to this backend")
    config_dir: str | None = Field(default=None, description="Config directory handed to aichat")

    @property
    def backend_name(self) -> str:
        """Name of this backend, falling back to the backend type."""
        if self.name:
            return self.name
        return AICHAT_BACKEND_NAME if self.type == BackendType.AICHAT else OPENAI_BACKEND_NAME


class ExampleMessage(BaseModel):
    """One turn of a role's example conversation."""

    user: Literal["user", "assistant"] = Field(description="Who speaks this turn")
    message: str

    @field_validator("user", mode="before")
    @classmethod
    def _lowercase_speaker(cls, value: object) -> object:
        return value.lower() if isinstance(value, str) else value


class RoleConfig(BaseModel):
    """A named system prompt with optional example exchanges."""

    name: str
    description: str | None = None
    prompt: str | None = None
    example: list[ExampleMessage] = Field(default_factory=list)


class Config(BaseModel):
    """Complete configuration from YAML."""

    homeserver_url: str
    username: str
    password: str | None = Field(default=None, description="Asked for on the command line when unset")
    allow_list: str = Field(default="", description="Regex of accounts allowed to use the bot")
    message_limit: int = Field(default=0, ge=0, description="Per-account message limit, 0 is unlimited")
    room_size_limit: int = Field(default=0, ge=0, description="Largest room to respond in, 0 is unlimited")
    state_dir: str | None = Field(default=None, description="Defaults to $XDG_STATE_HOME/chaz")
    chat_summary_model: str | None = Field(default=None, description="Model used for rename summaries")
    role: str | None = Field(default=None, description="Default role")
    roles: list[RoleConfig] = Field(default_factory=list, description="User-defined roles")
    disable_media_context: bool = Field(default=False, description="Leave media out of the context")
    backends: list[BackendConfig] = Field(default_factory=list, description="LLM backends")
    command_prefix: str = Field(default=DEFAULT_COMMAND_PREFIX, description="Token that addresses the bot")

    @field_validator("allow_list", mode="before")
    @classmethod
    def _valid_allow_list(cls, value: object) -> object:
        if value is None:
            return ""
        if isinstance(value, str) and value:
            try:
                re.compile(value)
            except re.error as e:
                msg = f"allow_list is not a valid regular expression: {e}"
                raise ValueError(msg) from e
        return value

    @field_validator("roles", "backends", mode="before")
    @classmethod
    def _none_list(cls, value: object) -> object:
        return [] if value is None else value

    @classmethod
    def from_yaml(cls, config_path: Path) -> Config:
        """Create a Config instance from a YAML file."""
        if not config_path.exists():
            msg = f"Configuration file not found: {config_path}"
            raise FileNotFoundError(msg)

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        config = cls(**data)
        if config.password is None:
            config.password = os.getenv("CHAZ_PASSWORD")
        logger.info(f"Loaded configuration from {config_path}")
        logger.info(f"Found {len(config.backends)} backends and {len(config.roles)} roles")
        return config

    @property
    def default_role(self) -> str:
        """Role name used by rooms that have not picked one."""
        return self.role or DEFAULT_ROLE

    @property
    def state_path(self) -> Path:
        """Resolved state directory."""
        if self.state_dir:
            return Path(self.state_dir).expanduser()
        return default_state_dir()

    def effective_backends(self) -> list[BackendConfig]:
        """Configured backends, or a lone aichat adapter when none are configured."""
        if self.backends:
            return list(self.backends)
        return [BackendConfig(type=BackendType.AICHAT)]
