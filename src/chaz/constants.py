"""Shared constants for the chaz package.

This module does not import anything from the internal codebase.
"""

import os
from pathlib import Path

BOT_NAME = "chaz"

DEFAULT_COMMAND_PREFIX = "!chaz"

# Used when the config file names no role
DEFAULT_ROLE = "chaz"

# Fallback backend names, by backend type
AICHAT_BACKEND_NAME = "aichat"
OPENAI_BACKEND_NAME = "openai"

AICHAT_BINARY = os.getenv("CHAZ_AICHAT_BINARY", "aichat")

# Timeout for a single completion request, in seconds
BACKEND_TIMEOUT_SECONDS = float(os.getenv("CHAZ_BACKEND_TIMEOUT", "300"))

SESSION_FILE_NAME = "session.yaml"
LOGS_DIR_NAME = "logs"

# Invite joins are retried with a doubling delay until this ceiling
JOIN_RETRY_INITIAL_DELAY = 2
JOIN_RETRY_MAX_DELAY = 3600

SYNC_TIMEOUT_MS = 30000


def default_state_dir() -> Path:
    """Return $XDG_STATE_HOME/chaz, falling back to ~/.local/state/chaz."""
    xdg_state_home = os.getenv("XDG_STATE_HOME")
    base = Path(xdg_state_home) if xdg_state_home else Path.home() / ".local" / "state"
    return base / BOT_NAME
