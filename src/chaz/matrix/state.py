"""Pydantic model for the persisted Matrix session."""

from pathlib import Path
from typing import Self

import yaml
from pydantic import BaseModel


class SessionState(BaseModel):
    """Everything needed to restore a logged-in device."""

    homeserver: str
    user_id: str
    device_id: str
    access_token: str
    sync_token: str | None = None

    @classmethod
    def load(cls, path: Path) -> Self | None:
        """Load the session from file, or None if there is none."""
        if not path.exists():
            return None

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.model_validate(data)

    def save(self, path: Path) -> None:
        """Save the session to file, readable only by the owner."""
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
        path.chmod(0o600)
