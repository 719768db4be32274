"""Role catalog: named system prompts with example exchanges."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from .defaults import builtin_roles
from .error_handling import UnknownRoleError
from .logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .config import RoleConfig

logger = get_logger(__name__)


@dataclass(frozen=True)
class RoleExample:
    """A single example turn shown to the model before the conversation."""

    speaker: Literal["user", "assistant"]
    text: str


@dataclass(frozen=True)
class Role:
    """A named system prompt."""

    name: str
    description: str = ""
    prompt: str = ""
    examples: tuple[RoleExample, ...] = ()

    @classmethod
    def from_config(cls, role_config: RoleConfig) -> Role:
        """Build a Role from its YAML definition."""
        return cls(
            name=role_config.name,
            description=role_config.description or "",
            prompt=role_config.prompt or "",
            examples=tuple(RoleExample(speaker=ex.user, text=ex.message) for ex in role_config.example),
        )

    def describe(self) -> str:
        """Human-readable summary of the role."""
        lines = [f"Role: {self.name}"]
        if self.description:
            lines.append(f"Description: {self.description}")
        if self.prompt:
            lines.append(f"Prompt: {self.prompt}")
        if self.examples:
            lines.append("Example Messages:")
            lines.extend(f"  {example.speaker.upper()}: {example.text}" for example in self.examples)
        return "\n".join(lines)


class RoleCatalog:
    """Built-in and user-defined roles, keyed by name.

    Entries are replaced whole, so readers always see either the old or the new
    definition of a role.
    """

    def __init__(self, roles: Iterable[Role] = ()) -> None:
        self._roles: dict[str, Role] = {}
        for role in roles:
            self._roles[role.name] = role

    @classmethod
    def from_config(cls, role_configs: Iterable[RoleConfig]) -> RoleCatalog:
        """Create the catalog from the built-ins plus config roles, config winning on name clashes."""
        catalog = cls(Role.from_config(rc) for rc in builtin_roles())
        for role_config in role_configs:
            catalog.upsert(Role.from_config(role_config))
        return catalog

    def __contains__(self, name: object) -> bool:
        return name in self._roles

    def __len__(self) -> int:
        return len(self._roles)

    def names(self) -> list[str]:
        """Role names in catalog order."""
        return list(self._roles)

    def get(self, name: str) -> Role:
        """Look up a role.

        Raises:
            UnknownRoleError: If no role has this name

        """
        role = self._roles.get(name)
        if role is None:
            raise UnknownRoleError(name, self.names())
        return role

    def find(self, name: str) -> Role | None:
        """Look up a role, returning None when it does not exist."""
        return self._roles.get(name)

    def upsert(self, role: Role) -> Role | None:
        """Create or replace a role, returning the definition it replaced."""
        previous = self._roles.get(role.name)
        self._roles[role.name] = role
        logger.info("Role defined", role=role.name, replaced=previous is not None)
        return previous
