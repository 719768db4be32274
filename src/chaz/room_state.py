"""Per-room conversation state and the per-room serialization around it."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .backends import ModelSelection

logger = get_logger(__name__)


@dataclass(frozen=True)
class ContextCursor:
    """The `clear` event that bounds a room's context.

    The event itself and everything before it in room order are out of scope.
    The timestamp only orders one cursor against another.
    """

    event_id: str
    timestamp: int


@dataclass
class RoomConversationState:
    """Mutable state of one room."""

    room_id: str
    selected_role: str
    selected_backend_model: ModelSelection | None = None
    context_cursor: ContextCursor | None = None
    per_account_counts: dict[str, int] = field(default_factory=dict)
    quota_notified: set[str] = field(default_factory=set)

    def advance_cursor(self, cursor: ContextCursor) -> bool:
        """Move the context cursor forward. Never moves it back.

        Returns:
            True if the cursor moved

        """
        current = self.context_cursor
        if current is not None and cursor.timestamp < current.timestamp:
            logger.warning(
                "Refusing to move context cursor backwards",
                room_id=self.room_id,
                current=current.event_id,
                requested=cursor.event_id,
            )
            return False
        self.context_cursor = cursor
        logger.info("Context cleared", room_id=self.room_id, cursor=cursor.event_id)
        return True

    def message_count(self, account: str) -> int:
        """Number of model turns this account has used in the room."""
        return self.per_account_counts.get(account, 0)

    def record_turn(self, account: str) -> int:
        """Count one model turn against ``account`` and return the new total."""
        count = self.per_account_counts.get(account, 0) + 1
        self.per_account_counts[account] = count
        return count


class RoomStateStore:
    """One state handle and one lock per room.

    Events for the same room run one at a time in arrival order. Different rooms
    never wait on each other.
    """

    def __init__(self, default_role: str) -> None:
        self.default_role = default_role
        self._states: dict[str, RoomConversationState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._states

    def get(self, room_id: str) -> RoomConversationState:
        """Return the state of a room, creating it on first use."""
        state = self._states.get(room_id)
        if state is None:
            state = RoomConversationState(room_id=room_id, selected_role=self.default_role)
            self._states[room_id] = state
            logger.debug("Created room state", room_id=room_id)
        return state

    def lock_for(self, room_id: str) -> asyncio.Lock:
        """The lock that serializes event processing for a room."""
        lock = self._locks.get(room_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[room_id] = lock
        return lock

    @asynccontextmanager
    async def session(self, room_id: str) -> AsyncIterator[RoomConversationState]:
        """Hold the room's lock for the duration of one event."""
        async with self.lock_for(room_id):
            yield self.get(room_id)

    def clear(self) -> None:
        """Forget every room's state."""
        self._states.clear()
        logger.info("Cleared all room state")
