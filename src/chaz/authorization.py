"""Admission control: who may invite the bot and who it answers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .logging_config import get_logger

if TYPE_CHECKING:
    from .room_state import RoomConversationState

logger = get_logger(__name__)


class DenialReason(Enum):
    """Why a message is not acted on."""

    NOT_ALLOWED = "not_allowed"
    QUOTA_EXCEEDED = "quota_exceeded"
    ROOM_TOO_LARGE = "room_too_large"


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of an admission check. A denial is a policy outcome, not an error."""

    allowed: bool
    reason: DenialReason | None = None
    notify: bool = False

    @classmethod
    def allow(cls) -> AdmissionDecision:
        """Let the message through."""
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenialReason, *, notify: bool = False) -> AdmissionDecision:
        """Stop the message, optionally telling the room once."""
        return cls(allowed=False, reason=reason, notify=notify)


class AdmissionControl:
    """Allow-list, per-account quota and room size ceiling.

    An empty allow-list denies everyone.
    """

    def __init__(self, allow_list: str, message_limit: int = 0, room_size_limit: int = 0) -> None:
        self._pattern = re.compile(allow_list) if allow_list else None
        self.message_limit = message_limit
        self.room_size_limit = room_size_limit

    def is_allowed(self, account: str) -> bool:
        """Whether the whole account id matches the allow-list."""
        if self._pattern is None:
            return False
        return self._pattern.fullmatch(account) is not None

    def should_accept(self, inviting_account: str) -> bool:
        """Whether to accept an invite from this account."""
        allowed = self.is_allowed(inviting_account)
        if not allowed:
            logger.info("Ignoring invite from account not on the allow list", sender=inviting_account)
        return allowed

    def room_too_large(self, member_count: int) -> bool:
        """Whether a room with this many members exceeds the room size limit."""
        return self.room_size_limit > 0 and member_count > self.room_size_limit

    def should_respond(
        self,
        state: RoomConversationState,
        sender: str,
        member_count: int,
        *,
        uses_model_turn: bool,
        is_direct: bool,
    ) -> AdmissionDecision:
        """Decide whether to act on an otherwise eligible message.

        The quota only applies to messages that would send a turn to a backend.
        """
        if not self.is_allowed(sender):
            return AdmissionDecision.deny(DenialReason.NOT_ALLOWED)

        if self.room_too_large(member_count):
            logger.info(
                "Room exceeds the room size limit",
                room_id=state.room_id,
                members=member_count,
                limit=self.room_size_limit,
            )
            return AdmissionDecision.deny(DenialReason.ROOM_TOO_LARGE)

        if uses_model_turn and self.message_limit > 0 and state.message_count(sender) >= self.message_limit:
            logger.warning(
                "Account has used up its message limit",
                room_id=state.room_id,
                sender=sender,
                count=state.message_count(sender),
            )
            notify = is_direct and sender not in state.quota_notified
            if notify:
                state.quota_notified.add(sender)
            return AdmissionDecision.deny(DenialReason.QUOTA_EXCEEDED, notify=notify)

        return AdmissionDecision.allow()
