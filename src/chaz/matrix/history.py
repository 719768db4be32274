"""Reading room history from the homeserver."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import nio

from chaz.logging_config import get_logger

if TYPE_CHECKING:
    from chaz.room_state import ContextCursor

logger = get_logger(__name__)

MEDIA_MSGTYPES = frozenset({"m.image", "m.file", "m.video", "m.audio"})
HISTORY_PAGE_SIZE = 100
_MESSAGE_EVENT_TYPES = (nio.RoomMessageText, nio.RoomMessageNotice, nio.RoomMessageEmote, nio.RoomMessageMedia)


@dataclass(frozen=True)
class HistoryEvent:
    """A message event as the context builder sees it."""

    event_id: str
    sender: str
    timestamp: int
    msgtype: str
    body: str
    media_url: str | None = None
    mimetype: str | None = None
    mentions: tuple[str, ...] = ()

    @property
    def is_media(self) -> bool:
        """Whether this event carries an attachment."""
        return self.msgtype in MEDIA_MSGTYPES

    @property
    def is_notice(self) -> bool:
        """Whether this is an m.notice, which bots use for status output."""
        return self.msgtype == "m.notice"

    @classmethod
    def from_source(cls, source: dict[str, Any]) -> HistoryEvent:
        """Build from a raw event dict."""
        content = source.get("content", {})
        info = content.get("info") or {}
        mentions = (content.get("m.mentions") or {}).get("user_ids") or []
        return cls(
            event_id=source.get("event_id", ""),
            sender=source.get("sender", ""),
            timestamp=int(source.get("origin_server_ts", 0)),
            msgtype=content.get("msgtype", "m.text"),
            body=content.get("body", ""),
            media_url=content.get("url"),
            mimetype=info.get("mimetype"),
            mentions=tuple(mentions),
        )

    @classmethod
    def from_event(cls, event: nio.Event) -> HistoryEvent | None:
        """Build from a nio message event, or None for events that are not messages."""
        if not isinstance(event, _MESSAGE_EVENT_TYPES):
            return None
        return cls.from_source(event.source)


async def fetch_room_history(
    client: nio.AsyncClient,
    room_id: str,
    cursor: ContextCursor | None = None,
) -> list[HistoryEvent]:
    """Fetch room messages back to the cursor, or to room start when there is none.

    Args:
        client: The Matrix client instance
        room_id: The room ID to fetch messages from
        cursor: The `clear` event to stop at, exclusive

    Returns:
        Message events in chronological order

    """
    events: list[HistoryEvent] = []
    from_token = client.next_batch or None

    while True:
        response = await client.room_messages(
            room_id,
            start=from_token,
            limit=HISTORY_PAGE_SIZE,
            message_filter={"types": ["m.room.message"]},
            direction=nio.MessageDirection.back,
        )

        if not isinstance(response, nio.RoomMessagesResponse):
            logger.error("Failed to fetch room history", room_id=room_id, error=str(response))
            break

        if not response.chunk:
            break

        reached_cursor = False
        for event in response.chunk:
            # Room order, not origin_server_ts, decides what is before the cursor
            if cursor is not None and event.source.get("event_id") == cursor.event_id:
                reached_cursor = True
                break
            history_event = HistoryEvent.from_event(event)
            if history_event is None:
                continue
            events.append(history_event)

        if reached_cursor or not response.end or response.end == from_token:
            break
        from_token = response.end

    return list(reversed(events))  # Return in chronological order
