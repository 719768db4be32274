"""Room classification helpers."""

from __future__ import annotations

from time import monotonic

import nio

from chaz.logging_config import get_logger

logger = get_logger(__name__)

# Rooms known to be direct chats. Only positive answers are cached since a
# small room can grow.
DM_ROOM_CACHE: dict[str, bool] = {}
DIRECT_ROOMS_CACHE: dict[str, set[str]] = {}
# Rooms whose member state had no is_direct flag, with the monotonic time the
# answer expires
NOT_DM_ROOM_CACHE: dict[str, float] = {}
NOT_DM_CACHE_SECONDS = 300.0

# Rooms with fewer joined members than this are treated as direct chats
DIRECT_ROOM_MEMBER_THRESHOLD = 3


async def _direct_room_ids(client: nio.AsyncClient) -> set[str]:
    """Room IDs listed in the account's m.direct data."""
    user_id = client.user_id
    if user_id in DIRECT_ROOMS_CACHE:
        return DIRECT_ROOMS_CACHE[user_id]

    response = await client.list_direct_rooms()
    if not isinstance(response, nio.DirectRoomsResponse):
        logger.debug("No m.direct account data", error=str(response))
        return set()

    room_ids = {room_id for rooms in response.rooms.values() for room_id in rooms}
    DIRECT_ROOMS_CACHE[user_id] = room_ids
    return room_ids


async def is_dm_room(client: nio.AsyncClient, room_id: str) -> bool:
    """Check whether a room is a direct (two-party) conversation.

    A room is direct when m.direct lists it, when it has fewer than three
    members, or when a member event marks it ``is_direct``.
    """
    if DM_ROOM_CACHE.get(room_id):
        return True

    if room_id in await _direct_room_ids(client):
        DM_ROOM_CACHE[room_id] = True
        return True

    room = client.rooms.get(room_id)
    if room is not None and 0 < len(room.users) < DIRECT_ROOM_MEMBER_THRESHOLD:
        return True

    if NOT_DM_ROOM_CACHE.get(room_id, 0.0) > monotonic():
        return False

    response = await client.room_get_state(room_id)
    if isinstance(response, nio.RoomGetStateResponse):
        for event in response.events:
            if event.get("type") == "m.room.member" and event.get("content", {}).get("is_direct"):
                DM_ROOM_CACHE[room_id] = True
                return True

    NOT_DM_ROOM_CACHE[room_id] = monotonic() + NOT_DM_CACHE_SECONDS
    return False
