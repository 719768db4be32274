"""Matrix client operations and utilities."""

from __future__ import annotations

import asyncio
import os
import ssl as ssl_module
from typing import TYPE_CHECKING, Any

import markdown
import nio

from chaz.constants import JOIN_RETRY_INITIAL_DELAY, JOIN_RETRY_MAX_DELAY, SESSION_FILE_NAME
from chaz.logging_config import get_logger

from .state import SessionState

if TYPE_CHECKING:
    from pathlib import Path

logger = get_logger(__name__)

DEVICE_NAME = "chaz"


def _maybe_ssl_context(homeserver: str) -> ssl_module.SSLContext | None:
    if homeserver.startswith("https://"):
        ssl_context = ssl_module.create_default_context()
        if os.getenv("MATRIX_SSL_VERIFY", "true").lower() == "false":
            # Dev homeservers with self-signed certs
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl_module.CERT_NONE
        return ssl_context
    return None


def session_path(state_dir: Path) -> Path:
    """Where the Matrix session is stored."""
    return state_dir / SESSION_FILE_NAME


def restore_session(homeserver: str, state_dir: Path) -> nio.AsyncClient | None:
    """Build a client from a saved session, or None when there is no usable one."""
    session = SessionState.load(session_path(state_dir))
    if session is None:
        return None
    if session.homeserver != homeserver:
        logger.warning("Saved session is for another homeserver, logging in again", saved=session.homeserver)
        return None

    client = nio.AsyncClient(
        homeserver,
        session.user_id,
        device_id=session.device_id,
        ssl=_maybe_ssl_context(homeserver),
    )
    client.user_id = session.user_id
    client.access_token = session.access_token
    if session.sync_token:
        client.next_batch = session.sync_token
    logger.info(f"Restored session for {session.user_id}")
    return client


async def login(homeserver: str, username: str, password: str, state_dir: Path) -> nio.AsyncClient:
    """Login to Matrix, save the session and return the authenticated client.

    Args:
        homeserver: The Matrix homeserver URL
        username: Localpart or full Matrix user ID
        password: The account password
        state_dir: Directory the session is saved in

    Returns:
        Authenticated AsyncClient instance

    Raises:
        ValueError: If login fails

    """
    client = nio.AsyncClient(homeserver, username, ssl=_maybe_ssl_context(homeserver))

    response = await client.login(password, device_name=DEVICE_NAME)
    if not isinstance(response, nio.LoginResponse):
        await client.close()
        msg = f"Failed to login {username}: {response}"
        raise ValueError(msg)

    logger.info(f"Successfully logged in: {response.user_id}")
    SessionState(
        homeserver=homeserver,
        user_id=response.user_id,
        device_id=response.device_id,
        access_token=response.access_token,
    ).save(session_path(state_dir))
    return client


def save_sync_token(client: nio.AsyncClient, homeserver: str, state_dir: Path) -> None:
    """Remember the latest sync token so a restart does not replay old events."""
    if not client.next_batch or not client.access_token:
        return
    SessionState(
        homeserver=homeserver,
        user_id=client.user_id,
        device_id=client.device_id,
        access_token=client.access_token,
        sync_token=client.next_batch,
    ).save(session_path(state_dir))


async def join_room(client: nio.AsyncClient, room_id: str) -> bool:
    """Join a Matrix room.

    Args:
        client: Authenticated Matrix client
        room_id: Room ID or alias to join

    Returns:
        True if successful, False otherwise

    """
    response = await client.join(room_id)
    if isinstance(response, nio.JoinResponse):
        logger.info(f"Joined room: {room_id}")
        return True
    logger.warning(f"Could not join room {room_id}: {response}")
    return False


async def join_room_with_retry(
    client: nio.AsyncClient,
    room_id: str,
    initial_delay: float = JOIN_RETRY_INITIAL_DELAY,
    max_delay: float = JOIN_RETRY_MAX_DELAY,
) -> bool:
    """Join a room, retrying with a doubling delay.

    Homeservers sometimes reject a join that races the invite. Gives up once the
    next delay would exceed ``max_delay``.
    """
    delay = initial_delay
    while True:
        if await join_room(client, room_id):
            return True
        if delay > max_delay:
            logger.error(f"Giving up joining room {room_id}")
            return False
        logger.info(f"Retrying join of {room_id} in {delay}s")
        await asyncio.sleep(delay)
        delay *= 2


async def get_room_member_count(client: nio.AsyncClient, room_id: str) -> int:
    """Get the number of joined members of a room.

    Falls back to the locally synced member list if the request fails.
    """
    response = await client.joined_members(room_id)
    if isinstance(response, nio.JoinedMembersResponse):
        return len(response.members)
    logger.warning(f"Could not check members for room {room_id}")
    room = client.rooms.get(room_id)
    return len(room.users) if room is not None else 0


async def leave_room(client: nio.AsyncClient, room_id: str) -> bool:
    """Leave a Matrix room.

    Args:
        client: Authenticated Matrix client
        room_id: The room ID to leave

    Returns:
        True if successfully left the room, False otherwise

    """
    response = await client.room_leave(room_id)
    if isinstance(response, nio.RoomLeaveResponse):
        logger.info(f"Left room {room_id}")
        return True
    logger.error(f"Failed to leave room {room_id}: {response}")
    return False


async def send_message(client: nio.AsyncClient, room_id: str, content: dict[str, Any]) -> str | None:
    """Send a message to a Matrix room.

    Args:
        client: Authenticated Matrix client
        room_id: The room ID to send the message to
        content: The message content dictionary

    Returns:
        The event ID of the sent message, or None if sending failed

    """
    response = await client.room_send(
        room_id=room_id,
        message_type="m.room.message",
        content=content,
        ignore_unverified_devices=True,
    )
    if isinstance(response, nio.RoomSendResponse):
        logger.debug(f"Sent message to {room_id}: {response.event_id}")
        return str(response.event_id)
    logger.error(f"Failed to send message to {room_id}: {response}")
    return None


def markdown_to_html(text: str) -> str:
    """Convert markdown text to HTML for Matrix formatted messages."""
    md = markdown.Markdown(
        extensions=[
            "markdown.extensions.fenced_code",
            "markdown.extensions.tables",
            "markdown.extensions.nl2br",
        ],
    )
    html_text: str = md.convert(text)
    return html_text


def build_markdown_content(text: str, msgtype: str = "m.text") -> dict[str, Any]:
    """Message content with both the plain body and rendered HTML."""
    return {
        "msgtype": msgtype,
        "body": text,
        "format": "org.matrix.custom.html",
        "formatted_body": markdown_to_html(text),
    }


async def send_markdown(client: nio.AsyncClient, room_id: str, text: str) -> str | None:
    """Send a model reply, rendered from markdown."""
    return await send_message(client, room_id, build_markdown_content(text))


async def send_notice(client: nio.AsyncClient, room_id: str, text: str) -> str | None:
    """Send bot status output as an m.notice."""
    return await send_message(client, room_id, build_markdown_content(text, msgtype="m.notice"))


async def _put_state(client: nio.AsyncClient, room_id: str, event_type: str, content: dict[str, Any]) -> bool:
    response = await client.room_put_state(room_id=room_id, event_type=event_type, content=content)
    if isinstance(response, nio.RoomPutStateResponse):
        logger.info(f"Set {event_type} in {room_id}")
        return True
    logger.warning(f"Failed to set {event_type} in {room_id}: {response}")
    return False


async def set_room_name(client: nio.AsyncClient, room_id: str, name: str) -> bool:
    """Set the room name. Returns False if the homeserver refused."""
    return await _put_state(client, room_id, "m.room.name", {"name": name})


async def set_room_topic(client: nio.AsyncClient, room_id: str, topic: str) -> bool:
    """Set the room topic. Returns False if the homeserver refused."""
    return await _put_state(client, room_id, "m.room.topic", {"topic": topic})
