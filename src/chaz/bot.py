"""The chaz bot: Matrix event callbacks wired to the conversation core."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from functools import cached_property, partial
from typing import TYPE_CHECKING, Any

import nio

from .ai import dispatch, load_backend_registry
from .authorization import AdmissionControl, DenialReason
from .command_handler import CommandHandlerContext, handle_command
from .commands import Command, CommandParser, CommandType
from .constants import LOGS_DIR_NAME, SYNC_TIMEOUT_MS
from .context import ContextBuilder
from .error_handling import MalformedInviteError
from .logging_config import get_logger, setup_logging
from .matrix.client import (
    get_room_member_count,
    join_room_with_retry,
    leave_room,
    login,
    restore_session,
    save_sync_token,
    send_markdown,
    send_notice,
    set_room_name,
    set_room_topic,
)
from .matrix.history import HistoryEvent, fetch_room_history
from .matrix.rooms import is_dm_room
from .roles import RoleCatalog
from .room_state import RoomStateStore

if TYPE_CHECKING:
    from collections.abc import Coroutine

    from .backends import BackendRegistry
    from .config import Config

logger = get_logger(__name__)


@dataclass
class ChazBot:
    """A logged-in bot account serving every room it has joined."""

    config: Config
    registry: BackendRegistry
    catalog: RoleCatalog
    client: nio.AsyncClient

    admission: AdmissionControl = field(init=False)
    parser: CommandParser = field(init=False)
    rooms: RoomStateStore = field(init=False)
    _tasks: set[asyncio.Task[None]] = field(default_factory=set, init=False)

    def __post_init__(self) -> None:
        self.admission = AdmissionControl(
            self.config.allow_list,
            message_limit=self.config.message_limit,
            room_size_limit=self.config.room_size_limit,
        )
        self.parser = CommandParser(self.config.command_prefix)
        self.rooms = RoomStateStore(self.config.default_role)

    @property
    def user_id(self) -> str:
        """The bot's own Matrix ID."""
        return str(self.client.user_id)

    @cached_property
    def handler_context(self) -> CommandHandlerContext:
        """Dependencies handed to the command handler."""
        builder = ContextBuilder(
            bot_user_id=self.user_id,
            command_parser=self.parser,
            include_media=not self.config.disable_media_context,
        )
        return CommandHandlerContext(
            config=self.config,
            registry=self.registry,
            catalog=self.catalog,
            builder=builder,
            fetch_history=partial(fetch_room_history, self.client),
            send_reply=partial(send_markdown, self.client),
            send_notice=partial(send_notice, self.client),
            set_room_name=partial(set_room_name, self.client),
            set_room_topic=partial(set_room_topic, self.client),
            complete=partial(dispatch, self.registry),
        )

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        """Run work outside the sync loop so one slow room never blocks the others."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _on_invite(self, room: nio.MatrixRoom, event: nio.InviteMemberEvent) -> None:
        if event.state_key != self.user_id or event.membership != "invite":
            return
        logger.info("Received invite", room_id=room.room_id, sender=event.sender)
        if not self.admission.should_accept(event.sender):
            return
        self._spawn(self._accept_invite(room.room_id))

    async def _accept_invite(self, room_id: str) -> None:
        if not await join_room_with_retry(self.client, room_id):
            return
        member_count = await get_room_member_count(self.client, room_id)
        if self.admission.room_too_large(member_count):
            error = MalformedInviteError(room_id, member_count, self.admission.room_size_limit)
            logger.warning("Leaving room after invite", room_id=room_id, error=str(error))
            await leave_room(self.client, room_id)

    async def _on_message(self, room: nio.MatrixRoom, event: nio.RoomMessageText) -> None:
        if event.sender == self.user_id:
            return

        trigger = HistoryEvent.from_event(event)
        if trigger is None:
            return

        is_direct = await is_dm_room(self.client, room.room_id)
        command = self.parser.parse(event.body)
        if command is None:
            mentioned = self.user_id in trigger.mentions
            if not is_direct and not mentioned:
                # Observed only, it stays in history for later context
                return
            command = Command(type=CommandType.CONVERSE, args={"text": event.body.strip()}, raw_text=event.body)

        self._spawn(self._process(room.room_id, command, trigger, is_direct=is_direct))

    async def _process(self, room_id: str, command: Command, trigger: HistoryEvent, *, is_direct: bool) -> None:
        """Admit and run one command. Events for the same room run one at a time."""
        async with self.rooms.session(room_id) as state:
            member_count = await get_room_member_count(self.client, room_id)
            decision = self.admission.should_respond(
                state,
                trigger.sender,
                member_count,
                uses_model_turn=command.uses_model_turn,
                is_direct=is_direct,
            )
            if not decision.allowed:
                logger.info(
                    "Not responding",
                    room_id=room_id,
                    sender=trigger.sender,
                    reason=decision.reason.value if decision.reason else None,
                )
                if decision.reason == DenialReason.ROOM_TOO_LARGE:
                    await leave_room(self.client, room_id)
                elif decision.notify:
                    limit = self.admission.message_limit
                    text = f"{self.parser.prefix} Error: you have used up your message limit of {limit} messages."
                    await send_notice(self.client, room_id, text)
                return

            await handle_command(context=self.handler_context, state=state, command=command, trigger=trigger)

    async def _on_sync(self, _response: nio.SyncResponse) -> None:
        save_sync_token(self.client, self.config.homeserver_url, self.config.state_path)

    async def run(self) -> None:
        """Sync once to skip old messages, then serve forever."""
        # Registered before the first sync so invites sent while offline are handled
        self.client.add_event_callback(self._on_invite, nio.InviteMemberEvent)

        response = await self.client.sync(timeout=SYNC_TIMEOUT_MS, full_state=True)
        if isinstance(response, nio.SyncError):
            msg = f"Initial sync failed: {response.message}"
            raise RuntimeError(msg)
        await self._on_sync(response)

        self.client.add_event_callback(self._on_message, nio.RoomMessageText)
        self.client.add_response_callback(self._on_sync, nio.SyncResponse)
        logger.info("The client is ready, listening to new messages", user_id=self.user_id)
        await self.client.sync_forever(timeout=SYNC_TIMEOUT_MS, full_state=True)

    async def stop(self) -> None:
        """Abandon in-flight work and close the connection."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.client.close()
        logger.info("Stopped bot")


async def main(config: Config, log_level: str) -> None:
    """Main entry point for the bot.

    Args:
        config: The loaded configuration
        log_level: The logging level to use (DEBUG, INFO, WARNING, ERROR)

    """
    state_dir = config.state_path
    state_dir.mkdir(parents=True, exist_ok=True)
    setup_logging(level=log_level, log_dir=state_dir / LOGS_DIR_NAME)

    catalog = RoleCatalog.from_config(config.roles)
    # Fail early on a default role that does not exist
    catalog.get(config.default_role)
    registry = await load_backend_registry(config)

    client = restore_session(config.homeserver_url, state_dir)
    if client is None:
        if not config.password:
            msg = "No saved session and no password configured"
            raise ValueError(msg)
        client = await login(config.homeserver_url, config.username, config.password, state_dir)

    bot = ChazBot(config=config, registry=registry, catalog=catalog, client=client)
    try:
        await bot.run()
    finally:
        await bot.stop()
