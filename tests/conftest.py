"""Test configuration and fixtures for chaz tests."""

from __future__ import annotations

from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from typing import Any

import pytest

from chaz.backends import Backend, BackendRegistry, ModelSelection
from chaz.command_handler import CommandHandlerContext, handle_command
from chaz.commands import Command, CommandParser, CommandType
from chaz.config import Config
from chaz.context import ContextBuilder, Prompt
from chaz.matrix import rooms
from chaz.matrix.history import HistoryEvent
from chaz.roles import RoleCatalog
from chaz.room_state import ContextCursor, RoomConversationState, RoomStateStore

BOT_ID = "@chaz:example.org"
ROOM_ID = "!room:example.org"
TEST_API_KEY = "mock_test_key"


def base_config_data(**overrides: Any) -> dict[str, Any]:  # noqa: ANN401
    """Minimal valid config with one OpenAI compatible backend."""
    data: dict[str, Any] = {
        "homeserver_url": "https://matrix.example.org",
        "username": "chaz",
        "password": "mock_test_password",
        "allow_list": "@.*:example.org",
        "backends": [
            {
                "type": "openai",
                "name": "openai",
                "api_base": "https://api.example.org/v1",
                "api_key": TEST_API_KEY,
                "models": [{"name": "gpt-4o"}, {"name": "gpt-4o-mini"}],
            },
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture(autouse=True)
def clear_dm_caches() -> Generator[None, None, None]:
    """DM detection caches are module level, start every test empty."""
    rooms.DM_ROOM_CACHE.clear()
    rooms.DIRECT_ROOMS_CACHE.clear()
    rooms.NOT_DM_ROOM_CACHE.clear()
    yield
    rooms.DM_ROOM_CACHE.clear()
    rooms.DIRECT_ROOMS_CACHE.clear()
    rooms.NOT_DM_ROOM_CACHE.clear()


@pytest.fixture
def config() -> Config:
    """A config with a single backend."""
    return Config(**base_config_data())


@dataclass
class FakeRoom:
    """One room with an in-memory transport and backend."""

    config: Config
    completion: str = "reply"
    can_rename: bool = True
    fail_with: Exception | None = None
    events: list[HistoryEvent] = field(default_factory=list)
    replies: list[str] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)
    requests: list[tuple[ModelSelection, Prompt]] = field(default_factory=list)
    names: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    history_reads: list[ContextCursor | None] = field(default_factory=list)
    _clock: int = 1_000

    def __post_init__(self) -> None:
        self.registry = BackendRegistry(Backend.from_config(bc) for bc in self.config.effective_backends())
        self.catalog = RoleCatalog.from_config(self.config.roles)
        self.store = RoomStateStore(self.config.default_role)
        self.parser = CommandParser(self.config.command_prefix)
        self.context = CommandHandlerContext(
            config=self.config,
            registry=self.registry,
            catalog=self.catalog,
            builder=ContextBuilder(
                bot_user_id=BOT_ID,
                command_parser=self.parser,
                include_media=not self.config.disable_media_context,
            ),
            fetch_history=self._fetch_history,
            send_reply=self._send_reply,
            send_notice=self._send_notice,
            set_room_name=self._set_room_name,
            set_room_topic=self._set_room_topic,
            complete=self._complete,
        )

    @property
    def state(self) -> RoomConversationState:
        return self.store.get(ROOM_ID)

    @property
    def last_prompt(self) -> Prompt:
        return self.requests[-1][1]

    def post(self, sender: str, body: str, msgtype: str = "m.text", **extra: Any) -> HistoryEvent:  # noqa: ANN401
        """Add a message to the room's history without addressing the bot."""
        self._clock += 1_000
        event = HistoryEvent(
            event_id=f"$event{len(self.events)}",
            sender=sender,
            timestamp=self._clock,
            msgtype=msgtype,
            body=body,
            **extra,
        )
        self.events.append(event)
        return event

    async def say(self, sender: str, body: str) -> None:
        """Post a message addressed to the bot and handle it."""
        trigger = self.post(sender, body)
        command = self.parser.parse(body)
        if command is None:
            command = Command(type=CommandType.CONVERSE, args={"text": body.strip()}, raw_text=body)
        async with self.store.session(ROOM_ID) as state:
            await handle_command(context=self.context, state=state, command=command, trigger=trigger)

    async def _fetch_history(self, room_id: str, cursor: ContextCursor | None) -> list[HistoryEvent]:
        assert room_id == ROOM_ID
        self.history_reads.append(cursor)
        return list(self.events)

    async def _send_reply(self, room_id: str, text: str) -> str:
        self.replies.append(text)
        return self.post(BOT_ID, text).event_id

    async def _send_notice(self, room_id: str, text: str) -> str:
        self.notices.append(text)
        return self.post(BOT_ID, text, msgtype="m.notice").event_id

    async def _set_room_name(self, room_id: str, name: str) -> bool:
        if not self.can_rename:
            return False
        self.names.append(name)
        return True

    async def _set_room_topic(self, room_id: str, topic: str) -> bool:
        self.topics.append(topic)
        return True

    async def _complete(self, selection: ModelSelection, prompt: Prompt) -> str:
        self.requests.append((selection, prompt))
        if self.fail_with is not None:
            raise self.fail_with
        return self.completion


@pytest.fixture
def make_room() -> Callable[..., FakeRoom]:
    """Factory for a FakeRoom, keyword arguments override config fields."""

    def factory(**overrides: Any) -> FakeRoom:  # noqa: ANN401
        return FakeRoom(config=Config(**base_config_data(**overrides)))

    return factory


@pytest.fixture
def room(make_room: Callable[..., FakeRoom]) -> FakeRoom:
    """A FakeRoom with the default single-backend config."""
    return make_room()
