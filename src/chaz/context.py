"""Building the conversation transcript and prompt for a room.

History is read strictly forward from the room's context cursor. The prompt is
the role prompt, then the role's example exchanges, then the transcript, then
any extra text from the triggering message as the final user turn. Building is a
pure function of its inputs, so the same history and cursor always produce the
same prompt.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Literal

from .commands import SUBCOMMANDS, CommandParser
from .logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from .matrix.history import HistoryEvent
    from .roles import Role
    from .room_state import ContextCursor

logger = get_logger(__name__)

MessageRole = Literal["system", "user", "assistant"]

# OpenAI only accepts simple participant names
_PARTICIPANT_NAME = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def localpart(account: str) -> str:
    """The user part of a Matrix ID, e.g. "alice" for "@alice:example.org"."""
    return account.removeprefix("@").split(":", 1)[0]


@dataclass(frozen=True)
class MediaRef:
    """A textual stand-in for an attachment."""

    url: str
    name: str
    msgtype: str = "m.file"
    mimetype: str | None = None

    def render(self) -> str:
        """Render the reference as it appears in the transcript."""
        kind = self.msgtype.removeprefix("m.")
        return f"[{kind}: {self.name} <{self.url}>]"


@dataclass(frozen=True)
class TranscriptEntry:
    """One human-visible message in the conversation."""

    speaker: str
    text: str
    timestamp: int
    from_bot: bool = False
    media_refs: tuple[MediaRef, ...] = ()

    @property
    def content(self) -> str:
        """Text plus rendered media references."""
        parts = [self.text] if self.text else []
        parts.extend(ref.render() for ref in self.media_refs)
        return "\n".join(parts)


@dataclass(frozen=True)
class PromptMessage:
    """One turn of the prompt."""

    role: MessageRole
    content: str
    speaker: str | None = None

    def render(self) -> str:
        """Speaker-tagged line used for the text prompt."""
        label = self.role.upper()
        if self.speaker:
            label = f"{label} ({self.speaker})"
        return f"{label}: {self.content}"

    def to_chat_message(self) -> dict[str, Any]:
        """OpenAI chat completion message."""
        message: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.speaker and self.role == "user" and _PARTICIPANT_NAME.match(self.speaker):
            message["name"] = self.speaker
        return message


@dataclass(frozen=True)
class Prompt:
    """The single outbound request built for a backend."""

    role_name: str
    system: str = ""
    messages: tuple[PromptMessage, ...] = ()

    def with_user_turn(self, text: str) -> Prompt:
        """A copy with ``text`` appended as the final user turn."""
        return replace(self, messages=(*self.messages, PromptMessage(role="user", content=text)))

    @property
    def final_user_turn(self) -> str | None:
        """Content of the last message if the user spoke last."""
        if self.messages and self.messages[-1].role == "user":
            return self.messages[-1].content
        return None

    def render(self) -> str:
        """The system prompt followed by one speaker-tagged line per turn."""
        lines = [self.system] if self.system else []
        lines.extend(message.render() for message in self.messages)
        return "\n".join(lines)

    def to_text(self) -> str:
        """Flatten into a single string for backends that take plain text."""
        # The assistant speaks next
        return f"{self.render()}\nASSISTANT: "

    def chat_messages(self) -> list[dict[str, Any]]:
        """Messages for an OpenAI compatible chat completion request."""
        messages = [{"role": "system", "content": self.system}] if self.system else []
        messages.extend(message.to_chat_message() for message in self.messages)
        return messages


@dataclass
class ContextBuilder:
    """Turns room history into a prompt."""

    bot_user_id: str
    command_parser: CommandParser = field(default_factory=CommandParser)
    include_media: bool = True
    display_name: Callable[[str], str] = localpart

    def transcript(
        self,
        events: Iterable[HistoryEvent],
        cursor: ContextCursor | None = None,
        stop_at_event_id: str | None = None,
    ) -> list[TranscriptEntry]:
        """Produce transcript entries for the in-scope, human-visible messages.

        Args:
            events: Room message events in chronological order
            cursor: Events up to and including the cursor event are dropped. When the
                cursor event is absent the history was already cut there
            stop_at_event_id: Event where the transcript ends, exclusive. Usually the
                message being answered, so later messages stay out of its prompt

        Returns:
            Transcript entries in chronological order

        """
        ordered = list(events)
        # Positions come from room order, never from sender clocks
        start = 0
        if cursor is not None:
            start = next((i + 1 for i, event in enumerate(ordered) if event.event_id == cursor.event_id), 0)
        stop = len(ordered)
        if stop_at_event_id is not None:
            stop = next((i for i, event in enumerate(ordered) if event.event_id == stop_at_event_id), stop)

        entries = []
        for event in ordered[start:stop]:
            entry = self._entry_for(event)
            if entry is not None:
                entries.append(entry)
        return entries

    def _entry_for(self, event: HistoryEvent) -> TranscriptEntry | None:  # noqa: PLR0911
        from_bot = event.sender == self.bot_user_id
        speaker = self.display_name(event.sender)

        if event.is_media:
            if not self.include_media or not event.media_url:
                return None
            ref = MediaRef(url=event.media_url, name=event.body, msgtype=event.msgtype, mimetype=event.mimetype)
            return TranscriptEntry(
                speaker=speaker,
                text="",
                timestamp=event.timestamp,
                from_bot=from_bot,
                media_refs=(ref,),
            )

        # Our own notices are status output, not conversation
        if event.is_notice and from_bot:
            return None

        text = event.body.strip()
        if not text:
            return None

        addressed = self.command_parser.strip_prefix(text)
        if addressed is not None:
            if not addressed:
                return None
            first_word = addressed.split(maxsplit=1)[0].lower()
            if first_word in SUBCOMMANDS:
                return None
            text = addressed

        return TranscriptEntry(speaker=speaker, text=text, timestamp=event.timestamp, from_bot=from_bot)

    def build(
        self,
        role: Role,
        entries: Sequence[TranscriptEntry] = (),
        extra_user_text: str | None = None,
    ) -> Prompt:
        """Assemble the prompt from a role and transcript.

        Args:
            role: Role whose prompt and examples lead the prompt
            entries: Transcript entries in chronological order
            extra_user_text: Text appended as the final user turn

        Returns:
            The assembled prompt

        """
        messages = [PromptMessage(role=example.speaker, content=example.text) for example in role.examples]
        for entry in entries:
            if entry.from_bot:
                messages.append(PromptMessage(role="assistant", content=entry.content))
            else:
                messages.append(PromptMessage(role="user", content=entry.content, speaker=entry.speaker))
        if extra_user_text:
            messages.append(PromptMessage(role="user", content=extra_user_text))
        return Prompt(role_name=role.name, system=role.prompt, messages=tuple(messages))

    def build_from_history(
        self,
        role: Role,
        events: Iterable[HistoryEvent],
        cursor: ContextCursor | None = None,
        *,
        extra_user_text: str | None = None,
        stop_at_event_id: str | None = None,
    ) -> Prompt:
        """Read history from the cursor forward and assemble the prompt."""
        entries = self.transcript(events, cursor=cursor, stop_at_event_id=stop_at_event_id)
        logger.debug("Built transcript", role=role.name, entries=len(entries))
        return self.build(role, entries, extra_user_text)
