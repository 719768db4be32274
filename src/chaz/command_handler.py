"""Command handling for messages addressed to the bot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .commands import SUBCOMMANDS, Command, CommandType, get_command_help
from .error_handling import BackendError, ChazError, CommandUsageError, UnknownCommandError
from .logging_config import get_logger
from .roles import Role
from .room_state import ContextCursor
from .topic_generator import TITLE_MAX_LENGTH, TOPIC_MAX_LENGTH, generate_room_name, generate_room_topic

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .backends import BackendRegistry, ModelSelection
    from .config import Config
    from .context import ContextBuilder, Prompt
    from .matrix.history import HistoryEvent
    from .roles import RoleCatalog
    from .room_state import RoomConversationState

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandHandlerContext:
    """Dependencies required by command handling.

    The transport is reached only through the callables, which take the room ID
    first.
    """

    config: Config
    registry: BackendRegistry
    catalog: RoleCatalog
    builder: ContextBuilder
    fetch_history: Callable[[str, ContextCursor | None], Awaitable[list[HistoryEvent]]]
    send_reply: Callable[[str, str], Awaitable[str | None]]
    send_notice: Callable[[str, str], Awaitable[str | None]]
    set_room_name: Callable[[str, str], Awaitable[bool]]
    set_room_topic: Callable[[str, str], Awaitable[bool]]
    complete: Callable[[ModelSelection, Prompt], Awaitable[str]]

    @property
    def prefix(self) -> str:
        """The command prefix, used to tag status output."""
        return self.builder.command_parser.prefix


def _current_selection(context: CommandHandlerContext, state: RoomConversationState) -> ModelSelection:
    selection = state.selected_backend_model or context.registry.default_selection()
    if selection is None:
        msg = "No backend is configured"
        raise BackendError(msg)
    return selection


async def _build_prompt(
    context: CommandHandlerContext,
    state: RoomConversationState,
    trigger: HistoryEvent,
    extra_user_text: str | None = None,
) -> Prompt:
    """Build the room's prompt from history up to, not including, the message being answered."""
    role = context.catalog.get(state.selected_role)
    events = await context.fetch_history(state.room_id, state.context_cursor)
    return context.builder.build_from_history(
        role,
        events,
        state.context_cursor,
        extra_user_text=extra_user_text,
        stop_at_event_id=trigger.event_id,
    )


def _format_list(context: CommandHandlerContext, state: RoomConversationState) -> str:
    registry = context.registry
    current = registry.describe(state.selected_backend_model or registry.default_selection())
    backends = "\n".join(registry.names()) or "none"
    models = "\n".join(registry.list_known_models()) or "none"
    return f"Current Model: {current}\n\nKnown Backends:\n{backends}\n\nKnown Models:\n{models}"


def _select_model(context: CommandHandlerContext, state: RoomConversationState, selector: str | None) -> str:
    if selector is None:
        return _format_list(context, state)
    selection = context.registry.resolve(selector)
    state.selected_backend_model = selection
    logger.info("Model selected", room_id=state.room_id, backend=selection.backend, model=selection.model)
    return f'Model set to "{context.registry.describe(selection)}"'


def _add_backend(context: CommandHandlerContext, params: list[str]) -> str:
    if len(params) != 3:  # noqa: PLR2004
        msg = f"invalid arguments. Usage: {context.prefix} backend <name> <api_base> <api_key>"
        raise CommandUsageError(msg)
    name, api_base, api_key = params
    context.registry.register_adhoc(name, api_base, api_key)
    return f"Successfully added backend {name}. Select a model with {context.prefix} model {name}:<model>"


def _handle_role(
    context: CommandHandlerContext,
    state: RoomConversationState,
    name: str | None,
    prompt: str | None,
) -> str:
    catalog = context.catalog

    if name is None:
        current = catalog.get(state.selected_role)
        return f"{current.describe()}\n\nAvailable roles: {', '.join(catalog.names())}"

    if prompt is None:
        role = catalog.get(name)
        state.selected_role = role.name
        return f"Role set to {role.name}"

    previous = catalog.find(name)
    catalog.upsert(Role(name=name, description=previous.description if previous else "", prompt=prompt))
    state.selected_role = name
    verb = "updated" if previous else "created"
    return f"Role {name} {verb} and selected"


async def _converse(
    context: CommandHandlerContext,
    state: RoomConversationState,
    trigger: HistoryEvent,
    text: str | None,
) -> None:
    selection = _current_selection(context, state)
    prompt = await _build_prompt(context, state, trigger, extra_user_text=text)
    state.record_turn(trigger.sender)
    completion = await context.complete(selection, prompt)
    await context.send_reply(state.room_id, completion)


async def _send_without_context(
    context: CommandHandlerContext,
    state: RoomConversationState,
    trigger: HistoryEvent,
    message: str,
) -> None:
    if not message:
        msg = f"nothing to send. Usage: {context.prefix} send <message>"
        raise CommandUsageError(msg)
    selection = _current_selection(context, state)
    role = context.catalog.get(state.selected_role)
    prompt = context.builder.build(role, extra_user_text=message)
    state.record_turn(trigger.sender)
    completion = await context.complete(selection, prompt)
    # A notice, so the reply stays out of the room's context
    await context.send_notice(state.room_id, completion)


async def _rename(context: CommandHandlerContext, state: RoomConversationState, trigger: HistoryEvent) -> None:
    if context.config.chat_summary_model:
        selection = context.registry.resolve(context.config.chat_summary_model)
    else:
        selection = _current_selection(context, state)
    prompt = await _build_prompt(context, state, trigger)
    state.record_turn(trigger.sender)

    async def complete(summary_prompt: Prompt) -> str:
        return await context.complete(selection, summary_prompt)

    name = await generate_room_name(prompt, complete)
    if not await context.set_room_name(state.room_id, name[:TITLE_MAX_LENGTH]):
        await context.send_notice(state.room_id, f"{context.prefix} Error: I don't have permission to rename the room")
        return

    topic = await generate_room_topic(prompt, complete)
    if not await context.set_room_topic(state.room_id, topic[:TOPIC_MAX_LENGTH]):
        await context.send_notice(state.room_id, f"{context.prefix} Error: I don't have permission to set the topic")


async def _run_command(  # noqa: C901, PLR0911
    context: CommandHandlerContext,
    state: RoomConversationState,
    command: Command,
    trigger: HistoryEvent,
) -> str | None:
    """Apply a command and return the status text to post, if any."""
    if command.type == CommandType.CONVERSE:
        await _converse(context, state, trigger, command.args.get("text"))
        return None

    if command.type == CommandType.SEND:
        await _send_without_context(context, state, trigger, command.args.get("message", ""))
        return None

    if command.type == CommandType.RENAME:
        await _rename(context, state, trigger)
        return None

    if command.type == CommandType.PRINT:
        prompt = await _build_prompt(context, state, trigger)
        return prompt.render() or "No messages in context"

    if command.type == CommandType.MODEL:
        return _select_model(context, state, command.args.get("selector"))

    if command.type == CommandType.BACKEND:
        return _add_backend(context, command.args.get("params", []))

    if command.type == CommandType.ROLE:
        return _handle_role(context, state, command.args.get("name"), command.args.get("prompt"))

    if command.type == CommandType.LIST:
        return _format_list(context, state)

    if command.type == CommandType.CLEAR:
        state.advance_cursor(ContextCursor(event_id=trigger.event_id, timestamp=trigger.timestamp))
        return "clear: All messages before this will be ignored"

    if command.type == CommandType.HELP:
        return get_command_help(context.prefix)

    raise UnknownCommandError(command.args.get("command", command.raw_text), list(SUBCOMMANDS))


async def handle_command(
    *,
    context: CommandHandlerContext,
    state: RoomConversationState,
    command: Command,
    trigger: HistoryEvent,
) -> None:
    """Dispatch a parsed command for one room.

    The caller holds the room's lock. Errors are reported into the room as a
    notice and never roll back the room's state.

    Args:
        context: Injected dependencies
        state: The room's conversation state
        command: The parsed command
        trigger: The message event that carried the command

    """
    logger.info(
        "Handling command",
        room_id=state.room_id,
        sender=trigger.sender,
        command_type=command.type.value,
    )

    try:
        response_text = await _run_command(context, state, command, trigger)
    except ChazError as e:
        logger.warning(
            "Command failed",
            room_id=state.room_id,
            command_type=command.type.value,
            error_type=type(e).__name__,
            error=str(e),
        )
        await context.send_notice(state.room_id, f"{context.prefix} Error: {e.user_message()}")
        return

    if response_text:
        await context.send_notice(state.room_id, f"{context.prefix} {response_text}")
