"""Generate a room name and topic from the conversation."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from .logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .context import Prompt

logger = get_logger(__name__)

TITLE_MAX_LENGTH = 20
TOPIC_MAX_LENGTH = 50

TITLE_REQUEST = " ".join(
    [
        f"Summarize this conversation in less than {TITLE_MAX_LENGTH} characters to use as the title of this conversation.",
        "The output should be a single line of text describing the conversation.",
        "Do not output anything except for the summary text.",
        f"Only the first {TITLE_MAX_LENGTH} characters will be used.",
    ],
)

TOPIC_REQUEST = " ".join(
    [
        f"Summarize this conversation in less than {TOPIC_MAX_LENGTH} characters.",
        "Do not output anything except for the summary text.",
        "Do not include any commentary or context, only the summary.",
    ],
)

_QUOTED = re.compile(r'"([^"]*)"')


def clean_summary_response(response: str, max_length: int | None = None) -> str:
    """Reduce a model's summary to the part we want.

    Models sometimes wrap the summary in commentary. If the response contains a
    quoted string, the first one is used.
    """
    match = _QUOTED.search(response)
    summary = match.group(1) if match else response
    summary = summary.strip()
    if max_length is not None:
        summary = summary[:max_length]
    return summary


async def generate_room_name(prompt: Prompt, complete: Callable[[Prompt], Awaitable[str]]) -> str:
    """Ask the summary model for a short title for the conversation in ``prompt``."""
    name = clean_summary_response(await complete(prompt.with_user_turn(TITLE_REQUEST)))
    logger.info("Generated room name", name=name)
    return name


async def generate_room_topic(prompt: Prompt, complete: Callable[[Prompt], Awaitable[str]]) -> str:
    """Ask the summary model for a one-line topic for the conversation in ``prompt``."""
    topic = clean_summary_response(await complete(prompt.with_user_turn(TOPIC_REQUEST)))
    logger.info("Generated room topic", topic=topic)
    return topic
