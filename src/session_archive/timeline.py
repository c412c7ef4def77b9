"""Build the display timeline for a session.

One item per message event, in file order. Tool results are folded inline
into the message text as ``[Tool Result: ...]`` markers; thinking blocks get
their own field. Every text field is cut at a fixed bound so a single
session's payload stays bounded however long the transcript is.
"""

import json
from collections.abc import Sequence
from typing import Any

from .config import (
    THINKING_CHARS,
    TIMELINE_TEXT_CHARS,
    TOOL_ARGUMENTS_CHARS,
    TOOL_RESULT_CHARS,
)
from .core import BlockKind, Event, EventKind, TimelineItem, ToolInvocation
from .decoder import clean_text


def build_timeline(events: Sequence[Event]) -> list[TimelineItem]:
    """Return a TimelineItem for every message event."""
    return [_message_to_item(e) for e in events if e.kind is EventKind.MESSAGE]


def _message_to_item(event: Event) -> TimelineItem:
    text_parts = []
    tools = []
    thinking_parts = []

    for block in event.content:
        if block.kind is BlockKind.TEXT:
            text_parts.append(block.text)
        elif block.kind is BlockKind.TOOL_CALL:
            tools.append(ToolInvocation(
                name=block.name,
                arguments=_stringify(block.arguments, TOOL_ARGUMENTS_CHARS),
            ))
        elif block.kind is BlockKind.TOOL_RESULT:
            text_parts.append(f"[Tool Result: {_stringify(block.result or '', TOOL_RESULT_CHARS)}]\n")
        elif block.kind is BlockKind.THINKING and block.text:
            thinking_parts.append(block.text)

    return TimelineItem(
        timestamp=event.timestamp,
        role=event.role,
        text="".join(text_parts)[:TIMELINE_TEXT_CHARS],
        tools=tuple(tools),
        thinking="\n".join(thinking_parts)[:THINKING_CHARS],
        usage=event.usage,
    )


def _stringify(value: Any, limit: int) -> str:
    """Text is cut as-is; anything structured is serialized first."""
    if value is None:
        value = {}
    if isinstance(value, str):
        return value[:limit]
    try:
        text = json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        text = str(value)
    except RecursionError:
        text = "[nested too deeply]"
    return clean_text(text)[:limit]
