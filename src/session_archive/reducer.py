"""Fold a session's events into a SessionMeta summary."""

from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import datetime, timezone

from .config import DETAIL_PROMPT_CHARS, get_placeholder_models
from .core import BlockKind, Event, EventKind, SessionMeta
from .decoder import clean_text

UNKNOWN = "unknown"


def reduce_session(
    events: Sequence[Event],
    prompt_chars: int = DETAIL_PROMPT_CHARS,
    placeholder_models: Iterable[str] | None = None,
) -> SessionMeta:
    """Summarize an ordered event sequence.

    Never raises: an empty sequence yields an "unknown" session with zeroed
    counters. ``tool_call_count`` counts messages holding at least one tool
    call, not individual calls.
    """
    if placeholder_models is None:
        placeholder_models = get_placeholder_models()
    placeholders = frozenset(placeholder_models)

    start = next((e for e in events if e.kind is EventKind.SESSION_START), None)
    messages = [e for e in events if e.kind is EventKind.MESSAGE]
    model, provider = _resolve_model(events, messages, placeholders)

    total_cost = 0.0
    total_tokens = 0
    for msg in messages:
        if msg.usage:
            total_cost += msg.usage.cost
            total_tokens += msg.usage.tokens

    tool_call_count = sum(
        1 for msg in messages
        if any(b.kind is BlockKind.TOOL_CALL for b in msg.content)
    )

    return SessionMeta(
        id=(start.session_id if start else None) or UNKNOWN,
        timestamp=start.timestamp if start else None,
        cwd=start.cwd if start else None,
        model=model,
        provider=provider,
        message_count=len(messages),
        tool_call_count=tool_call_count,
        prompt=_first_prompt(messages)[:prompt_chars],
        total_cost=round(total_cost, 6),
        total_tokens=total_tokens,
        last_activity=messages[-1].timestamp if messages else None,
    )


def _resolve_model(
    events: Sequence[Event],
    messages: list[Event],
    placeholders: frozenset[str],
) -> tuple[str, str]:
    """Latest model change wins; otherwise the first real assistant model."""
    for event in reversed(events):
        if event.kind is EventKind.MODEL_CHANGE:
            return event.model or UNKNOWN, event.provider or UNKNOWN

    for msg in messages:
        if msg.role == "assistant" and msg.model and msg.model not in placeholders:
            return msg.model, msg.provider or UNKNOWN

    return UNKNOWN, UNKNOWN


def _first_prompt(messages: list[Event]) -> str:
    user_msg = next((m for m in messages if m.role == "user"), None)
    if user_msg is None:
        return ""
    for block in user_msg.content:
        if block.kind is BlockKind.TEXT:
            return block.text
    return ""


def with_file_info(meta: SessionMeta, name: str, size: int, mtime_ns: int) -> SessionMeta:
    """Attach the originating file's name and signature to a summary."""
    return replace(
        meta,
        file=clean_text(name),
        file_size=size,
        modified_at=datetime.fromtimestamp(mtime_ns / 1e9, tz=timezone.utc),
    )
