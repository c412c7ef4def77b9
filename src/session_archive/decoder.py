"""Decode session event logs.

Session files are newline-delimited JSON written by the agent runtime.
Record shapes seen in the wild:

- "session": session start. Carries ``id``, ``timestamp`` and sometimes ``cwd``.
- "model_change": carries ``modelId`` and ``provider``.
- "message": role, content and usage live under a nested ``message`` object
  in current files, and at the top level of the record in older ones.
- anything else is kept as an "other" event and ignored downstream.

Every message is normalized here, once, so reducers only ever see
``ContentBlock`` objects with a canonical ``BlockKind``.
"""

import json
import logging
import math
import os
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .core import (
    BlockKind,
    ContentBlock,
    DirectoryScan,
    Event,
    EventKind,
    FileRead,
    ReadStatus,
    SessionFile,
    Usage,
)

logger = logging.getLogger(__name__)

RECORD_KINDS = {
    "session": EventKind.SESSION_START,
    "model_change": EventKind.MODEL_CHANGE,
    "message": EventKind.MESSAGE,
}

# Block type spellings used by different producer versions
BLOCK_KINDS = {
    "text": BlockKind.TEXT,
    "toolCall": BlockKind.TOOL_CALL,
    "tool_use": BlockKind.TOOL_CALL,
    "tool_call": BlockKind.TOOL_CALL,
    "functionCall": BlockKind.TOOL_CALL,
    "toolResult": BlockKind.TOOL_RESULT,
    "tool_result": BlockKind.TOOL_RESULT,
    "thinking": BlockKind.THINKING,
}

ROLE_ALIASES = {
    "toolResult": "tool",
    "tool_result": "tool",
}


class EventDecodeError(ValueError):
    """A line could not be decoded into an event."""


def decode_line(line: str) -> Event:
    """Decode one line of a session file.

    Raises:
        EventDecodeError: if the line is not a JSON object.
    """
    try:
        record = json.loads(line)
    except json.JSONDecodeError as e:
        raise EventDecodeError(f"invalid JSON: {e.msg}") from e
    except RecursionError as e:
        raise EventDecodeError("invalid JSON: nested too deeply") from e

    if not isinstance(record, dict):
        raise EventDecodeError(f"expected an object, got {type(record).__name__}")

    raw_type = record.get("type")
    raw_type = raw_type if isinstance(raw_type, str) else ""
    kind = RECORD_KINDS.get(raw_type, EventKind.OTHER)

    nested = record.get("message")
    if not isinstance(nested, dict):
        nested = {}

    timestamp = _parse_timestamp(record.get("timestamp"))
    if timestamp is None:
        timestamp = _parse_timestamp(nested.get("timestamp"))

    if kind is EventKind.SESSION_START:
        return Event(
            kind=kind,
            raw_type=raw_type,
            timestamp=timestamp,
            session_id=_str_or_none(record.get("id")),
            cwd=_str_or_none(record.get("cwd")),
        )

    if kind is EventKind.MODEL_CHANGE:
        return Event(
            kind=kind,
            raw_type=raw_type,
            timestamp=timestamp,
            model=_str_or_none(record.get("modelId")),
            provider=_str_or_none(record.get("provider")),
        )

    if kind is EventKind.MESSAGE:
        content = _pick(record, nested, "content")
        return Event(
            kind=kind,
            raw_type=raw_type,
            timestamp=timestamp,
            role=_normalize_role(_pick(record, nested, "role")),
            content=_normalize_content(content),
            plain_text=isinstance(content, str),
            usage=_normalize_usage(_pick(record, nested, "usage")),
            model=_str_or_none(_pick(record, nested, "model")),
            provider=_str_or_none(_pick(record, nested, "provider")),
        )

    return Event(kind=kind, raw_type=raw_type, timestamp=timestamp)


def decode_lines(lines: Iterable[str], source: str = "") -> tuple[list[Event], int]:
    """Decode every line, skipping blank and malformed ones.

    Returns the decoded events in input order and the number of lines skipped
    because they failed to decode.
    """
    events = []
    skipped = 0
    for line_num, line in enumerate(lines, 1):
        line = line.strip()
        if not line:
            continue
        try:
            events.append(decode_line(line))
        except EventDecodeError as e:
            skipped += 1
            logger.debug("Skipping line %s:%d: %s", source, line_num, e)
    return events, skipped


def read_session_file(path: Path) -> FileRead:
    """Read and decode a whole session file."""
    try:
        with path.open(encoding="utf-8", errors="replace") as f:
            events, skipped = decode_lines(f, source=str(path))
    except FileNotFoundError as e:
        logger.warning("Session file disappeared %s: %s", path, e)
        return FileRead(status=ReadStatus.ERROR, error=str(e), missing=True)
    except OSError as e:
        logger.warning("Failed to read session file %s: %s", path, e)
        return FileRead(status=ReadStatus.ERROR, error=str(e))

    if not events:
        return FileRead(status=ReadStatus.EMPTY, skipped=skipped)
    return FileRead(status=ReadStatus.OK, events=tuple(events), skipped=skipped)


def scan_directory(path: Path, extension: str) -> DirectoryScan:
    """List the session files in ``path``.

    A missing directory is an empty archive, not an error.
    """
    if not path.is_dir():
        return DirectoryScan(status=ReadStatus.EMPTY)

    files = []
    try:
        with os.scandir(path) as it:
            for entry in it:
                if not entry.name.endswith(extension):
                    continue
                try:
                    if not entry.is_file():
                        continue
                    st = entry.stat()
                except OSError as e:
                    # Deleted between listing and stat
                    logger.debug("Cannot stat %s: %s", entry.path, e)
                    continue
                files.append(SessionFile(
                    name=entry.name,
                    session_id=entry.name[: -len(extension)],
                    path=entry.path,
                    size=st.st_size,
                    mtime_ns=st.st_mtime_ns,
                ))
    except OSError as e:
        logger.warning("Failed to list session directory %s: %s", path, e)
        return DirectoryScan(status=ReadStatus.ERROR, error=str(e))

    if not files:
        return DirectoryScan(status=ReadStatus.EMPTY)
    return DirectoryScan(status=ReadStatus.OK, files=tuple(files))


# ── Normalization helpers ────────────────────────────────────────


def _pick(record: dict, nested: dict, key: str) -> Any:
    """Prefer the nested ``message`` field, fall back to the top level."""
    value = nested.get(key)
    if value is None:
        value = record.get(key)
    return value


def clean_text(value: str) -> str:
    """Replace lone UTF-16 surrogates so the text can be encoded as UTF-8.

    Producers that cut strings at a UTF-16 boundary leave ``\\ud83d``-style
    escapes behind; ``json.loads`` accepts them but nothing downstream can
    serialize the result.
    """
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return value.encode("utf-8", "replace").decode("utf-8")
    return value


def _str_or_none(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return clean_text(value)
    return None


def _text(value: Any) -> str:
    return clean_text(value) if isinstance(value, str) else ""


def _normalize_role(value: Any) -> str:
    if not isinstance(value, str) or not value:
        return "unknown"
    return ROLE_ALIASES.get(value, clean_text(value))


def _normalize_content(content: Any) -> tuple[ContentBlock, ...]:
    if isinstance(content, str):
        return (ContentBlock(kind=BlockKind.TEXT, text=content),)
    if not isinstance(content, list):
        return ()

    blocks = []
    for block in content:
        if isinstance(block, str):
            blocks.append(ContentBlock(kind=BlockKind.TEXT, text=clean_text(block)))
            continue
        if not isinstance(block, dict):
            continue

        block_type = block.get("type")
        kind = BLOCK_KINDS.get(block_type, BlockKind.OTHER) if isinstance(block_type, str) else BlockKind.OTHER

        if kind is BlockKind.TEXT:
            blocks.append(ContentBlock(kind=kind, text=_text(block.get("text"))))
        elif kind is BlockKind.THINKING:
            text = block.get("thinking") or block.get("text") or ""
            blocks.append(ContentBlock(kind=kind, text=_text(text)))
        elif kind is BlockKind.TOOL_CALL:
            arguments = block.get("arguments")
            if arguments is None:
                arguments = block.get("input")
            if isinstance(arguments, str):
                arguments = clean_text(arguments)
            blocks.append(ContentBlock(
                kind=kind,
                name=_str_or_none(block.get("name")) or "unknown",
                arguments=arguments,
            ))
        elif kind is BlockKind.TOOL_RESULT:
            result = block.get("content") or block.get("result") or ""
            if isinstance(result, str):
                result = clean_text(result)
            blocks.append(ContentBlock(kind=kind, result=result))
        else:
            blocks.append(ContentBlock(kind=kind))

    return tuple(blocks)


def _normalize_usage(usage: Any) -> Usage | None:
    if not isinstance(usage, dict):
        return None

    tokens = _number(usage.get("totalTokens"))
    if tokens is None:
        tokens = _number(usage.get("total_tokens"))
    if tokens is None:
        tokens = (_number(usage.get("input")) or 0) + (_number(usage.get("output")) or 0)

    cost = usage.get("cost")
    if isinstance(cost, dict):
        cost = cost.get("total")
    cost = _number(cost)

    return Usage(
        tokens=max(int(tokens), 0),
        cost=max(float(cost), 0.0) if cost is not None else 0.0,
    )


def _number(value: Any) -> int | float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 string or Unix milliseconds."""
    if isinstance(value, str) and value:
        try:
            if value.endswith("Z"):
                value = value[:-1] + "+00:00"
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    if _number(value) is not None:
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    return None
