"""Convert summaries and timelines to JSON-ready dicts, JSON and Markdown."""

import json
from datetime import datetime

from .core import SessionDetail, SessionMeta, TimelineItem, Usage


def meta_to_dict(meta: SessionMeta) -> dict:
    """Convert a SessionMeta to a JSON-serializable dict."""
    return {
        "id": meta.id,
        "timestamp": _iso(meta.timestamp),
        "model": meta.model,
        "provider": meta.provider,
        "message_count": meta.message_count,
        "tool_call_count": meta.tool_call_count,
        "prompt": meta.prompt,
        "total_cost": meta.total_cost,
        "total_tokens": meta.total_tokens,
        "last_activity": _iso(meta.last_activity),
        "cwd": meta.cwd,
        "file": meta.file,
        "file_size": meta.file_size,
        "modified_at": _iso(meta.modified_at),
    }


def item_to_dict(item: TimelineItem) -> dict:
    """Convert a TimelineItem to a JSON-serializable dict."""
    return {
        "timestamp": _iso(item.timestamp),
        "role": item.role,
        "text": item.text,
        "tools": [{"name": t.name, "arguments": t.arguments} for t in item.tools],
        "thinking": item.thinking,
        "usage": _usage_to_dict(item.usage),
    }


def detail_to_dict(detail: SessionDetail) -> dict:
    """Summary fields plus the ``timeline`` list."""
    data = meta_to_dict(detail.meta)
    data["timeline"] = [item_to_dict(item) for item in detail.timeline]
    return data


def detail_to_json(detail: SessionDetail) -> str:
    return json.dumps(detail_to_dict(detail), indent=2, ensure_ascii=False)


def detail_to_markdown(detail: SessionDetail) -> str:
    """Render a session as readable Markdown."""
    meta = detail.meta
    lines = [f"# Session {meta.id}", ""]

    if meta.prompt:
        lines.append(f"> {meta.prompt.splitlines()[0]}")
        lines.append("")
    lines.append(f"**Model:** {meta.provider}/{meta.model}")
    if meta.timestamp:
        lines.append(f"**Started:** {meta.timestamp.isoformat()}")
    if meta.cwd:
        lines.append(f"**Directory:** {meta.cwd}")
    lines.append(f"**Messages:** {meta.message_count} ({meta.tool_call_count} with tool calls)")
    lines.append(f"**Tokens:** {meta.total_tokens}")
    lines.append(f"**Cost:** ${meta.total_cost:.4f}")
    lines.extend(["", "---", ""])

    for item in detail.timeline:
        ts = ""
        if item.timestamp:
            ts = f" ({item.timestamp.strftime('%Y-%m-%d %H:%M')})"
        lines.append(f"## {item.role.capitalize()}{ts}")
        lines.append("")
        if item.thinking:
            lines.extend(f"> {line}" for line in item.thinking.splitlines())
            lines.append("")
        if item.text:
            lines.append(item.text)
            lines.append("")
        for tool in item.tools:
            lines.append(f"- `{tool.name}` {tool.arguments}")
        if item.tools:
            lines.append("")
        lines.extend(["---", ""])

    return "\n".join(lines)


def _usage_to_dict(usage: Usage | None) -> dict | None:
    if usage is None:
        return None
    return {"tokens": usage.tokens, "cost": usage.cost}


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
