"""Shared test fixtures for session-archive."""

import json
import os

import pytest

# 2025-01-16T04:00:00Z
BASE_NS = 1_737_000_000 * 10**9


@pytest.fixture
def write_session():
    """Return a helper that writes a session file and pins its mtime.

    Records may be dicts (serialized as JSON) or raw strings (written as-is,
    for malformed lines).
    """

    def _write(directory, name, records, mtime_ns=BASE_NS):
        path = directory / name
        lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
        path.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
        os.utime(path, ns=(mtime_ns, mtime_ns))
        return path

    return _write


@pytest.fixture
def alpha_records():
    """Current producer shape: fields nested under ``message``."""
    return [
        {
            "type": "session",
            "id": "sess-alpha",
            "timestamp": "2025-01-20T10:00:00.000Z",
            "cwd": "/home/agent/work",
        },
        {
            "type": "model_change",
            "modelId": "claude-sonnet-4",
            "provider": "anthropic",
            "timestamp": "2025-01-20T10:00:00.500Z",
        },
        {
            "type": "message",
            "timestamp": "2025-01-20T10:00:01Z",
            "message": {
                "role": "user",
                "content": [{"type": "text", "text": "Refactor the config parser"}],
            },
        },
        {
            "type": "message",
            "timestamp": "2025-01-20T10:00:05Z",
            "message": {
                "role": "assistant",
                "content": [
                    {"type": "thinking", "thinking": "Start by reading the module."},
                    {"type": "text", "text": "Let me read it first."},
                    {"type": "toolCall", "name": "read", "arguments": {"path": "config.py"}},
                ],
                "usage": {"totalTokens": 10, "cost": {"total": 0.01}},
            },
        },
        {
            "type": "message",
            "timestamp": "2025-01-20T10:00:06Z",
            "message": {
                "role": "toolResult",
                "content": [{"type": "toolResult", "content": "def parse(): ..."}],
            },
        },
        {
            "type": "message",
            "timestamp": "2025-01-20T10:00:09Z",
            "message": {
                "role": "assistant",
                "content": [{"type": "text", "text": "Done."}],
                "usage": {"totalTokens": 5, "cost": {"total": 0.02}},
            },
        },
    ]


@pytest.fixture
def beta_records():
    """Older producer shape: message fields at the top level."""
    return [
        {"type": "session", "id": "sess-beta", "timestamp": 1737100000000},
        {"type": "message", "role": "user", "content": "hello world", "timestamp": 1737100001000},
        {
            "type": "message",
            "role": "assistant",
            "model": "delivery-mirror",
            "provider": "relay",
            "content": "mirrored",
            "timestamp": 1737100002000,
        },
        {
            "type": "message",
            "role": "assistant",
            "model": "gpt-4o",
            "provider": "openai",
            "content": [
                {"type": "tool_use", "name": "bash", "input": {"command": "ls"}},
                {"type": "tool_use", "name": "bash", "input": {"command": "pwd"}},
            ],
            "timestamp": 1737100003000,
        },
    ]


@pytest.fixture
def sessions_dir(tmp_path, write_session, alpha_records, beta_records):
    """An archive with two valid sessions and files that must be ignored.

    sess-alpha is the most recently modified.
    """
    directory = tmp_path / "sessions"
    directory.mkdir()
    write_session(directory, "sess-alpha.jsonl", alpha_records, mtime_ns=BASE_NS + 200 * 10**9)
    write_session(directory, "sess-beta.jsonl", beta_records, mtime_ns=BASE_NS + 100 * 10**9)
    write_session(directory, "empty.jsonl", [])
    write_session(directory, "garbage.jsonl", ["not json", "{broken", "[1, 2]"])
    (directory / "notes.txt").write_text("not a session", encoding="utf-8")
    return directory
