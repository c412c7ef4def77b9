"""Path resolution, environment settings and size bounds."""

import os
from pathlib import Path

# Character bounds. Python slices on code points, so a cut never splits a
# multibyte character.
LIST_PROMPT_CHARS = 200
DETAIL_PROMPT_CHARS = 2000
TIMELINE_TEXT_CHARS = 3000
TOOL_ARGUMENTS_CHARS = 500
TOOL_RESULT_CHARS = 300
THINKING_CHARS = 1000

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 500

DEFAULT_FILE_EXTENSION = ".jsonl"
DEFAULT_PLACEHOLDER_MODELS = ("delivery-mirror",)


def get_sessions_path() -> Path:
    """Return the directory holding the per-session event logs."""
    env = os.environ.get("ARCHIVE_SESSIONS_PATH")
    if env:
        return Path(env).expanduser()

    return Path.home() / ".openclaw" / "agents" / "main" / "sessions"


def get_file_extension() -> str:
    """Return the session file extension, always with a leading dot."""
    ext = os.environ.get("ARCHIVE_FILE_EXTENSION", "").strip()
    if not ext:
        return DEFAULT_FILE_EXTENSION
    return ext if ext.startswith(".") else f".{ext}"


def get_placeholder_models() -> frozenset[str]:
    """Return model names used by relayed/mirrored messages.

    These never count as a real model choice when resolving a session's model.
    """
    env = os.environ.get("ARCHIVE_PLACEHOLDER_MODELS")
    if env is None:
        return frozenset(DEFAULT_PLACEHOLDER_MODELS)
    return frozenset(name.strip() for name in env.split(",") if name.strip())
