"""Core data models for session-archive."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class EventKind(str, Enum):
    SESSION_START = "session-start"
    MODEL_CHANGE = "model-change"
    MESSAGE = "message"
    OTHER = "other"


class BlockKind(str, Enum):
    TEXT = "text"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    THINKING = "thinking"
    OTHER = "other"


class ReadStatus(str, Enum):
    """Outcome of reading a file or scanning the archive directory."""

    OK = "ok"
    EMPTY = "empty"
    ERROR = "error"


@dataclass(frozen=True)
class SessionFile:
    """One archive entry as observed on disk."""

    name: str  # "abc123.jsonl"
    session_id: str  # file name without extension
    path: str
    size: int
    mtime_ns: int

    @property
    def signature(self) -> tuple[int, int]:
        return (self.mtime_ns, self.size)


@dataclass(frozen=True)
class Usage:
    tokens: int = 0
    cost: float = 0.0


@dataclass(frozen=True)
class ContentBlock:
    """A message content block in canonical form."""

    kind: BlockKind
    text: str = ""
    name: str = ""  # tool name, for tool calls
    arguments: Any = None  # raw tool arguments (str or structured)
    result: Any = None  # raw tool result payload


@dataclass(frozen=True)
class Event:
    """One decoded record from a session file.

    Only the fields relevant to ``kind`` are populated.
    """

    kind: EventKind
    raw_type: str = ""
    timestamp: Optional[datetime] = None
    # session-start
    session_id: Optional[str] = None
    cwd: Optional[str] = None
    # model-change, and the optional per-message model
    model: Optional[str] = None
    provider: Optional[str] = None
    # message
    role: str = ""
    content: tuple[ContentBlock, ...] = ()
    plain_text: bool = False  # content was a bare string
    usage: Optional[Usage] = None


@dataclass(frozen=True)
class SessionMeta:
    """Summary of one session file, valid for a single file signature."""

    id: str
    model: str
    provider: str
    message_count: int
    tool_call_count: int
    prompt: str
    total_cost: float
    total_tokens: int
    timestamp: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    cwd: Optional[str] = None
    file: str = ""
    file_size: int = 0
    modified_at: Optional[datetime] = None


@dataclass(frozen=True)
class ToolInvocation:
    name: str
    arguments: str


@dataclass(frozen=True)
class TimelineItem:
    """A single message, ready for display."""

    role: str
    text: str
    timestamp: Optional[datetime] = None
    tools: tuple[ToolInvocation, ...] = ()
    thinking: str = ""
    usage: Optional[Usage] = None


@dataclass(frozen=True)
class SessionDetail:
    meta: SessionMeta
    timeline: tuple[TimelineItem, ...]


@dataclass(frozen=True)
class FileRead:
    """Result of reading one session file."""

    status: ReadStatus
    events: tuple[Event, ...] = ()
    skipped: int = 0  # malformed lines
    error: str = ""
    missing: bool = False  # file vanished before it could be opened


@dataclass(frozen=True)
class DirectoryScan:
    """Result of listing the archive directory."""

    status: ReadStatus
    files: tuple[SessionFile, ...] = ()
    error: str = ""


@dataclass(frozen=True)
class ListResult:
    """Result of a list request.

    ``not_modified`` is set when the caller's tag is still current; in that
    case ``sessions`` is empty.
    """

    etag: str
    not_modified: bool = False
    sessions: tuple[SessionMeta, ...] = ()


class DetailStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class DetailResult:
    status: DetailStatus
    detail: Optional[SessionDetail] = None
    error: str = ""


@dataclass
class CacheStats:
    """Counters exposed for diagnostics."""

    entries: int = 0
    version: int = 0
    parses: int = 0
    evictions: int = 0
    skipped_empty: int = 0
