"""Read-only access to the session archive: summaries and full timelines."""

import logging
from collections.abc import Iterable
from pathlib import Path

from .cache import ArchiveCache
from .config import (
    DEFAULT_LIST_LIMIT,
    DETAIL_PROMPT_CHARS,
    LIST_PROMPT_CHARS,
    MAX_LIST_LIMIT,
    get_file_extension,
    get_placeholder_models,
    get_sessions_path,
)
from .core import CacheStats, DetailResult, DetailStatus, ListResult, ReadStatus, SessionDetail
from .decoder import read_session_file
from .reducer import reduce_session, with_file_info
from .timeline import build_timeline

logger = logging.getLogger(__name__)


class ArchiveService:
    """Lists cached session summaries and loads individual sessions.

    The summary cache is owned by the service and never exposed; detail
    loads bypass it and always read the file fresh.
    """

    def __init__(
        self,
        directory: Path | None = None,
        extension: str | None = None,
        placeholder_models: Iterable[str] | None = None,
    ):
        self.directory = Path(directory) if directory is not None else get_sessions_path()
        self.extension = extension or get_file_extension()
        if placeholder_models is None:
            placeholder_models = get_placeholder_models()
        self.placeholder_models = frozenset(placeholder_models)
        self._cache = ArchiveCache(
            self.directory,
            extension=self.extension,
            prompt_chars=LIST_PROMPT_CHARS,
            placeholder_models=self.placeholder_models,
        )
        logger.info("Session archive at %s (*%s)", self.directory, self.extension)

    def list_summaries(self, limit: int = DEFAULT_LIST_LIMIT, etag: str | None = None) -> ListResult:
        """Return the newest ``limit`` summaries, or "not modified".

        ``etag`` is the value of the caller's If-None-Match header.
        """
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        sessions, cache_tag = self._cache.list_summaries(limit)
        current = f'"{cache_tag}-{limit}"'

        if etag and etag_matches(etag, current):
            return ListResult(etag=current, not_modified=True)
        return ListResult(etag=current, sessions=tuple(sessions))

    def get_detail(self, session_id: str) -> DetailResult:
        """Load one session's summary and timeline straight from disk."""
        if not is_valid_session_id(session_id):
            return DetailResult(status=DetailStatus.NOT_FOUND, error="Session not found")

        path = self.directory / f"{session_id}{self.extension}"
        try:
            st = path.stat()
        except FileNotFoundError:
            return DetailResult(status=DetailStatus.NOT_FOUND, error="Session not found")
        except OSError as e:
            logger.warning("Failed to stat %s: %s", path, e)
            return DetailResult(status=DetailStatus.ERROR, error=str(e))

        result = read_session_file(path)
        if result.missing:
            return DetailResult(status=DetailStatus.NOT_FOUND, error="Session not found")
        if result.status is ReadStatus.ERROR:
            return DetailResult(status=DetailStatus.ERROR, error=result.error)

        meta = reduce_session(
            result.events,
            prompt_chars=DETAIL_PROMPT_CHARS,
            placeholder_models=self.placeholder_models,
        )
        meta = with_file_info(meta, path.name, st.st_size, st.st_mtime_ns)
        detail = SessionDetail(meta=meta, timeline=tuple(build_timeline(result.events)))
        return DetailResult(status=DetailStatus.OK, detail=detail)

    def stats(self) -> CacheStats:
        return self._cache.stats()


def is_valid_session_id(session_id: str) -> bool:
    """Reject ids that could resolve outside the archive directory."""
    if not session_id or session_id in (".", ".."):
        return False
    if "/" in session_id or "\\" in session_id or "\x00" in session_id:
        return False
    return True


def etag_matches(if_none_match: str, current: str) -> bool:
    """Weak comparison of an If-None-Match header against ``current``."""
    if if_none_match.strip() == "*":
        return True
    target = _strip_weak(current)
    return any(_strip_weak(tag.strip()) == target for tag in if_none_match.split(","))


def _strip_weak(tag: str) -> str:
    return tag[2:] if tag.startswith("W/") else tag
