"""In-process cache of session summaries keyed by file name.

Each list request re-scans the archive directory (one stat per file) and only
re-reads files whose (mtime, size) signature changed since they were cached.
Every insert, replacement or eviction bumps a version counter; the sorted
snapshot and the cache tag are rebuilt only when the version moves.

File reads happen outside the lock. Reconciliation and snapshot rebuilds
happen under it, and a refresh whose directory scan is older than one already
committed is discarded instead of applied.
"""

import logging
import threading
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, replace
from pathlib import Path

from .config import DEFAULT_FILE_EXTENSION, LIST_PROMPT_CHARS
from .core import CacheStats, ReadStatus, SessionFile, SessionMeta
from .decoder import read_session_file, scan_directory
from .reducer import reduce_session, with_file_info

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    meta: SessionMeta
    signature: tuple[int, int]  # (mtime_ns, size)


class ArchiveCache:
    """Summaries of every parseable session file in one directory."""

    def __init__(
        self,
        directory: Path,
        extension: str = DEFAULT_FILE_EXTENSION,
        prompt_chars: int = LIST_PROMPT_CHARS,
        placeholder_models: Iterable[str] | None = None,
    ):
        self.directory = Path(directory)
        self.extension = extension
        self.prompt_chars = prompt_chars
        self.placeholder_models = (
            frozenset(placeholder_models) if placeholder_models is not None else None
        )

        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        # Files that decoded to zero events, by signature, so they are not
        # re-read until they change.
        self._unparseable: dict[str, tuple[int, int]] = {}
        self._version = 0
        self._snapshot: tuple[SessionMeta, ...] = ()
        self._snapshot_version = 0
        self._epoch = uuid.uuid4().hex[:12]
        self._tag = self._make_tag()
        self._scan_seq = 0
        self._committed_seq = 0
        self._stats = CacheStats()

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def list_summaries(self, limit: int) -> tuple[list[SessionMeta], str]:
        """Reconcile with the directory and return the newest ``limit`` summaries.

        Returns the summaries (most recently modified first) and the cache tag.
        """
        snapshot, tag = self.refresh()
        return list(snapshot[:limit]), tag

    def refresh(self) -> tuple[tuple[SessionMeta, ...], str]:
        """Bring the cache in line with the directory; return snapshot and tag."""
        with self._lock:
            self._scan_seq += 1
            seq = self._scan_seq

        scan = scan_directory(self.directory, self.extension)
        files = {f.name: f for f in scan.files}

        with self._lock:
            stale = [f for f in files.values() if self._is_stale(f)]

        parsed = [(f, self._parse(f)) for f in stale]

        with self._lock:
            if seq < self._committed_seq:
                # A newer scan already landed
                return self._snapshot, self._tag
            self._committed_seq = seq
            self._reconcile(files, parsed)
            if self._snapshot_version != self._version:
                self._rebuild_snapshot()
            return self._snapshot, self._tag

    def stats(self) -> CacheStats:
        with self._lock:
            return replace(self._stats, entries=len(self._entries), version=self._version)

    # ── Private helpers (callers hold the lock unless noted) ─────────

    def _is_stale(self, f: SessionFile) -> bool:
        entry = self._entries.get(f.name)
        if entry is not None:
            return entry.signature != f.signature
        return self._unparseable.get(f.name) != f.signature

    def _parse(self, f: SessionFile) -> tuple[ReadStatus, SessionMeta | None]:
        """Read and reduce one file. Runs without the lock."""
        result = read_session_file(Path(f.path))
        if result.status is not ReadStatus.OK:
            return result.status, None

        meta = reduce_session(
            result.events,
            prompt_chars=self.prompt_chars,
            placeholder_models=self.placeholder_models,
        )
        return ReadStatus.OK, with_file_info(meta, f.name, f.size, f.mtime_ns)

    def _reconcile(
        self,
        files: dict[str, SessionFile],
        parsed: list[tuple[SessionFile, tuple[ReadStatus, SessionMeta | None]]],
    ) -> None:
        for name in [n for n in self._entries if n not in files]:
            self._evict(name)
        for name in [n for n in self._unparseable if n not in files]:
            del self._unparseable[name]

        for f, (status, meta) in parsed:
            self._stats.parses += 1
            if not self._is_stale(f):
                # Applied by an overlapping refresh
                continue
            if meta is None:
                if f.name in self._entries:
                    self._evict(f.name)
                if status is ReadStatus.EMPTY:
                    self._unparseable[f.name] = f.signature
                    self._stats.skipped_empty += 1
                continue

            self._unparseable.pop(f.name, None)
            self._entries[f.name] = CacheEntry(meta=meta, signature=f.signature)
            self._version += 1

    def _evict(self, name: str) -> None:
        del self._entries[name]
        self._version += 1
        self._stats.evictions += 1

    def _rebuild_snapshot(self) -> None:
        ordered = sorted(self._entries.items(), key=lambda item: (-item[1].signature[0], item[0]))
        self._snapshot = tuple(entry.meta for _, entry in ordered)
        self._snapshot_version = self._version
        self._tag = self._make_tag()
        logger.info(
            "Rebuilt session snapshot: %d sessions, version %d",
            len(self._snapshot), self._version,
        )

    def _make_tag(self) -> str:
        return f"{self._epoch}-{self._version}-{len(self._entries)}"
