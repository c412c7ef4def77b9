"""Tests for the archive cache."""

import json
import os
import threading
from unittest.mock import patch

from session_archive import cache as cache_module
from session_archive.cache import ArchiveCache
from session_archive.config import LIST_PROMPT_CHARS

BASE_NS = 1_737_000_000 * 10**9


def _ids(summaries):
    return [m.id for m in summaries]


class TestListSummaries:
    def test_excludes_files_without_events(self, sessions_dir):
        summaries, _ = ArchiveCache(sessions_dir).list_summaries(50)
        assert _ids(summaries) == ["sess-alpha", "sess-beta"]

    def test_sorted_by_modification_time(self, sessions_dir):
        os.utime(sessions_dir / "sess-beta.jsonl", ns=(BASE_NS + 900 * 10**9,) * 2)
        summaries, _ = ArchiveCache(sessions_dir).list_summaries(50)
        assert _ids(summaries) == ["sess-beta", "sess-alpha"]

    def test_limit(self, sessions_dir):
        summaries, _ = ArchiveCache(sessions_dir).list_summaries(1)
        assert _ids(summaries) == ["sess-alpha"]

    def test_summary_carries_file_info(self, sessions_dir):
        summaries, _ = ArchiveCache(sessions_dir).list_summaries(50)
        alpha = summaries[0]
        assert alpha.file == "sess-alpha.jsonl"
        assert alpha.file_size == (sessions_dir / "sess-alpha.jsonl").stat().st_size
        assert alpha.modified_at.timestamp() == (BASE_NS + 200 * 10**9) / 1e9

    def test_prompt_uses_list_bound(self, tmp_path, write_session):
        write_session(tmp_path, "long.jsonl", [{"type": "message", "role": "user", "content": "p" * 5000}])
        summaries, _ = ArchiveCache(tmp_path).list_summaries(50)
        assert summaries[0].prompt == "p" * LIST_PROMPT_CHARS

    def test_missing_directory(self, tmp_path):
        cache = ArchiveCache(tmp_path / "missing")
        summaries, tag = cache.list_summaries(50)
        assert summaries == []
        assert tag

    def test_custom_extension(self, tmp_path, write_session, alpha_records):
        write_session(tmp_path, "a.log", alpha_records)
        write_session(tmp_path, "b.jsonl", alpha_records)
        summaries, _ = ArchiveCache(tmp_path, extension=".log").list_summaries(50)
        assert [m.file for m in summaries] == ["a.log"]

    def test_deeply_nested_line_is_skipped(self, tmp_path, write_session):
        write_session(tmp_path, "deep.jsonl", [
            {"type": "session", "id": "deep"},
            {"type": "message", "role": "user", "content": "first"},
            "[" * 100_000,
            {"type": "message", "role": "assistant", "content": "second"},
        ])
        summaries, _ = ArchiveCache(tmp_path).list_summaries(50)
        assert _ids(summaries) == ["deep"]
        assert summaries[0].message_count == 2


class TestRevalidation:
    def test_unchanged_directory_keeps_tag_and_version(self, sessions_dir):
        cache = ArchiveCache(sessions_dir)
        _, tag1 = cache.list_summaries(50)
        version = cache.version
        _, tag2 = cache.list_summaries(50)
        assert tag1 == tag2
        assert cache.version == version

    def test_unchanged_files_are_not_reparsed(self, sessions_dir):
        cache = ArchiveCache(sessions_dir)
        cache.list_summaries(50)
        with patch.object(cache_module, "read_session_file", wraps=cache_module.read_session_file) as reader:
            cache.list_summaries(50)
            reader.assert_not_called()

    def test_changed_file_is_reparsed(self, sessions_dir, write_session, alpha_records):
        cache = ArchiveCache(sessions_dir)
        _, tag1 = cache.list_summaries(50)

        extra = {
            "type": "message",
            "message": {"role": "assistant", "content": "more", "usage": {"totalTokens": 100}},
        }
        write_session(sessions_dir, "sess-alpha.jsonl", alpha_records + [extra], mtime_ns=BASE_NS + 300 * 10**9)

        summaries, tag2 = cache.list_summaries(50)
        alpha = next(m for m in summaries if m.id == "sess-alpha")
        assert alpha.message_count == 5
        assert alpha.total_tokens == 115
        assert tag2 != tag1

    def test_size_change_alone_is_detected(self, sessions_dir):
        cache = ArchiveCache(sessions_dir)
        cache.list_summaries(50)

        path = sessions_dir / "sess-beta.jsonl"
        mtime_ns = path.stat().st_mtime_ns
        with path.open("a", encoding="utf-8") as f:
            f.write(json.dumps({"type": "message", "role": "user", "content": "again"}) + "\n")
        os.utime(path, ns=(mtime_ns, mtime_ns))

        summaries, _ = cache.list_summaries(50)
        beta = next(m for m in summaries if m.id == "sess-beta")
        assert beta.message_count == 4

    def test_deleted_file_is_evicted(self, sessions_dir):
        cache = ArchiveCache(sessions_dir)
        _, tag1 = cache.list_summaries(50)
        (sessions_dir / "sess-beta.jsonl").unlink()
        summaries, tag2 = cache.list_summaries(50)
        assert _ids(summaries) == ["sess-alpha"]
        assert tag2 != tag1
        assert cache.stats().evictions == 1

    def test_empty_file_included_once_it_has_events(self, sessions_dir, write_session):
        cache = ArchiveCache(sessions_dir)
        cache.list_summaries(50)
        write_session(
            sessions_dir, "empty.jsonl",
            [{"type": "session", "id": "late"}],
            mtime_ns=BASE_NS + 500 * 10**9,
        )
        summaries, _ = cache.list_summaries(50)
        assert _ids(summaries) == ["late", "sess-alpha", "sess-beta"]

    def test_unchanged_empty_file_not_reread(self, sessions_dir):
        cache = ArchiveCache(sessions_dir)
        cache.list_summaries(50)
        assert cache.stats().skipped_empty == 2
        cache.list_summaries(50)
        assert cache.stats().skipped_empty == 2
        assert cache.stats().parses == 4

    def test_file_emptied_is_evicted(self, sessions_dir, write_session):
        cache = ArchiveCache(sessions_dir)
        cache.list_summaries(50)
        write_session(sessions_dir, "sess-beta.jsonl", ["garbage"], mtime_ns=BASE_NS + 400 * 10**9)
        summaries, _ = cache.list_summaries(50)
        assert _ids(summaries) == ["sess-alpha"]

    def test_version_counts_transitions(self, sessions_dir):
        cache = ArchiveCache(sessions_dir)
        assert cache.version == 0
        cache.list_summaries(50)
        assert cache.version == 2
        (sessions_dir / "sess-alpha.jsonl").unlink()
        cache.list_summaries(50)
        assert cache.version == 3

    def test_tags_differ_between_instances(self, sessions_dir):
        _, tag1 = ArchiveCache(sessions_dir).list_summaries(50)
        _, tag2 = ArchiveCache(sessions_dir).list_summaries(50)
        assert tag1 != tag2


class TestConcurrency:
    def test_overlapping_refreshes_agree(self, tmp_path, write_session, alpha_records):
        for i in range(20):
            records = [dict(alpha_records[0], id=f"s{i:02d}")] + alpha_records[1:]
            write_session(tmp_path, f"s{i:02d}.jsonl", records, mtime_ns=BASE_NS + i * 10**9)

        cache = ArchiveCache(tmp_path)
        results = []
        errors = []

        def worker():
            try:
                results.append(cache.list_summaries(50))
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert cache.stats().entries == 20
        assert cache.version == 20
        summaries, _ = cache.list_summaries(50)
        assert _ids(summaries) == [f"s{i:02d}" for i in reversed(range(20))]
        assert len(results) == 8
        assert all(len(s) == 20 for s, _ in results)

    def test_older_scan_committing_late_is_discarded(self, sessions_dir, write_session, alpha_records):
        real_scan = cache_module.scan_directory
        old_listing = real_scan(sessions_dir, ".jsonl")
        records = [dict(alpha_records[0], id="sess-gamma")] + alpha_records[1:]
        write_session(sessions_dir, "sess-gamma.jsonl", records, mtime_ns=BASE_NS + 300 * 10**9)

        first_scanning = threading.Event()
        newer_committed = threading.Event()
        calls = []

        def scan(path, extension):
            calls.append(path)
            if len(calls) == 1:
                first_scanning.set()
                newer_committed.wait(5)
                return old_listing
            return real_scan(path, extension)

        cache = ArchiveCache(sessions_dir)
        late = []
        with patch.object(cache_module, "scan_directory", side_effect=scan):
            thread = threading.Thread(target=lambda: late.append(cache.list_summaries(50)))
            thread.start()
            assert first_scanning.wait(5)
            summaries, tag = cache.list_summaries(50)
            newer_committed.set()
            thread.join()

        assert _ids(summaries) == ["sess-gamma", "sess-alpha", "sess-beta"]
        late_summaries, late_tag = late[0]
        assert _ids(late_summaries) == ["sess-gamma", "sess-alpha", "sess-beta"]
        assert late_tag == tag
        assert cache.stats().evictions == 0
        assert _ids(cache.list_summaries(50)[0]) == ["sess-gamma", "sess-alpha", "sess-beta"]
