"""Tests for size, last-used and staleness inspection."""

import os
from datetime import timedelta
from unittest.mock import patch

import pytest

from cachekill.errors import CandidateUnreadable, FailureReason
from cachekill.inspector import inspect, inspect_all, is_stale, summarize, walk_tree
from cachekill.models import Candidate, CacheEntry, CacheKind
from conftest import NOW, set_age, write_file


class TestIsStale:
    def test_exactly_threshold_is_not_stale(self):
        assert not is_stale(NOW - timedelta(days=14), 14, now=NOW)

    def test_one_day_past_threshold_is_stale(self):
        assert is_stale(NOW - timedelta(days=15), 14, now=NOW)

    def test_just_past_threshold_is_stale(self):
        assert is_stale(NOW - timedelta(days=14, seconds=1), 14, now=NOW)

    def test_zero_threshold(self):
        assert is_stale(NOW - timedelta(seconds=1), 0, now=NOW)
        assert not is_stale(NOW, 0, now=NOW)


class TestWalkTree:
    def test_sums_file_sizes(self, tmp_path):
        write_file(tmp_path / "a.bin", 100)
        write_file(tmp_path / "sub" / "b.bin", 250)

        stats = walk_tree(tmp_path)

        assert stats.size_bytes == 350
        assert stats.file_count == 2

    def test_newest_mtime(self, tmp_path):
        write_file(tmp_path / "old", 1, age_days=30)
        write_file(tmp_path / "sub" / "new", 1, age_days=2)

        stats = walk_tree(tmp_path)

        assert stats.newest_mtime == pytest.approx((NOW - timedelta(days=2)).timestamp())

    def test_symlinks_contribute_nothing(self, tmp_path):
        target = write_file(tmp_path / "outside" / "big", 10_000)
        cache = tmp_path / "cache"
        write_file(cache / "small", 10)
        (cache / "link").symlink_to(target)
        (cache / "dirlink").symlink_to(target.parent)

        assert walk_tree(cache).size_bytes == 10

    def test_empty_directory_uses_own_mtime(self, tmp_path):
        cache = tmp_path / "empty"
        cache.mkdir()
        set_age(cache, 40)

        stats = walk_tree(cache)

        assert stats.size_bytes == 0
        assert stats.newest_mtime == pytest.approx((NOW - timedelta(days=40)).timestamp())

    def test_single_file(self, tmp_path):
        write_file(tmp_path / "blob", 42, age_days=1)
        assert walk_tree(tmp_path / "blob").size_bytes == 42

    def test_missing_path_raises(self, tmp_path):
        with pytest.raises(CandidateUnreadable) as exc_info:
            walk_tree(tmp_path / "missing")
        assert exc_info.value.reason == FailureReason.NOT_FOUND

    def test_unreadable_root_raises(self, tmp_path):
        with patch("cachekill.inspector.os.scandir", side_effect=PermissionError(13, "Permission denied")):
            with pytest.raises(CandidateUnreadable) as exc_info:
                walk_tree(tmp_path)
        assert exc_info.value.reason == FailureReason.PERMISSION_DENIED

    def test_unreadable_subdirectory_becomes_warning(self, tmp_path):
        write_file(tmp_path / "ok", 5)
        (tmp_path / "locked").mkdir()
        real_scandir = os.scandir

        def scandir(path):
            if str(path).endswith("locked"):
                raise PermissionError(13, "Permission denied")
            return real_scandir(path)

        with patch("cachekill.inspector.os.scandir", side_effect=scandir):
            stats = walk_tree(tmp_path)

        assert stats.size_bytes == 5
        assert len(stats.warnings) == 1
        assert "locked" in stats.warnings[0]


class TestInspect:
    def test_builds_entry(self, tmp_path):
        cache = tmp_path / "node_modules"
        write_file(cache / "index.js", 1000, age_days=20)

        entry = inspect(Candidate(path=str(cache), kind=CacheKind.JS), 14, now=NOW)

        assert entry.path == str(cache)
        assert entry.kind == CacheKind.JS
        assert entry.size_bytes == 1000
        assert entry.stale
        assert entry.planned_action is None
        assert entry.last_used.tzinfo is not None

    def test_fresh_entry(self, tmp_path):
        write_file(tmp_path / "venv" / "f", 10, age_days=2)

        entry = inspect(Candidate(path=str(tmp_path / "venv"), kind=CacheKind.PYTHON), 14, now=NOW)

        assert not entry.stale


class TestInspectAll:
    def test_sorted_by_path_and_skips_unreadable(self, tmp_path):
        write_file(tmp_path / "b" / "f", 10)
        write_file(tmp_path / "a" / "f", 20)
        candidates = [
            Candidate(path=str(tmp_path / "b"), kind=CacheKind.JS),
            Candidate(path=str(tmp_path / "missing"), kind=CacheKind.JS),
            Candidate(path=str(tmp_path / "a"), kind=CacheKind.JS),
        ]

        entries, skipped = inspect_all(candidates, 14, workers=2, now=NOW)

        assert [e.path for e in entries] == [str(tmp_path / "a"), str(tmp_path / "b")]
        assert [s.path for s in skipped] == [str(tmp_path / "missing")]
        assert skipped[0].reason == FailureReason.NOT_FOUND

    def test_progress_callback(self, tmp_path):
        write_file(tmp_path / "a" / "f", 1)
        calls = []

        inspect_all(
            [Candidate(path=str(tmp_path / "a"), kind=CacheKind.JS)],
            14,
            now=NOW,
            progress_callback=lambda path, current, total: calls.append((current, total)),
        )

        assert calls == [(1, 1)]

    def test_empty(self):
        assert inspect_all([], 14) == ([], [])


class TestSummaries:
    def make(self, path, kind, size, stale):
        return CacheEntry(path=path, kind=kind, size_bytes=size, last_used=NOW, stale=stale)

    def test_summarize(self):
        entries = [
            self.make("/a", CacheKind.JS, 100, True),
            self.make("/b", CacheKind.JS, 50, False),
            self.make("/c", CacheKind.PYTHON, 10, True),
        ]

        summary = summarize(entries)

        assert summary.total_size_bytes == 160
        assert summary.total_count == 3
        assert summary.stale_count == 2
        assert summary.size_by_kind == {CacheKind.JS: 150, CacheKind.PYTHON: 10}
