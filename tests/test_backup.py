"""Tests for backup runs and manifests."""

import errno
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from cachekill.backup import (
    MANIFEST_NAME,
    create_run_dir,
    find_latest_manifest,
    list_backups,
    load_manifest,
    move_tree,
    parse_run_name,
    prune_backups,
    remove_empty_run_dir,
    resolve_backup_dir,
    save_manifest,
)
from cachekill.errors import (
    ConfigError,
    CrossDeviceMoveError,
    FailureReason,
    ManifestMissingOrCorruptError,
    SourceRemovalError,
)
from cachekill.models import BackupManifest, BackupRecord, CacheKind
from conftest import NOW, write_file


def make_run(backup_dir: Path, when, entries=1) -> Path:
    run_dir = create_run_dir(backup_dir, when)
    records = [
        BackupRecord(original_path=f"/p/c{i}", backup_relative_path=f"c{i}", kind=CacheKind.JS, size_bytes=10)
        for i in range(entries)
    ]
    save_manifest(run_dir, BackupManifest(timestamp=run_dir.name, created_at=when, root="/p", entries=records))
    return run_dir


class TestRunDirectories:
    def test_name_format(self, tmp_path):
        run_dir = create_run_dir(tmp_path / "backups", NOW)
        assert run_dir.name == "2026-03-01_12-00-00"
        assert run_dir.is_dir()

    def test_collision_suffix(self, tmp_path):
        first = create_run_dir(tmp_path, NOW)
        second = create_run_dir(tmp_path, NOW)
        third = create_run_dir(tmp_path, NOW)
        assert (first.name, second.name, third.name) == (
            "2026-03-01_12-00-00",
            "2026-03-01_12-00-00-1",
            "2026-03-01_12-00-00-2",
        )

    def test_parse_run_name(self):
        assert parse_run_name("2026-03-01_12-00-00-3") == NOW
        assert parse_run_name("not-a-run") is None

    def test_resolve_relative_to_root(self, tmp_path):
        assert resolve_backup_dir(tmp_path, ".cachekill-backup") == tmp_path / ".cachekill-backup"

    def test_resolve_absolute(self, tmp_path):
        assert resolve_backup_dir("/elsewhere", tmp_path / "b") == tmp_path / "b"


class TestManifest:
    def test_save_and_load(self, tmp_path):
        run_dir = make_run(tmp_path, NOW, entries=2)

        manifest = load_manifest(run_dir)

        assert manifest.timestamp == run_dir.name
        assert manifest.created_at == NOW
        assert len(manifest.entries) == 2
        assert list(run_dir.glob(".manifest-*")) == []

    def test_load_missing(self, tmp_path):
        with pytest.raises(ManifestMissingOrCorruptError):
            load_manifest(tmp_path)

    def test_load_corrupt(self, tmp_path):
        (tmp_path / MANIFEST_NAME).write_text("{ not json")
        with pytest.raises(ManifestMissingOrCorruptError):
            load_manifest(tmp_path)

    def test_load_invalid_fields(self, tmp_path):
        (tmp_path / MANIFEST_NAME).write_text('{"entries": "nope"}')
        with pytest.raises(ManifestMissingOrCorruptError):
            load_manifest(tmp_path)


class TestFindLatestManifest:
    def test_latest_by_created_at(self, tmp_path):
        make_run(tmp_path, NOW - timedelta(days=2))
        newest = make_run(tmp_path, NOW)
        make_run(tmp_path, NOW - timedelta(days=1))

        run_dir, manifest = find_latest_manifest(tmp_path)

        assert run_dir == newest
        assert manifest.created_at == NOW

    def test_ignores_runs_without_manifest(self, tmp_path):
        older = make_run(tmp_path, NOW - timedelta(days=1))
        create_run_dir(tmp_path, NOW)

        run_dir, _ = find_latest_manifest(tmp_path)

        assert run_dir == older

    def test_no_runs(self, tmp_path):
        with pytest.raises(ManifestMissingOrCorruptError):
            find_latest_manifest(tmp_path / "missing")

    def test_corrupt_latest_raises(self, tmp_path):
        make_run(tmp_path, NOW - timedelta(days=1))
        latest = create_run_dir(tmp_path, NOW)
        (latest / MANIFEST_NAME).write_text("garbage")

        with pytest.raises(ManifestMissingOrCorruptError):
            find_latest_manifest(tmp_path)

    def test_corrupt_older_is_passed_over(self, tmp_path):
        old = create_run_dir(tmp_path, NOW - timedelta(days=3))
        (old / MANIFEST_NAME).write_text("garbage")
        newest = make_run(tmp_path, NOW)

        assert find_latest_manifest(tmp_path)[0] == newest


class TestMoveTree:
    def test_rename(self, tmp_path):
        src = tmp_path / "src"
        write_file(src / "a" / "f", 10)
        dst = tmp_path / "deep" / "dst"

        move_tree(src, dst)

        assert not src.exists()
        assert (dst / "a" / "f").read_bytes() == b"x" * 10

    def test_cross_device_falls_back_to_copy(self, tmp_path):
        src = tmp_path / "src"
        write_file(src / "f", 10)
        dst = tmp_path / "dst"

        with patch("cachekill.backup.os.rename", side_effect=OSError(errno.EXDEV, "Invalid cross-device link")):
            move_tree(src, dst)

        assert not src.exists()
        assert (dst / "f").read_bytes() == b"x" * 10

    def test_failed_copy_removes_partial(self, tmp_path):
        src = tmp_path / "src"
        write_file(src / "f", 10)
        dst = tmp_path / "dst"

        def failing_copytree(source, target, symlinks=False):
            Path(target).mkdir()
            (Path(target) / "partial").write_text("x")
            raise OSError(errno.ENOSPC, "No space left on device")

        with patch("cachekill.backup.os.rename", side_effect=OSError(errno.EXDEV, "Invalid cross-device link")):
            with patch("cachekill.backup.shutil.copytree", side_effect=failing_copytree):
                with pytest.raises(CrossDeviceMoveError):
                    move_tree(src, dst)

        assert not dst.exists()
        assert (src / "f").exists()

    def test_failed_source_removal_keeps_copy(self, tmp_path):
        src = tmp_path / "src"
        write_file(src / "f", 10)
        dst = tmp_path / "dst"

        with patch("cachekill.backup.os.rename", side_effect=OSError(errno.EXDEV, "Invalid cross-device link")):
            with patch("cachekill.backup.shutil.rmtree", side_effect=PermissionError(errno.EACCES, "denied")):
                with pytest.raises(SourceRemovalError) as exc_info:
                    move_tree(src, dst)

        assert exc_info.value.reason == FailureReason.PERMISSION_DENIED
        assert (dst / "f").read_bytes() == b"x" * 10
        assert (src / "f").exists()

    def test_other_errors_propagate(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            move_tree(tmp_path / "missing", tmp_path / "dst")


class TestRemoveEmptyRunDir:
    def test_removes_empty_tree(self, tmp_path):
        run_dir = tmp_path / "run"
        (run_dir / "a" / "b").mkdir(parents=True)

        assert remove_empty_run_dir(run_dir) is True
        assert not run_dir.exists()

    def test_keeps_run_holding_data(self, tmp_path):
        run_dir = tmp_path / "run"
        write_file(run_dir / "node_modules" / "f", 10)

        assert remove_empty_run_dir(run_dir) is False
        assert (run_dir / "node_modules" / "f").exists()


class TestListAndPrune:
    def test_list_newest_first(self, tmp_path):
        make_run(tmp_path, NOW - timedelta(days=1), entries=1)
        make_run(tmp_path, NOW, entries=3)
        create_run_dir(tmp_path, NOW - timedelta(days=5))

        runs = list_backups(tmp_path)

        assert [r.entry_count for r in runs] == [3, 1, 0]
        assert [r.restorable for r in runs] == [True, True, False]
        assert runs[0].size_bytes == 30

    def test_list_missing_dir(self, tmp_path):
        assert list_backups(tmp_path / "nope") == []

    def test_backup_path_is_a_file(self, tmp_path):
        backup = write_file(tmp_path / "backup", 1)

        with pytest.raises(ConfigError, match="not a directory"):
            list_backups(backup)
        with pytest.raises(ConfigError):
            find_latest_manifest(backup)

    def test_prune_older_than(self, tmp_path):
        old = make_run(tmp_path, NOW - timedelta(days=30))
        recent = make_run(tmp_path, NOW - timedelta(days=2))

        removed = prune_backups(tmp_path, 14, now=NOW)

        assert [r.timestamp for r in removed] == [old.name]
        assert not old.exists()
        assert recent.exists()

    def test_prune_keeps_undated_runs(self, tmp_path):
        (tmp_path / "manual-copy").mkdir()

        assert prune_backups(tmp_path, 0, now=NOW) == []
        assert (tmp_path / "manual-copy").exists()
