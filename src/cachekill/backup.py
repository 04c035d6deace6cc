"""Backup run directories and their manifests.

A backup run lives in ``{backup_dir}/{timestamp}/`` and mirrors the moved
cache paths below it. ``manifest.json`` is written last, atomically, so a run
without one was interrupted and is never restored from.
"""

import errno
import json
import logging
import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import ValidationError

from cachekill.errors import (
    CacheKillError,
    ConfigError,
    CrossDeviceMoveError,
    ManifestMissingOrCorruptError,
    SourceRemovalError,
    classify_os_error,
)
from cachekill.models import BackupManifest, BackupRun, utc_now
from cachekill.paths import canonical, expand_path

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"

# Run directory names; sortable and safe on every platform
RUN_NAME_FORMAT = "%Y-%m-%d_%H-%M-%S"


def resolve_backup_dir(root: str | Path, backup_dir: str | Path) -> Path:
    """Absolute backup directory; relative paths resolve against root."""
    path = expand_path(str(backup_dir))
    if not path.is_absolute():
        path = Path(root) / path
    return canonical(path)


def parse_run_name(name: str) -> datetime | None:
    """Creation time encoded in a run directory name, if it has one."""
    base = name[: len("YYYY-MM-DD_HH-MM-SS")]
    try:
        return datetime.strptime(base, RUN_NAME_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def create_run_dir(backup_dir: Path, now: datetime) -> Path:
    """
    Create a fresh run directory named after now.

    Appends -1, -2, ... when a run with the same second already exists.

    Args:
        backup_dir: Backup directory (created if missing)
        now: Run time

    Returns:
        Path of the new, empty run directory
    """
    backup_dir.mkdir(parents=True, exist_ok=True)
    base = now.strftime(RUN_NAME_FORMAT)

    suffix = 0
    while True:
        name = base if suffix == 0 else f"{base}-{suffix}"
        run_dir = backup_dir / name
        try:
            run_dir.mkdir()
            return run_dir
        except FileExistsError:
            suffix += 1


def save_manifest(run_dir: Path, manifest: BackupManifest) -> Path:
    """
    Write manifest.json atomically.

    The manifest is written to a temporary file in the run directory and
    renamed over the final name, so readers see the old or new file, never
    a partial one.

    Args:
        run_dir: Run directory
        manifest: Manifest to persist

    Returns:
        Path of the written manifest
    """
    target = run_dir / MANIFEST_NAME
    fd, tmp_name = tempfile.mkstemp(prefix=".manifest-", suffix=".tmp", dir=run_dir)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(manifest.model_dump_json(indent=2))
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return target


def load_manifest(run_dir: Path) -> BackupManifest:
    """
    Read and validate a run's manifest.

    Raises:
        ManifestMissingOrCorruptError: If the file is absent, unreadable or invalid
    """
    path = run_dir / MANIFEST_NAME
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return BackupManifest.model_validate(data)
    except FileNotFoundError as e:
        raise ManifestMissingOrCorruptError(f"No backup manifest at {path}") from e
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
        raise ManifestMissingOrCorruptError(f"Corrupt backup manifest at {path}: {e}") from e


def _run_dirs(backup_dir: Path) -> list[Path]:
    try:
        with os.scandir(backup_dir) as entries:
            return sorted(Path(e.path) for e in entries if e.is_dir(follow_symlinks=False))
    except FileNotFoundError:
        return []
    except NotADirectoryError as e:
        raise ConfigError(f"Backup path is not a directory: {backup_dir}") from e
    except OSError as e:
        raise CacheKillError(f"Cannot read backup directory {backup_dir}: {e}", classify_os_error(e)) from e


def find_latest_manifest(backup_dir: Path) -> tuple[Path, BackupManifest]:
    """
    Locate the most recent persisted backup run.

    Runs are ordered by the manifest's created_at. Run directories without a
    manifest are ignored; a corrupt manifest is ordered by its directory
    name and, if it is the newest run, reported as an error.

    Args:
        backup_dir: Backup directory

    Returns:
        Tuple of (run directory, manifest)

    Raises:
        ManifestMissingOrCorruptError: If there is no usable latest manifest
    """
    latest: tuple[datetime, Path, BackupManifest | None, Exception | None] | None = None
    oldest = datetime.min.replace(tzinfo=timezone.utc)

    for run_dir in _run_dirs(backup_dir):
        if not (run_dir / MANIFEST_NAME).is_file():
            logger.debug("Ignoring backup run without manifest: %s", run_dir)
            continue
        try:
            manifest = load_manifest(run_dir)
            key, error = manifest.created_at, None
        except ManifestMissingOrCorruptError as e:
            manifest, error = None, e
            key = parse_run_name(run_dir.name) or oldest
        if latest is None or (key, run_dir.name) > (latest[0], latest[1].name):
            latest = (key, run_dir, manifest, error)

    if latest is None:
        raise ManifestMissingOrCorruptError(f"No backup manifest found in {backup_dir}")

    _, run_dir, manifest, error = latest
    if manifest is None:
        raise error
    return run_dir, manifest


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def move_tree(src: Path, dst: Path) -> None:
    """
    Move a file or directory tree, creating dst's parents.

    Uses a rename; across filesystems falls back to copy-then-remove.

    Raises:
        CrossDeviceMoveError: If the cross-device copy fails (partial copy removed)
        SourceRemovalError: If the copy is complete at dst but src could not be fully removed
        OSError: For any other failure
    """
    dst.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.rename(src, dst)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise

    logger.debug("Cross-device move, copying %s to %s", src, dst)
    try:
        if src.is_dir() and not src.is_symlink():
            shutil.copytree(src, dst, symlinks=True)
        else:
            shutil.copy2(src, dst, follow_symlinks=False)
    except (OSError, shutil.Error) as e:
        if os.path.lexists(dst):
            _remove(dst)
        raise CrossDeviceMoveError(f"Could not copy {src} to {dst}: {e}") from e

    try:
        _remove(src)
    except OSError as e:
        raise SourceRemovalError(
            f"Copied {src} to {dst} but could not remove the source: {e}",
            classify_os_error(e),
        ) from e


def remove_run_dir(run_dir: Path) -> None:
    """Delete a run directory and everything in it."""
    shutil.rmtree(run_dir)


def remove_empty_run_dir(run_dir: Path) -> bool:
    """
    Delete a run directory that holds nothing but empty directories.

    Directories are removed bottom-up with os.rmdir, so any file left
    inside stops the removal and keeps the run directory.

    Returns:
        True if the run directory is gone
    """
    for dirpath, _, _ in os.walk(run_dir, topdown=False):
        try:
            os.rmdir(dirpath)
        except OSError as e:
            logger.warning("Keeping backup run %s: %s is not empty (%s)", run_dir, dirpath, e)
            return False
    return True


def _summarize_run(run_dir: Path) -> BackupRun:
    if (run_dir / MANIFEST_NAME).is_file():
        try:
            manifest = load_manifest(run_dir)
        except ManifestMissingOrCorruptError as e:
            logger.warning("%s", e.message)
        else:
            return BackupRun(
                timestamp=run_dir.name,
                path=str(run_dir),
                created_at=manifest.created_at,
                entry_count=len(manifest.entries),
                size_bytes=manifest.total_size_bytes,
                restorable=True,
            )

    return BackupRun(
        timestamp=run_dir.name,
        path=str(run_dir),
        created_at=parse_run_name(run_dir.name),
    )


def list_backups(backup_dir: Path) -> list[BackupRun]:
    """
    Summaries of every run in a backup directory, newest first.

    Args:
        backup_dir: Backup directory

    Returns:
        List of BackupRun; runs without a valid manifest are not restorable
    """
    runs = [_summarize_run(run_dir) for run_dir in _run_dirs(backup_dir)]
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    runs.sort(key=lambda r: (r.created_at or oldest, r.timestamp), reverse=True)
    return runs


def prune_backups(
    backup_dir: Path,
    older_than_days: int,
    now: datetime | None = None,
) -> list[BackupRun]:
    """
    Delete backup runs created more than older_than_days ago.

    Runs whose age cannot be determined are kept.

    Args:
        backup_dir: Backup directory
        older_than_days: Age threshold in days
        now: Reference time

    Returns:
        The runs that were removed
    """
    cutoff = (now or utc_now()) - timedelta(days=older_than_days)
    removed = []

    for run in list_backups(backup_dir):
        if run.created_at is None or run.created_at >= cutoff:
            continue
        logger.info("Removing backup run %s", run.path)
        remove_run_dir(Path(run.path))
        removed.append(run)

    return removed
