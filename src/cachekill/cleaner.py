"""Execution of planned actions: backup, deletion and restore."""

import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable

from cachekill.backup import (
    create_run_dir,
    find_latest_manifest,
    list_backups,
    move_tree,
    prune_backups,
    remove_empty_run_dir,
    remove_run_dir,
    resolve_backup_dir,
    save_manifest,
)
from cachekill.errors import CacheKillError, FailureReason, SourceRemovalError, classify_os_error
from cachekill.models import (
    BackupManifest,
    BackupRecord,
    BackupRun,
    CacheEntry,
    EntryFailure,
    ExecutionReport,
    PlannedAction,
    RestoreReport,
    SimulatedAction,
    utc_now,
)
from cachekill.paths import canonical, is_within, relative_or_external
from cachekill.planner import simulate
from cachekill.scanner import DEFAULT_BACKUP_DIR_NAME

logger = logging.getLogger(__name__)


def _failure(path: str, exc: BaseException) -> EntryFailure:
    detail = exc.message if isinstance(exc, CacheKillError) else str(exc)
    return EntryFailure(path=path, reason=classify_os_error(exc), detail=detail)


def delete_path(path: Path) -> None:
    """Remove a file, symlink or directory tree. Missing paths are ignored."""
    if not os.path.lexists(path):
        return
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


class ActionExecutor:
    """
    Carries out planned actions for one scan root.

    All state is explicit: the backup directory and the latest run are
    derived from disk on every call.
    """

    def __init__(
        self,
        root: str | Path,
        backup_dir: str | Path = DEFAULT_BACKUP_DIR_NAME,
        clock: Callable[[], datetime] | None = None,
    ):
        self.root = canonical(root)
        self.backup_dir = resolve_backup_dir(self.root, backup_dir)
        self.clock = clock or utc_now

    def dry_run(
        self,
        entries: list[CacheEntry],
        force: bool = False,
        safe_delete: bool = True,
    ) -> list[SimulatedAction]:
        """Actions delete mode would take; touches nothing."""
        return simulate(entries, force, safe_delete)

    def execute(self, entries: list[CacheEntry]) -> ExecutionReport:
        """
        Run every planned action.

        Entries planned for backup go to safe_delete, entries planned for
        deletion to hard_delete; skipped entries are left alone.

        Args:
            entries: Planned entries

        Returns:
            Combined ExecutionReport
        """
        to_backup = [e for e in entries if e.planned_action == PlannedAction.BACKUP]
        to_delete = [e for e in entries if e.planned_action == PlannedAction.DELETE]

        report = ExecutionReport()
        if to_backup:
            backed_up = self.safe_delete(to_backup)
            report.processed.extend(backed_up.processed)
            report.failures.extend(backed_up.failures)
            report.freed_bytes += backed_up.freed_bytes
            report.manifest = backed_up.manifest
            report.backup_dir = backed_up.backup_dir
        if to_delete:
            deleted = self.hard_delete(to_delete)
            report.processed.extend(deleted.processed)
            report.failures.extend(deleted.failures)
            report.freed_bytes += deleted.freed_bytes
        return report

    def safe_delete(self, entries: list[CacheEntry]) -> ExecutionReport:
        """
        Move entries into a new backup run and persist its manifest.

        Each entry lands at its root-relative path inside the run, or under
        _external/ when it lives outside the root. The manifest is written
        only after every move has succeeded or failed. An entry copied
        across filesystems whose source could not be fully removed is
        still recorded, flagged as a partial source removal. A run
        directory is removed again only if it is empty.

        Args:
            entries: Entries to back up

        Returns:
            ExecutionReport with the manifest of the run
        """
        report = ExecutionReport()
        if not entries:
            return report

        now = self.clock()
        run_dir = create_run_dir(self.backup_dir, now)
        records: list[BackupRecord] = []

        for entry in entries:
            source = Path(entry.path)
            if is_within(source, self.backup_dir) or is_within(self.backup_dir, source):
                report.failures.append(
                    EntryFailure(
                        path=entry.path,
                        reason=FailureReason.NEVER_TOUCH,
                        detail="overlaps the backup directory",
                    )
                )
                continue

            relative = relative_or_external(source, self.root)
            record = BackupRecord(
                original_path=entry.path,
                backup_relative_path=relative.as_posix(),
                kind=entry.kind,
                size_bytes=entry.size_bytes,
            )
            try:
                move_tree(source, run_dir / relative)
            except SourceRemovalError as e:
                # The copy is complete; the manifest must keep it
                failure = _failure(entry.path, e)
                logger.warning("Backed up %s but could not remove all of it: %s", entry.path, failure.detail)
                report.failures.append(failure)
                records.append(record.model_copy(update={"partial_source_removal": True}))
                continue
            except (OSError, CacheKillError) as e:
                failure = _failure(entry.path, e)
                logger.warning("Could not back up %s: %s", entry.path, failure.detail)
                report.failures.append(failure)
                continue

            logger.debug("Backed up %s to %s", entry.path, run_dir / relative)
            records.append(record)
            report.processed.append(entry.path)
            report.freed_bytes += entry.size_bytes

        if not records:
            remove_empty_run_dir(run_dir)
            return report

        manifest = BackupManifest(
            timestamp=run_dir.name,
            created_at=now,
            root=str(self.root),
            entries=records,
            failed=report.failures,
        )
        save_manifest(run_dir, manifest)
        report.manifest = manifest
        report.backup_dir = str(run_dir)
        return report

    def hard_delete(self, entries: list[CacheEntry]) -> ExecutionReport:
        """
        Remove entries outright.

        Paths that are already gone count as deleted with 0 bytes freed.

        Args:
            entries: Entries to delete

        Returns:
            ExecutionReport
        """
        report = ExecutionReport()

        for entry in entries:
            path = Path(entry.path)
            if not os.path.lexists(path):
                logger.debug("Already gone: %s", path)
                report.processed.append(entry.path)
                continue

            try:
                delete_path(path)
            except OSError as e:
                failure = _failure(entry.path, e)
                logger.warning("Could not delete %s: %s", entry.path, failure.detail)
                report.failures.append(failure)
                continue

            report.processed.append(entry.path)
            report.freed_bytes += entry.size_bytes

        return report

    def restore_last(self) -> RestoreReport:
        """
        Restore the most recent backup run.

        Records whose original path exists again are reported as conflicts
        and left in the backup. The manifest is rewritten with whatever was
        not restored; a fully restored run is removed.

        Returns:
            RestoreReport

        Raises:
            ManifestMissingOrCorruptError: If there is no usable manifest; nothing is touched
        """
        run_dir, manifest = find_latest_manifest(self.backup_dir)
        report = RestoreReport(backup_run=manifest.timestamp)
        remaining: list[BackupRecord] = []

        for record in manifest.entries:
            original = Path(record.original_path)
            source = run_dir / record.backup_relative_path

            if os.path.lexists(original):
                detail = "path already exists"
                if record.partial_source_removal:
                    detail += " (left over from a partial removal at backup time)"
                logger.warning("Not restoring %s: %s", original, detail)
                report.conflicts.append(
                    EntryFailure(
                        path=record.original_path,
                        reason=FailureReason.RESTORE_CONFLICT,
                        detail=detail,
                    )
                )
                remaining.append(record)
                continue

            if not os.path.lexists(source):
                logger.warning("Backup data missing for %s: %s", original, source)
                report.failures.append(
                    EntryFailure(
                        path=record.original_path,
                        reason=FailureReason.NOT_FOUND,
                        detail=f"backup data missing at {source}",
                    )
                )
                remaining.append(record)
                continue

            try:
                move_tree(source, original)
            except SourceRemovalError as e:
                # Original is back in full; only the backup copy lingers
                logger.warning("Restored %s but could not clear its backup copy: %s", original, e.message)
            except (OSError, CacheKillError) as e:
                failure = _failure(record.original_path, e)
                logger.warning("Could not restore %s: %s", original, failure.detail)
                report.failures.append(failure)
                remaining.append(record)
                continue

            report.restored.append(record.original_path)
            report.restored_bytes += record.size_bytes

        if remaining:
            save_manifest(run_dir, manifest.model_copy(update={"entries": remaining}))
        else:
            remove_run_dir(run_dir)

        return report

    def list_backups(self) -> list[BackupRun]:
        """Backup runs in the backup directory, newest first."""
        return list_backups(self.backup_dir)

    def prune_backups(self, older_than_days: int) -> list[BackupRun]:
        """Remove backup runs older than the given number of days."""
        return prune_backups(self.backup_dir, older_than_days, now=self.clock())
