"""The discovery, inspection, planning and execution pipeline."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from cachekill import npx
from cachekill.cleaner import ActionExecutor
from cachekill.detector import detect
from cachekill.docker import get_docker_stats
from cachekill.errors import ConfigError, FailureReason
from cachekill.inspector import inspect_all
from cachekill.models import (
    CacheEntry,
    DockerStats,
    ProjectDetection,
    ProjectType,
    RunMode,
    RunResult,
    ScanConfig,
    SkippedPath,
    Totals,
    utc_now,
)
from cachekill.paths import canonical, dedupe_nested
from cachekill.planner import plan
from cachekill.scanner import matches_any_pattern, scan

logger = logging.getLogger(__name__)


def resolve_project_types(
    config: ScanConfig,
    detection: ProjectDetection,
) -> list[ProjectType] | None:
    """
    Project types to scan for.

    An explicit filter wins; --all and an undetectable project scan for
    every kind (None).
    """
    if config.all_kinds:
        return None
    if config.project_types_filter:
        return list(config.project_types_filter)
    if detection.is_unknown:
        return None
    return sorted(detection.detected, key=lambda t: list(ProjectType).index(t))


def _totals(entries: list[CacheEntry], docker: DockerStats | None) -> Totals:
    return Totals(
        size_bytes=sum(e.size_bytes for e in entries),
        count=len(entries),
        stale_count=sum(1 for e in entries if e.stale),
        docker_bytes=docker.total_bytes if docker and docker.available else 0,
    )


def _npx_entries(
    config: ScanConfig,
    root: Path,
    now: datetime,
    result: RunResult,
) -> list[CacheEntry]:
    analysis = npx.analyze(
        stale_threshold_days=config.stale_threshold_days,
        now=now,
        workers=config.workers,
    )
    result.npx_summary = analysis.summary
    result.npx_packages = analysis.packages

    for warning in analysis.warnings:
        if warning.reason == FailureReason.UNREADABLE_MANIFEST_FIELD:
            logger.info("NPX package %s: %s", warning.path, warning.detail)
        else:
            result.skipped.append(SkippedPath(**warning.model_dump()))

    return [
        entry
        for entry in npx.to_cache_entries(analysis)
        if not matches_any_pattern(Path(entry.path), root, config.exclude_patterns)
    ]


def collect(
    config: ScanConfig,
    now: datetime | None = None,
    docker_stats: DockerStats | None = None,
    progress_callback: Callable[[str, int, int], None] | None = None,
) -> RunResult:
    """
    Discover, inspect and plan without touching anything.

    Args:
        config: Merged configuration (mode list, dry-run or delete)
        now: Reference time for staleness
        docker_stats: Docker usage to merge; queried when config.docker is set
        progress_callback: Optional callback(path, current, total) for inspection

    Returns:
        RunResult with planned entries; for dry-run also the simulated actions

    Raises:
        ConfigError: If the root is not a directory
    """
    if config.mode == RunMode.RESTORE:
        raise ValueError("use restore() for restore mode")

    root = canonical(config.root)
    if not root.is_dir():
        raise ConfigError(f"Scan root is not a directory: {root}")

    now = now or utc_now()
    executor = ActionExecutor(root, config.backup_dir)

    detection = detect(root)
    project_types = resolve_project_types(config, detection)
    logger.debug("Detected %s; scanning for %s", detection.project_type.value, project_types or "all kinds")

    scanned = scan(
        root,
        project_types,
        config.include_patterns,
        config.exclude_patterns,
        include_global=config.include_global,
        include_generic=config.all_kinds,
        backup_dir=executor.backup_dir,
        max_depth=config.max_depth,
    )
    entries, unreadable = inspect_all(
        scanned.candidates,
        config.stale_threshold_days,
        workers=config.workers,
        now=now,
        progress_callback=progress_callback,
    )

    result = RunResult(
        mode=config.mode,
        root=str(root),
        project_type=detection.project_type,
        skipped=scanned.skipped + unreadable,
    )

    if config.npx:
        entries = dedupe_nested(entries + _npx_entries(config, root, now, result), key=lambda e: e.path)

    result.entries = plan(entries, config.mode, config.force, config.safe_delete)
    if config.mode == RunMode.DRY_RUN:
        result.simulated = executor.dry_run(entries, config.force, config.safe_delete)

    if config.docker and docker_stats is None:
        docker_stats = get_docker_stats()
    result.docker = docker_stats
    result.totals = _totals(result.entries, docker_stats)

    return result


def execute(result: RunResult, config: ScanConfig) -> RunResult:
    """
    Carry out the planned actions of a delete-mode result.

    Args:
        result: Output of collect() in delete mode
        config: The configuration it was collected with

    Returns:
        Updated RunResult with failures, freed bytes and the backup run
    """
    if result.mode != RunMode.DELETE:
        return result

    executor = ActionExecutor(result.root, config.backup_dir)
    report = executor.execute(result.entries)

    result.failures = report.failures
    result.totals.freed_bytes = report.freed_bytes
    if report.backup_dir:
        result.backup_run = Path(report.backup_dir).name
    return result


def restore(config: ScanConfig, clock: Callable[[], datetime] | None = None) -> RunResult:
    """
    Restore the latest backup run for a root.

    Raises:
        ManifestMissingOrCorruptError: If there is no usable manifest
    """
    root = canonical(config.root)
    executor = ActionExecutor(root, config.backup_dir, clock=clock)
    report = executor.restore_last()

    return RunResult(
        mode=RunMode.RESTORE,
        root=str(root),
        restored=report.restored,
        conflicts=report.conflicts,
        failures=report.failures,
        backup_run=report.backup_run,
        totals=Totals(size_bytes=report.restored_bytes, count=len(report.restored)),
    )


def run(
    config: ScanConfig,
    now: datetime | None = None,
    docker_stats: DockerStats | None = None,
    progress_callback: Callable[[str, int, int], None] | None = None,
) -> RunResult:
    """
    Run one invocation end to end.

    Args:
        config: Merged configuration
        now: Reference time for staleness
        docker_stats: Docker usage to merge into the totals
        progress_callback: Optional callback(path, current, total)

    Returns:
        RunResult for the output layer
    """
    if config.mode == RunMode.RESTORE:
        return restore(config)
    result = collect(config, now=now, docker_stats=docker_stats, progress_callback=progress_callback)
    return execute(result, config)
