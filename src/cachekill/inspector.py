"""Size, last-used and staleness inspection for cache candidates."""

import logging
import os
import stat
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from cachekill.errors import CandidateUnreadable, classify_os_error
from cachekill.models import (
    Candidate,
    CacheEntry,
    CacheKind,
    CacheSummary,
    SkippedPath,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class TreeStats:
    """Aggregate numbers for one subtree."""

    size_bytes: int = 0
    file_count: int = 0
    newest_mtime: float | None = None
    warnings: list[str] = field(default_factory=list)


def is_stale(last_used: datetime, threshold_days: int, now: datetime | None = None) -> bool:
    """
    Check whether a last-used time exceeds the staleness threshold.

    Something last used exactly threshold_days ago is not stale.

    Args:
        last_used: Aware UTC datetime of last use
        threshold_days: Threshold in days
        now: Reference time (defaults to the current time)

    Returns:
        True if stale
    """
    return (now or utc_now()) - last_used > timedelta(days=threshold_days)


def walk_tree(path: str | Path) -> TreeStats:
    """
    Sum regular file sizes and find the newest file mtime under path.

    Symlinks are never followed and contribute nothing. Unreadable
    descendants are skipped and reported in TreeStats.warnings.

    Args:
        path: File or directory to walk

    Returns:
        TreeStats for the subtree

    Raises:
        CandidateUnreadable: If path itself cannot be read
    """
    path = str(path)
    stats = TreeStats()

    try:
        top = os.lstat(path)
    except OSError as e:
        raise CandidateUnreadable(f"{path}: {e.strerror or e}", classify_os_error(e)) from e

    if not stat.S_ISDIR(top.st_mode):
        if stat.S_ISREG(top.st_mode):
            stats.size_bytes = top.st_size
            stats.file_count = 1
        stats.newest_mtime = top.st_mtime
        return stats

    try:
        first = list(os.scandir(path))
    except OSError as e:
        raise CandidateUnreadable(f"{path}: {e.strerror or e}", classify_os_error(e)) from e

    pending: list[list[os.DirEntry]] = [first]
    while pending:
        for entry in pending.pop():
            try:
                if entry.is_symlink():
                    continue
                if entry.is_dir(follow_symlinks=False):
                    try:
                        pending.append(list(os.scandir(entry.path)))
                    except OSError as e:
                        stats.warnings.append(f"{entry.path}: {e.strerror or e}")
                elif entry.is_file(follow_symlinks=False):
                    st = entry.stat(follow_symlinks=False)
                    stats.size_bytes += st.st_size
                    stats.file_count += 1
                    if stats.newest_mtime is None or st.st_mtime > stats.newest_mtime:
                        stats.newest_mtime = st.st_mtime
            except OSError as e:
                stats.warnings.append(f"{entry.path}: {e.strerror or e}")

    if stats.newest_mtime is None:
        stats.newest_mtime = top.st_mtime

    return stats


def inspect(
    candidate: Candidate,
    stale_threshold_days: int,
    now: datetime | None = None,
) -> CacheEntry:
    """
    Inspect one candidate and build its cache entry.

    Args:
        candidate: Candidate from the scanner
        stale_threshold_days: Staleness threshold in days
        now: Reference time for staleness

    Returns:
        CacheEntry without a planned action

    Raises:
        CandidateUnreadable: If the candidate path cannot be read
    """
    stats = walk_tree(candidate.path)
    last_used = datetime.fromtimestamp(stats.newest_mtime, tz=timezone.utc)

    for warning in stats.warnings:
        logger.debug("Skipped while inspecting %s: %s", candidate.path, warning)

    return CacheEntry(
        path=candidate.path,
        kind=candidate.kind,
        size_bytes=stats.size_bytes,
        last_used=last_used,
        stale=is_stale(last_used, stale_threshold_days, now),
        warnings=stats.warnings,
    )


def inspect_all(
    candidates: list[Candidate],
    stale_threshold_days: int,
    workers: int | None = None,
    now: datetime | None = None,
    progress_callback: Callable[[str, int, int], None] | None = None,
) -> tuple[list[CacheEntry], list[SkippedPath]]:
    """
    Inspect candidates in parallel.

    Args:
        candidates: Candidates from the scanner
        stale_threshold_days: Staleness threshold in days
        workers: Number of parallel workers (defaults to the CPU count)
        now: Reference time for staleness, shared by every entry
        progress_callback: Optional callback(path, current, total)

    Returns:
        Tuple of (entries sorted by path, skipped candidates)
    """
    now = now or utc_now()
    max_workers = workers or os.cpu_count() or 1

    entries: list[CacheEntry] = []
    skipped: list[SkippedPath] = []
    total = len(candidates)

    if not candidates:
        return entries, skipped

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_candidate = {
            executor.submit(inspect, candidate, stale_threshold_days, now): candidate
            for candidate in candidates
        }

        for i, future in enumerate(as_completed(future_to_candidate)):
            candidate = future_to_candidate[future]

            if progress_callback:
                progress_callback(candidate.path, i + 1, total)

            try:
                entries.append(future.result())
            except CandidateUnreadable as e:
                logger.warning("Skipping unreadable cache %s: %s", candidate.path, e.message)
                skipped.append(SkippedPath(path=candidate.path, reason=e.reason, detail=e.message))

    entries.sort(key=lambda e: e.path)
    skipped.sort(key=lambda s: s.path)
    return entries, skipped


def summarize(entries: list[CacheEntry]) -> CacheSummary:
    """
    Summary statistics for cache entries.

    Args:
        entries: Inspected entries

    Returns:
        CacheSummary with totals and size by kind
    """
    size_by_kind: dict[CacheKind, int] = {}
    for entry in entries:
        size_by_kind[entry.kind] = size_by_kind.get(entry.kind, 0) + entry.size_bytes

    return CacheSummary(
        total_size_bytes=sum(e.size_bytes for e in entries),
        total_count=len(entries),
        stale_count=sum(1 for e in entries if e.stale),
        size_by_kind=size_by_kind,
    )
