"""Cache candidate discovery for cachekill.

Enumerates conventional project-local cache directories, user-global cache
locations and explicitly included paths, then applies never-touch and
exclude rules, the symlink boundary check and nested-path deduplication.
"""

import fnmatch
import logging
import os
from pathlib import Path
from typing import Generator, Iterable

from cachekill.categories import CATEGORIES, global_locations, kind_for_name
from cachekill.detector import kinds_for_types
from cachekill.errors import FailureReason
from cachekill.models import Candidate, CacheKind, ProjectType, ScanCandidates, SkippedPath
from cachekill.paths import ScanBoundary, canonical, dedupe_nested, expand_path, is_within

logger = logging.getLogger(__name__)

# Directories that are never candidates and never descended into
NEVER_TOUCH_NAMES = frozenset({".git", ".hg", ".svn"})

DEFAULT_BACKUP_DIR_NAME = ".cachekill-backup"

GLOB_CHARS = ("*", "?", "[")

# Depth limit for walking the root when matching include globs
INCLUDE_WALK_DEPTH = 15


def find_matching_directories(
    root: Path,
    names: frozenset[str],
    max_depth: int = 4,
    skip_names: frozenset[str] = frozenset(),
) -> Generator[Path, None, None]:
    """
    Find directories with one of the given names below root.

    Uses os.scandir for performance. Symlinks are never followed and
    matched directories are not descended into. A symlink whose name
    matches is yielded as is; callers decide where it points.

    Args:
        root: Directory to start searching from
        names: Directory names to match (e.g. 'node_modules', '__pycache__')
        max_depth: Maximum depth to search
        skip_names: Directory names never descended into

    Yields:
        Paths to matching directories
    """
    if max_depth <= 0:
        return

    try:
        with os.scandir(root) as entries:
            for entry in entries:
                try:
                    # Matching symlinks are yielded unfollowed for the boundary check
                    if entry.is_symlink():
                        if entry.name in names and entry.is_dir():
                            yield Path(entry.path)
                        continue

                    if not entry.is_dir(follow_symlinks=False):
                        continue

                    name = entry.name
                    if name in NEVER_TOUCH_NAMES:
                        continue

                    entry_path = Path(entry.path)

                    if name in names:
                        yield entry_path
                        continue

                    # Hidden and cache directories hold nothing worth finding
                    if name.startswith(".") or name in skip_names:
                        continue

                    yield from find_matching_directories(entry_path, names, max_depth - 1, skip_names)

                except (PermissionError, OSError):
                    continue

    except (PermissionError, OSError) as e:
        logger.debug("Cannot scan %s: %s", root, e)
        return


def _has_glob(pattern: str) -> bool:
    return any(c in pattern for c in GLOB_CHARS)


def _relative_posix(path: Path, root: Path) -> str | None:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return None


def matches_any_pattern(path: Path, root: Path, patterns: Iterable[str]) -> bool:
    """
    Check a path against glob patterns.

    A pattern matches when it matches the root-relative path (or any of its
    leading prefixes), the absolute path, or the base name.

    Args:
        path: Path to test
        root: Scan root
        patterns: fnmatch-style patterns

    Returns:
        True if any pattern matches
    """
    patterns = list(patterns)
    if not patterns:
        return False

    subjects = {path.as_posix(), path.name}
    rel = _relative_posix(path, root)
    if rel is not None and rel != ".":
        parts = rel.split("/")
        subjects.update("/".join(parts[: i + 1]) for i in range(len(parts)))

    return any(fnmatch.fnmatch(subject, pattern) for pattern in patterns for subject in subjects)


def _include_candidates(root: Path, include: list[str]) -> list[Path]:
    found: list[Path] = []
    globs = [p for p in include if _has_glob(p)]
    plain = [p for p in include if not _has_glob(p)]

    for pattern in plain:
        path = expand_path(pattern)
        if not path.is_absolute():
            path = root / path
        if os.path.lexists(path):
            found.append(path)
        else:
            logger.debug("Include path does not exist: %s", path)

    if globs:
        found.extend(_walk_for_globs(root, root, globs, INCLUDE_WALK_DEPTH))

    return found


def _walk_for_globs(
    root: Path, current: Path, globs: list[str], max_depth: int
) -> Generator[Path, None, None]:
    """Yield paths below current matching a glob, without descending into matches."""
    if max_depth <= 0:
        return
    try:
        with os.scandir(current) as entries:
            for entry in entries:
                try:
                    if entry.name in NEVER_TOUCH_NAMES:
                        continue
                    entry_path = Path(entry.path)
                    if matches_any_pattern(entry_path, root, globs):
                        yield entry_path
                        continue
                    if entry.is_dir(follow_symlinks=False):
                        yield from _walk_for_globs(root, entry_path, globs, max_depth - 1)
                except (PermissionError, OSError):
                    continue
    except (PermissionError, OSError) as e:
        logger.debug("Cannot scan %s: %s", current, e)


def _never_touch_reason(path: Path, root: Path, backup_dir: Path) -> str | None:
    """Why a path must never be a candidate, or None if it may be."""
    canon = canonical(path)
    parts = set(canon.parts)
    rel = _relative_posix(canon, canonical(root))
    if rel is not None:
        parts = set(Path(rel).parts)
    if parts & NEVER_TOUCH_NAMES:
        return "version control directory"
    if is_within(canon, backup_dir):
        return "inside the backup directory"
    if is_within(backup_dir, canon):
        return "contains the backup directory"
    if is_within(root, canon):
        return "is the scan root or one of its ancestors"
    return None


def scan(
    root: str | Path,
    project_types: list[ProjectType] | frozenset[ProjectType] | None = None,
    include: list[str] | None = None,
    exclude: list[str] | None = None,
    *,
    include_global: bool = True,
    include_generic: bool = False,
    backup_dir: str | Path | None = None,
    max_depth: int = 4,
) -> ScanCandidates:
    """
    Enumerate cache candidates for a scan root.

    Args:
        root: Scan root
        project_types: Base project types to scan for, or None for all kinds
        include: Extra paths or glob patterns to surface
        exclude: Glob patterns removing any candidate
        include_global: Whether to add user-global cache locations
        include_generic: Whether to add generic tmp/cache directories
        backup_dir: Backup directory (never a candidate); defaults to root/.cachekill-backup
        max_depth: Depth for recursive discovery of unambiguous cache names

    Returns:
        ScanCandidates with deduplicated candidates and skipped paths
    """
    root = canonical(root)
    include = include or []
    exclude = exclude or []
    backup_path = canonical(root / expand_path(str(backup_dir))) if backup_dir else root / DEFAULT_BACKUP_DIR_NAME

    kinds = kinds_for_types(project_types)
    if include_generic:
        kinds.append(CacheKind.GENERIC)

    raw: list[tuple[Path, CacheKind, str]] = []

    # Conventional project-relative locations
    for kind in kinds:
        category = CATEGORIES[kind]
        for rel in category.project_paths:
            path = root / rel
            if path.is_dir():
                raw.append((path, kind, "project"))

    # Unambiguous cache names nested below the root
    recursive_names = frozenset(
        name for kind in kinds for name in CATEGORIES[kind].recursive_names
    )
    if recursive_names and max_depth > 1:
        skip_names = frozenset(
            rel.split("/")[0] for kind in kinds for rel in CATEGORIES[kind].project_paths
        )
        for path in find_matching_directories(root, recursive_names, max_depth, skip_names):
            raw.append((path, kind_for_name(path.name, kinds), "project"))

    # User-global locations, resolved once per kind
    if include_global:
        for kind in kinds:
            for location in global_locations(kind):
                path = Path(location)
                if path.is_dir():
                    raw.append((path, kind, "global"))

    # Explicit includes
    for path in _include_candidates(root, include):
        raw.append((path, kind_for_name(path.name), "include"))

    project_boundary = ScanBoundary([root])
    global_boundary = ScanBoundary([expand_path("~")])

    candidates: list[Candidate] = []
    skipped: list[SkippedPath] = []

    for path, kind, source in raw:
        reason = _never_touch_reason(path, root, backup_path)
        if reason:
            logger.debug("Never touching %s: %s", path, reason)
            skipped.append(
                SkippedPath(path=str(path), reason=FailureReason.NEVER_TOUCH, detail=reason)
            )
            continue

        if matches_any_pattern(path, root, exclude):
            logger.debug("Excluded by pattern: %s", path)
            continue

        boundary = global_boundary if source == "global" else project_boundary
        if not boundary.contains(path):
            logger.warning("Skipping %s: resolves outside the scan boundary", path)
            skipped.append(
                SkippedPath(
                    path=str(path),
                    reason=FailureReason.PATH_ESCAPES_SCAN_BOUNDARY,
                    detail=f"resolves to {canonical(path)}",
                )
            )
            continue

        candidates.append(Candidate(path=str(canonical(path)), kind=kind, source=source))

    return ScanCandidates(
        candidates=dedupe_nested(candidates, key=lambda c: c.path),
        skipped=skipped,
    )
