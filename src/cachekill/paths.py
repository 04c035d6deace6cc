"""Path canonicalization and containment checks."""

import os
from pathlib import Path
from typing import Iterable, TypeVar

T = TypeVar("T")


def expand_path(path: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expanduser(os.path.expandvars(path)))


def canonical(path: str | Path) -> Path:
    """Absolute path with symlinks and '..' resolved."""
    return Path(os.path.realpath(expand_path(str(path))))


def comparison_key(path: str | Path) -> Path:
    """Canonical path folded for case-insensitive filesystems."""
    return Path(os.path.normcase(str(canonical(path))))


def is_within(path: str | Path, parent: str | Path) -> bool:
    """True if path is parent or lies below it, after canonicalization."""
    return comparison_key(path).is_relative_to(comparison_key(parent))


class ScanBoundary:
    """Arena of canonical prefixes a candidate must live under."""

    def __init__(self, prefixes: Iterable[str | Path]):
        self._prefixes = [comparison_key(p) for p in prefixes]

    @property
    def prefixes(self) -> list[Path]:
        return list(self._prefixes)

    def contains(self, path: str | Path) -> bool:
        key = comparison_key(path)
        return any(key.is_relative_to(prefix) for prefix in self._prefixes)


def dedupe_nested(items: Iterable[T], key=lambda item: item) -> list[T]:
    """
    Drop items whose path lies inside another item's path.

    The outermost path wins; identical paths collapse to the first seen.

    Args:
        items: Items to filter
        key: Function returning the item's path

    Returns:
        Surviving items, ordered by canonical path
    """
    keyed = [(comparison_key(key(item)), index, item) for index, item in enumerate(items)]
    keyed.sort(key=lambda k: (len(k[0].parts), k[1]))

    kept: dict[Path, T] = {}
    for path_key, _, item in keyed:
        if path_key in kept or any(parent in kept for parent in path_key.parents):
            continue
        kept[path_key] = item

    return [kept[k] for k in sorted(kept)]


def relative_or_external(path: str | Path, root: str | Path) -> Path:
    """
    Path of an entry relative to root, or under _external/ when outside it.

    Args:
        path: Absolute entry path
        root: Scan root

    Returns:
        Relative path suitable for mirroring inside a backup run
    """
    path = canonical(path)
    root = canonical(root)
    if path != root and path.is_relative_to(root):
        return path.relative_to(root)
    anchorless = path.relative_to(path.anchor)
    drive = path.drive.rstrip(":\\/").replace(":", "")
    if drive:
        return Path("_external", drive, anchorless)
    return Path("_external", anchorless)
