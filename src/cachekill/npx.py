"""Per-package analysis of the NPX package store."""

import json
import logging
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path

from cachekill.errors import CandidateUnreadable, FailureReason
from cachekill.inspector import is_stale, walk_tree
from cachekill.models import (
    CacheEntry,
    CacheKind,
    NpxAnalysis,
    NpxPackageRecord,
    NpxSummary,
    PathIssue,
    utc_now,
)
from cachekill.paths import expand_path

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"


def npx_store_dir() -> Path:
    """
    Location of the NPX package store for the current platform.

    Honors npm's cache override (npm_config_cache) before the defaults.
    """
    override = os.environ.get("npm_config_cache") or os.environ.get("NPM_CONFIG_CACHE")
    if override:
        return expand_path(override) / "_npx"
    if sys.platform.startswith("win"):
        return expand_path("%LOCALAPPDATA%\\npm-cache") / "_npx"
    return expand_path("~/.npm/_npx")


def _read_json(path: Path) -> dict:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("manifest is not a JSON object")
    return data


def parse_package_identity(unit: Path) -> tuple[str, str | None, str | None]:
    """
    Work out which package an NPX store directory holds.

    npx writes a package.json listing the requested package under
    "dependencies" and installs it into node_modules; a package.json with
    its own name/version is used directly.

    Args:
        unit: Hash-named package directory

    Returns:
        Tuple of (name, version, warning). Falls back to the directory name
        and no version when either field cannot be read.
    """
    fallback_name = unit.name

    try:
        manifest = _read_json(unit / MANIFEST_NAME)
    except FileNotFoundError:
        return fallback_name, None, "no package.json"
    except (OSError, UnicodeDecodeError, ValueError) as e:
        return fallback_name, None, f"unreadable package.json: {e}"

    dependencies = manifest.get("dependencies")
    if "name" not in manifest and isinstance(dependencies, dict) and dependencies:
        requested = next(iter(dependencies))
        try:
            manifest = _read_json(unit / "node_modules" / requested / MANIFEST_NAME)
        except (OSError, UnicodeDecodeError, ValueError) as e:
            return fallback_name, None, f"unreadable manifest for {requested}: {e}"

    name = manifest.get("name")
    version = manifest.get("version")
    if not isinstance(name, str) or not name or not isinstance(version, str) or not version:
        return fallback_name, None, "package.json lacks a name or version"

    return name, version, None


def _analyze_unit(
    unit: Path,
    stale_threshold_days: int,
    now: datetime,
) -> tuple[NpxPackageRecord | None, list[PathIssue]]:
    issues: list[PathIssue] = []

    name, version, warning = parse_package_identity(unit)
    if warning:
        issues.append(
            PathIssue(path=str(unit), reason=FailureReason.UNREADABLE_MANIFEST_FIELD, detail=warning)
        )

    try:
        stats = walk_tree(unit)
    except CandidateUnreadable as e:
        logger.warning("Skipping unreadable NPX package %s: %s", unit, e.message)
        issues.append(PathIssue(path=str(unit), reason=e.reason, detail=e.message))
        return None, issues

    last_used = datetime.fromtimestamp(stats.newest_mtime, tz=timezone.utc)
    record = NpxPackageRecord(
        name=name,
        version=version,
        size_bytes=stats.size_bytes,
        last_used=last_used,
        stale=is_stale(last_used, stale_threshold_days, now),
        path=str(unit),
    )
    return record, issues


def analyze(
    store_root: str | Path | None = None,
    stale_threshold_days: int = 14,
    now: datetime | None = None,
    workers: int | None = None,
) -> NpxAnalysis:
    """
    Analyze every package directory in the NPX store.

    Each immediate child directory of the store is one package. Malformed
    manifests degrade to a name taken from the directory; they never abort
    the analysis.

    Args:
        store_root: Store directory (defaults to npx_store_dir())
        stale_threshold_days: Staleness threshold in days
        now: Reference time for staleness
        workers: Number of parallel workers (defaults to the CPU count)

    Returns:
        NpxAnalysis with packages sorted by size descending, then path
    """
    store = Path(store_root) if store_root else npx_store_dir()
    now = now or utc_now()
    analysis = NpxAnalysis(store_path=str(store))

    if not store.is_dir():
        return analysis

    try:
        with os.scandir(store) as entries:
            units = sorted(Path(e.path) for e in entries if e.is_dir(follow_symlinks=False))
    except OSError as e:
        logger.warning("Cannot read NPX store %s: %s", store, e)
        analysis.warnings.append(
            PathIssue(path=str(store), reason=FailureReason.PERMISSION_DENIED, detail=str(e))
        )
        return analysis

    packages: list[NpxPackageRecord] = []
    if units:
        with ThreadPoolExecutor(max_workers=workers or os.cpu_count() or 1) as executor:
            results = list(
                executor.map(lambda unit: _analyze_unit(unit, stale_threshold_days, now), units)
            )
        for record, issues in results:
            analysis.warnings.extend(issues)
            if record is not None:
                packages.append(record)

    packages.sort(key=lambda p: (-p.size_bytes, p.path))

    analysis.packages = packages
    analysis.summary = NpxSummary(
        total_count=len(packages),
        total_size_bytes=sum(p.size_bytes for p in packages),
        stale_count=sum(1 for p in packages if p.stale),
    )
    return analysis


def to_cache_entries(analysis: NpxAnalysis) -> list[CacheEntry]:
    """Convert package records into npx-kind cache entries."""
    return [
        CacheEntry(
            path=package.path,
            kind=CacheKind.NPX,
            size_bytes=package.size_bytes,
            last_used=package.last_used,
            stale=package.stale,
        )
        for package in analysis.packages
    ]
