"""Per-model analysis of the HuggingFace and PyTorch caches.

The HuggingFace hub stores one directory per repo, named
``models--org--name``, ``datasets--org--name`` or ``spaces--org--name``.
PyTorch keeps hub repos and downloaded checkpoints under ``hub/`` and
anything else directly below its cache root.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from cachekill.errors import CandidateUnreadable, classify_os_error
from cachekill.inspector import is_stale, walk_tree
from cachekill.models import (
    ModelCacheAnalysis,
    ModelCacheRecord,
    ModelCacheStats,
    PathIssue,
    utc_now,
)
from cachekill.paths import expand_path

logger = logging.getLogger(__name__)

HF_REPO_TYPES = {"models": "model", "datasets": "dataset", "spaces": "space"}

TORCH_VERSION_PREFIX = "torch_"

# Number of HuggingFace repos listed in the stats
TOP_REPOS = 10


@dataclass(frozen=True)
class CacheUnit:
    """One independently sized item inside a model cache."""

    path: Path
    source: str
    name: str
    cache_type: str
    version: str | None = None


def hf_cache_dir() -> Path:
    """HuggingFace cache root; HF_HOME overrides ~/.cache/huggingface."""
    override = os.environ.get("HF_HOME")
    if override:
        return expand_path(override)
    return expand_path("~/.cache/huggingface")


def torch_cache_dir() -> Path:
    """PyTorch cache root; TORCH_HOME overrides ~/.cache/torch."""
    override = os.environ.get("TORCH_HOME")
    if override:
        return expand_path(override)
    return expand_path("~/.cache/torch")


def parse_hf_repo(name: str) -> tuple[str, str] | None:
    """
    Split a hub directory name into its repo type and repo id.

    Args:
        name: Directory name such as 'models--google--bert-base'

    Returns:
        Tuple of (cache_type, repo_id), e.g. ('model', 'google/bert-base'),
        or None for names outside the hub layout (.locks, version.txt)
    """
    prefix, sep, rest = name.partition("--")
    if not sep or not rest or prefix not in HF_REPO_TYPES:
        return None
    return HF_REPO_TYPES[prefix], rest.replace("--", "/")


def parse_torch_version(name: str) -> str | None:
    """Version from a directory named like 'torch_2.1.0'."""
    if name.startswith(TORCH_VERSION_PREFIX) and len(name) > len(TORCH_VERSION_PREFIX):
        return name[len(TORCH_VERSION_PREFIX) :]
    return None


def _children(directory: Path) -> list[Path]:
    with os.scandir(directory) as entries:
        return sorted(Path(e.path) for e in entries if not e.is_symlink())


def hf_units(root: Path) -> list[CacheUnit]:
    """Repos in a HuggingFace cache, plus legacy datasets/<name> directories."""
    units = []

    hub = root / "hub"
    if hub.is_dir():
        for child in _children(hub):
            parsed = parse_hf_repo(child.name)
            if parsed is None:
                continue
            cache_type, repo_id = parsed
            units.append(CacheUnit(child, "huggingface", repo_id, cache_type))

    datasets = root / "datasets"
    if datasets.is_dir():
        for child in _children(datasets):
            units.append(CacheUnit(child, "huggingface", child.name, "dataset"))

    return units


def torch_units(root: Path) -> list[CacheUnit]:
    """Hub repos, checkpoints and other top-level items of a PyTorch cache."""
    units = []

    for child in _children(root):
        if child.name == "hub" and child.is_dir():
            for item in _children(child):
                if item.name == "checkpoints" and item.is_dir():
                    units.extend(
                        CacheUnit(ckpt, "torch", ckpt.name, "checkpoints") for ckpt in _children(item)
                    )
                else:
                    units.append(CacheUnit(item, "torch", item.name, "hub"))
            continue

        version = parse_torch_version(child.name)
        cache_type = "torch" if version else child.name
        units.append(CacheUnit(child, "torch", child.name, cache_type, version))

    return units


def _inspect_unit(
    unit: CacheUnit,
    stale_threshold_days: int,
    now: datetime,
) -> tuple[ModelCacheRecord | None, PathIssue | None]:
    try:
        stats = walk_tree(unit.path)
    except CandidateUnreadable as e:
        logger.warning("Skipping unreadable model cache %s: %s", unit.path, e.message)
        return None, PathIssue(path=str(unit.path), reason=e.reason, detail=e.message)

    last_used = datetime.fromtimestamp(stats.newest_mtime, tz=timezone.utc)
    record = ModelCacheRecord(
        source=unit.source,
        name=unit.name,
        cache_type=unit.cache_type,
        version=unit.version,
        size_bytes=stats.size_bytes,
        last_used=last_used,
        stale=is_stale(last_used, stale_threshold_days, now),
        path=str(unit.path),
    )
    return record, None


def summarize_models(records: list[ModelCacheRecord]) -> ModelCacheStats:
    """Totals per source, cache type and torch version, plus the largest repos."""
    by_source: dict[str, int] = {}
    by_type: dict[str, int] = {}
    by_version: dict[str, int] = {}
    repo_sizes: dict[str, int] = {}

    for record in records:
        by_source[record.source] = by_source.get(record.source, 0) + record.size_bytes
        by_type[record.cache_type] = by_type.get(record.cache_type, 0) + record.size_bytes
        if record.version:
            by_version[record.version] = by_version.get(record.version, 0) + record.size_bytes
        if record.source == "huggingface":
            repo_sizes[record.name] = repo_sizes.get(record.name, 0) + record.size_bytes

    top_repos = sorted(repo_sizes.items(), key=lambda item: (-item[1], item[0]))[:TOP_REPOS]

    return ModelCacheStats(
        total_count=len(records),
        total_size_bytes=sum(r.size_bytes for r in records),
        stale_count=sum(1 for r in records if r.stale),
        repo_count=len(repo_sizes),
        model_count=sum(1 for r in records if r.source == "huggingface" and r.cache_type == "model"),
        size_by_source=by_source,
        size_by_type=by_type,
        size_by_version=by_version,
        top_repos=top_repos,
    )


def analyze_models(
    hf_root: str | Path | None = None,
    torch_root: str | Path | None = None,
    stale_threshold_days: int = 14,
    now: datetime | None = None,
    workers: int | None = None,
) -> ModelCacheAnalysis:
    """
    Size every model, dataset and checkpoint in the model caches.

    Missing cache roots contribute nothing. An unreadable root or item is
    reported in the warnings and never aborts the analysis.

    Args:
        hf_root: HuggingFace cache root (defaults to hf_cache_dir())
        torch_root: PyTorch cache root (defaults to torch_cache_dir())
        stale_threshold_days: Staleness threshold in days
        now: Reference time for staleness
        workers: Number of parallel workers (defaults to the CPU count)

    Returns:
        ModelCacheAnalysis with records sorted by size descending, then path
    """
    hf = Path(hf_root) if hf_root else hf_cache_dir()
    torch = Path(torch_root) if torch_root else torch_cache_dir()
    now = now or utc_now()
    analysis = ModelCacheAnalysis(hf_path=str(hf), torch_path=str(torch))

    units: list[CacheUnit] = []
    for root, find_units in ((hf, hf_units), (torch, torch_units)):
        if not root.is_dir():
            logger.debug("No model cache at %s", root)
            continue
        try:
            units.extend(find_units(root))
        except OSError as e:
            logger.warning("Cannot read model cache %s: %s", root, e)
            analysis.warnings.append(PathIssue(path=str(root), reason=classify_os_error(e), detail=str(e)))

    records: list[ModelCacheRecord] = []
    if units:
        with ThreadPoolExecutor(max_workers=workers or os.cpu_count() or 1) as executor:
            results = list(executor.map(lambda unit: _inspect_unit(unit, stale_threshold_days, now), units))
        for record, issue in results:
            if issue is not None:
                analysis.warnings.append(issue)
            if record is not None:
                records.append(record)

    records.sort(key=lambda r: (-r.size_bytes, r.path))

    analysis.records = records
    analysis.stats = summarize_models(records)
    return analysis
