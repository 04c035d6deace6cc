"""Data models for cachekill."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from cachekill.errors import ExitCode, FailureReason


class ProjectType(str, Enum):
    """Project type detected from marker files."""

    JAVASCRIPT = "js"
    PYTHON = "py"
    SYSTEMS = "rust"
    JAVA = "java"
    MACHINE_LEARNING = "ml"
    MIXED = "mixed"  # Several of the above; see ProjectDetection.detected
    UNKNOWN = "unknown"


class CacheKind(str, Enum):
    """Kind of cache attached to each discovered entry."""

    JS = "js"
    PYTHON = "py"
    SYSTEMS = "rust"
    JAVA = "java"
    ML = "ml"
    NPX = "npx"
    DOCKER = "docker"
    GENERIC = "generic"


class PlannedAction(str, Enum):
    """Action the planner assigned to an entry."""

    DELETE = "delete"
    BACKUP = "backup"
    SKIP = "skip"


class RunMode(str, Enum):
    """Execution mode of one invocation."""

    LIST = "list"
    DRY_RUN = "dry-run"
    DELETE = "delete"
    RESTORE = "restore"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_size(size_bytes: int) -> str:
    """Human-readable size string (decimal units)."""
    if size_bytes >= 1000**3:
        return f"{size_bytes / (1000**3):.1f} GB"
    elif size_bytes >= 1000**2:
        return f"{size_bytes / (1000**2):.1f} MB"
    elif size_bytes >= 1000:
        return f"{size_bytes / 1000:.1f} KB"
    else:
        return f"{size_bytes} B"


def format_age(last_used: datetime, now: Optional[datetime] = None) -> str:
    """Human-readable age like '3d ago'."""
    delta = (now or utc_now()) - last_used
    seconds = int(delta.total_seconds())
    if delta.days > 0:
        return f"{delta.days}d ago"
    elif seconds >= 3600:
        return f"{seconds // 3600}h ago"
    elif seconds >= 60:
        return f"{seconds // 60}m ago"
    else:
        return "just now"


class CacheCategory(BaseModel):
    """Definition of a cache kind and where its caches live."""

    kind: CacheKind = Field(..., description="Kind this category describes")
    name: str = Field(..., description="Human-readable name")
    project_paths: list[str] = Field(
        default_factory=list,
        description="Exact root-relative cache paths (POSIX separators)",
    )
    recursive_names: list[str] = Field(
        default_factory=list,
        description="Directory names also discovered below the root",
    )
    global_paths: dict[str, list[str]] = Field(
        default_factory=dict,
        description="User-global locations keyed by platform family (posix, darwin, windows)",
    )
    description: str = Field("", description="What these caches contain")
    recovery: str = Field("", description="How to regenerate them")


class ProjectDetection(BaseModel):
    """Result of project type detection for one scan root."""

    model_config = ConfigDict(frozen=True)

    project_type: ProjectType = Field(..., description="Detected project type")
    detected: frozenset[ProjectType] = Field(
        default_factory=frozenset,
        description="All base types found (more than one means mixed)",
    )

    @property
    def is_mixed(self) -> bool:
        return self.project_type == ProjectType.MIXED

    @property
    def is_unknown(self) -> bool:
        return self.project_type == ProjectType.UNKNOWN


class Candidate(BaseModel):
    """A path the scanner believes is a cache, before inspection."""

    path: str = Field(..., description="Canonical absolute path")
    kind: CacheKind = Field(..., description="Kind of cache")
    source: str = Field("project", description="project, global, or include")


class PathIssue(BaseModel):
    """A problem tied to one path, reported individually."""

    path: str
    reason: FailureReason
    detail: str = ""


class SkippedPath(PathIssue):
    """A path left alone during scanning or inspection."""


class EntryFailure(PathIssue):
    """A per-entry failure during execution or restore."""


class ScanCandidates(BaseModel):
    """Output of the scanner."""

    candidates: list[Candidate] = Field(default_factory=list)
    skipped: list[SkippedPath] = Field(default_factory=list)


class CacheEntry(BaseModel):
    """One discovered, independently actionable cache directory."""

    path: str = Field(..., description="Canonical absolute path")
    kind: CacheKind = Field(..., description="Kind of cache")
    size_bytes: int = Field(..., ge=0, description="Recursive size in bytes")
    last_used: datetime = Field(..., description="Newest mtime in the subtree (UTC)")
    stale: bool = Field(False, description="Whether last use exceeds the threshold")
    planned_action: Optional[PlannedAction] = Field(None, description="Set by the planner")
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-fatal problems found while walking the subtree",
    )

    @property
    def size_human(self) -> str:
        return format_size(self.size_bytes)

    @property
    def last_used_human(self) -> str:
        return format_age(self.last_used)

    @property
    def is_actionable(self) -> bool:
        return self.planned_action in (PlannedAction.DELETE, PlannedAction.BACKUP)

    def to_json_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        if self.planned_action is None:
            data.pop("planned_action")
        if not self.warnings:
            data.pop("warnings")
        return data


class CacheSummary(BaseModel):
    """Summary statistics over inspected entries."""

    total_size_bytes: int = 0
    total_count: int = 0
    stale_count: int = 0
    size_by_kind: dict[CacheKind, int] = Field(default_factory=dict)


class NpxPackageRecord(BaseModel):
    """One package directory inside the NPX store."""

    name: str
    version: Optional[str] = None
    size_bytes: int = Field(..., ge=0)
    last_used: datetime
    stale: bool = False
    path: str

    @property
    def size_human(self) -> str:
        return format_size(self.size_bytes)


class NpxSummary(BaseModel):
    """Totals over the NPX store."""

    total_count: int = 0
    total_size_bytes: int = 0
    stale_count: int = 0


class NpxAnalysis(BaseModel):
    """Per-package view of the NPX store."""

    store_path: str
    packages: list[NpxPackageRecord] = Field(default_factory=list)
    summary: NpxSummary = Field(default_factory=NpxSummary)
    warnings: list[PathIssue] = Field(default_factory=list)


class ModelCacheRecord(BaseModel):
    """One model, dataset or checkpoint in a HuggingFace or PyTorch cache."""

    source: str = Field(..., description="huggingface or torch")
    name: str = Field(..., description="Repo id such as org/name, or the file or directory name")
    cache_type: str = Field(..., description="model, dataset, space, hub, checkpoints, ...")
    version: Optional[str] = Field(None, description="Torch version from a torch_<version> directory")
    size_bytes: int = Field(..., ge=0)
    last_used: datetime
    stale: bool = False
    path: str

    @property
    def size_human(self) -> str:
        return format_size(self.size_bytes)


class ModelCacheStats(BaseModel):
    """Totals over the model caches."""

    total_count: int = 0
    total_size_bytes: int = 0
    stale_count: int = 0
    repo_count: int = 0
    model_count: int = 0
    size_by_source: dict[str, int] = Field(default_factory=dict)
    size_by_type: dict[str, int] = Field(default_factory=dict)
    size_by_version: dict[str, int] = Field(default_factory=dict)
    top_repos: list[tuple[str, int]] = Field(
        default_factory=list, description="Largest HuggingFace repos as (repo id, bytes)"
    )


class ModelCacheAnalysis(BaseModel):
    """Per-model view of the HuggingFace and PyTorch caches."""

    hf_path: str
    torch_path: str
    records: list[ModelCacheRecord] = Field(default_factory=list)
    stats: ModelCacheStats = Field(default_factory=ModelCacheStats)
    warnings: list[PathIssue] = Field(default_factory=list)


class SimulatedAction(BaseModel):
    """What delete mode would do to an entry."""

    path: str
    action: PlannedAction
    size_bytes: int = 0


class BackupRecord(BaseModel):
    """One entry moved into a backup run."""

    original_path: str
    backup_relative_path: str
    kind: CacheKind
    size_bytes: int = 0
    partial_source_removal: bool = Field(
        False, description="Copied in full, but part of the original could not be removed"
    )


class BackupManifest(BaseModel):
    """Persisted record of one backup run."""

    timestamp: str = Field(..., description="Run directory name")
    created_at: datetime = Field(default_factory=utc_now)
    root: str = ""
    entries: list[BackupRecord] = Field(default_factory=list)
    failed: list[EntryFailure] = Field(default_factory=list)

    @property
    def total_size_bytes(self) -> int:
        return sum(r.size_bytes for r in self.entries)


class BackupRun(BaseModel):
    """Summary of a backup run directory for history listings."""

    timestamp: str
    path: str
    created_at: Optional[datetime] = None
    entry_count: int = 0
    size_bytes: int = 0
    restorable: bool = False


class ExecutionReport(BaseModel):
    """Outcome of executing planned actions."""

    processed: list[str] = Field(default_factory=list)
    failures: list[EntryFailure] = Field(default_factory=list)
    freed_bytes: int = 0
    manifest: Optional[BackupManifest] = None
    backup_dir: Optional[str] = None


class RestoreReport(BaseModel):
    """Outcome of restoring a backup run."""

    backup_run: str
    restored: list[str] = Field(default_factory=list)
    restored_bytes: int = 0
    conflicts: list[EntryFailure] = Field(default_factory=list)
    failures: list[EntryFailure] = Field(default_factory=list)


class DockerStats(BaseModel):
    """Docker disk usage as reported by the Docker CLI."""

    available: bool = False
    images_bytes: int = 0
    containers_bytes: int = 0
    volumes_bytes: int = 0
    build_cache_bytes: int = 0
    reclaimable_bytes: int = 0
    error: Optional[str] = None

    @property
    def total_bytes(self) -> int:
        return self.images_bytes + self.containers_bytes + self.volumes_bytes + self.build_cache_bytes


class ScanConfig(BaseModel):
    """Fully merged configuration for one invocation."""

    root: str = Field(..., description="Scan root")
    project_types_filter: Optional[list[ProjectType]] = Field(
        None, description="Base project types to scan for; None means auto"
    )
    include_patterns: list[str] = Field(default_factory=list)
    exclude_patterns: list[str] = Field(default_factory=list)
    stale_threshold_days: int = Field(14, ge=0)
    mode: RunMode = RunMode.LIST
    force: bool = False
    safe_delete: bool = True
    backup_dir: str = ".cachekill-backup"
    include_global: bool = True
    all_kinds: bool = False
    npx: bool = False
    docker: bool = False
    max_depth: int = Field(4, ge=0)
    workers: Optional[int] = Field(None, ge=1)


class Totals(BaseModel):
    """Aggregate numbers for a run."""

    size_bytes: int = 0
    count: int = 0
    stale_count: int = 0
    freed_bytes: int = 0
    docker_bytes: int = 0


class RunResult(BaseModel):
    """Everything one invocation produced, handed to the output layer."""

    mode: RunMode
    root: str
    project_type: Optional[ProjectType] = None
    entries: list[CacheEntry] = Field(default_factory=list)
    simulated: list[SimulatedAction] = Field(default_factory=list)
    npx_summary: Optional[NpxSummary] = None
    npx_packages: list[NpxPackageRecord] = Field(default_factory=list)
    totals: Totals = Field(default_factory=Totals)
    skipped: list[SkippedPath] = Field(default_factory=list)
    failures: list[EntryFailure] = Field(default_factory=list)
    conflicts: list[EntryFailure] = Field(default_factory=list)
    restored: list[str] = Field(default_factory=list)
    backup_run: Optional[str] = None
    docker: Optional[DockerStats] = None

    @property
    def actionable_count(self) -> int:
        if self.mode == RunMode.DRY_RUN:
            return sum(1 for s in self.simulated if s.action != PlannedAction.SKIP)
        return sum(1 for e in self.entries if e.is_actionable)

    @property
    def exit_code(self) -> ExitCode:
        if self.mode == RunMode.LIST:
            return ExitCode.SUCCESS
        if self.mode == RunMode.RESTORE:
            return ExitCode.PARTIAL if (self.failures or self.conflicts) else ExitCode.SUCCESS
        if self.actionable_count == 0:
            return ExitCode.NOTHING_TO_DO
        if self.failures:
            return ExitCode.PARTIAL
        return ExitCode.SUCCESS

    def to_json_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "mode": self.mode.value,
            "root": self.root,
            "project_type": self.project_type.value if self.project_type else None,
            "entries": [e.to_json_dict() for e in self.entries],
            "totals": self.totals.model_dump(mode="json"),
            "skipped": [s.model_dump(mode="json") for s in self.skipped],
            "failures": [f.model_dump(mode="json") for f in self.failures],
        }
        if self.mode == RunMode.DRY_RUN:
            data["simulated"] = [s.model_dump(mode="json") for s in self.simulated]
        if self.npx_summary is not None:
            data["npx_summary"] = self.npx_summary.model_dump(mode="json")
            data["npx_packages"] = [p.model_dump(mode="json") for p in self.npx_packages]
        if self.mode == RunMode.RESTORE:
            data["restored"] = list(self.restored)
            data["conflicts"] = [c.model_dump(mode="json") for c in self.conflicts]
        if self.backup_run is not None:
            data["backup_run"] = self.backup_run
        if self.docker is not None:
            data["docker"] = self.docker.model_dump(mode="json")
        return data
