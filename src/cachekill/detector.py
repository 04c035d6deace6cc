"""Project type detection from marker files."""

import logging
import os
from pathlib import Path

from cachekill.categories import LANGUAGE_KINDS
from cachekill.models import CacheKind, ProjectDetection, ProjectType

logger = logging.getLogger(__name__)

# Marker files per project type (immediate children of the root only)
MARKERS: dict[ProjectType, tuple[str, ...]] = {
    ProjectType.JAVASCRIPT: (
        "package.json",
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "bun.lockb",
    ),
    ProjectType.PYTHON: (
        "pyproject.toml",
        "requirements.txt",
        "setup.py",
        "setup.cfg",
        "Pipfile",
        "poetry.lock",
    ),
    ProjectType.SYSTEMS: ("Cargo.toml",),
    ProjectType.JAVA: ("pom.xml", "build.gradle", "build.gradle.kts", "gradlew"),
    ProjectType.MACHINE_LEARNING: (".dvc",),
}

# requirements.txt content that marks an ML project
ML_REQUIREMENT_HINTS = ("torch", "tensorflow", "huggingface", "transformers")

KIND_FOR_TYPE: dict[ProjectType, CacheKind] = {
    ProjectType.JAVASCRIPT: CacheKind.JS,
    ProjectType.PYTHON: CacheKind.PYTHON,
    ProjectType.SYSTEMS: CacheKind.SYSTEMS,
    ProjectType.JAVA: CacheKind.JAVA,
    ProjectType.MACHINE_LEARNING: CacheKind.ML,
}


def _list_children(root: Path) -> set[str]:
    try:
        with os.scandir(root) as entries:
            return {entry.name for entry in entries}
    except (PermissionError, OSError) as e:
        logger.debug("Cannot read %s for project detection: %s", root, e)
        return set()


def _requirements_mention_ml(root: Path) -> bool:
    try:
        content = (root / "requirements.txt").read_text(errors="replace").lower()
    except (PermissionError, OSError):
        return False
    return any(hint in content for hint in ML_REQUIREMENT_HINTS)


def detect(root: str | Path) -> ProjectDetection:
    """
    Detect the project type of a root directory.

    Only the root's immediate children are examined. Never raises; an
    unreadable root is reported as UNKNOWN.

    Args:
        root: Directory to inspect

    Returns:
        ProjectDetection with the single type, MIXED, or UNKNOWN
    """
    root = Path(root)
    children = _list_children(root)

    found: set[ProjectType] = set()
    for project_type, markers in MARKERS.items():
        if any(marker in children for marker in markers):
            found.add(project_type)

    if "requirements.txt" in children and _requirements_mention_ml(root):
        found.add(ProjectType.MACHINE_LEARNING)

    if not found:
        return ProjectDetection(project_type=ProjectType.UNKNOWN)
    if len(found) == 1:
        (only,) = found
        return ProjectDetection(project_type=only, detected=frozenset(found))
    return ProjectDetection(project_type=ProjectType.MIXED, detected=frozenset(found))


def kinds_for_types(project_types: list[ProjectType] | frozenset[ProjectType] | None) -> list[CacheKind]:
    """
    Cache kinds implied by a set of base project types.

    Args:
        project_types: Base project types, or None for every language kind

    Returns:
        Kinds in priority order
    """
    if project_types is None:
        return list(LANGUAGE_KINDS)

    kinds: set[CacheKind] = set()
    for project_type in project_types:
        if project_type == ProjectType.MIXED or project_type == ProjectType.UNKNOWN:
            continue
        kinds.add(KIND_FOR_TYPE[project_type])
        if project_type == ProjectType.MACHINE_LEARNING:
            kinds.add(CacheKind.PYTHON)

    return [kind for kind in LANGUAGE_KINDS if kind in kinds]
