"""Cache kind definitions for cachekill."""

import sys

from cachekill.models import CacheCategory, CacheKind
from cachekill.paths import expand_path

# All scannable cache kinds with their patterns
CATEGORIES: dict[CacheKind, CacheCategory] = {
    CacheKind.JS: CacheCategory(
        kind=CacheKind.JS,
        name="JavaScript / TypeScript",
        project_paths=[
            "node_modules",
            ".next",
            ".nuxt",
            ".vite",
            ".cache",
            "dist",
            "coverage",
            ".turbo",
            ".parcel-cache",
            ".svelte-kit",
            "build",
            "out",
            ".yarn/cache",
        ],
        recursive_names=["node_modules", ".turbo", ".parcel-cache"],
        global_paths={
            "posix": [
                "~/.npm/_cacache",
                "~/.yarn/cache",
                "~/.cache/yarn",
                "~/.local/share/pnpm/store/v3",
                "~/.cache/pnpm",
            ],
            "darwin": ["~/Library/Caches/Yarn", "~/Library/pnpm/store/v3", "~/Library/Caches/pnpm"],
            "windows": [
                "%LOCALAPPDATA%\\npm-cache\\_cacache",
                "%LOCALAPPDATA%\\Yarn\\Cache",
                "%LOCALAPPDATA%\\pnpm\\store\\v3",
                "%LOCALAPPDATA%\\pnpm-cache",
            ],
        },
        description="Installed dependencies, bundler caches and build output",
        recovery="npm install / yarn / pnpm install, then rebuild",
    ),
    CacheKind.PYTHON: CacheCategory(
        kind=CacheKind.PYTHON,
        name="Python",
        project_paths=[
            "__pycache__",
            ".pytest_cache",
            ".venv",
            "venv",
            ".tox",
            ".nox",
            ".mypy_cache",
            ".ruff_cache",
            ".pip-cache",
            "htmlcov",
        ],
        recursive_names=["__pycache__", ".pytest_cache", ".mypy_cache", ".ruff_cache", ".tox"],
        global_paths={
            "posix": ["~/.cache/pip"],
            "darwin": ["~/Library/Caches/pip"],
            "windows": ["%LOCALAPPDATA%\\pip\\Cache"],
        },
        description="Bytecode, test/type-checker caches and virtual environments",
        recovery="Recreate the virtualenv and reinstall; caches rebuild automatically",
    ),
    CacheKind.SYSTEMS: CacheCategory(
        kind=CacheKind.SYSTEMS,
        name="Rust",
        project_paths=["target"],
        global_paths={
            "posix": ["~/.cargo/registry/cache", "~/.cargo/git/checkouts"],
            "windows": ["%USERPROFILE%\\.cargo\\registry\\cache"],
        },
        description="Compiled artifacts and downloaded crate archives",
        recovery="cargo build",
    ),
    CacheKind.JAVA: CacheCategory(
        kind=CacheKind.JAVA,
        name="Java / JVM",
        project_paths=[".gradle", "build", "target", ".m2"],
        global_paths={
            "posix": ["~/.m2/repository", "~/.gradle/caches"],
            "windows": ["%USERPROFILE%\\.m2\\repository", "%USERPROFILE%\\.gradle\\caches"],
        },
        description="Gradle/Maven build output and dependency repositories",
        recovery="gradle build / mvn install",
    ),
    CacheKind.ML: CacheCategory(
        kind=CacheKind.ML,
        name="Machine Learning",
        project_paths=[".dvc/cache", ".dvc/tmp", "wandb", ".wandb"],
        global_paths={
            "posix": ["~/.cache/huggingface", "~/.cache/torch", "~/.cache/transformers"],
            "windows": ["%USERPROFILE%\\.cache\\huggingface", "%USERPROFILE%\\.cache\\torch"],
        },
        description="Model downloads, DVC object caches and experiment logs",
        recovery="Models re-download on next use; dvc pull restores DVC data",
    ),
    CacheKind.GENERIC: CacheCategory(
        kind=CacheKind.GENERIC,
        name="Generic",
        project_paths=["tmp", "temp", ".tmp", ".cache", "cache"],
        description="Temporary and cache directories of any project",
        recovery="Usually regenerated by the tool that created them",
    ),
}

# Kinds in priority order when a path appears under several kinds
LANGUAGE_KINDS = (
    CacheKind.JS,
    CacheKind.PYTHON,
    CacheKind.SYSTEMS,
    CacheKind.JAVA,
    CacheKind.ML,
)


def get_all_categories() -> list[CacheCategory]:
    """Get all categories in priority order."""
    return list(CATEGORIES.values())


def global_locations(kind: CacheKind, platform: str | None = None) -> list[str]:
    """
    User-global cache locations for a kind on the given platform.

    Args:
        kind: Cache kind
        platform: sys.platform value (defaults to the running platform)

    Returns:
        Expanded absolute paths (existence not checked)
    """
    category = CATEGORIES.get(kind)
    if not category:
        return []

    platform = platform or sys.platform
    if platform.startswith("win"):
        raw = category.global_paths.get("windows", [])
    else:
        raw = list(category.global_paths.get("posix", []))
        if platform == "darwin":
            raw += category.global_paths.get("darwin", [])

    return [str(expand_path(p)) for p in raw]


def kind_for_name(name: str, kinds: list[CacheKind] | None = None) -> CacheKind:
    """
    Classify a directory by its name against the pattern table.

    Args:
        name: Base name of the directory
        kinds: Kinds to consider (defaults to all, in priority order)

    Returns:
        First matching kind, or GENERIC
    """
    for kind in kinds or list(CATEGORIES):
        category = CATEGORIES.get(kind)
        if not category:
            continue
        if any(p.split("/")[-1] == name for p in category.project_paths):
            return kind
    return CacheKind.GENERIC
