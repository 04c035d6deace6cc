"""Configuration file loading and merging with command-line options."""

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cachekill.errors import ConfigError
from cachekill.models import ProjectType, ScanConfig
from cachekill.paths import canonical, expand_path

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".cachekill.json"

DEFAULT_EXCLUDES = [".git", ".cachekill-backup"]

LANG_ALIASES: dict[str, ProjectType] = {
    "js": ProjectType.JAVASCRIPT,
    "javascript": ProjectType.JAVASCRIPT,
    "ts": ProjectType.JAVASCRIPT,
    "py": ProjectType.PYTHON,
    "python": ProjectType.PYTHON,
    "rust": ProjectType.SYSTEMS,
    "java": ProjectType.JAVA,
    "ml": ProjectType.MACHINE_LEARNING,
    "machinelearning": ProjectType.MACHINE_LEARNING,
}

# ScanConfig fields whose command-line values extend the file's lists
LIST_FIELDS = ("include_patterns", "exclude_patterns")


def user_config_file() -> Path:
    """Per-user fallback configuration file."""
    return expand_path("~/.cachekill/config.json")


class FileConfig(BaseModel):
    """Contents of a .cachekill.json file."""

    model_config = ConfigDict(extra="forbid")

    lang: Union[str, list[str]] = Field("auto", description="Project types, or 'auto'")
    stale_days: int = Field(14, ge=0, description="Staleness threshold in days")
    safe_delete: bool = Field(True, description="Back up instead of deleting outright")
    backup_dir: str = Field(".cachekill-backup", description="Backup directory, relative to the root")
    include_paths: list[str] = Field(default_factory=list, description="Extra paths or globs")
    exclude_paths: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDES),
        description="Glob patterns never treated as caches",
    )
    include_global: bool = Field(True, description="Scan user-global cache locations")
    include_docker: bool = Field(False, description="Report Docker disk usage")
    include_npx: bool = Field(False, description="Analyze the NPX package store")
    max_depth: int = Field(4, ge=0, description="Depth for recursive cache discovery")


def find_config_file(root: str | Path) -> Optional[Path]:
    """
    Locate the configuration file for a scan root.

    Walks up from root looking for .cachekill.json, then falls back to
    ~/.cachekill/config.json.

    Args:
        root: Scan root

    Returns:
        Path of the config file, or None if there is none
    """
    start = canonical(root)
    for directory in (start, *start.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate

    fallback = user_config_file()
    if fallback.is_file():
        return fallback
    return None


def load_config(path: str | Path | None) -> FileConfig:
    """
    Load and validate a configuration file.

    Args:
        path: Config file, or None for defaults

    Returns:
        FileConfig

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    if path is None:
        return FileConfig()

    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")

    try:
        config = FileConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    parse_lang(config.lang)
    logger.debug("Loaded configuration from %s", path)
    return config


def parse_lang(value: str | list[str] | None) -> Optional[list[ProjectType]]:
    """
    Parse a language selection.

    Args:
        value: 'auto', a name such as 'js' or 'python', a comma-separated
            list of names, or a list of names

    Returns:
        Base project types in the order given, or None for auto detection

    Raises:
        ConfigError: For an unknown language name
    """
    if value is None:
        return None

    names = value if isinstance(value, list) else value.split(",")
    names = [n.strip().lower() for n in names if n.strip()]

    if not names or names == ["auto"]:
        return None

    types: list[ProjectType] = []
    for name in names:
        if name not in LANG_ALIASES:
            choices = ", ".join(["auto", *LANG_ALIASES])
            raise ConfigError(f"Unknown language '{name}' (choose from: {choices})")
        project_type = LANG_ALIASES[name]
        if project_type not in types:
            types.append(project_type)
    return types


def merge_config(
    file_config: FileConfig,
    root: str | Path,
    **overrides: Any,
) -> ScanConfig:
    """
    Combine file configuration and command-line options.

    Command-line values win when not None. Include and exclude patterns from
    the command line are added to the file's lists.

    Args:
        file_config: Loaded file configuration
        root: Scan root
        **overrides: ScanConfig fields given on the command line; 'lang' is
            accepted in place of project_types_filter

    Returns:
        ScanConfig

    Raises:
        ConfigError: If the merged values are invalid
    """
    values: dict[str, Any] = {
        "root": str(canonical(root)),
        "project_types_filter": parse_lang(file_config.lang),
        "include_patterns": list(file_config.include_paths),
        "exclude_patterns": list(file_config.exclude_paths),
        "stale_threshold_days": file_config.stale_days,
        "safe_delete": file_config.safe_delete,
        "backup_dir": file_config.backup_dir,
        "include_global": file_config.include_global,
        "npx": file_config.include_npx,
        "docker": file_config.include_docker,
        "max_depth": file_config.max_depth,
    }

    lang = overrides.pop("lang", None)
    if lang is not None:
        values["project_types_filter"] = parse_lang(lang)

    for name, value in overrides.items():
        if value is None:
            continue
        if name in LIST_FIELDS:
            values[name] = values[name] + [v for v in value if v not in values[name]]
        else:
            values[name] = value

    try:
        return ScanConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid options: {e}") from e
