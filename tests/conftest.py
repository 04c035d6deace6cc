"""Shared fixtures for cachekill tests."""

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from cachekill.paths import comparison_key

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def write_file(path: Path, size: int, age_days: float = 0) -> Path:
    """Create a file of the given size whose mtime is age_days before NOW."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)
    set_age(path, age_days)
    return path


def set_age(path: Path, age_days: float) -> None:
    ts = (NOW - timedelta(days=age_days)).timestamp()
    os.utime(path, (ts, ts), follow_symlinks=False)


def is_strict_ancestor(ancestor, path) -> bool:
    """True if ancestor contains path and is not the same location."""
    a, p = comparison_key(ancestor), comparison_key(path)
    return a != p and p.is_relative_to(a)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch):
    """Point HOME at an empty directory so global caches are never the real ones."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.delenv("npm_config_cache", raising=False)
    monkeypatch.delenv("NPM_CONFIG_CACHE", raising=False)
    monkeypatch.delenv("HF_HOME", raising=False)
    monkeypatch.delenv("TORCH_HOME", raising=False)
    return home


@pytest.fixture
def project(tmp_path):
    """An empty project root, canonicalized."""
    root = tmp_path / "project"
    root.mkdir()
    return Path(os.path.realpath(root))
