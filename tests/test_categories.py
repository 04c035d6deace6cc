"""Tests for cache kind definitions."""

from cachekill.categories import (
    CATEGORIES,
    LANGUAGE_KINDS,
    get_all_categories,
    global_locations,
    kind_for_name,
)
from cachekill.models import CacheKind


class TestCategories:
    def test_categories_not_empty(self):
        assert len(CATEGORIES) > 0

    def test_all_categories_have_required_fields(self):
        for kind, category in CATEGORIES.items():
            assert category.kind == kind
            assert category.name
            assert category.project_paths, f"{kind} has no project paths"
            assert category.description

    def test_recursive_names_are_unambiguous(self):
        names = {name for c in CATEGORIES.values() for name in c.recursive_names}
        assert names == {
            "node_modules",
            "__pycache__",
            ".pytest_cache",
            ".mypy_cache",
            ".ruff_cache",
            ".tox",
            ".turbo",
            ".parcel-cache",
        }

    def test_lookup_by_kind(self):
        assert CATEGORIES[CacheKind.PYTHON].name == "Python"

    def test_npx_has_no_category(self):
        assert CacheKind.NPX not in CATEGORIES

    def test_get_all_categories(self):
        assert len(get_all_categories()) == len(CATEGORIES)

    def test_language_kinds_order(self):
        assert LANGUAGE_KINDS[0] == CacheKind.JS
        assert CacheKind.GENERIC not in LANGUAGE_KINDS


class TestGlobalLocations:
    def test_posix_expands_home(self, isolated_home):
        locations = global_locations(CacheKind.PYTHON, platform="linux")
        assert locations == [str(isolated_home / ".cache" / "pip")]

    def test_darwin_adds_library_caches(self, isolated_home):
        locations = global_locations(CacheKind.PYTHON, platform="darwin")
        assert str(isolated_home / "Library" / "Caches" / "pip") in locations

    def test_pnpm_store_and_cache(self, isolated_home):
        linux = global_locations(CacheKind.JS, platform="linux")
        assert str(isolated_home / ".local" / "share" / "pnpm" / "store" / "v3") in linux
        assert str(isolated_home / ".cache" / "pnpm") in linux

        darwin = global_locations(CacheKind.JS, platform="darwin")
        assert str(isolated_home / "Library" / "pnpm" / "store" / "v3") in darwin
        assert str(isolated_home / "Library" / "Caches" / "pnpm") in darwin

    def test_windows_pnpm_locations(self):
        windows = CATEGORIES[CacheKind.JS].global_paths["windows"]
        assert "%LOCALAPPDATA%\\pnpm\\store\\v3" in windows
        assert "%LOCALAPPDATA%\\pnpm-cache" in windows

    def test_generic_has_no_global_locations(self):
        assert global_locations(CacheKind.GENERIC, platform="linux") == []


class TestKindForName:
    def test_node_modules(self):
        assert kind_for_name("node_modules") == CacheKind.JS

    def test_pycache(self):
        assert kind_for_name("__pycache__") == CacheKind.PYTHON

    def test_priority_order(self):
        # "target" is both Rust and Java; Rust comes first
        assert kind_for_name("target") == CacheKind.SYSTEMS
        assert kind_for_name("target", [CacheKind.JAVA]) == CacheKind.JAVA

    def test_nested_pattern_matches_last_segment(self):
        assert kind_for_name("cache", [CacheKind.ML]) == CacheKind.ML

    def test_unknown_falls_back_to_generic(self):
        assert kind_for_name("my-artifacts") == CacheKind.GENERIC
