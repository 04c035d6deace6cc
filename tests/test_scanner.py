"""Tests for cache candidate discovery."""

from pathlib import Path
from unittest.mock import patch

from cachekill.errors import FailureReason
from cachekill.models import CacheKind, ProjectType
from cachekill.scanner import find_matching_directories, matches_any_pattern, scan
from conftest import is_strict_ancestor


def paths_of(result):
    return {Path(c.path) for c in result.candidates}


class TestFindMatchingDirectories:
    def test_finds_matching_directory(self, tmp_path):
        node_modules = tmp_path / "project" / "node_modules"
        node_modules.mkdir(parents=True)
        (node_modules / "package.json").write_text("{}")

        results = list(find_matching_directories(tmp_path, frozenset({"node_modules"})))
        assert results == [node_modules]

    def test_finds_nested_directories(self, tmp_path):
        for project in ("a", "b", "c"):
            (tmp_path / project / "node_modules").mkdir(parents=True)

        results = list(find_matching_directories(tmp_path, frozenset({"node_modules"})))
        assert len(results) == 3

    def test_skips_nested_node_modules(self, tmp_path):
        outer = tmp_path / "project" / "node_modules"
        (outer / "pkg" / "node_modules").mkdir(parents=True)

        results = list(find_matching_directories(tmp_path, frozenset({"node_modules"})))
        assert results == [outer]

    def test_handles_permission_error(self, tmp_path):
        (tmp_path / "accessible" / "node_modules").mkdir(parents=True)

        with patch("os.scandir") as mock_scandir:
            mock_scandir.side_effect = PermissionError("Access denied")
            results = list(find_matching_directories(tmp_path, frozenset({"node_modules"})))

        assert results == []

    def test_respects_max_depth(self, tmp_path):
        deep = tmp_path
        for i in range(6):
            deep = deep / f"level{i}"
        (deep / "node_modules").mkdir(parents=True)

        assert list(find_matching_directories(tmp_path, frozenset({"node_modules"}), max_depth=4)) == []
        assert len(list(find_matching_directories(tmp_path, frozenset({"node_modules"}), max_depth=10))) == 1

    def test_does_not_descend_into_vcs_or_skipped(self, tmp_path):
        (tmp_path / ".git" / "node_modules").mkdir(parents=True)
        (tmp_path / "vendor" / "node_modules").mkdir(parents=True)

        results = list(
            find_matching_directories(tmp_path, frozenset({"node_modules"}), skip_names=frozenset({"vendor"}))
        )
        assert results == []

    def test_finds_hidden_directories_by_name(self, tmp_path):
        cache = tmp_path / "pkg" / ".pytest_cache"
        cache.mkdir(parents=True)

        assert list(find_matching_directories(tmp_path, frozenset({".pytest_cache"}))) == [cache]

    def test_yields_matching_symlink_without_following(self, tmp_path):
        target = tmp_path / "elsewhere"
        (target / "deep" / "node_modules").mkdir(parents=True)
        link = tmp_path / "pkg" / "node_modules"
        link.parent.mkdir()
        link.symlink_to(target)
        (tmp_path / "pkg" / "other").symlink_to(target)

        results = list(find_matching_directories(tmp_path / "pkg", frozenset({"node_modules"})))

        assert results == [link]


class TestMatchesAnyPattern:
    def test_matches_base_name(self, tmp_path):
        assert matches_any_pattern(tmp_path / "a" / "dist", tmp_path, ["dist"])

    def test_matches_relative_path(self, tmp_path):
        assert matches_any_pattern(tmp_path / "apps" / "web" / "build", tmp_path, ["apps/*/build"])

    def test_matches_relative_prefix(self, tmp_path):
        assert matches_any_pattern(tmp_path / "vendor" / "lib" / "node_modules", tmp_path, ["vendor"])

    def test_matches_absolute_path(self, tmp_path):
        assert matches_any_pattern(tmp_path / "x", tmp_path, [f"{tmp_path.as_posix()}/*"])

    def test_no_patterns(self, tmp_path):
        assert not matches_any_pattern(tmp_path / "x", tmp_path, [])


class TestScan:
    def test_conventional_project_paths(self, project):
        (project / "node_modules").mkdir()
        (project / ".next").mkdir()
        (project / "src").mkdir()

        result = scan(project, [ProjectType.JAVASCRIPT], include_global=False)

        assert paths_of(result) == {project / "node_modules", project / ".next"}
        assert all(c.kind == CacheKind.JS for c in result.candidates)
        assert all(c.source == "project" for c in result.candidates)

    def test_yarn_project_cache(self, project):
        (project / ".yarn" / "cache").mkdir(parents=True)
        (project / ".yarn" / "releases").mkdir()

        result = scan(project, [ProjectType.JAVASCRIPT], include_global=False)

        assert paths_of(result) == {project / ".yarn" / "cache"}
        assert result.candidates[0].kind == CacheKind.JS

    def test_filters_by_project_type(self, project):
        (project / "node_modules").mkdir()
        (project / "__pycache__").mkdir()

        result = scan(project, [ProjectType.PYTHON], include_global=False)

        assert paths_of(result) == {project / "__pycache__"}

    def test_none_means_every_language_kind(self, project):
        (project / "node_modules").mkdir()
        (project / "target").mkdir()

        result = scan(project, None, include_global=False)

        kinds = {Path(c.path).name: c.kind for c in result.candidates}
        assert kinds == {"node_modules": CacheKind.JS, "target": CacheKind.SYSTEMS}

    def test_recursive_discovery(self, project):
        nested = project / "packages" / "app" / "node_modules"
        nested.mkdir(parents=True)
        (project / "pkg" / "__pycache__").mkdir(parents=True)

        result = scan(project, None, include_global=False)

        assert nested in paths_of(result)
        assert project / "pkg" / "__pycache__" in paths_of(result)

    def test_max_depth_one_disables_recursion(self, project):
        (project / "packages" / "app" / "node_modules").mkdir(parents=True)

        result = scan(project, None, include_global=False, max_depth=1)

        assert paths_of(result) == set()

    def test_generic_only_when_requested(self, project):
        (project / "tmp").mkdir()

        assert paths_of(scan(project, None, include_global=False)) == set()
        result = scan(project, None, include_global=False, include_generic=True)
        assert paths_of(result) == {project / "tmp"}
        assert result.candidates[0].kind == CacheKind.GENERIC

    def test_global_locations(self, project, isolated_home):
        pip_cache = isolated_home / ".cache" / "pip"
        pip_cache.mkdir(parents=True)

        result = scan(project, [ProjectType.PYTHON])
        globals_ = [c for c in result.candidates if c.source == "global"]
        assert [Path(c.path) for c in globals_] == [pip_cache.resolve()]
        assert globals_[0].kind == CacheKind.PYTHON

        assert paths_of(scan(project, [ProjectType.PYTHON], include_global=False)) == set()

    def test_include_plain_path(self, project):
        artifacts = project / "artifacts"
        artifacts.mkdir()

        result = scan(project, [ProjectType.JAVASCRIPT], include=["artifacts"], include_global=False)

        assert paths_of(result) == {artifacts}
        assert result.candidates[0].kind == CacheKind.GENERIC
        assert result.candidates[0].source == "include"

    def test_include_missing_path_ignored(self, project):
        result = scan(project, [ProjectType.JAVASCRIPT], include=["nope"], include_global=False)
        assert paths_of(result) == set()

    def test_include_glob(self, project):
        (project / "apps" / "web" / ".output").mkdir(parents=True)
        (project / "apps" / "api" / ".output").mkdir(parents=True)

        result = scan(project, [ProjectType.JAVASCRIPT], include=["apps/*/.output"], include_global=False)

        assert paths_of(result) == {project / "apps" / "web" / ".output", project / "apps" / "api" / ".output"}

    def test_exclude_removes_candidates(self, project):
        (project / "node_modules").mkdir()
        (project / "dist").mkdir()

        result = scan(project, [ProjectType.JAVASCRIPT], exclude=["dist"], include_global=False)

        assert paths_of(result) == {project / "node_modules"}
        assert result.skipped == []

    def test_exclude_applies_to_includes(self, project):
        (project / "artifacts").mkdir()

        result = scan(project, None, include=["artifacts"], exclude=["artif*"], include_global=False)

        assert paths_of(result) == set()

    def test_vcs_is_never_touched(self, project):
        (project / ".git").mkdir()

        result = scan(project, None, include=[".git"], include_global=False)

        assert paths_of(result) == set()
        assert [s.reason for s in result.skipped] == [FailureReason.NEVER_TOUCH]

    def test_backup_dir_is_never_touched(self, project):
        backup = project / ".cachekill-backup"
        (backup / "2026-01-01_00-00-00" / "node_modules").mkdir(parents=True)

        result = scan(project, None, include=[".cachekill-backup"], include_global=False)

        assert paths_of(result) == set()
        assert result.skipped[0].reason == FailureReason.NEVER_TOUCH

    def test_root_itself_is_never_touched(self, project):
        result = scan(project, None, include=["."], include_global=False)

        assert paths_of(result) == set()
        assert result.skipped[0].reason == FailureReason.NEVER_TOUCH

    def test_symlink_escaping_root_is_skipped(self, project, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (project / "node_modules").symlink_to(outside)

        result = scan(project, [ProjectType.JAVASCRIPT], include_global=False)

        assert paths_of(result) == set()
        assert len(result.skipped) == 1
        assert result.skipped[0].reason == FailureReason.PATH_ESCAPES_SCAN_BOUNDARY

    def test_nested_symlink_escaping_root_is_skipped(self, project, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (project / "pkg").mkdir()
        (project / "pkg" / "node_modules").symlink_to(outside)

        result = scan(project, None, include_global=False)

        assert paths_of(result) == set()
        assert [(s.path, s.reason) for s in result.skipped] == [
            (str(project / "pkg" / "node_modules"), FailureReason.PATH_ESCAPES_SCAN_BOUNDARY)
        ]

    def test_nested_symlink_inside_root_collapses_to_target(self, project):
        real = project / "shared" / "node_modules"
        real.mkdir(parents=True)
        (project / "pkg").mkdir()
        (project / "pkg" / "node_modules").symlink_to(real)

        result = scan(project, [ProjectType.JAVASCRIPT], include_global=False)

        assert [c.path for c in result.candidates] == [str(real)]
        assert result.skipped == []

    def test_nested_candidates_deduplicated(self, project):
        (project / ".venv" / "lib").mkdir(parents=True)

        result = scan(project, [ProjectType.PYTHON], include=[".venv/lib"], include_global=False)

        assert paths_of(result) == {project / ".venv"}

    def test_no_candidate_is_ancestor_of_another(self, project):
        (project / "node_modules" / "x" / "node_modules").mkdir(parents=True)
        (project / "build" / ".cache").mkdir(parents=True)
        (project / ".cache").mkdir()

        result = scan(project, None, include=["build/.cache"], include_global=False, include_generic=True)

        paths = [c.path for c in result.candidates]
        for a in paths:
            for b in paths:
                assert not is_strict_ancestor(a, b)
