"""Tests for action planning."""

from datetime import datetime, timezone

import pytest

from cachekill.models import CacheEntry, CacheKind, PlannedAction, RunMode
from cachekill.planner import decide_action, plan, simulate

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def entry(path, stale, size=100):
    return CacheEntry(path=path, kind=CacheKind.JS, size_bytes=size, last_used=NOW, stale=stale)


class TestDecideAction:
    def test_stale_with_safe_delete_is_backup(self):
        assert decide_action(entry("/a", True), force=False, safe_delete=True) == PlannedAction.BACKUP

    def test_stale_without_safe_delete_is_delete(self):
        assert decide_action(entry("/a", True), force=False, safe_delete=False) == PlannedAction.DELETE

    def test_fresh_is_skipped(self):
        assert decide_action(entry("/a", False), force=False, safe_delete=True) == PlannedAction.SKIP

    def test_force_acts_on_fresh(self):
        assert decide_action(entry("/a", False), force=True, safe_delete=True) == PlannedAction.BACKUP

    def test_zero_size_follows_same_rules(self):
        assert decide_action(entry("/a", True, size=0), force=False, safe_delete=False) == PlannedAction.DELETE


class TestPlan:
    def test_list_and_dry_run_skip_everything(self):
        entries = [entry("/a", True), entry("/b", False)]
        for mode in (RunMode.LIST, RunMode.DRY_RUN):
            planned = plan(entries, mode, force=True)
            assert {e.planned_action for e in planned} == {PlannedAction.SKIP}

    def test_delete_mode(self):
        planned = plan([entry("/a", True), entry("/b", False)], RunMode.DELETE)
        assert [e.planned_action for e in planned] == [PlannedAction.BACKUP, PlannedAction.SKIP]

    def test_returns_copies(self):
        original = entry("/a", True)
        plan([original], RunMode.DELETE)
        assert original.planned_action is None

    def test_copies_do_not_share_warnings(self):
        original = entry("/a", True)
        original.warnings.append("unreadable: /a/x")

        (planned,) = plan([original], RunMode.DELETE)
        planned.warnings.append("added later")

        assert planned.warnings is not original.warnings
        assert original.warnings == ["unreadable: /a/x"]

    def test_restore_is_rejected(self):
        with pytest.raises(ValueError):
            plan([entry("/a", True)], RunMode.RESTORE)


class TestSimulate:
    def test_matches_delete_plan(self):
        entries = [entry("/a", True), entry("/b", False), entry("/c", True, size=0)]
        for force in (False, True):
            for safe_delete in (False, True):
                simulated = {(s.path, s.action) for s in simulate(entries, force, safe_delete)}
                planned = {(e.path, e.planned_action) for e in plan(entries, RunMode.DELETE, force, safe_delete)}
                assert simulated == planned

    def test_carries_size(self):
        assert simulate([entry("/a", True, size=42)])[0].size_bytes == 42
