"""
Tests for the planner — classification and plan construction.
"""

import pytest

from factories import CORE_URL, UI_URL, declare
from subsync.core.engine.planner import build_plan, classify
from subsync.core.errors import ConfigError
from subsync.core.models.lifecycle import PathState
from subsync.core.models.link import LinkRecord
from subsync.core.models.plan import ActionKind
from subsync.core.models.submodule import RunOptions


def _linked(path: str, url: str = CORE_URL, commit: str = "c2", **overrides) -> LinkRecord:
    """A fully reconciled record: registered, checked out, at the remote tip."""
    fields = dict(
        path=path, registered_url=url, registered_branch="main",
        in_config=True, in_index=True, recorded_commit=commit,
        working_dir_present=True, is_repo=True, has_local_repo=True,
        checkout_url=url, local_commit=commit, local_branch="main", remote_tip=commit,
    )
    fields.update(overrides)
    return LinkRecord(**fields)


def _kinds(plan, path=None):
    return [i.kind for i in plan.items if i.path == path]


# ── Classification ───────────────────────────────────────────────────


class TestClassify:
    spec = declare({"path": "x", "url": CORE_URL}).get("x")

    def test_orphaned(self):
        assert classify(_linked("x", is_orphaned=True), None) == PathState.ORPHANED

    def test_conflicting(self):
        assert classify(LinkRecord(path="x", working_dir_present=True), self.spec) == PathState.CONFLICTING

    def test_valid(self):
        assert classify(_linked("x"), self.spec) == PathState.VALID

    def test_missing(self):
        assert classify(LinkRecord(path="x"), self.spec) == PathState.MISSING


# ── Plans ────────────────────────────────────────────────────────────


class TestBuildPlan:
    def test_plain_directory_conflict(self):
        declared = declare({"path": "X", "url": CORE_URL})
        plan = build_plan(declared, {"X": LinkRecord(path="X", working_dir_present=True)})

        assert [(i.kind, i.path) for i in plan.items] == [
            (ActionKind.PURGE, "X"),
            (ActionKind.ADD_LINK, "X"),
            (ActionKind.FAST_FORWARD, "X"),
            (ActionKind.NORMALIZE_BRANCH, "X"),
            (ActionKind.SYNC_CONFIG, None),
            (ActionKind.RECORD_POINTER, None),
        ]
        assert plan.states["X"] == PathState.CONFLICTING
        add = plan.items[1]
        assert add.params == {"url": CORE_URL, "branch": "main", "depth": 0}
        assert plan.items[2].params["ref"] == "origin/main"

    def test_purge_always_precedes_add(self):
        declared = declare({"path": "a", "url": CORE_URL}, {"path": "b", "url": UI_URL})
        records = {
            "a": LinkRecord(path="a", working_dir_present=True),
            "b": _linked("b", url=CORE_URL),       # url changed to UI_URL
        }
        plan = build_plan(declared, records)
        for path in ("a", "b"):
            kinds = _kinds(plan, path)
            assert kinds.index(ActionKind.PURGE) < kinds.index(ActionKind.ADD_LINK)

    def test_reconciled_state_is_empty(self):
        declared = declare({"path": "X", "url": CORE_URL})
        plan = build_plan(declared, {"X": _linked("X")})
        assert plan.is_empty
        assert plan.states == {"X": PathState.VALID}

    def test_new_link_without_purge(self):
        declared = declare({"path": "X", "url": CORE_URL})
        plan = build_plan(declared, {})
        assert _kinds(plan, "X") == [ActionKind.ADD_LINK, ActionKind.FAST_FORWARD, ActionKind.NORMALIZE_BRANCH]
        assert plan.states["X"] == PathState.MISSING

    def test_behind_remote_fast_forwards_only(self):
        declared = declare({"path": "X", "url": CORE_URL})
        plan = build_plan(declared, {"X": _linked("X", remote_tip="c3")})
        assert _kinds(plan, "X") == [ActionKind.FAST_FORWARD]
        assert plan.has(ActionKind.RECORD_POINTER)
        assert not plan.has(ActionKind.SYNC_CONFIG)

    def test_unknown_remote_tip_fast_forwards(self):
        declared = declare({"path": "X", "url": CORE_URL})
        plan = build_plan(declared, {"X": _linked("X", remote_tip=None)})
        assert _kinds(plan, "X") == [ActionKind.FAST_FORWARD]

    def test_detached_checkout_normalizes(self):
        declared = declare({"path": "X", "url": CORE_URL})
        plan = build_plan(declared, {"X": _linked("X", local_branch=None)})
        assert _kinds(plan, "X") == [ActionKind.NORMALIZE_BRANCH]

    def test_branch_drift_syncs_config(self):
        declared = declare({"path": "X", "url": CORE_URL, "branch": "develop"})
        record = _linked("X", local_branch="develop", remote_tip="c2")
        plan = build_plan(declared, {"X": record})
        assert plan.has(ActionKind.SYNC_CONFIG)
        assert plan.has(ActionKind.RECORD_POINTER)
        assert not plan.has(ActionKind.PURGE, "X")

    def test_pointer_drift_records_pointer(self):
        declared = declare({"path": "X", "url": CORE_URL})
        plan = build_plan(declared, {"X": _linked("X", recorded_commit="c1")})
        assert [i.kind for i in plan.items] == [ActionKind.RECORD_POINTER]

    def test_orphans_purged(self):
        declared = declare({"path": "X", "url": CORE_URL})
        records = {"X": _linked("X"), "old": _linked("old", url=UI_URL, is_orphaned=True)}
        plan = build_plan(declared, records)
        assert _kinds(plan, "old") == [ActionKind.PURGE]
        assert plan.states["old"] == PathState.ORPHANED
        assert plan.items[0].params["reason"] == "orphaned"
        assert plan.has(ActionKind.SYNC_CONFIG)

    def test_only_paths_restricts_and_keeps_orphans(self):
        declared = declare({"path": "a", "url": CORE_URL}, {"path": "b", "url": UI_URL})
        records = {"old": _linked("old", is_orphaned=True)}
        plan = build_plan(declared, records, RunOptions(only_paths=["b"]))
        assert plan.paths == ["b"]
        assert "old" not in plan.states
        assert "a" not in plan.states

    def test_only_paths_unknown(self):
        declared = declare({"path": "a", "url": CORE_URL})
        with pytest.raises(ConfigError, match="Not declared: zzz"):
            build_plan(declared, {}, RunOptions(only_paths=["zzz"]))

    def test_force_delete_disables_backup(self):
        declared = declare({"path": "X", "url": CORE_URL})
        records = {"X": LinkRecord(path="X", working_dir_present=True)}
        assert build_plan(declared, records).items[0].params["backup"] is True
        forced = build_plan(declared, records, RunOptions(force_delete=True))
        assert forced.items[0].params["backup"] is False

    def test_uninitialised_link_is_added_not_purged(self):
        declared = declare({"path": "X", "url": CORE_URL})
        record = _linked("X", is_repo=False, has_local_repo=False, checkout_url=None,
                         local_commit=None, local_branch=None, remote_tip=None)
        plan = build_plan(declared, {"X": record})
        assert _kinds(plan, "X") == [ActionKind.ADD_LINK, ActionKind.FAST_FORWARD, ActionKind.NORMALIZE_BRANCH]
        assert plan.states["X"] == PathState.MISSING

    def test_deterministic(self):
        declared = declare({"path": "b", "url": UI_URL}, {"path": "a", "url": CORE_URL})
        records = {"a": LinkRecord(path="a", working_dir_present=True)}
        first = build_plan(declared, records)
        second = build_plan(declared, records)
        assert [i.describe() for i in first.items] == [i.describe() for i in second.items]
        assert first.paths == ["a", "b"]


class TestPinnedPlans:
    def test_pinned_at_recorded_commit_is_empty(self):
        declared = declare({"path": "X", "url": CORE_URL, "track_branch": False})
        plan = build_plan(declared, {"X": _linked("X", commit="c1", remote_tip="c9")})
        assert plan.is_empty

    def test_pinned_moved_checkout_aligns_to_recorded(self):
        declared = declare({"path": "X", "url": CORE_URL, "track_branch": False})
        record = _linked("X", recorded_commit="c1", local_commit="c2", remote_tip="c2")
        plan = build_plan(declared, {"X": record})
        ff = [i for i in plan.items if i.kind == ActionKind.FAST_FORWARD]
        assert ff[0].params["ref"] == "c1"
        assert ff[0].params["branch"] is None
        assert not plan.has(ActionKind.NORMALIZE_BRANCH, "X")

    def test_pinned_new_link_without_recorded_commit(self):
        declared = declare({"path": "X", "url": CORE_URL, "track_branch": False})
        plan = build_plan(declared, {})
        assert _kinds(plan, "X") == [ActionKind.ADD_LINK]
