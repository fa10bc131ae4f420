"""
Tests for use cases — reconcile, plan, status, config check and init.
"""

import json
import textwrap
from pathlib import Path

from factories import CORE_URL, DOCS_URL, UI_URL, declare
from subsync.adapters.mock import MockVcsAdapter
from subsync.core.config.loader import load_declared_set
from subsync.core.models.lifecycle import PathState
from subsync.core.models.submodule import RunOptions
from subsync.core.persistence.audit import AuditWriter
from subsync.core.use_cases.config_check import check_config
from subsync.core.use_cases.init import init_repository
from subsync.core.use_cases.reconcile import (
    EXIT_FATAL,
    EXIT_OK,
    EXIT_PUSH_REJECTED,
    plan_reconciliation,
    reconcile,
)
from subsync.core.use_cases.status import get_status


def _write_config(tmp_path: Path) -> Path:
    config = tmp_path / "submodules.yml"
    config.write_text(textwrap.dedent(f"""\
        version: 1
        defaults:
          branch: main
        submodules:
          - path: libs/core
            url: {CORE_URL}
          - path: libs/ui
            url: {UI_URL}
    """))
    return config


# ── reconcile ────────────────────────────────────────────────────────


class TestReconcile:
    def test_full_run_from_config(self, tmp_path, remotes):
        config = _write_config(tmp_path)

        result = reconcile(config_path=config, adapter=remotes)

        assert result.error is None
        assert result.exit_code == EXIT_OK
        assert result.repo_root == tmp_path.resolve()
        report = result.report
        assert report.added == 2
        assert report.commit.committed
        assert report.push.status == "pushed"
        assert remotes.pushes == [(None, None)]

    def test_second_run_is_up_to_date(self, tmp_path, remotes):
        declared = declare({"path": "libs/core", "url": CORE_URL})
        reconcile(repo=tmp_path, adapter=remotes, declared=declared)

        result = reconcile(repo=tmp_path, adapter=remotes, declared=declared)

        assert result.plan.is_empty
        assert result.report.commit is None
        assert result.report.push.status == "up_to_date"
        assert len(remotes.commits) == 1

    def test_config_error_touches_nothing(self, tmp_path, remotes):
        result = reconcile(config_path=tmp_path / "missing.yml", adapter=remotes)

        assert result.exit_code == EXIT_FATAL
        assert "Config file not found" in result.error
        assert result.report is None
        assert remotes.call_log == []

    def test_unknown_only_path(self, tmp_path, remotes):
        declared = declare({"path": "libs/core", "url": CORE_URL})

        result = reconcile(
            repo=tmp_path, adapter=remotes, declared=declared,
            options=RunOptions(only_paths=["libs/nope"]),
        )

        assert result.exit_code == EXIT_FATAL
        assert result.error == "Invalid --only: Not declared: libs/nope"
        assert remotes.call_log == []

    def test_not_a_repository(self, tmp_path):
        adapter = MockVcsAdapter(repo_root=tmp_path, is_root=False)
        declared = declare({"path": "libs/core", "url": CORE_URL})

        result = reconcile(repo=tmp_path, adapter=adapter, declared=declared)

        assert result.exit_code == EXIT_FATAL
        assert "Not a git repository root" in result.error

    def test_partial_failure_still_exits_ok(self, tmp_path, remotes):
        remotes.set_unreachable(DOCS_URL)
        declared = declare({"path": "a", "url": CORE_URL}, {"path": "b", "url": DOCS_URL})

        result = reconcile(repo=tmp_path, adapter=remotes, declared=declared)

        assert result.exit_code == EXIT_OK
        assert result.report.status == "partial"
        assert result.report.outcomes["b"].state == PathState.FAILED

    def test_push_rejected(self, tmp_path, remotes):
        remotes.push_rejected = True
        declared = declare({"path": "libs/core", "url": CORE_URL})

        result = reconcile(repo=tmp_path, adapter=remotes, declared=declared)

        assert result.push_rejected
        assert result.exit_code == EXIT_PUSH_REJECTED
        assert "rejected" in result.error
        assert result.report.commit.committed
        assert result.report.push is None

    def test_commit_failure_is_fatal(self, tmp_path, remotes):
        remotes.set_failure("commit", None, "hook declined")
        declared = declare({"path": "libs/core", "url": CORE_URL})

        result = reconcile(repo=tmp_path, adapter=remotes, declared=declared)

        assert result.exit_code == EXIT_FATAL
        assert result.error == "Commit failed: hook declined"
        assert remotes.pushes == []

    def test_no_push(self, tmp_path, remotes):
        declared = declare({"path": "libs/core", "url": CORE_URL})

        result = reconcile(
            repo=tmp_path, adapter=remotes, declared=declared, options=RunOptions(push=False),
        )

        assert result.report.push.status == "skipped"
        assert remotes.pushes == []
        assert remotes.ahead == 1

    def test_offline_skips_refresh(self, tmp_path, remotes):
        remotes.link("libs/core", CORE_URL)
        remotes.advance_remote(CORE_URL, "main", "core-3")
        declared = declare({"path": "libs/core", "url": CORE_URL})

        result = reconcile(
            repo=tmp_path, adapter=remotes, declared=declared, options=RunOptions(refresh=False),
        )

        assert result.plan.is_empty
        assert remotes.calls("fetch") == []
        assert remotes.dirs["libs/core"].head == "core-2"


class TestAudit:
    def test_entry_written(self, tmp_path, remotes):
        declared = declare({"path": "libs/core", "url": CORE_URL})

        result = reconcile(repo=tmp_path, adapter=remotes, declared=declared)

        ledger = tmp_path / ".git" / "subsync" / "audit.ndjson"
        assert ledger.is_file()
        entries = AuditWriter(repo_root=tmp_path).read_all()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.operation_id == result.report.operation_id
        assert entry.status == "ok"
        assert entry.added == 1
        assert entry.commit_id == "parent-1"
        assert entry.push_status == "pushed"

    def test_push_error_recorded(self, tmp_path, remotes):
        remotes.push_rejected = True
        declared = declare({"path": "libs/core", "url": CORE_URL})

        reconcile(repo=tmp_path, adapter=remotes, declared=declared)

        entry = AuditWriter(repo_root=tmp_path).read_all()[0]
        assert "rejected" in entry.context["push_error"]

    def test_not_written_on_dry_run(self, tmp_path, remotes):
        declared = declare({"path": "libs/core", "url": CORE_URL})

        reconcile(repo=tmp_path, adapter=remotes, declared=declared, options=RunOptions(dry_run=True))

        assert AuditWriter(repo_root=tmp_path).read_all() == []

    def test_disabled(self, tmp_path, remotes):
        declared = declare({"path": "libs/core", "url": CORE_URL})

        reconcile(repo=tmp_path, adapter=remotes, declared=declared, audit=False)

        assert not (tmp_path / ".git" / "subsync" / "audit.ndjson").exists()


# ── plan ─────────────────────────────────────────────────────────────


class TestPlanReconciliation:
    def test_plans_without_mutating(self, tmp_path, remotes):
        remotes.plain_dir("libs/core")
        declared = declare({"path": "libs/core", "url": CORE_URL})

        result = plan_reconciliation(repo=tmp_path, adapter=remotes, declared=declared)

        assert result.error is None
        assert result.plan.total == 6
        assert result.records["libs/core"].is_plain_directory
        assert remotes.call_log == []

    def test_to_dict_is_json(self, tmp_path, remotes):
        declared = declare({"path": "libs/core", "url": CORE_URL})

        result = plan_reconciliation(repo=tmp_path, adapter=remotes, declared=declared)

        data = json.loads(json.dumps(result.to_dict()))
        assert data["plan"]["items"][0]["kind"] == "add_link"
        assert "report" not in data


# ── status ───────────────────────────────────────────────────────────


class TestStatus:
    def test_entries(self, tmp_path, remotes):
        remotes.link("libs/core", CORE_URL)
        remotes.commit_locally("libs/core", "local-1")
        remotes.link("old", DOCS_URL)
        declared = declare({"path": "libs/core", "url": CORE_URL}, {"path": "libs/ui", "url": UI_URL})

        result = get_status(repo=tmp_path, adapter=remotes, declared=declared)

        assert result.error is None
        assert not result.clean
        entries = {e.path: e for e in result.entries}
        assert list(entries) == ["libs/core", "libs/ui", "old"]

        core = entries["libs/core"]
        assert core.state == "valid"
        assert core.recorded_commit == "core-2"
        assert core.local_commit == "local-1"
        assert core.pointer_drift
        assert (core.ahead, core.behind) == (1, 0)

        assert entries["libs/ui"].state == "missing"
        assert entries["old"].state == "orphaned"
        assert not entries["old"].declared
        assert entries["old"].url == DOCS_URL

    def test_clean(self, tmp_path, remotes):
        remotes.link("libs/core", CORE_URL)
        declared = declare({"path": "libs/core", "url": CORE_URL})

        result = get_status(repo=tmp_path, adapter=remotes, declared=declared)

        assert result.clean
        assert result.to_dict()["submodules"][0]["pointer_drift"] is False
        assert remotes.call_log == []

    def test_config_error(self, tmp_path, remotes):
        result = get_status(config_path=tmp_path / "missing.yml", adapter=remotes)

        assert "Config file not found" in result.error
        assert result.to_dict() == {"repo_root": None, "error": result.error}


# ── config check ─────────────────────────────────────────────────────


class TestConfigCheck:
    def test_valid(self, tmp_path):
        result = check_config(_write_config(tmp_path))

        assert result.valid
        assert result.errors == []
        assert result.to_dict()["submodule_count"] == 2

    def test_invalid_yaml(self, tmp_path):
        config = tmp_path / "submodules.yml"
        config.write_text("submodules: [unclosed")

        result = check_config(config)

        assert not result.valid
        assert "Invalid YAML" in result.errors[0]

    def test_nested_paths(self, tmp_path):
        config = tmp_path / "submodules.yml"
        config.write_text(textwrap.dedent(f"""\
            submodules:
              - path: libs
                url: {CORE_URL}
              - path: libs/ui
                url: {UI_URL}
        """))

        result = check_config(config)

        assert not result.valid
        assert result.errors == ["Submodule path 'libs/ui' is nested inside 'libs'"]

    def test_warnings(self, tmp_path):
        config = tmp_path / "submodules.yml"
        config.write_text(textwrap.dedent(f"""\
            submodules:
              - path: libs/core
                url: {CORE_URL}
                depth: 1
                track_branch: false
        """))
        (tmp_path / ".gitmodules").write_text(textwrap.dedent(f"""\
            [submodule "old"]
            \tpath = old
            \turl = {DOCS_URL}
        """))

        result = check_config(config)

        assert result.valid
        assert any("shallow clone" in w for w in result.warnings)
        assert any(w.startswith("old is registered") for w in result.warnings)

    def test_empty_declaration_warns(self, tmp_path):
        config = tmp_path / "submodules.yml"
        config.write_text("submodules: []\n")

        result = check_config(config)

        assert result.valid
        assert "No submodules declared" in result.warnings[0]


# ── init ─────────────────────────────────────────────────────────────


class TestInit:
    def test_initialises_and_writes_empty_declaration(self, tmp_path):
        adapter = MockVcsAdapter(repo_root=tmp_path, is_root=False)

        result = init_repository(repo=tmp_path, adapter=adapter)

        assert result.error is None
        assert result.repo_initialized
        assert result.config_written
        assert adapter.calls("init") == [None]
        declared = load_declared_set(tmp_path / "submodules.yml")
        assert declared.submodules == []

    def test_seeds_from_gitmodules(self, tmp_path, mock_vcs):
        (tmp_path / ".gitmodules").write_text(textwrap.dedent(f"""\
            [submodule "libs/core"]
            \tpath = libs/core
            \turl = {CORE_URL}
            \tbranch = develop
            [submodule "libs/ui"]
            \tpath = libs/ui
            \turl = {UI_URL}
        """))

        result = init_repository(repo=tmp_path, adapter=mock_vcs)

        assert not result.repo_initialized
        assert result.submodule_count == 2
        declared = load_declared_set(result.config_path)
        assert declared.paths() == ["libs/core", "libs/ui"]
        assert declared.get("libs/core").branch == "develop"
        assert declared.get("libs/ui").branch == "main"

    def test_keeps_existing_config(self, tmp_path, mock_vcs):
        config = _write_config(tmp_path)
        before = config.read_text()

        result = init_repository(repo=tmp_path, adapter=mock_vcs)

        assert not result.config_written
        assert config.read_text() == before

    def test_force_overwrites(self, tmp_path, mock_vcs):
        _write_config(tmp_path)

        result = init_repository(repo=tmp_path, adapter=mock_vcs, force=True)

        assert result.config_written
        assert load_declared_set(result.config_path).submodules == []

    def test_init_failure(self, tmp_path):
        adapter = MockVcsAdapter(repo_root=tmp_path, is_root=False)
        adapter.set_failure("init", None, "permission denied")

        result = init_repository(repo=tmp_path, adapter=adapter)

        assert result.error == "Cannot initialise repository: permission denied"
        assert not (tmp_path / "submodules.yml").exists()
