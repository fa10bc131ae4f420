"""
Tests for CLI commands — init, reconcile, plan, status, config check, history.
"""

import json
import textwrap
from pathlib import Path

from click.testing import CliRunner

from factories import CORE_URL, UI_URL
from subsync.adapters.mock import MockVcsAdapter
from subsync.main import cli


def _make_config(tmp_path: Path) -> Path:
    """Write a two-submodule submodules.yml for testing."""
    config = tmp_path / "submodules.yml"
    config.write_text(textwrap.dedent(f"""\
        submodules:
          - path: libs/core
            url: {CORE_URL}
          - path: libs/ui
            url: {UI_URL}
    """))
    return config


def _invoke(args, adapter=None):
    runner = CliRunner()
    obj = {"adapter": adapter} if adapter is not None else None
    return runner.invoke(cli, args, obj=obj)


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        result = _invoke(["--help"])
        assert result.exit_code == 0
        assert "reconcile git submodules" in result.output

    def test_version(self):
        result = _invoke(["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


# ── reconcile ────────────────────────────────────────────────────────


class TestReconcileCommand:
    def test_reconcile(self, tmp_path, remotes):
        config = _make_config(tmp_path)

        result = _invoke(["-c", str(config), "reconcile"], remotes)

        assert result.exit_code == 0, result.output
        assert "libs/core: Linked @ core-2 (main)" in result.output
        assert "libs/ui: Linked @ ui-1 (main)" in result.output
        assert "Commit: parent-1 (2 path(s))" in result.output
        assert "Push: pushed → origin/main" in result.output
        assert "Result: ok" in result.output

    def test_already_reconciled(self, tmp_path, remotes):
        config = _make_config(tmp_path)
        remotes.link("libs/core", CORE_URL)
        remotes.link("libs/ui", UI_URL)

        result = _invoke(["-c", str(config), "reconcile"], remotes)

        assert result.exit_code == 0
        assert "Already reconciled" in result.output
        assert "libs/core: Unchanged" in result.output

    def test_reset_reports_discarded_head(self, tmp_path, remotes):
        config = _make_config(tmp_path)
        remotes.link("libs/core", CORE_URL)
        remotes.link("libs/ui", UI_URL)
        remotes.commit_locally("libs/core", "local-1")

        result = _invoke(["-c", str(config), "reconcile"], remotes)

        assert result.exit_code == 0, result.output
        assert "libs/core: Linked @ core-2 (main)" in result.output
        assert "reset discarded local HEAD local-1" in result.output
        assert "libs/ui: Unchanged" in result.output

    def test_json(self, tmp_path, remotes):
        config = _make_config(tmp_path)

        result = _invoke(["-c", str(config), "reconcile", "--json"], remotes)

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["report"]["status"] == "ok"
        assert data["report"]["added"] == 2
        assert data["report"]["commit"]["status"] == "committed"

    def test_dry_run(self, tmp_path, remotes):
        config = _make_config(tmp_path)

        result = _invoke(["-c", str(config), "reconcile", "--dry-run"], remotes)

        assert result.exit_code == 0
        assert "[dry-run]" in result.output
        assert "libs/core: Skipped" in result.output
        assert remotes.commits == []
        assert remotes.dirs == {}

    def test_only(self, tmp_path, remotes):
        config = _make_config(tmp_path)

        result = _invoke(["-c", str(config), "reconcile", "--only", "libs/ui", "--no-push"], remotes)

        assert result.exit_code == 0
        assert "libs/ui: Linked" in result.output
        assert "libs/core" not in result.output
        assert remotes.pushes == []

    def test_missing_config(self, tmp_path, remotes):
        result = _invoke(["-c", str(tmp_path / "nope.yml"), "reconcile"], remotes)

        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_push_rejected_exit_code(self, tmp_path, remotes):
        config = _make_config(tmp_path)
        remotes.push_rejected = True

        result = _invoke(["-c", str(config), "reconcile"], remotes)

        assert result.exit_code == 2
        assert "rejected" in result.output


# ── plan ─────────────────────────────────────────────────────────────


class TestPlanCommand:
    def test_lists_steps(self, tmp_path, remotes):
        config = _make_config(tmp_path)
        remotes.plain_dir("libs/core")

        result = _invoke(["-c", str(config), "plan"], remotes)

        assert result.exit_code == 0
        assert "• purge(libs/core)  (plain directory in the way)" in result.output
        assert f"• add_link(libs/ui, {UI_URL}, main)" in result.output
        assert "• record_pointer" in result.output
        assert remotes.call_log == []

    def test_nothing_to_do(self, tmp_path, remotes):
        config = _make_config(tmp_path)
        remotes.link("libs/core", CORE_URL)
        remotes.link("libs/ui", UI_URL)

        result = _invoke(["-c", str(config), "plan", "--offline"], remotes)

        assert result.exit_code == 0
        assert "Already reconciled, nothing to do." in result.output

    def test_json(self, tmp_path, remotes):
        config = _make_config(tmp_path)

        result = _invoke(["-c", str(config), "plan", "--json"], remotes)

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["plan"]["total"] == 8


# ── status ───────────────────────────────────────────────────────────


class TestStatusCommand:
    def test_status(self, tmp_path, remotes):
        config = _make_config(tmp_path)
        remotes.link("libs/core", CORE_URL)

        result = _invoke(["-c", str(config), "status"], remotes)

        assert result.exit_code == 0
        assert "✓ libs/core [valid]" in result.output
        assert "✗ libs/ui [missing]" in result.output
        assert "recorded: core-2" in result.output

    def test_status_json(self, tmp_path, remotes):
        config = _make_config(tmp_path)
        remotes.link("libs/core", CORE_URL)

        result = _invoke(["-c", str(config), "status", "--json"], remotes)

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["clean"] is False
        assert [s["path"] for s in data["submodules"]] == ["libs/core", "libs/ui"]


# ── config check ─────────────────────────────────────────────────────


class TestConfigCheckCommand:
    def test_valid(self, tmp_path):
        config = _make_config(tmp_path)

        result = _invoke(["-c", str(config), "config", "check"])

        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "Submodules: 2" in result.output

    def test_invalid(self, tmp_path):
        config = tmp_path / "submodules.yml"
        config.write_text("submodules:\n  - path: ../escape\n    url: nowhere\n")

        result = _invoke(["-c", str(config), "config", "check"])

        assert result.exit_code == 1
        assert "Configuration errors" in result.output

    def test_json(self, tmp_path):
        config = _make_config(tmp_path)

        result = _invoke(["-c", str(config), "config", "check", "--json"])

        data = json.loads(result.output)
        assert data["valid"] is True
        assert data["submodule_count"] == 2


# ── history ──────────────────────────────────────────────────────────


class TestHistoryCommand:
    def test_empty(self, tmp_path):
        result = _invoke(["--repo", str(tmp_path), "history"])

        assert result.exit_code == 0
        assert "No reconcile runs recorded." in result.output

    def test_lists_runs(self, tmp_path, remotes):
        config = _make_config(tmp_path)
        _invoke(["-c", str(config), "reconcile"], remotes)

        result = _invoke(["--repo", str(tmp_path), "history", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert len(data) == 1
        assert data[0]["status"] == "ok"
        assert data[0]["added"] == 2


# ── init ─────────────────────────────────────────────────────────────


class TestInitCommand:
    def test_init(self, tmp_path):
        adapter = MockVcsAdapter(repo_root=tmp_path, is_root=False)

        result = _invoke(["--repo", str(tmp_path), "init"], adapter)

        assert result.exit_code == 0
        assert "Initialised repository" in result.output
        assert "Wrote" in result.output
        assert (tmp_path / "submodules.yml").is_file()

    def test_existing_config_kept(self, tmp_path, mock_vcs):
        _make_config(tmp_path)

        result = _invoke(["--repo", str(tmp_path), "init"], mock_vcs)

        assert result.exit_code == 0
        assert "already exists" in result.output
