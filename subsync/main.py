"""
subsync — CLI entrypoint.

Usage:
    subsync --help
    subsync init
    subsync reconcile
    subsync plan --only libs/core
    subsync status
    subsync config check
"""

from __future__ import annotations

import json
import signal
import sys
import threading
from pathlib import Path

import click

from subsync import __version__
from subsync.core.observability.logging_config import resolve_level, setup_logging

_STATE_COLORS = {
    "linked": "green",
    "unchanged": "white",
    "removed": "cyan",
    "failed": "red",
    "skipped": "yellow",
}
_STATUS_COLORS = {"ok": "green", "partial": "yellow", "failed": "red"}


@click.group()
@click.version_option(version=__version__, prog_name="subsync")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to submodules.yml or .gitmodules (default: auto-detect).",
)
@click.option(
    "--repo",
    "repo",
    type=click.Path(exists=True, file_okay=False),
    default=None,
    help="Parent repository root (default: the config file's directory).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    repo: str | None,
) -> None:
    """subsync — reconcile git submodules with a declared set."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["repo"] = Path(repo) if repo else None

    setup_logging(level=resolve_level(debug=debug, verbose=verbose, quiet=quiet))


# ── init ────────────────────────────────────────────────────────


@cli.command()
@click.option("--force", is_flag=True, help="Overwrite an existing submodules.yml.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def init(ctx: click.Context, force: bool, as_json: bool) -> None:
    """Initialise the repository and write a starter submodules.yml."""
    from subsync.core.use_cases.init import init_repository

    result = init_repository(repo=ctx.obj.get("repo"), adapter=ctx.obj.get("adapter"), force=force)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if result.repo_initialized:
        click.secho(f"✅ Initialised repository at {result.repo_root}", fg="green")
    if result.config_written:
        click.secho(f"✅ Wrote {result.config_path}", fg="green")
        if result.submodule_count:
            click.echo(f"   Declared {result.submodule_count} submodule(s) from .gitmodules")
    else:
        click.echo(f"   {result.config_path} already exists (use --force to overwrite)")


# ── reconcile ───────────────────────────────────────────────────


@cli.command()
@click.option("--dry-run", is_flag=True, help="Plan and report, change nothing.")
@click.option("--only", "only_paths", multiple=True, help="Limit the run to these paths.")
@click.option("--force-delete", is_flag=True, help="Delete conflicting directories instead of backing them up.")
@click.option("--no-push", is_flag=True, help="Commit but don't push the parent repository.")
@click.option("--offline", is_flag=True, help="Don't fetch remotes before planning.")
@click.option("--workers", type=click.IntRange(min=0), default=None, help="Worker threads (0 = CPU count).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def reconcile(
    ctx: click.Context,
    dry_run: bool,
    only_paths: tuple[str, ...],
    force_delete: bool,
    no_push: bool,
    offline: bool,
    workers: int | None,
    as_json: bool,
) -> None:
    """Bring every submodule in line with the declaration.

    Examples:

        subsync reconcile

        subsync reconcile --only libs/core --no-push

        subsync reconcile --dry-run
    """
    from subsync.core.models.submodule import RunOptions
    from subsync.core.use_cases.reconcile import reconcile as run_reconcile

    options = RunOptions(
        dry_run=dry_run,
        force_delete=force_delete,
        only_paths=list(only_paths),
        push=not no_push,
        refresh=False if offline else None,
        workers=workers,
    )

    cancel = threading.Event()
    previous = _install_interrupt(cancel)
    try:
        result = run_reconcile(
            config_path=ctx.obj.get("config_path"),
            repo=ctx.obj.get("repo"),
            options=options,
            adapter=ctx.obj.get("adapter"),
            cancel=cancel,
        )
    finally:
        _restore_interrupt(previous)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    report = result.report
    if report is None:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(result.exit_code)

    mode_label = "[dry-run] " if dry_run else ""
    click.secho(f"\n🔗 {mode_label}reconcile — {result.repo_root}", fg="cyan", bold=True)
    if result.plan is not None and result.plan.is_empty:
        click.echo("   Already reconciled, nothing to do.")
    click.echo()

    for path in sorted(report.outcomes):
        outcome = report.outcomes[path]
        click.secho(f"   {outcome.line()}", fg=_STATE_COLORS.get(outcome.state.value, "white"))
        if outcome.discarded_commit:
            click.secho(f"     ⚠️  reset discarded local HEAD {outcome.discarded_commit}", fg="yellow")

    if report.sync_error:
        click.secho(f"   ✗ {report.sync_error}", fg="red")

    click.echo()
    if report.commit and report.commit.committed:
        click.echo(f"   Commit: {report.commit.commit_id} ({len(report.commit.paths)} path(s))")
    elif report.commit:
        click.echo("   Commit: no changes")
    if report.push and report.push.status != "skipped":
        click.echo(f"   Push: {report.push.status} → {report.push.remote}/{report.push.branch}")
    if report.cancelled:
        click.secho("   Cancelled: remaining paths skipped", fg="yellow")

    click.secho(
        f"   Result: {report.status} "
        f"(purged {report.purged}, added {report.added}, "
        f"fast-forwarded {report.fast_forwarded}, failed {report.failed})",
        fg=_STATUS_COLORS.get(report.status, "white"),
        bold=True,
    )

    if result.error:
        click.secho(f"\n❌ {result.error}", fg="red")
    click.echo()
    sys.exit(result.exit_code)


# ── plan ────────────────────────────────────────────────────────


@cli.command()
@click.option("--only", "only_paths", multiple=True, help="Limit the plan to these paths.")
@click.option("--offline", is_flag=True, help="Don't fetch remotes before planning.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, only_paths: tuple[str, ...], offline: bool, as_json: bool) -> None:
    """Show what reconcile would do, without doing it."""
    from subsync.core.models.submodule import RunOptions
    from subsync.core.use_cases.reconcile import plan_reconciliation

    options = RunOptions(dry_run=True, only_paths=list(only_paths), refresh=False if offline else None)
    result = plan_reconciliation(
        config_path=ctx.obj.get("config_path"),
        repo=ctx.obj.get("repo"),
        options=options,
        adapter=ctx.obj.get("adapter"),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error or result.plan is None:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    action_plan = result.plan
    click.secho(f"\n📋 Plan — {result.repo_root}", fg="cyan", bold=True)
    if action_plan.is_empty:
        click.echo("   Already reconciled, nothing to do.")
        click.echo()
        return

    click.echo(f"   Steps: {action_plan.total} | Paths: {len(action_plan.paths)}")
    click.echo()
    for item in action_plan.items:
        reason = item.params.get("reason")
        suffix = f"  ({reason})" if reason else ""
        click.echo(f"   • {item.describe()}{suffix}")
    click.echo()


# ── status ──────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show each submodule's state against the declaration."""
    from subsync.core.use_cases.status import get_status

    result = get_status(
        config_path=ctx.obj.get("config_path"),
        repo=ctx.obj.get("repo"),
        adapter=ctx.obj.get("adapter"),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"\n📦 Submodules — {result.repo_root}", fg="cyan", bold=True)
    click.echo()
    if not result.entries:
        click.echo("   No submodules declared or registered.")

    for entry in result.entries:
        ok = entry.state == "valid" and not entry.pointer_drift
        marker, color = ("✓", "green") if ok else ("✗", "red") if entry.state != "valid" else ("~", "yellow")
        click.secho(f"   {marker} {entry.path} ", fg=color, nl=False)
        click.echo(f"[{entry.state}]")

        branch = entry.branch or "detached"
        if entry.declared_branch and entry.branch != entry.declared_branch:
            branch += f" (declared {entry.declared_branch})"
        click.echo(f"     branch:   {branch}")
        click.echo(f"     recorded: {entry.recorded_commit or '-'}")
        click.echo(f"     local:    {entry.local_commit or '-'}")
        if entry.ahead or entry.behind:
            click.echo(f"     ahead {entry.ahead}, behind {entry.behind}")

    click.echo()


# ── config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Submodule configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate submodules.yml."""
    from subsync.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.declared is not None
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   File: {result.config_path}")
        click.echo(f"   Submodules: {len(result.declared.submodules)}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    click.echo()
    if not result.valid:
        sys.exit(1)


# ── history ─────────────────────────────────────────────────────


@cli.command()
@click.option("-n", "limit", type=click.IntRange(min=1), default=10, help="Number of runs to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show recent reconcile runs from the audit ledger."""
    from subsync.core.config.loader import find_config_file
    from subsync.core.persistence.audit import AuditWriter

    repo: Path | None = ctx.obj.get("repo")
    if repo is None:
        config_path = ctx.obj.get("config_path") or find_config_file()
        repo = config_path.parent if config_path else Path.cwd()

    entries = AuditWriter(repo_root=repo.resolve()).read_recent(limit)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No reconcile runs recorded.")
        return

    click.echo()
    for entry in reversed(entries):
        color = _STATUS_COLORS.get(entry.status, "white")
        click.secho(f"   {entry.status:<8}", fg=color, nl=False)
        click.echo(
            f" {entry.timestamp}  {entry.operation_id}  "
            f"+{entry.added} -{entry.purged} ff{entry.fast_forwarded} ✗{entry.failed}"
        )
        if entry.commit_id:
            click.echo(f"            commit {entry.commit_id} · push {entry.push_status or '-'}")
        for path in entry.failed_paths:
            click.secho(f"            ✗ {path}", fg="red")
    click.echo()


# ── Interrupt handling ──────────────────────────────────────────


def _install_interrupt(cancel: threading.Event):
    """First Ctrl-C cancels between phases; in-flight git calls finish."""
    if threading.current_thread() is not threading.main_thread():
        return None

    def _handler(signum, frame):
        click.secho("\n⊘ Cancelling after the current steps…", fg="yellow", err=True)
        cancel.set()

    return signal.signal(signal.SIGINT, _handler)


def _restore_interrupt(previous) -> None:
    if previous is not None:
        signal.signal(signal.SIGINT, previous)


if __name__ == "__main__":
    cli()
