"""
Reconcile use case — bring the parent repository in line with submodules.yml.

This is the top-level orchestrator: it loads the declaration, refreshes
remotes, inspects the repository, plans, executes, records the pointers,
pushes, and writes the audit ledger. The full vertical slice from the
declared set to a pushed parent commit.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path

from subsync.adapters.base import VcsAdapter
from subsync.core.config.loader import find_config_file, load_declared_set
from subsync.core.engine.executor import PlanExecutor, generate_operation_id, resolve_workers
from subsync.core.engine.inspector import inspect, refresh
from subsync.core.engine.planner import build_plan
from subsync.core.engine.pointers import ParentDriver
from subsync.core.errors import (
    CommitFailed,
    ConfigError,
    NotARepository,
    PushRejected,
)
from subsync.core.models.link import LinkRecord
from subsync.core.models.plan import ActionPlan
from subsync.core.models.report import PushResult, ReconciliationReport
from subsync.core.models.submodule import DeclaredSet, RunOptions
from subsync.core.persistence.audit import AuditEntry, AuditWriter

logger = logging.getLogger(__name__)

# Exit codes for the CLI
EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PUSH_REJECTED = 2


@dataclass
class ReconcileResult:
    """Result of a reconcile (or plan-only) run."""

    report: ReconciliationReport | None = None
    plan: ActionPlan | None = None
    declared: DeclaredSet | None = None
    records: dict[str, LinkRecord] | None = None
    repo_root: Path | None = None
    error: str | None = None
    push_rejected: bool = False

    @property
    def exit_code(self) -> int:
        if self.push_rejected:
            return EXIT_PUSH_REJECTED
        if self.error:
            return EXIT_FATAL
        return EXIT_OK

    def to_dict(self) -> dict:
        result: dict = {"repo_root": str(self.repo_root) if self.repo_root else None}
        if self.error:
            result["error"] = self.error
        if self.plan is not None:
            result["plan"] = self.plan.to_dict()
        if self.report is not None:
            result["report"] = self.report.to_dict()
        return result


def reconcile(
    config_path: Path | None = None,
    repo: Path | None = None,
    options: RunOptions | None = None,
    adapter: VcsAdapter | None = None,
    declared: DeclaredSet | None = None,
    cancel: threading.Event | None = None,
    audit: bool = True,
) -> ReconcileResult:
    """Run a full reconciliation.

    Args:
        config_path: Explicit submodules.yml (searched upward when None).
        repo: Parent repository root (default: the config file's directory).
        options: Per-run switches.
        adapter: VCS adapter (default: a GitAdapter on ``repo``).
        declared: Pre-loaded declaration; skips the config file entirely.
        cancel: Set from another thread to stop between phases.
        audit: Write the audit ledger entry (ignored for dry runs).

    Returns:
        ReconcileResult. Fatal errors and push rejection are reported
        through ``error`` / ``exit_code``, never raised.
    """
    options = options or RunOptions()
    started = time.monotonic()

    result = plan_reconciliation(config_path, repo, options, adapter, declared)
    if result.error or result.plan is None:
        return result
    assert result.declared is not None and result.repo_root is not None
    adapter = adapter or _default_adapter(result.repo_root)

    # ── Execute ──────────────────────────────────────────────────
    driver = ParentDriver(adapter, result.declared.remote, result.declared.push_branch)
    executor = PlanExecutor(adapter, result.declared, options, driver=driver, cancel=cancel)
    try:
        report = executor.execute(result.plan)
    except CommitFailed as e:
        logger.error("%s", e)
        result.error = str(e)
        return result
    result.report = report

    # ── Push ─────────────────────────────────────────────────────
    if options.dry_run or report.cancelled or not options.push:
        report.push = PushResult(status="skipped")
    else:
        try:
            report.push = driver.push()
        except PushRejected as e:
            logger.error("%s", e)
            result.error = str(e)
            result.push_rejected = True

    for line in report.lines():
        logger.info("%s", line)

    # ── Write audit log ──────────────────────────────────────────
    if audit and not options.dry_run:
        entry = AuditEntry.from_report(
            report,
            duration_ms=int((time.monotonic() - started) * 1000),
            only_paths=options.only_paths,
            push_error=result.error,
        )
        AuditWriter(repo_root=result.repo_root).write(entry)

    return result


def plan_reconciliation(
    config_path: Path | None = None,
    repo: Path | None = None,
    options: RunOptions | None = None,
    adapter: VcsAdapter | None = None,
    declared: DeclaredSet | None = None,
) -> ReconcileResult:
    """Load, refresh, inspect and plan, without executing anything.

    Returns:
        ReconcileResult with ``plan`` and ``records`` set, or ``error``.
    """
    options = options or RunOptions()
    result = ReconcileResult()

    # ── Load declaration ─────────────────────────────────────────
    try:
        if declared is None:
            if config_path is None:
                config_path = find_config_file(repo)
            declared = load_declared_set(config_path)
        declared.restrict(options.only_paths)
    except ConfigError as e:
        result.error = str(e)
        return result
    except ValueError as e:
        result.error = f"Invalid --only: {e}"
        return result

    result.declared = declared
    result.repo_root = (repo or (config_path.parent if config_path else Path.cwd())).resolve()
    adapter = adapter or _default_adapter(result.repo_root)

    # ── Refresh + inspect ────────────────────────────────────────
    operation_id = generate_operation_id()
    do_refresh = declared.refresh if options.refresh is None else options.refresh
    try:
        records = inspect(adapter, declared.paths(), declared)
        if do_refresh:
            workers = resolve_workers(options.workers if options.workers is not None else declared.workers)
            fetched = refresh(adapter, records, declared.restrict(options.only_paths), workers)
            if fetched:
                records = inspect(adapter, declared.paths(), declared)
    except NotARepository as e:
        result.error = str(e)
        return result
    result.records = records

    # ── Plan ─────────────────────────────────────────────────────
    try:
        result.plan = build_plan(declared, records, options, operation_id)
    except ConfigError as e:
        result.error = str(e)
        return result

    logger.info("Plan %s: %d step(s)", operation_id, result.plan.total)
    return result


def _default_adapter(repo_root: Path) -> VcsAdapter:
    from subsync.adapters.vcs.git import GitAdapter

    return GitAdapter(repo_root)
