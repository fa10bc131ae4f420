"""
Engine executor — run an ActionPlan through the adapter.

Flow:
    phase A (pool)   purge → add_link          per path
    barrier          sync_config
    phase B (pool)   fast_forward → normalize  per path
    barrier          record_pointer            → ParentDriver.commit_pointers

Each path's steps run in order on one worker; different paths run
concurrently. A failure is confined to its path: the step's error is
recorded in that path's outcome and the siblings carry on.
"""

from __future__ import annotations

import logging
import os
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import UTC, datetime
from pathlib import Path

from subsync.adapters.base import VcsAdapter
from subsync.core.engine.pointers import ParentDriver, changed_pointer_paths
from subsync.core.errors import (
    FastForwardFailed,
    LinkAddFailed,
    NormalizeFailed,
    PathError,
    PurgeFailed,
    SyncConfigFailed,
)
from subsync.core.models.lifecycle import PathState
from subsync.core.models.plan import ActionKind, ActionPlan, ActionPlanItem
from subsync.core.models.report import ReconciliationReport
from subsync.core.models.submodule import (
    DEFAULT_BACKUP_DIR,
    DEFAULT_REMOTE,
    DeclaredSet,
    RunOptions,
)

logger = logging.getLogger(__name__)

PHASE_A = {ActionKind.PURGE, ActionKind.ADD_LINK}
PHASE_B = {ActionKind.FAST_FORWARD, ActionKind.NORMALIZE_BRANCH}

# States a path passes through while it is being worked on
_IN_FLIGHT = {PathState.ADDING_LINK, PathState.FAST_FORWARDING, PathState.SYNCING_BRANCH}


def resolve_workers(requested: int | None) -> int:
    """Worker limit: the explicit value, else the CPU count, else 4."""
    if requested and requested > 0:
        return requested
    return os.cpu_count() or 4


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"


class PlanExecutor:
    """Executes an ActionPlan against one parent repository."""

    def __init__(
        self,
        adapter: VcsAdapter,
        declared: DeclaredSet,
        options: RunOptions | None = None,
        driver: ParentDriver | None = None,
        cancel: threading.Event | None = None,
    ):
        self._adapter = adapter
        self._declared = declared
        self._options = options or RunOptions()
        self._driver = driver or ParentDriver(adapter, declared.remote, declared.push_branch)
        self._cancel = cancel or threading.Event()
        self._workers = resolve_workers(
            self._options.workers if self._options.workers is not None else declared.workers
        )
        self._backup_root = adapter.repo_root / (declared.backup_dir or DEFAULT_BACKUP_DIR)
        self._operation_id = ""

    @property
    def workers(self) -> int:
        return self._workers

    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def execute(self, plan: ActionPlan) -> ReconciliationReport:
        """Run every step of ``plan``.

        Raises:
            CommitFailed: If recording the pointers in the parent fails.
        """
        self._operation_id = plan.operation_id or generate_operation_id()
        report = ReconciliationReport(operation_id=self._operation_id, dry_run=self._options.dry_run)
        for path, state in sorted(plan.states.items()):
            report.outcome(path).advance(state)

        if self._options.dry_run:
            for path in plan.paths:
                report.outcome(path).advance(PathState.SKIPPED)
            self._settle(report, committed=set())
            logger.info("Dry run: %d step(s) planned, nothing executed", plan.total)
            return report

        logger.info(
            "Executing %d step(s) across %d path(s) with %d worker(s)",
            plan.total, len(plan.paths), self._workers,
        )

        # ── Phase A: purge / add_link ──
        if self._stop(report):
            return report
        self._run_phase(plan, PHASE_A, report)

        # ── Barrier: sync_config ──
        if self._stop(report):
            return report
        config_changed: list[str] = []
        if plan.has(ActionKind.SYNC_CONFIG):
            config_changed = self._sync_config(report)

        # ── Phase B: fast_forward / normalize_branch ──
        if self._stop(report):
            return report
        self._run_phase(plan, PHASE_B, report)

        # ── Barrier: record_pointer ──
        if self._stop(report):
            return report
        committed: set[str] = set()
        if plan.has(ActionKind.RECORD_POINTER):
            changed = self._changed_paths(report, config_changed)
            report.commit = self._driver.commit_pointers(changed)
            committed = set(report.commit.paths) if report.commit.committed else set()

        self._settle(report, committed)
        return report

    # ── Phases ──────────────────────────────────────────────────

    def _run_phase(self, plan: ActionPlan, kinds: set[ActionKind], report: ReconciliationReport) -> None:
        tasks = {
            path: steps
            for path, steps in plan.per_path(kinds).items()
            if not report.outcome(path).state.terminal
        }
        if not tasks:
            return
        with ThreadPoolExecutor(max_workers=min(self._workers, len(tasks))) as pool:
            futures = {
                pool.submit(self._run_path, path, steps, report): path
                for path, steps in tasks.items()
            }
            for future in as_completed(futures):
                future.result()

    def _run_path(self, path: str, steps: list[ActionPlanItem], report: ReconciliationReport) -> None:
        """Run one path's steps in order. Never raises."""
        outcome = report.outcome(path)
        if self.cancelled():
            outcome.advance(PathState.SKIPPED)
            logger.info("⊘ %s → skipped (cancelled)", path)
            return

        for item in steps:
            try:
                self._dispatch(item, report)
            except PathError as e:
                outcome.fail(str(e))
                logger.info("✗ %s:%s → %s", path, item.kind.value, e.message)
                return
            except Exception as e:  # isolation boundary: one path never sinks the run
                logger.exception("Unexpected error in %s:%s", path, item.kind.value)
                outcome.fail(f"{item.kind.value} failed for {path}: {e}")
                return
            outcome.actions.append(item.kind)
            logger.info("✓ %s:%s", path, item.kind.value)

        if outcome.state == PathState.PURGING and ActionKind.ADD_LINK not in outcome.actions:
            outcome.advance(PathState.REMOVED)

    def _dispatch(self, item: ActionPlanItem, report: ReconciliationReport) -> None:
        outcome = report.outcome(item.path)
        if item.kind == ActionKind.PURGE:
            outcome.advance(PathState.PURGING)
            self._purge(item)
        elif item.kind == ActionKind.ADD_LINK:
            outcome.advance(PathState.ADDING_LINK)
            self._add_link(item)
        elif item.kind == ActionKind.FAST_FORWARD:
            outcome.advance(PathState.FAST_FORWARDING)
            outcome.discarded_commit = self._fast_forward(item)
        elif item.kind == ActionKind.NORMALIZE_BRANCH:
            outcome.advance(PathState.SYNCING_BRANCH)
            self._normalize(item)
        else:
            raise ValueError(f"{item.kind.value} is not a per-path step")

    # ── Steps ───────────────────────────────────────────────────

    def _purge(self, item: ActionPlanItem) -> None:
        path = item.path
        logger.debug("Purging %s (%s)", path, item.params.get("reason", ""))
        receipt = self._adapter.remove_link(path)
        if receipt.failed:
            raise PurgeFailed(path, receipt.error or "remove failed")

        if not self._adapter.working_dir_present(path):
            return
        if item.params.get("backup", True):
            dest = self._backup_root / self._operation_id / path
            receipt = self._adapter.backup_tree(path, dest)
            if receipt.ok:
                logger.info("Moved %s to %s", path, dest)
        else:
            receipt = self._adapter.remove_tree(path)
        if receipt.failed:
            raise PurgeFailed(path, receipt.error or "remove failed")

    def _add_link(self, item: ActionPlanItem) -> None:
        path = item.path
        url = item.params["url"]
        if not self._adapter.is_reachable(url):
            resolved = self._adapter.resolve_url(url)
            shown = url if resolved == url else f"{url} (resolved to {resolved})"
            raise LinkAddFailed(path, f"remote not reachable: {shown}")
        receipt = self._adapter.add_link(path, url, item.params["branch"], item.params.get("depth", 0))
        if receipt.failed:
            raise LinkAddFailed(path, receipt.error or "add failed")

    def _fast_forward(self, item: ActionPlanItem) -> str | None:
        """Align the checkout exactly with ``ref``.

        A checkout that is already ahead of ``ref`` passes ``--ff-only``
        untouched, so HEAD is compared with the target afterwards and
        anything left over is reset away.

        Returns:
            The commit HEAD pointed at before a hard reset, or None when
            the checkout only moved forward.
        """
        path = item.path
        ref = item.params["ref"]
        receipt = self._adapter.fetch(
            path, DEFAULT_REMOTE, item.params.get("branch"), item.params.get("depth", 0)
        )
        if receipt.failed:
            raise FastForwardFailed(path, receipt.error or "fetch failed")

        target = self._adapter.resolve_ref(path, ref)
        receipt = self._adapter.merge_fast_forward_only(path, ref)
        head = self._adapter.resolve_ref(path, "HEAD")
        if receipt.ok and target is not None and head == target:
            return None

        logger.warning(
            "%s is not a fast-forward to %s, resetting (discarding HEAD %s)",
            path, ref, head or "unknown",
        )
        receipt = self._adapter.reset_hard(path, ref)
        if receipt.failed:
            raise FastForwardFailed(path, receipt.error or "reset failed")
        return head

    def _normalize(self, item: ActionPlanItem) -> None:
        path = item.path
        receipt = self._adapter.checkout_tracking_branch(path, item.params["branch"], DEFAULT_REMOTE)
        if receipt.failed:
            raise NormalizeFailed(path, receipt.error or "checkout failed")

    # ── Barriers ────────────────────────────────────────────────

    def _sync_config(self, report: ReconciliationReport) -> list[str]:
        specs = [
            spec for spec in self._declared.submodules
            if spec.path in report.outcomes and report.outcome(spec.path).state != PathState.FAILED
        ]
        receipt = self._adapter.sync_config(specs)
        if receipt.failed:
            error = SyncConfigFailed(receipt.error or "sync failed")
            report.sync_error = str(error)
            logger.error("✗ sync_config → %s", error)
            return []
        changed = list(receipt.metadata.get("changed", []))
        logger.info("✓ sync_config (%d entr%s rewritten)", len(changed), "y" if len(changed) == 1 else "ies")
        return changed

    def _changed_paths(self, report: ReconciliationReport, config_changed: list[str]) -> set[str]:
        """Paths whose gitlink or .gitmodules entry this run changed."""
        purged = {p for p, o in report.outcomes.items() if ActionKind.PURGE in o.actions}
        candidates = [
            p for p, o in report.outcomes.items()
            if o.state != PathState.FAILED and p not in purged
        ]
        return set(changed_pointer_paths(self._adapter, candidates)) | purged | set(config_changed)

    # ── Helpers ─────────────────────────────────────────────────

    def _stop(self, report: ReconciliationReport) -> bool:
        """Skip every unfinished path when the run was cancelled."""
        if not self.cancelled():
            return False
        report.cancelled = True
        for outcome in report.outcomes.values():
            if not outcome.state.terminal:
                outcome.advance(PathState.SKIPPED)
        logger.warning("Run %s cancelled, remaining paths skipped", report.operation_id)
        return True

    def _settle(self, report: ReconciliationReport, committed: set[str]) -> None:
        """Move every still-open path to its terminal state."""
        for path, outcome in report.outcomes.items():
            if outcome.state in _IN_FLIGHT:
                outcome.advance(PathState.LINKED)
            elif outcome.state == PathState.VALID:
                outcome.advance(PathState.LINKED if path in committed else PathState.UNCHANGED)
            elif not outcome.state.terminal:
                outcome.advance(PathState.SKIPPED)

            if outcome.state in (PathState.LINKED, PathState.UNCHANGED) and not report.dry_run:
                status = self._adapter.query_link_status(path, DEFAULT_REMOTE)
                outcome.commit_id = status.commit_id
                outcome.branch = status.branch

