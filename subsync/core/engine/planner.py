"""
Planner — compare declared against observed and list corrective steps.

Pure function of its inputs: the same DeclaredSet, LinkRecords and
RunOptions always yield the same ActionPlan. An already-reconciled
repository yields an empty plan.

Per path, in order:
    purge → add_link → fast_forward → normalize_branch
Globally, after every per-path step:
    sync_config → record_pointer
"""

from __future__ import annotations

import logging

from subsync.core.errors import ConfigError
from subsync.core.models.lifecycle import PathState
from subsync.core.models.link import LinkRecord
from subsync.core.models.plan import ActionKind, ActionPlan, ActionPlanItem
from subsync.core.models.submodule import DEFAULT_REMOTE, DeclaredSet, RunOptions, SubmoduleSpec

logger = logging.getLogger(__name__)


def classify(record: LinkRecord, spec: SubmoduleSpec | None) -> PathState:
    """Initial lifecycle state of a path."""
    if spec is None or record.is_orphaned:
        return PathState.ORPHANED
    if record.needs_purge(spec):
        return PathState.CONFLICTING
    if record.is_valid_link(spec):
        return PathState.VALID
    return PathState.MISSING


def purge_reason(record: LinkRecord, spec: SubmoduleSpec | None) -> str:
    """Why a path is being purged, for logs and the plan output."""
    if spec is None or record.is_orphaned:
        return "orphaned"
    if record.is_half_registered:
        return "half-registered"
    if record.is_registered and record.url_mismatch(spec):
        return f"url changed ({record.registered_url or record.checkout_url} -> {spec.url})"
    if record.is_plain_directory:
        return "plain directory in the way"
    return "unregistered checkout in the way"


def build_plan(
    declared: DeclaredSet,
    records: dict[str, LinkRecord],
    options: RunOptions | None = None,
    operation_id: str = "",
) -> ActionPlan:
    """Build the ordered plan that takes ``records`` to ``declared``.

    Args:
        declared: Desired state.
        records: Observed state, from ``inspector.inspect``.
        options: Run switches (``only_paths``, ``force_delete``).
        operation_id: Carried into the plan for logging.

    Returns:
        ActionPlan sorted by (path, kind priority), global steps last.

    Raises:
        ConfigError: If ``only_paths`` names an undeclared path.
    """
    options = options or RunOptions()
    try:
        specs = declared.restrict(options.only_paths)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    backup = not options.force_delete
    plan = ActionPlan(operation_id=operation_id)
    items: list[ActionPlanItem] = []
    drift = False
    pointer_drift = False

    # Orphans are only purged when the whole declaration is in scope
    if not options.only_paths:
        for path, record in sorted(records.items()):
            if not record.is_orphaned:
                continue
            plan.states[path] = PathState.ORPHANED
            if record.needs_purge(None):
                items.append(ActionPlanItem(
                    kind=ActionKind.PURGE,
                    path=path,
                    params={"backup": backup, "reason": purge_reason(record, None)},
                ))

    for spec in specs:
        record = records.get(spec.path) or LinkRecord(path=spec.path)
        state = classify(record, spec)
        plan.states[spec.path] = state

        if state == PathState.CONFLICTING:
            items.append(ActionPlanItem(
                kind=ActionKind.PURGE,
                path=spec.path,
                params={"backup": backup, "reason": purge_reason(record, spec)},
            ))

        new_link = state != PathState.VALID
        if new_link:
            items.append(ActionPlanItem(
                kind=ActionKind.ADD_LINK,
                path=spec.path,
                params={"url": spec.url, "branch": spec.branch, "depth": spec.depth},
            ))
        else:
            drift = drift or record.config_drift(spec)
            pointer_drift = pointer_drift or record.local_commit != record.recorded_commit

        ref = _fast_forward_ref(record, spec, state)
        if ref is not None:
            items.append(ActionPlanItem(
                kind=ActionKind.FAST_FORWARD,
                path=spec.path,
                params={
                    "ref": ref,
                    "branch": spec.branch if spec.track_branch else None,
                    "depth": spec.depth,
                },
            ))

        if spec.track_branch and (new_link or record.local_branch != spec.branch):
            items.append(ActionPlanItem(
                kind=ActionKind.NORMALIZE_BRANCH,
                path=spec.path,
                params={"branch": spec.branch},
            ))

    relinking = any(i.kind in (ActionKind.PURGE, ActionKind.ADD_LINK) for i in items)
    if relinking or drift:
        items.append(ActionPlanItem(kind=ActionKind.SYNC_CONFIG))
    if items or pointer_drift:
        items.append(ActionPlanItem(kind=ActionKind.RECORD_POINTER))

    plan.items = sorted(items, key=lambda i: i.sort_key)
    logger.debug("Planned %d step(s) across %d path(s)", plan.total, len(plan.paths))
    return plan


def _fast_forward_ref(record: LinkRecord, spec: SubmoduleSpec, state: PathState) -> str | None:
    """Ref to align the checkout with, or None when already there."""
    if spec.track_branch:
        if state != PathState.VALID:
            return f"{DEFAULT_REMOTE}/{spec.branch}"
        if record.remote_tip is None or record.local_commit != record.remote_tip:
            return f"{DEFAULT_REMOTE}/{spec.branch}"
        return None

    # Pinned: the commit the parent records, when it still applies
    if state == PathState.CONFLICTING:
        return None
    if not record.recorded_commit:
        return None
    if state == PathState.VALID and record.local_commit == record.recorded_commit:
        return None
    return record.recorded_commit
