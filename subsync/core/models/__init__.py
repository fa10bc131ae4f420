"""
Domain models — Pydantic types for subsync.

All models are re-exported here for convenient access:

    from subsync.core.models import SubmoduleSpec, DeclaredSet, LinkRecord, ActionPlan
"""

from subsync.core.models.action import Receipt
from subsync.core.models.lifecycle import PathState, check_transition
from subsync.core.models.link import ConfigLink, LinkRecord, LinkStatus
from subsync.core.models.plan import ActionKind, ActionPlan, ActionPlanItem
from subsync.core.models.report import (
    CommitResult,
    PathOutcome,
    PushResult,
    ReconciliationReport,
)
from subsync.core.models.submodule import (
    DeclaredSet,
    RunOptions,
    SubmoduleDefaults,
    SubmoduleSpec,
)

__all__ = [
    # plan.py
    "ActionKind",
    "ActionPlan",
    "ActionPlanItem",
    # report.py
    "CommitResult",
    # link.py
    "ConfigLink",
    # submodule.py
    "DeclaredSet",
    "LinkRecord",
    "LinkStatus",
    "PathOutcome",
    # lifecycle.py
    "PathState",
    "PushResult",
    # action.py
    "Receipt",
    "ReconciliationReport",
    "RunOptions",
    "SubmoduleDefaults",
    "SubmoduleSpec",
    "check_transition",
]
