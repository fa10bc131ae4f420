"""
Action plan — ordered corrective steps computed from declared vs actual.

Items for one path always run in kind-priority order. Items for
different paths are independent. SYNC_CONFIG and RECORD_POINTER are
global (path=None) barrier steps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from subsync.core.models.lifecycle import PathState


class ActionKind(str, Enum):
    """Corrective step kinds, declared in execution order."""

    PURGE = "purge"
    ADD_LINK = "add_link"
    SYNC_CONFIG = "sync_config"
    FAST_FORWARD = "fast_forward"
    NORMALIZE_BRANCH = "normalize_branch"
    RECORD_POINTER = "record_pointer"

    @property
    def priority(self) -> int:
        return _PRIORITY[self]

    @property
    def is_global(self) -> bool:
        return self in (ActionKind.SYNC_CONFIG, ActionKind.RECORD_POINTER)


_PRIORITY = {kind: index for index, kind in enumerate(ActionKind)}


class ActionPlanItem(BaseModel):
    """One corrective step."""

    kind: ActionKind
    path: str | None = None                 # None for global steps
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def sort_key(self) -> tuple[int, str, int]:
        # Global steps sort after every per-path step of the same priority band
        return (0 if self.path is not None else 1, self.path or "", self.kind.priority)

    def describe(self) -> str:
        """Short human form, e.g. ``add_link(libs/core, main)``."""
        if self.path is None:
            return self.kind.value
        args = [self.path]
        for key in ("url", "branch", "ref"):
            if self.params.get(key):
                args.append(str(self.params[key]))
        return f"{self.kind.value}({', '.join(args)})"


@dataclass
class ActionPlan:
    """A planned set of corrective steps."""

    operation_id: str = ""
    items: list[ActionPlanItem] = field(default_factory=list)
    states: dict[str, PathState] = field(default_factory=dict)   # classification per path

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def paths(self) -> list[str]:
        """Paths with at least one per-path step, sorted."""
        return sorted({i.path for i in self.items if i.path is not None})

    @property
    def global_items(self) -> list[ActionPlanItem]:
        return [i for i in self.items if i.path is None]

    def has(self, kind: ActionKind, path: str | None = None) -> bool:
        return any(i.kind == kind and i.path == path for i in self.items)

    def items_for(self, path: str) -> list[ActionPlanItem]:
        """Steps for one path in kind-priority order."""
        return sorted(
            (i for i in self.items if i.path == path),
            key=lambda i: i.kind.priority,
        )

    def per_path(self, kinds: set[ActionKind] | None = None) -> dict[str, list[ActionPlanItem]]:
        """Group per-path steps by path, optionally limited to ``kinds``."""
        grouped: dict[str, list[ActionPlanItem]] = {}
        for path in self.paths:
            steps = [i for i in self.items_for(path) if kinds is None or i.kind in kinds]
            if steps:
                grouped[path] = steps
        return grouped

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "total": self.total,
            "items": [
                {"kind": i.kind.value, "path": i.path, "params": i.params}
                for i in self.items
            ],
        }
