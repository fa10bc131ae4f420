"""
Reconciliation report — per-path outcomes plus the parent commit/push result.

Produced once per run and handed to the caller. Not persisted, apart
from the summary line the audit ledger keeps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, Field

from subsync.core.models.lifecycle import PathState, check_transition
from subsync.core.models.plan import ActionKind


class PathOutcome(BaseModel):
    """What happened to one path."""

    path: str
    state: PathState = PathState.UNKNOWN
    actions: list[ActionKind] = Field(default_factory=list)
    commit_id: str | None = None
    branch: str | None = None
    error: str | None = None
    discarded_commit: str | None = None    # HEAD before a hard reset

    def advance(self, target: PathState) -> None:
        """Move to ``target``, refusing transitions the lifecycle doesn't allow."""
        valid, message = check_transition(self.state, target)
        if not valid:
            raise ValueError(f"{self.path}: {message}")
        self.state = target

    def fail(self, error: str) -> None:
        self.error = error
        self.state = PathState.FAILED

    def line(self) -> str:
        """``X: Linked @ <commit>`` style summary."""
        label = self.state.value.replace("_", " ").capitalize()
        text = f"{self.path}: {label}"
        if self.commit_id:
            text += f" @ {self.commit_id}"
        if self.branch:
            text += f" ({self.branch})"
        if self.error:
            text += f" — {self.error}"
        return text


class CommitResult(BaseModel):
    """Outcome of recording submodule pointers in the parent repository."""

    status: Literal["committed", "no_changes"] = "no_changes"
    commit_id: str | None = None
    paths: list[str] = Field(default_factory=list)
    message: str = ""

    @property
    def committed(self) -> bool:
        return self.status == "committed"


class PushResult(BaseModel):
    """Outcome of pushing the parent repository."""

    status: Literal["pushed", "upstream_established", "up_to_date", "skipped"] = "skipped"
    remote: str = ""
    branch: str = ""
    output: str = ""


@dataclass
class ReconciliationReport:
    """Aggregate outcome of one reconciliation run."""

    operation_id: str = ""
    outcomes: dict[str, PathOutcome] = field(default_factory=dict)
    commit: CommitResult | None = None
    push: PushResult | None = None
    sync_error: str | None = None
    cancelled: bool = False
    dry_run: bool = False

    def outcome(self, path: str) -> PathOutcome:
        """Get or create the outcome for ``path``."""
        if path not in self.outcomes:
            self.outcomes[path] = PathOutcome(path=path)
        return self.outcomes[path]

    def _count(self, *states: PathState) -> int:
        return sum(1 for o in self.outcomes.values() if o.state in states)

    def _did(self, kind: ActionKind) -> int:
        return sum(1 for o in self.outcomes.values() if kind in o.actions)

    @property
    def purged(self) -> int:
        return self._did(ActionKind.PURGE)

    @property
    def added(self) -> int:
        return self._did(ActionKind.ADD_LINK)

    @property
    def fast_forwarded(self) -> int:
        return self._did(ActionKind.FAST_FORWARD)

    @property
    def unchanged(self) -> int:
        return self._count(PathState.UNCHANGED)

    @property
    def failed(self) -> int:
        return self._count(PathState.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(PathState.SKIPPED)

    @property
    def failed_paths(self) -> list[str]:
        return sorted(p for p, o in self.outcomes.items() if o.state == PathState.FAILED)

    @property
    def status(self) -> str:
        if self.failed == 0 and not self.sync_error:
            return "ok"
        if len(self.outcomes) > self.failed:
            return "partial"
        return "failed"

    def lines(self) -> list[str]:
        return [self.outcomes[p].line() for p in sorted(self.outcomes)]

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "status": self.status,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "purged": self.purged,
            "added": self.added,
            "fast_forwarded": self.fast_forwarded,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "skipped": self.skipped,
            "sync_error": self.sync_error,
            "outcomes": [self.outcomes[p].model_dump(mode="json") for p in sorted(self.outcomes)],
            "commit": self.commit.model_dump(mode="json") if self.commit else None,
            "push": self.push.model_dump(mode="json") if self.push else None,
        }
