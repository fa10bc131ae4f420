"""Per-path lifecycle: UNKNOWN -> classified -> (purge) -> link -> fast-forward -> LINKED."""

from __future__ import annotations

from enum import Enum


class PathState(str, Enum):
    """Lifecycle of one path through a run."""

    UNKNOWN = "unknown"
    ORPHANED = "orphaned"
    MISSING = "missing"
    CONFLICTING = "conflicting"
    VALID = "valid"
    PURGING = "purging"
    ADDING_LINK = "adding_link"
    SYNCING_BRANCH = "syncing_branch"
    FAST_FORWARDING = "fast_forwarding"
    LINKED = "linked"
    UNCHANGED = "unchanged"
    REMOVED = "removed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    PathState.LINKED,
    PathState.UNCHANGED,
    PathState.REMOVED,
    PathState.FAILED,
    PathState.SKIPPED,
})

# Any non-terminal state may also move to FAILED or SKIPPED.
TRANSITIONS: dict[PathState, set[PathState]] = {
    PathState.UNKNOWN: {
        PathState.ORPHANED, PathState.MISSING, PathState.CONFLICTING, PathState.VALID,
    },
    PathState.ORPHANED: {PathState.PURGING},
    PathState.MISSING: {PathState.ADDING_LINK},
    PathState.CONFLICTING: {PathState.PURGING},
    PathState.VALID: {
        PathState.SYNCING_BRANCH, PathState.FAST_FORWARDING,
        PathState.LINKED, PathState.UNCHANGED,
    },
    PathState.PURGING: {PathState.ADDING_LINK, PathState.REMOVED},
    PathState.ADDING_LINK: {
        PathState.SYNCING_BRANCH, PathState.FAST_FORWARDING, PathState.LINKED,
    },
    PathState.SYNCING_BRANCH: {PathState.FAST_FORWARDING, PathState.LINKED},
    PathState.FAST_FORWARDING: {PathState.SYNCING_BRANCH, PathState.LINKED},
}


def check_transition(current: PathState, target: PathState) -> tuple[bool, str]:
    """Check if a state transition is valid.

    Args:
        current: State the path is in.
        target: Desired state.

    Returns:
        (valid, message) tuple.
    """
    if current.terminal:
        return False, f"{current.value} is terminal"
    if target in (PathState.FAILED, PathState.SKIPPED):
        return True, f"{current.value} -> {target.value}"
    valid = TRANSITIONS.get(current, set())
    if target in valid:
        return True, f"{current.value} -> {target.value}"
    names = sorted(s.value for s in valid)
    return False, (
        f"Cannot transition {current.value} -> {target.value}. "
        f"Valid targets: {', '.join(names) if names else 'none'}"
    )
