"""
Error taxonomy — fatal, per-path, and post-run failures.

Adapters never raise; they return Receipts. The engine turns failed
receipts into the exceptions below so each failure is classified
exactly once:

    fatal       NotARepository, ConfigError, CommitFailed
    per-path    PurgeFailed, LinkAddFailed, FastForwardFailed, NormalizeFailed
    post-run    PushRejected

"No changes" and "no upstream configured" are not errors; they are
result statuses on CommitResult / PushResult.
"""

from __future__ import annotations


class SubsyncError(Exception):
    """Base class for every error raised by subsync."""


# ── Fatal ───────────────────────────────────────────────────────


class NotARepository(SubsyncError):
    """The parent working directory is not a git repository root."""


class ConfigError(SubsyncError):
    """Raised when the submodule configuration is invalid or missing."""


class CommitFailed(SubsyncError):
    """Staging or committing in the parent repository failed."""


# ── Per-path ────────────────────────────────────────────────────


class PathError(SubsyncError):
    """A failure confined to one submodule path."""

    step = "step"

    def __init__(self, path: str, message: str):
        super().__init__(message)
        self.path = path
        self.message = message

    def __str__(self) -> str:
        return f"{self.step} failed for {self.path}: {self.message}"


class PurgeFailed(PathError):
    step = "purge"


class LinkAddFailed(PathError):
    step = "add-link"


class FastForwardFailed(PathError):
    step = "fast-forward"


class NormalizeFailed(PathError):
    step = "normalize-branch"


class SyncConfigFailed(SubsyncError):
    """Synchronising link configuration failed (barrier step, non-fatal)."""


# ── Post-run ────────────────────────────────────────────────────


class PushRejected(SubsyncError):
    """The remote refused the push; needs a human decision (rebase or force)."""

    def __init__(self, remote: str, branch: str, message: str):
        super().__init__(f"push to {remote}/{branch} rejected: {message}")
        self.remote = remote
        self.branch = branch
        self.message = message