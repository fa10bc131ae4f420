"""
Parent commit/push driver — record submodule pointers and publish them.

Runs once per reconciliation, after every per-path step has finished.
Staging and committing failures are fatal (CommitFailed); a refused
push is reported as PushRejected and never retried.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from subsync.adapters.base import VcsAdapter
from subsync.core.errors import CommitFailed, PushRejected
from subsync.core.models.report import CommitResult, PushResult
from subsync.core.models.submodule import DEFAULT_REMOTE

logger = logging.getLogger(__name__)

GITMODULES = ".gitmodules"
COMMIT_SUBJECT = "chore(submodules): sync {count} submodule pointer(s)"


def commit_message(paths: list[str]) -> str:
    """Fixed commit template: subject plus one line per path."""
    subject = COMMIT_SUBJECT.format(count=len(paths))
    return "\n".join([subject, "", *(f"- {p}" for p in paths)])


def changed_pointer_paths(adapter: VcsAdapter, paths: Iterable[str]) -> list[str]:
    """Paths whose checked-out commit differs from the gitlink in HEAD."""
    changed = []
    for path in paths:
        current = adapter.resolve_ref(path, "HEAD") if adapter.is_repo(path) else None
        if current != adapter.recorded_commit(path):
            changed.append(path)
    return sorted(changed)


class ParentDriver:
    """Stages, commits and pushes in the parent repository."""

    def __init__(
        self,
        adapter: VcsAdapter,
        remote: str = DEFAULT_REMOTE,
        push_branch: str | None = None,
    ):
        self._adapter = adapter
        self._remote = remote
        self._push_branch = push_branch

    def commit_pointers(self, changed_paths: Iterable[str]) -> CommitResult:
        """Stage ``changed_paths`` plus .gitmodules and commit them.

        Returns ``no_changes`` without touching the index when there is
        nothing to record, or when staging leaves the index equal to HEAD.

        Raises:
            CommitFailed: If staging or committing fails.
        """
        paths = sorted(set(changed_paths))
        if not paths:
            logger.info("No submodule pointers changed")
            return CommitResult(status="no_changes")

        staged = self._adapter.stage([*paths, GITMODULES])
        if staged.failed:
            raise CommitFailed(f"Staging failed: {staged.error}")

        if not self._adapter.has_staged_changes():
            logger.info("Staged tree matches HEAD, nothing to commit")
            return CommitResult(status="no_changes", paths=paths)

        message = commit_message(paths)
        receipt = self._adapter.commit(message)
        if receipt.failed:
            raise CommitFailed(f"Commit failed: {receipt.error}")

        commit_id = receipt.metadata.get("commit_id")
        logger.info("✓ Recorded %d submodule pointer(s) in %s", len(paths), commit_id)
        return CommitResult(status="committed", commit_id=commit_id, paths=paths, message=message)

    def push(self) -> PushResult:
        """Push the parent repository.

        With an upstream configured, pushes to it (or reports
        ``up_to_date`` when nothing is ahead). Without one, pushes to the
        fallback remote/branch and establishes the upstream.

        Raises:
            PushRejected: If the remote refuses the push, or there is no
                branch to push.
        """
        upstream = self._adapter.upstream()
        if upstream:
            remote, _, branch = upstream.partition("/")
            if self._adapter.ahead_of_upstream() == 0:
                logger.info("%s is up to date", upstream)
                return PushResult(status="up_to_date", remote=remote, branch=branch)
            receipt = self._adapter.push()
            status = "pushed"
        else:
            remote = self._remote
            branch = self._push_branch or self._adapter.current_branch()
            if not branch:
                raise PushRejected(remote, "HEAD", "detached HEAD and no push_branch configured")
            logger.info("No upstream configured, pushing to %s/%s with --set-upstream", remote, branch)
            receipt = self._adapter.push(remote, branch, set_upstream=True)
            status = "upstream_established"

        if receipt.failed:
            raise PushRejected(remote, branch, receipt.error or "push failed")

        logger.info("✓ Pushed to %s/%s", remote, branch)
        return PushResult(status=status, remote=remote, branch=branch, output=receipt.output)
