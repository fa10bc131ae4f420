"""
Mock adapter — an in-memory VCS for tests and dry experiments.

Models just enough of git to exercise the engine: remotes with linear
branch histories, a parent index/HEAD with gitlinks, a .gitmodules
registry, and submodule checkouts that can be advanced, diverged or
reset. Configurable to fail any operation for any path.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from subsync.adapters.base import VcsAdapter
from subsync.core.models.action import Receipt
from subsync.core.models.link import ConfigLink, LinkStatus
from subsync.core.models.submodule import SubmoduleSpec

GITMODULES = ".gitmodules"


@dataclass
class FakeRemote:
    """A remote repository: branch -> commits, oldest first."""

    url: str
    branches: dict[str, list[str]] = field(default_factory=dict)
    reachable: bool = True


@dataclass
class FakeCheckout:
    """A submodule working tree."""

    url: str
    head: str | None = None
    branch: str | None = None               # None = detached
    history: list[str] = field(default_factory=list)
    remote_refs: dict[str, str] = field(default_factory=dict)


class MockVcsAdapter(VcsAdapter):
    """In-memory stand-in for GitAdapter.

    ``dirs`` maps a path to its FakeCheckout, or to None for a plain
    directory that isn't a repository.
    """

    def __init__(self, repo_root: Path | str = "/mock/repo", is_root: bool = True):
        super().__init__(repo_root)
        self.is_root = is_root
        self.remotes: dict[str, FakeRemote] = {}
        self.config_links: dict[str, ConfigLink] = {}
        self.index_links: dict[str, str] = {}
        self.head_links: dict[str, str] = {}
        self.dirs: dict[str, FakeCheckout | None] = {}
        self.modules: set[str] = set()
        self.backups: dict[str, Path] = {}

        self.branch: str | None = "main"
        self.origin_url: str | None = None      # parent's own remote
        self.upstream_ref: str | None = "origin/main"
        self.ahead = 0
        self.commits: list[str] = []
        self.pushes: list[tuple[str | None, str | None]] = []
        self.push_rejected = False

        self._gitmodules_index: dict[str, ConfigLink] = {}
        self._gitmodules_head: dict[str, ConfigLink] = {}
        self._failures: dict[tuple[str, str | None], str] = {}
        self._call_log: list[tuple[str, str | None]] = []
        self._lock = threading.RLock()

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list[tuple[str, str | None]]:
        """(operation, path) for every mutating call received."""
        return self._call_log

    def calls(self, operation: str) -> list[str | None]:
        """Paths passed to ``operation``, in call order."""
        return [p for op, p in self._call_log if op == operation]

    def is_available(self) -> bool:
        return True

    # ── World setup ─────────────────────────────────────────────

    def add_remote(self, url: str, branch: str = "main", commits: Iterable[str] = ("c1",)) -> FakeRemote:
        remote = self.remotes.setdefault(url, FakeRemote(url=url))
        remote.branches[branch] = list(commits)
        return remote

    def advance_remote(self, url: str, branch: str, *commits: str) -> None:
        self.remotes[url].branches[branch].extend(commits)

    def force_remote(self, url: str, branch: str, commits: Iterable[str]) -> None:
        """Rewrite a remote branch (simulates a force-push upstream)."""
        self.remotes[url].branches[branch] = list(commits)

    def set_unreachable(self, url: str) -> None:
        self.remotes.setdefault(url, FakeRemote(url=url)).reachable = False

    def link(self, path: str, url: str, branch: str = "main", commit: str | None = None) -> None:
        """Create a fully established, committed link at ``path``."""
        history = self.remotes[self.resolve_url(url)].branches[branch]
        head = commit or history[-1]
        self.dirs[path] = FakeCheckout(
            url=self.resolve_url(url),
            head=head,
            branch=branch,
            history=self._history_for(head) or [head],
            remote_refs={f"origin/{branch}": history[-1]},
        )
        self.config_links[path] = ConfigLink(path=path, url=url, branch=branch)
        self._gitmodules_index[path] = self.config_links[path]
        self._gitmodules_head[path] = self.config_links[path]
        self.index_links[path] = head
        self.head_links[path] = head
        self.modules.add(path)

    def plain_dir(self, path: str) -> None:
        self.dirs[path] = None

    def commit_locally(self, path: str, commit: str) -> None:
        """Add a local-only commit inside a checkout (diverges it from upstream)."""
        checkout = self.dirs[path]
        assert checkout is not None
        checkout.history = [*checkout.history, commit]
        checkout.head = commit

    def set_failure(self, operation: str, path: str | None = None, error: str = "Mock failure") -> None:
        """Configure ``operation`` to fail for ``path``."""
        self._failures[(operation, path)] = error

    # ── Parent repository queries ───────────────────────────────

    def is_repository_root(self) -> bool:
        return self.is_root

    def list_config_links(self) -> dict[str, ConfigLink]:
        with self._lock:
            return dict(self.config_links)

    def list_index_links(self) -> dict[str, str]:
        with self._lock:
            return dict(self.index_links)

    def recorded_commit(self, path: str) -> str | None:
        return self.head_links.get(path)

    def has_staged_changes(self) -> bool:
        with self._lock:
            return (
                self.index_links != self.head_links
                or self._gitmodules_index != self._gitmodules_head
            )

    def current_branch(self) -> str | None:
        return self.branch

    def upstream(self) -> str | None:
        return self.upstream_ref

    def ahead_of_upstream(self) -> int:
        return self.ahead

    # ── Path queries ────────────────────────────────────────────

    def working_dir_present(self, path: str) -> bool:
        return path in self.dirs

    def is_repo(self, path: str) -> bool:
        return self.dirs.get(path) is not None

    def has_local_repo(self, path: str) -> bool:
        return self.is_repo(path) or path in self.modules

    def checkout_url(self, path: str, remote: str = "origin") -> str | None:
        checkout = self.dirs.get(path)
        return checkout.url if checkout else None

    def query_link_status(self, path: str, remote: str = "origin") -> LinkStatus:
        checkout = self.dirs.get(path)
        if checkout is None:
            return LinkStatus()
        status = LinkStatus(branch=checkout.branch, commit_id=checkout.head)
        tip = checkout.remote_refs.get(f"{remote}/{checkout.branch}") if checkout.branch else None
        if tip and checkout.head:
            upstream = self._history_for(tip) or [tip]
            common = [c for c in checkout.history if c in upstream]
            base = common[-1] if common else None
            status.ahead = _count_after(checkout.history, base)
            status.behind = _count_after(upstream, base)
        return status

    def resolve_ref(self, path: str, ref: str) -> str | None:
        checkout = self.dirs.get(path)
        if checkout is None:
            return None
        if ref == "HEAD":
            return checkout.head
        if ref in checkout.remote_refs:
            return checkout.remote_refs[ref]
        if ref in checkout.history or self._history_for(ref):
            return ref
        return None

    def is_reachable(self, url: str) -> bool:
        remote = self.remotes.get(self.resolve_url(url))
        return remote is not None and remote.reachable

    def default_remote_url(self) -> str | None:
        return self.origin_url

    # ── Mutations ───────────────────────────────────────────────

    def init(self) -> Receipt:
        failed = self._record("init", None)
        if failed:
            return failed
        self.is_root = True
        return self._ok("init")

    def add_link(self, path: str, url: str, branch: str, depth: int = 0) -> Receipt:
        failed = self._record("add_link", path)
        if failed:
            return failed
        with self._lock:
            resolved = self.resolve_url(url)
            remote = self.remotes.get(resolved)
            if remote is None or not remote.reachable:
                return self._fail("add_link", path, f"fatal: repository '{resolved}' not found")
            if branch not in remote.branches:
                return self._fail("add_link", path, f"fatal: Remote branch {branch} not found in upstream origin")

            if path in self.config_links and path in self.index_links and not self.is_repo(path):
                recorded = self.index_links[path]
                self.dirs[path] = FakeCheckout(
                    url=resolved,
                    head=recorded,
                    history=self._history_for(recorded) or [recorded],
                    remote_refs={f"origin/{branch}": remote.branches[branch][-1]},
                )
                self.modules.add(path)
                return self._ok("add_link", path, populated=True)

            if path in self.dirs:
                return self._fail("add_link", path, f"fatal: destination path '{path}' already exists")

            history = list(remote.branches[branch])
            tip = history[-1]
            self.dirs[path] = FakeCheckout(
                url=resolved,
                head=tip,
                branch=branch,
                history=history,
                remote_refs={f"origin/{branch}": tip},
            )
            self.config_links[path] = ConfigLink(path=path, url=url, branch=branch)
            self._gitmodules_index[path] = self.config_links[path]
            self.index_links[path] = tip
            self.modules.add(path)
            return self._ok("add_link", path, cloned=True)

    def remove_link(self, path: str) -> Receipt:
        failed = self._record("remove_link", path)
        if failed:
            return failed
        with self._lock:
            self.index_links.pop(path, None)
            self.config_links.pop(path, None)
            self._gitmodules_index.pop(path, None)
            self.modules.discard(path)
        return self._ok("remove_link", path)

    def remove_tree(self, path: str) -> Receipt:
        failed = self._record("remove_tree", path)
        if failed:
            return failed
        with self._lock:
            self.dirs.pop(path, None)
        return self._ok("remove_tree", path)

    def backup_tree(self, path: str, dest: Path) -> Receipt:
        failed = self._record("backup_tree", path)
        if failed:
            return failed
        with self._lock:
            self.dirs.pop(path, None)
            self.backups[path] = dest
        return self._ok("backup_tree", path, backup=str(dest))

    def sync_config(self, specs: Iterable[SubmoduleSpec]) -> Receipt:
        failed = self._record("sync_config", None)
        if failed:
            return failed
        changed = []
        with self._lock:
            for spec in specs:
                current = self.config_links.get(spec.path)
                if current is None:
                    continue
                if current.url != spec.url or current.branch != spec.branch:
                    self.config_links[spec.path] = ConfigLink(path=spec.path, url=spec.url, branch=spec.branch)
                    changed.append(spec.path)
                checkout = self.dirs.get(spec.path)
                if checkout is not None:
                    checkout.url = self.resolve_url(self.config_links[spec.path].url)
        return self._ok("sync_config", changed=changed)

    def fetch(
        self,
        path: str,
        remote: str = "origin",
        branch: str | None = None,
        depth: int = 0,
    ) -> Receipt:
        failed = self._record("fetch", path)
        if failed:
            return failed
        with self._lock:
            checkout = self.dirs.get(path)
            if checkout is None:
                return self._fail("fetch", path, f"fatal: not a git repository: {path}")
            upstream = self.remotes.get(checkout.url)
            if upstream is None or not upstream.reachable:
                return self._fail("fetch", path, "fatal: Could not read from remote repository.")
            branches = [branch] if branch else list(upstream.branches)
            for name in branches:
                if name not in upstream.branches:
                    return self._fail("fetch", path, f"fatal: couldn't find remote ref refs/heads/{name}")
                checkout.remote_refs[f"{remote}/{name}"] = upstream.branches[name][-1]
        return self._ok("fetch", path)

    def checkout_tracking_branch(self, path: str, branch: str, remote: str = "origin") -> Receipt:
        failed = self._record("checkout_tracking_branch", path)
        if failed:
            return failed
        with self._lock:
            checkout = self.dirs.get(path)
            if checkout is None:
                return self._fail("checkout_tracking_branch", path, f"fatal: not a git repository: {path}")
            checkout.branch = branch
        return self._ok("checkout_tracking_branch", path)

    def reset_hard(self, path: str, ref: str) -> Receipt:
        failed = self._record("reset_hard", path)
        if failed:
            return failed
        with self._lock:
            target = self.resolve_ref(path, ref)
            checkout = self.dirs.get(path)
            if checkout is None or target is None:
                return self._fail("reset_hard", path, f"fatal: ambiguous argument '{ref}'")
            checkout.history = self._history_for(target) or checkout.history
            checkout.head = target
        return self._ok("reset_hard", path)

    def merge_fast_forward_only(self, path: str, ref: str) -> Receipt:
        failed = self._record("merge_fast_forward_only", path)
        if failed:
            return failed
        with self._lock:
            target = self.resolve_ref(path, ref)
            checkout = self.dirs.get(path)
            if checkout is None or target is None:
                return self._fail("merge_fast_forward_only", path, f"merge: {ref} - not something we can merge")
            if target in checkout.history:
                return self._ok("merge_fast_forward_only", path, up_to_date=True)
            target_history = self._history_for(target) or [target]
            if checkout.head is not None and checkout.head not in target_history:
                return self._fail("merge_fast_forward_only", path, "fatal: Not possible to fast-forward, aborting.")
            checkout.head = target
            checkout.history = target_history
        return self._ok("merge_fast_forward_only", path)

    def stage(self, paths: Iterable[str]) -> Receipt:
        failed = self._record("stage", None)
        if failed:
            return failed
        staged = []
        with self._lock:
            for p in paths:
                if p == GITMODULES:
                    self._gitmodules_index = dict(self.config_links)
                else:
                    checkout = self.dirs.get(p)
                    if checkout is not None and checkout.head:
                        self.index_links[p] = checkout.head
                    else:
                        self.index_links.pop(p, None)
                staged.append(p)
        return self._ok("stage", staged=staged)

    def commit(self, message: str) -> Receipt:
        failed = self._record("commit", None)
        if failed:
            return failed
        with self._lock:
            if not self.has_staged_changes():
                return self._fail("commit", None, "nothing to commit, working tree clean")
            commit_id = f"parent-{len(self.commits) + 1}"
            self.commits.append(message)
            self.head_links = dict(self.index_links)
            self._gitmodules_head = dict(self._gitmodules_index)
            self.ahead += 1
        return self._ok("commit", commit_id=commit_id)

    def push(self, remote: str | None = None, branch: str | None = None, set_upstream: bool = False) -> Receipt:
        failed = self._record("push", None)
        if failed:
            return failed
        if self.push_rejected:
            return Receipt.failure(
                adapter=self.name,
                operation="push",
                error=" ! [rejected]        main -> main (non-fast-forward)",
                metadata={"rejected": True},
            )
        with self._lock:
            if set_upstream and remote and branch:
                self.upstream_ref = f"{remote}/{branch}"
            self.pushes.append((remote, branch))
            self.ahead = 0
        return self._ok("push", rejected=False)

    # ── Helpers ─────────────────────────────────────────────────

    def _record(self, operation: str, path: str | None) -> Receipt | None:
        """Log the call; return a failure receipt when one is configured."""
        with self._lock:
            self._call_log.append((operation, path))
            error = self._failures.get((operation, path))
        if error is not None:
            return self._fail(operation, path, error)
        return None

    def _history_for(self, commit: str) -> list[str]:
        """Linear history ending at ``commit`` from any remote branch."""
        for remote in self.remotes.values():
            for history in remote.branches.values():
                if commit in history:
                    return history[: history.index(commit) + 1]
        return []

    def _ok(self, operation: str, path: str | None = None, **metadata) -> Receipt:
        return Receipt.success(adapter=self.name, operation=operation, path=path, metadata=metadata)

    def _fail(self, operation: str, path: str | None, error: str) -> Receipt:
        return Receipt.failure(adapter=self.name, operation=operation, path=path, error=error)


def _count_after(history: list[str], base: str | None) -> int:
    if base is None:
        return len(history)
    return len(history) - history.index(base) - 1
