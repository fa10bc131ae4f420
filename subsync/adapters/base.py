"""
Adapter base — the protocol contract between the engine and the VCS.

The engine only talks to the version-control system through this
interface, never directly to git. Mutating operations return a
Receipt; query operations return plain values.

Adapters NEVER raise from mutating operations — failures are captured
in the Receipt and classified by the engine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from subsync.core.models.action import Receipt
from subsync.core.models.link import ConfigLink, LinkStatus
from subsync.core.models.submodule import SubmoduleSpec, is_relative_url, resolve_relative_url


class VcsAdapter(ABC):
    """Abstract base class for version-control adapters.

    Implementations must be safe to call from several worker threads at
    once for *different* submodule paths. Calls that write the parent
    repository's index or config must be serialised by the adapter.

    To create a new adapter:
        1. Subclass VcsAdapter
        2. Implement every abstract method
        3. Pass an instance to the use case (``reconcile(adapter=...)``)
    """

    def __init__(self, repo_root: Path | str):
        self._root = Path(repo_root)

    @property
    def repo_root(self) -> Path:
        return self._root

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'git', 'mock')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the underlying tool is available. Fast, never raises."""

    # ── Parent repository queries ───────────────────────────────

    @abstractmethod
    def is_repository_root(self) -> bool:
        """Whether ``repo_root`` is the top level of a working tree."""

    @abstractmethod
    def list_config_links(self) -> dict[str, ConfigLink]:
        """Submodules registered in .gitmodules, keyed by path."""

    @abstractmethod
    def list_index_links(self) -> dict[str, str]:
        """Gitlink entries in the index: path -> commit id."""

    @abstractmethod
    def recorded_commit(self, path: str) -> str | None:
        """Commit the parent's HEAD records for ``path`` (None if absent)."""

    @abstractmethod
    def has_staged_changes(self) -> bool:
        """Whether the index differs from HEAD."""

    @abstractmethod
    def current_branch(self) -> str | None:
        """Parent's checked-out branch (None when detached)."""

    @abstractmethod
    def upstream(self) -> str | None:
        """Upstream of the current branch, e.g. ``origin/main`` (None if unset)."""

    @abstractmethod
    def ahead_of_upstream(self) -> int:
        """Commits on the current branch not yet on its upstream."""

    # ── Path queries ────────────────────────────────────────────

    @abstractmethod
    def working_dir_present(self, path: str) -> bool:
        """Whether a directory (of any kind) exists at ``path``."""

    @abstractmethod
    def is_repo(self, path: str) -> bool:
        """Whether ``path`` is itself a git checkout."""

    @abstractmethod
    def has_local_repo(self, path: str) -> bool:
        """Whether backing git metadata exists for ``path``."""

    @abstractmethod
    def checkout_url(self, path: str, remote: str = "origin") -> str | None:
        """Remote URL configured inside the checkout at ``path``."""

    @abstractmethod
    def query_link_status(self, path: str, remote: str = "origin") -> LinkStatus:
        """Branch, commit and ahead/behind of the checkout at ``path``."""

    @abstractmethod
    def resolve_ref(self, path: str, ref: str) -> str | None:
        """Commit id of ``ref`` inside the checkout at ``path``."""

    @abstractmethod
    def is_reachable(self, url: str) -> bool:
        """Whether the remote at ``url`` answers. May block on the network."""

    @abstractmethod
    def default_remote_url(self) -> str | None:
        """URL of the parent repository's default remote, if it has one."""

    def resolve_url(self, url: str) -> str:
        """``url`` as git resolves it for a submodule.

        ``./`` and ``../`` forms are taken relative to the parent's default
        remote, or to its working tree when it has none. Anything else is
        returned unchanged.
        """
        if not is_relative_url(url):
            return url
        return resolve_relative_url(url, self.default_remote_url() or str(self._root.resolve()))

    # ── Mutations ───────────────────────────────────────────────

    @abstractmethod
    def init(self) -> Receipt:
        """Initialise the parent repository."""

    @abstractmethod
    def add_link(self, path: str, url: str, branch: str, depth: int = 0) -> Receipt:
        """Establish a link: clone, register in .gitmodules and index.

        When the path is already registered but has no checkout, only
        populate it.
        """

    @abstractmethod
    def remove_link(self, path: str) -> Receipt:
        """Remove the index entry, .gitmodules/.git/config sections and .git/modules/<path>."""

    @abstractmethod
    def remove_tree(self, path: str) -> Receipt:
        """Delete whatever occupies ``path`` in the working tree."""

    @abstractmethod
    def backup_tree(self, path: str, dest: Path) -> Receipt:
        """Move whatever occupies ``path`` to ``dest``."""

    @abstractmethod
    def sync_config(self, specs: Iterable[SubmoduleSpec]) -> Receipt:
        """Write declared url/branch into .gitmodules and propagate them.

        ``metadata["changed"]`` lists the paths whose entries were rewritten.
        """

    @abstractmethod
    def fetch(
        self,
        path: str,
        remote: str = "origin",
        branch: str | None = None,
        depth: int = 0,
    ) -> Receipt:
        """Fetch ``branch`` (or everything) from ``remote`` inside ``path``."""

    @abstractmethod
    def checkout_tracking_branch(self, path: str, branch: str, remote: str = "origin") -> Receipt:
        """Name the current checkout ``branch`` and track ``remote/branch``."""

    @abstractmethod
    def reset_hard(self, path: str, ref: str) -> Receipt:
        """Force the checkout at ``path`` to ``ref``."""

    @abstractmethod
    def merge_fast_forward_only(self, path: str, ref: str) -> Receipt:
        """Advance the checkout at ``path`` to ``ref`` without a merge commit."""

    @abstractmethod
    def stage(self, paths: Iterable[str]) -> Receipt:
        """Stage ``paths`` (gitlinks or files) in the parent index."""

    @abstractmethod
    def commit(self, message: str) -> Receipt:
        """Commit the parent index. ``metadata["commit_id"]`` holds the new id."""

    @abstractmethod
    def push(self, remote: str | None = None, branch: str | None = None, set_upstream: bool = False) -> Receipt:
        """Push the parent repository. No arguments = push to the upstream.

        A non-fast-forward refusal sets ``metadata["rejected"] = True``.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} root={str(self._root)!r}>"
