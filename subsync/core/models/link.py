"""
Link records — the observed state of submodule links.

A LinkRecord is rebuilt from scratch at the start of every run by the
inspector. It is never persisted: the persistent truth lives in the
parent repository's .gitmodules, index and .git/modules.
"""

from __future__ import annotations

from pydantic import BaseModel

from subsync.core.models.submodule import SubmoduleSpec, same_url


class ConfigLink(BaseModel):
    """One ``[submodule]`` section as registered in .gitmodules."""

    path: str
    url: str = ""
    branch: str | None = None


class LinkStatus(BaseModel):
    """Checkout state of one submodule working tree."""

    branch: str | None = None       # None = detached HEAD
    commit_id: str | None = None
    ahead: int = 0
    behind: int = 0


class LinkRecord(BaseModel):
    """Everything the planner needs to know about one path."""

    path: str

    # Parent repository metadata
    registered_url: str | None = None
    registered_branch: str | None = None
    in_config: bool = False
    in_index: bool = False
    recorded_commit: str | None = None      # gitlink in HEAD
    is_orphaned: bool = False

    # On-disk state
    working_dir_present: bool = False
    is_repo: bool = False                   # the directory is a git checkout
    has_local_repo: bool = False            # backing git metadata exists
    checkout_url: str | None = None
    resolved_url: str | None = None         # declared url as git resolves it

    # Submodule checkout
    local_commit: str | None = None
    local_branch: str | None = None
    remote_tip: str | None = None

    @property
    def is_registered(self) -> bool:
        return self.in_config or self.in_index

    @property
    def is_half_registered(self) -> bool:
        """Known to only one of .gitmodules / index (interrupted earlier run)."""
        return self.in_config != self.in_index

    @property
    def is_plain_directory(self) -> bool:
        """A directory occupies the path but it isn't a git checkout."""
        return self.working_dir_present and not self.is_repo

    def url_mismatch(self, spec: SubmoduleSpec) -> bool:
        """Whether the existing link points at a different remote.

        The registered URL wins; a checkout whose own origin drifted is
        repaired by SyncConfig rather than purged.
        """
        if self.registered_url:
            return not same_url(self.registered_url, spec.url)
        return bool(self.checkout_url) and not self._checkout_matches(spec)

    def config_drift(self, spec: SubmoduleSpec) -> bool:
        """Registered metadata differs from the declaration in a syncable way."""
        if self.registered_branch != spec.branch:
            return True
        return bool(self.checkout_url) and not self._checkout_matches(spec)

    def _checkout_matches(self, spec: SubmoduleSpec) -> bool:
        """The checkout's origin is the declared url, resolved against the parent."""
        return same_url(self.checkout_url, self.resolved_url or spec.url)

    def is_valid_link(self, spec: SubmoduleSpec) -> bool:
        """A fully established link matching its declaration."""
        return (
            self.in_config
            and self.in_index
            and self.is_repo
            and self.has_local_repo
            and not self.url_mismatch(spec)
        )

    def needs_purge(self, spec: SubmoduleSpec | None) -> bool:
        """Whether something at this path must be removed before linking."""
        if spec is None or self.is_orphaned:
            return self.is_registered or self.working_dir_present
        if self.is_plain_directory and not self.is_empty_placeholder:
            return True
        if self.is_half_registered:
            return True
        if self.is_registered and self.url_mismatch(spec):
            return True
        return self.is_repo and not self.is_registered

    @property
    def is_empty_placeholder(self) -> bool:
        """The empty directory git leaves for an uninitialised submodule."""
        return self.in_config and self.in_index and not self.has_local_repo and not self.is_repo
