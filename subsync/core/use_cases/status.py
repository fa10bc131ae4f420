"""
Status use case — how far each submodule is from its declaration.

Read-only: inspects the repository and reports, per path, its
classification, the commit the parent records versus the commit that
is checked out, and the checkout's branch and ahead/behind counts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from subsync.adapters.base import VcsAdapter
from subsync.core.config.loader import find_config_file, load_declared_set
from subsync.core.engine.inspector import inspect
from subsync.core.engine.planner import classify
from subsync.core.errors import ConfigError, NotARepository
from subsync.core.models.submodule import DEFAULT_REMOTE, DeclaredSet


@dataclass
class LinkStatusEntry:
    """Status of one path."""

    path: str
    state: str
    declared: bool = True
    url: str | None = None
    declared_branch: str | None = None
    branch: str | None = None
    recorded_commit: str | None = None
    local_commit: str | None = None
    ahead: int = 0
    behind: int = 0

    @property
    def pointer_drift(self) -> bool:
        """The checkout is not at the commit the parent records."""
        return bool(self.local_commit) and self.local_commit != self.recorded_commit

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "state": self.state,
            "declared": self.declared,
            "url": self.url,
            "declared_branch": self.declared_branch,
            "branch": self.branch,
            "recorded_commit": self.recorded_commit,
            "local_commit": self.local_commit,
            "ahead": self.ahead,
            "behind": self.behind,
            "pointer_drift": self.pointer_drift,
        }


@dataclass
class StatusResult:
    """Aggregated submodule status."""

    entries: list[LinkStatusEntry] = field(default_factory=list)
    repo_root: Path | None = None
    error: str | None = None

    @property
    def clean(self) -> bool:
        return all(e.state == "valid" and not e.pointer_drift and e.behind == 0 for e in self.entries)

    def to_dict(self) -> dict:
        result: dict = {"repo_root": str(self.repo_root) if self.repo_root else None}
        if self.error:
            result["error"] = self.error
            return result
        result["clean"] = self.clean
        result["submodules"] = [e.to_dict() for e in self.entries]
        return result


def get_status(
    config_path: Path | None = None,
    repo: Path | None = None,
    adapter: VcsAdapter | None = None,
    declared: DeclaredSet | None = None,
) -> StatusResult:
    """Report every declared or registered path.

    Args:
        config_path: Explicit submodules.yml (searched upward when None).
        repo: Parent repository root (default: the config file's directory).
        adapter: VCS adapter (default: a GitAdapter on ``repo``).
        declared: Pre-loaded declaration.

    Returns:
        StatusResult with one entry per path, sorted.
    """
    result = StatusResult()

    try:
        if declared is None:
            if config_path is None:
                config_path = find_config_file(repo)
            declared = load_declared_set(config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.repo_root = (repo or (config_path.parent if config_path else Path.cwd())).resolve()
    if adapter is None:
        from subsync.adapters.vcs.git import GitAdapter

        adapter = GitAdapter(result.repo_root)

    try:
        records = inspect(adapter, declared.paths(), declared)
    except NotARepository as e:
        result.error = str(e)
        return result

    for path, record in sorted(records.items()):
        spec = declared.get(path)
        entry = LinkStatusEntry(
            path=path,
            state=classify(record, spec).value,
            declared=spec is not None,
            url=spec.url if spec else record.registered_url,
            declared_branch=spec.branch if spec else None,
            branch=record.local_branch,
            recorded_commit=record.recorded_commit,
            local_commit=record.local_commit,
        )
        if record.is_repo:
            link = adapter.query_link_status(path, DEFAULT_REMOTE)
            entry.ahead = link.ahead
            entry.behind = link.behind
        result.entries.append(entry)

    return result
