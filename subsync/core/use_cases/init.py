"""
Init use case — prepare a parent repository for subsync.

Initialises the repository if needed and writes a starter submodules.yml.
When a .gitmodules already exists, its entries seed the declaration so
the first reconcile run keeps every existing link.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from subsync.adapters.base import VcsAdapter
from subsync.core.config.gitmodules import GITMODULES_FILE, load_gitmodules
from subsync.core.config.loader import CONFIG_FILES
from subsync.core.errors import ConfigError
from subsync.core.models.submodule import DEFAULT_BRANCH, SubmoduleSpec

logger = logging.getLogger(__name__)


@dataclass
class InitResult:
    """Result of preparing a repository."""

    repo_root: Path | None = None
    config_path: Path | None = None
    repo_initialized: bool = False
    config_written: bool = False
    submodule_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "repo_root": str(self.repo_root) if self.repo_root else None,
            "config_path": str(self.config_path) if self.config_path else None,
            "repo_initialized": self.repo_initialized,
            "config_written": self.config_written,
            "submodule_count": self.submodule_count,
            "error": self.error,
        }


def init_repository(
    repo: Path | None = None,
    adapter: VcsAdapter | None = None,
    force: bool = False,
) -> InitResult:
    """Initialise ``repo`` and write its submodules.yml.

    Args:
        repo: Parent repository root (default: cwd).
        adapter: VCS adapter (default: a GitAdapter on ``repo``).
        force: Overwrite an existing submodules.yml.

    Returns:
        InitResult describing what was done.
    """
    result = InitResult(repo_root=(repo or Path.cwd()).resolve())
    if adapter is None:
        from subsync.adapters.vcs.git import GitAdapter

        adapter = GitAdapter(result.repo_root)

    if not adapter.is_repository_root():
        receipt = adapter.init()
        if receipt.failed:
            result.error = f"Cannot initialise repository: {receipt.error}"
            return result
        result.repo_initialized = True
        logger.info("Initialised repository at %s", result.repo_root)

    result.config_path = result.repo_root / CONFIG_FILES[0]
    specs: list[SubmoduleSpec] = []
    gitmodules = result.repo_root / GITMODULES_FILE
    if gitmodules.is_file():
        try:
            specs = load_gitmodules(gitmodules).submodules
        except ConfigError as e:
            result.error = str(e)
            return result
    result.submodule_count = len(specs)

    if result.config_path.exists() and not force:
        logger.info("%s already exists, leaving it alone", result.config_path.name)
        return result

    try:
        result.config_path.write_text(render_config(specs), encoding="utf-8")
    except OSError as e:
        result.error = f"Cannot write {result.config_path}: {e}"
        return result
    result.config_written = True
    return result


def render_config(specs: list[SubmoduleSpec]) -> str:
    """submodules.yml text declaring ``specs``, defaults left implicit."""
    entries = []
    for spec in specs:
        entry: dict = {"path": spec.path, "url": spec.url}
        if spec.branch != DEFAULT_BRANCH:
            entry["branch"] = spec.branch
        if spec.depth:
            entry["depth"] = spec.depth
        entries.append(entry)
    data = {
        "version": 1,
        "defaults": {"branch": DEFAULT_BRANCH},
        "submodules": entries,
    }
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
