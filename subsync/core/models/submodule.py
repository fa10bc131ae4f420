"""
Declared submodule set — the desired state loaded from submodules.yml.

This is the canonical truth. If a submodule isn't declared here, it
doesn't exist to subsync (and an existing link to it is orphaned).
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_BRANCH = "main"
DEFAULT_REMOTE = "origin"
DEFAULT_BACKUP_DIR = ".git/subsync/backups"

_SAFE_PATH = re.compile(r"^[A-Za-z0-9._@+/-]+$")
_SAFE_BRANCH = re.compile(r"^[A-Za-z0-9._/+-]+$")
_SCP_URL = re.compile(r"^[A-Za-z0-9._-]+@[A-Za-z0-9.-]+:\S+$")
_URL_SCHEMES = {"https", "http", "ssh", "git", "file"}
_LOCAL_PREFIXES = ("/", "./", "../")
_RELATIVE_PREFIXES = ("./", "../")


def validate_path(path: str) -> str:
    """Check that a submodule path is safe for git and the filesystem.

    Raises:
        ValueError: With a message naming the offending path.
    """
    path = path.strip()
    if not path:
        raise ValueError("path must not be empty")
    if path.startswith("/") or path.endswith("/"):
        raise ValueError(f"path must be relative without a trailing slash: {path!r}")
    if not _SAFE_PATH.match(path):
        raise ValueError(f"path contains unsafe characters: {path!r}")
    for part in path.split("/"):
        if part in ("", ".", ".."):
            raise ValueError(f"path has an empty, '.' or '..' component: {path!r}")
        if part == ".git":
            raise ValueError(f"path must not contain a .git component: {path!r}")
        if part.startswith("-"):
            raise ValueError(f"path component must not start with '-': {path!r}")
    return path


def validate_url(url: str) -> str:
    """Check that a remote address looks like something git can clone.

    Accepts scheme URLs (https, http, ssh, git, file), scp-like
    ``user@host:path`` addresses, absolute local paths, and ``./`` or
    ``../`` paths, which git resolves against the parent repository's remote.
    """
    url = url.strip()
    if not url or any(ch.isspace() for ch in url):
        raise ValueError(f"malformed url: {url!r}")
    if url.startswith(_LOCAL_PREFIXES):
        return url
    if _SCP_URL.match(url):
        return url
    parsed = urlparse(url)
    if parsed.scheme in _URL_SCHEMES and (parsed.netloc or parsed.scheme == "file"):
        return url
    raise ValueError(f"malformed url: {url!r}")


def is_relative_url(url: str) -> bool:
    return url.startswith(_RELATIVE_PREFIXES)


def resolve_relative_url(url: str, base: str) -> str:
    """Resolve a ``./`` or ``../`` submodule URL the way git does.

    Each leading ``../`` drops the last component of ``base`` (the
    parent repository's remote URL, or its working tree when it has no
    remote); ``./`` drops nothing. An scp-like base whose host part is
    reached is joined with ``:`` instead of ``/``.
    """
    if not is_relative_url(url):
        return url
    base = base.rstrip("/") or "."
    sep = "/"
    while True:
        if url.startswith("../"):
            url = url[3:]
            if "/" in base:
                base = base.rsplit("/", 1)[0]
            elif ":" in base:
                base = base.rsplit(":", 1)[0]
                sep = ":"
            else:
                base = "."
        elif url.startswith("./"):
            url = url[2:]
        else:
            break
    return f"{base}{sep}{url}".rstrip("/")


def same_url(a: str | None, b: str | None) -> bool:
    """Compare two remote addresses, ignoring trailing slashes."""
    if not a or not b:
        return False
    return a.rstrip("/") == b.rstrip("/")


class SubmoduleDefaults(BaseModel):
    """Values applied to every declaration that doesn't override them."""

    branch: str = DEFAULT_BRANCH
    depth: int = Field(default=0, ge=0)
    track_branch: bool = True


class SubmoduleSpec(BaseModel):
    """Declared desired state for one submodule. Immutable during a run."""

    model_config = ConfigDict(frozen=True)

    path: str
    url: str
    branch: str = DEFAULT_BRANCH
    depth: int = Field(default=0, ge=0)     # 0 = full history
    track_branch: bool = True               # False = align to the recorded commit

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        return validate_path(value)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return validate_url(value)

    @field_validator("branch")
    @classmethod
    def _check_branch(cls, value: str) -> str:
        value = value.strip()
        if not value or not _SAFE_BRANCH.match(value) or ".." in value or value.startswith("-"):
            raise ValueError(f"invalid branch name: {value!r}")
        return value


class DeclaredSet(BaseModel):
    """The ordered set of declared submodules plus run-wide settings."""

    version: int = 1

    remote: str = DEFAULT_REMOTE                # fallback push remote
    push_branch: str | None = None              # fallback push branch
    workers: int = Field(default=0, ge=0)       # 0 = CPU count
    refresh: bool = True
    backup_dir: str = DEFAULT_BACKUP_DIR

    defaults: SubmoduleDefaults = Field(default_factory=SubmoduleDefaults)
    submodules: list[SubmoduleSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique_paths(self) -> DeclaredSet:
        seen: set[str] = set()
        dupes: set[str] = set()
        for spec in self.submodules:
            if spec.path in seen:
                dupes.add(spec.path)
            seen.add(spec.path)
        if dupes:
            raise ValueError(f"Duplicate submodule paths: {', '.join(sorted(dupes))}")
        return self

    def paths(self) -> list[str]:
        """Declared paths in declaration order."""
        return [s.path for s in self.submodules]

    def get(self, path: str) -> SubmoduleSpec | None:
        """Look up a declaration by path."""
        for spec in self.submodules:
            if spec.path == path:
                return spec
        return None

    def restrict(self, only_paths: list[str]) -> list[SubmoduleSpec]:
        """Declarations limited to ``only_paths`` (all of them when empty).

        Raises:
            ValueError: If a requested path is not declared.
        """
        if not only_paths:
            return list(self.submodules)
        unknown = sorted(set(only_paths) - set(self.paths()))
        if unknown:
            raise ValueError(f"Not declared: {', '.join(unknown)}")
        wanted = set(only_paths)
        return [s for s in self.submodules if s.path in wanted]


class RunOptions(BaseModel):
    """Per-invocation switches layered over the declared set."""

    dry_run: bool = False
    force_delete: bool = False          # purge destroys instead of backing up
    only_paths: list[str] = Field(default_factory=list)
    push: bool = True
    refresh: bool | None = None         # None = use DeclaredSet.refresh
    workers: int | None = None          # None = use DeclaredSet.workers
