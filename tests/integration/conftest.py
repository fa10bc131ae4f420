"""
Auto-mark all tests in this directory as integration tests.

These tests drive a real ``git`` binary against throwaway repositories
under tmp_path: bare remotes, a bare parent, and a working clone of it.
They are skipped when git is not installed.

Run ONLY integration tests:
    pytest tests/integration/ -m integration

Run ONLY unit tests:
    pytest -m "not integration"
"""

import os
import shutil
import subprocess
from pathlib import Path

import pytest

GIT_ENV = {
    "GIT_AUTHOR_NAME": "subsync-test",
    "GIT_AUTHOR_EMAIL": "subsync@example.com",
    "GIT_COMMITTER_NAME": "subsync-test",
    "GIT_COMMITTER_EMAIL": "subsync@example.com",
    "GIT_CONFIG_GLOBAL": os.devnull,
    "GIT_CONFIG_NOSYSTEM": "1",
}


def pytest_collection_modifyitems(items):
    """Auto-apply the 'integration' marker to every test in this directory."""
    for item in items:
        if "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


def git(*args: str, cwd: Path) -> str:
    """Run git and return its stripped stdout; raise on failure."""
    r = subprocess.run(["git", *args], cwd=str(cwd), capture_output=True, text=True, check=True)
    return r.stdout.strip()


class GitWorld:
    """Bare remotes plus a parent repository cloned from its own bare origin."""

    def __init__(self, root: Path):
        self.root = root
        self.seeds = root / "seeds"
        self.bare = root / "bare"
        self.seeds.mkdir()
        self.bare.mkdir()
        self.parent_bare = self.make_remote("parent", files=("README.md",))
        self.work = root / "work"
        git("clone", "-q", str(self.parent_bare), str(self.work), cwd=root)

    def make_remote(self, name: str, files=("a.txt", "b.txt")) -> Path:
        """Create ``bare/<name>.git`` with one commit per file on main."""
        seed = self.seeds / name
        git("init", "-q", "-b", "main", str(seed), cwd=self.root)
        for filename in files:
            (seed / filename).write_text(f"{name}: {filename}\n")
            git("add", filename, cwd=seed)
            git("commit", "-q", "-m", f"add {filename}", cwd=seed)
        bare = self.bare / f"{name}.git"
        git("clone", "-q", "--bare", str(seed), str(bare), cwd=self.root)
        return bare

    def advance(self, name: str, filename: str) -> str:
        """Commit ``filename`` upstream of ``name``; return the new tip."""
        seed = self.seeds / name
        (seed / filename).write_text(f"{name}: {filename}\n")
        git("add", filename, cwd=seed)
        git("commit", "-q", "-m", f"add {filename}", cwd=seed)
        git("push", "-q", str(self.bare / f"{name}.git"), "main", cwd=seed)
        return self.tip(name)

    def tip(self, name: str) -> str:
        return git("rev-parse", "main", cwd=self.bare / f"{name}.git")

    def url(self, name: str) -> str:
        return (self.bare / f"{name}.git").as_uri()

    def head(self) -> str:
        return git("rev-parse", "HEAD", cwd=self.work)

    def published(self) -> str:
        """Tip of main in the parent's bare origin."""
        return git("rev-parse", "main", cwd=self.parent_bare)

    def recorded(self, path: str) -> str:
        """Gitlink for ``path`` in the parent's HEAD ('' when absent)."""
        out = git("ls-tree", "HEAD", "--", path, cwd=self.work)
        return out.split()[2] if out else ""

    def commit_in(self, path: str, filename: str) -> str:
        """Make a local-only commit inside the checkout at ``path``."""
        checkout = self.work / path
        (checkout / filename).write_text(f"local: {filename}\n")
        git("add", filename, cwd=checkout)
        git("commit", "-q", "-m", f"local {filename}", cwd=checkout)
        return git("rev-parse", "HEAD", cwd=checkout)

    def checkout_head(self, path: str) -> str:
        return git("rev-parse", "HEAD", cwd=self.work / path)

    def checkout_origin(self, path: str) -> str:
        return git("remote", "get-url", "origin", cwd=self.work / path)


@pytest.fixture
def git_world(tmp_path, monkeypatch):
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    for key, value in GIT_ENV.items():
        monkeypatch.setenv(key, value)
    return GitWorld(tmp_path)
