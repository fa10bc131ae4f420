"""
Git adapter — submodule operations through the git CLI.

Every call shells out to ``git`` with captured output; nothing here
talks to repository internals directly. Mutations return Receipts and
never raise. Calls that write the parent repository's index, .gitmodules
or .git/config hold an adapter-wide lock so concurrent workers (one per
submodule path) never fight over ``index.lock``.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import threading
import time
from collections.abc import Iterable
from pathlib import Path

from subsync.adapters.base import VcsAdapter
from subsync.core.models.action import Receipt
from subsync.core.models.link import ConfigLink, LinkStatus
from subsync.core.models.submodule import SubmoduleSpec

logger = logging.getLogger(__name__)

GITMODULES = ".gitmodules"

_REJECTED_MARKERS = ("[rejected]", "non-fast-forward", "fetch first", "failed to push some refs")


class GitAdapter(VcsAdapter):
    """Git submodule operations against one parent repository.

    Args:
        repo_root: Parent repository working tree.
        timeout: Seconds allowed for local git commands.
        network_timeout: Seconds allowed for clone/fetch/push/ls-remote.
        git_config: Extra ``-c key=value`` settings for every command
            (e.g. ``{"protocol.file.allow": "always"}`` for local remotes).
    """

    def __init__(
        self,
        repo_root: Path | str,
        timeout: int = 30,
        network_timeout: int = 300,
        git_config: dict[str, str] | None = None,
    ):
        super().__init__(repo_root)
        self._timeout = timeout
        self._network_timeout = network_timeout
        self._git_config = dict(git_config or {})
        self._index_lock = threading.Lock()
        self._git_dir: Path | None = None

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return shutil.which("git") is not None

    # ── Parent repository queries ───────────────────────────────

    def is_repository_root(self) -> bool:
        if not self._root.is_dir():
            return False
        r = self._git(["rev-parse", "--show-toplevel"])
        if r.returncode != 0:
            return False
        return Path(r.stdout.strip()).resolve() == self._root.resolve()

    def list_config_links(self) -> dict[str, ConfigLink]:
        links = {}
        for section in self._read_gitmodules().values():
            path = section.get("path")
            if not path:
                continue
            links[path] = ConfigLink(
                path=path,
                url=section.get("url", ""),
                branch=section.get("branch"),
            )
        return links

    def list_index_links(self) -> dict[str, str]:
        r = self._git(["ls-files", "-s", "-z"])
        if r.returncode != 0:
            return {}
        links = {}
        for entry in r.stdout.split("\0"):
            if not entry.startswith("160000 "):
                continue
            meta, _, path = entry.partition("\t")
            parts = meta.split()
            if len(parts) >= 2 and path:
                links[path] = parts[1]
        return links

    def recorded_commit(self, path: str) -> str | None:
        r = self._git(["ls-tree", "-z", "HEAD", "--", path])
        if r.returncode != 0 or not r.stdout:
            return None
        meta, _, _ = r.stdout.split("\0")[0].partition("\t")
        parts = meta.split()
        if len(parts) == 3 and parts[1] == "commit":
            return parts[2]
        return None

    def has_staged_changes(self) -> bool:
        r = self._git(["diff", "--cached", "--quiet"])
        return r.returncode == 1

    def current_branch(self) -> str | None:
        r = self._git(["symbolic-ref", "--quiet", "--short", "HEAD"])
        return r.stdout.strip() or None if r.returncode == 0 else None

    def upstream(self) -> str | None:
        r = self._git(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"])
        return r.stdout.strip() or None if r.returncode == 0 else None

    def ahead_of_upstream(self) -> int:
        r = self._git(["rev-list", "--count", "@{u}..HEAD"])
        if r.returncode != 0:
            return 0
        try:
            return int(r.stdout.strip())
        except ValueError:
            return 0

    # ── Path queries ────────────────────────────────────────────

    def working_dir_present(self, path: str) -> bool:
        target = self._root / path
        return target.exists() or target.is_symlink()

    def is_repo(self, path: str) -> bool:
        target = self._root / path
        if not (target / ".git").exists():
            return False
        r = self._git(["rev-parse", "--show-toplevel"], cwd=target)
        if r.returncode != 0:
            return False
        return Path(r.stdout.strip()).resolve() == target.resolve()

    def has_local_repo(self, path: str) -> bool:
        if (self._root / path / ".git").exists():
            return True
        git_dir = self._resolve_git_dir()
        if git_dir is None:
            return False
        name = self._section_name(path) or path
        return (git_dir / "modules" / name).is_dir()

    def checkout_url(self, path: str, remote: str = "origin") -> str | None:
        if not self.is_repo(path):
            return None
        r = self._git(["remote", "get-url", remote], cwd=self._root / path)
        return r.stdout.strip() or None if r.returncode == 0 else None

    def query_link_status(self, path: str, remote: str = "origin") -> LinkStatus:
        if not self.is_repo(path):
            return LinkStatus()
        cwd = self._root / path
        status = LinkStatus()
        r_branch = self._git(["symbolic-ref", "--quiet", "--short", "HEAD"], cwd=cwd)
        if r_branch.returncode == 0:
            status.branch = r_branch.stdout.strip() or None
        r_head = self._git(["rev-parse", "--verify", "--quiet", "HEAD"], cwd=cwd)
        if r_head.returncode == 0:
            status.commit_id = r_head.stdout.strip()
        if status.branch and status.commit_id:
            r_ab = self._git(
                ["rev-list", "--left-right", "--count", f"HEAD...{remote}/{status.branch}"],
                cwd=cwd,
            )
            if r_ab.returncode == 0:
                parts = r_ab.stdout.strip().split()
                if len(parts) == 2:
                    status.ahead = int(parts[0])
                    status.behind = int(parts[1])
        return status

    def resolve_ref(self, path: str, ref: str) -> str | None:
        if not self.is_repo(path):
            return None
        r = self._git(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], cwd=self._root / path)
        return r.stdout.strip() or None if r.returncode == 0 else None

    def is_reachable(self, url: str) -> bool:
        resolved = self.resolve_url(url)
        r = self._git(["ls-remote", resolved, "HEAD"], timeout=self._network_timeout)
        if r.returncode != 0:
            logger.debug("ls-remote %s failed: %s", resolved, r.stderr.strip())
        return r.returncode == 0

    def default_remote_url(self) -> str | None:
        # git picks the current branch's remote, falling back to origin
        remote = "origin"
        branch = self.current_branch()
        if branch:
            r = self._git(["config", "--get", f"branch.{branch}.remote"])
            if r.returncode == 0 and r.stdout.strip():
                remote = r.stdout.strip()
        r = self._git(["config", "--get", f"remote.{remote}.url"])
        return r.stdout.strip() or None if r.returncode == 0 else None

    # ── Mutations ───────────────────────────────────────────────

    def init(self) -> Receipt:
        start = time.monotonic()
        self._root.mkdir(parents=True, exist_ok=True)
        with self._index_lock:
            r = self._git(["init"])
        self._git_dir = None
        return self._receipt("init", r, start=start)

    def add_link(self, path: str, url: str, branch: str, depth: int = 0) -> Receipt:
        start = time.monotonic()
        depth_args = ["--depth", str(depth)] if depth else []

        if path in self.list_config_links() and path in self.list_index_links():
            # Registered but never populated (fresh clone, or deinit'ed)
            with self._index_lock:
                r_init = self._git(["submodule", "init", "--", path])
            if r_init.returncode != 0:
                return self._receipt("add_link", r_init, path=path, start=start)
            r = self._git(
                ["submodule", "update", "--checkout", *depth_args, "--", path],
                timeout=self._network_timeout,
            )
            return self._receipt("add_link", r, path=path, start=start, populated=True)

        target = self._root / path
        r_clone = self._git(
            ["clone", "--branch", branch, *depth_args, "--", self.resolve_url(url), str(target)],
            timeout=self._network_timeout,
        )
        if r_clone.returncode != 0:
            return self._receipt("add_link", r_clone, path=path, start=start)

        with self._index_lock:
            r_add = self._git(
                ["submodule", "add", "--force", "-b", branch, "--name", path, "--", url, path],
            )
            if r_add.returncode != 0:
                shutil.rmtree(target, ignore_errors=True)
                return self._receipt("add_link", r_add, path=path, start=start)
            r_absorb = self._git(["submodule", "absorbgitdirs", "--", path])
        if r_absorb.returncode != 0:
            logger.warning("Could not absorb git dir for %s: %s", path, r_absorb.stderr.strip())
        return self._receipt("add_link", r_add, path=path, start=start, cloned=True)

    def remove_link(self, path: str) -> Receipt:
        start = time.monotonic()
        removed: list[str] = []
        with self._index_lock:
            name = self._section_name(path)

            if path in self.list_index_links():
                r = self._git(["rm", "-r", "--cached", "-q", "--", path])
                if r.returncode != 0:
                    return self._receipt("remove_link", r, path=path, start=start)
                removed.append("index")

            if name is not None:
                r = self._git(["config", "-f", GITMODULES, "--remove-section", f"submodule.{name}"])
                if r.returncode != 0:
                    return self._receipt("remove_link", r, path=path, start=start)
                removed.append(GITMODULES)

            local_name = name or path
            if self._git(["config", "--local", "--get", f"submodule.{local_name}.url"]).returncode == 0:
                r = self._git(["config", "--local", "--remove-section", f"submodule.{local_name}"])
                if r.returncode != 0:
                    return self._receipt("remove_link", r, path=path, start=start)
                removed.append(".git/config")

            git_dir = self._resolve_git_dir()
            if git_dir is not None:
                for candidate in {local_name, path}:
                    modules_dir = git_dir / "modules" / candidate
                    if modules_dir.is_dir():
                        try:
                            shutil.rmtree(modules_dir)
                        except OSError as e:
                            return Receipt.failure(
                                adapter=self.name,
                                operation="remove_link",
                                path=path,
                                error=f"Cannot remove {modules_dir}: {e}",
                            )
                        removed.append(f".git/modules/{candidate}")

        return Receipt.success(
            adapter=self.name,
            operation="remove_link",
            path=path,
            output=", ".join(removed),
            duration_ms=_elapsed(start),
            metadata={"removed": removed},
        )

    def remove_tree(self, path: str) -> Receipt:
        target = self._root / path
        try:
            if target.is_symlink() or target.is_file():
                target.unlink()
            elif target.is_dir():
                shutil.rmtree(target)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                operation="remove_tree",
                path=path,
                error=f"Cannot remove {target}: {e}",
            )
        return Receipt.success(adapter=self.name, operation="remove_tree", path=path)

    def backup_tree(self, path: str, dest: Path) -> Receipt:
        target = self._root / path
        if not dest.is_absolute():
            dest = self._root / dest
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(target), str(dest))
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                operation="backup_tree",
                path=path,
                error=f"Cannot move {target} to {dest}: {e}",
            )
        return Receipt.success(
            adapter=self.name,
            operation="backup_tree",
            path=path,
            output=str(dest),
            metadata={"backup": str(dest)},
        )

    def sync_config(self, specs: Iterable[SubmoduleSpec]) -> Receipt:
        start = time.monotonic()
        changed: list[str] = []
        with self._index_lock:
            sections = self._read_gitmodules()
            by_path = {s.get("path"): name for name, s in sections.items()}
            for spec in specs:
                name = by_path.get(spec.path)
                if name is None:
                    continue  # not registered; nothing to sync
                current = sections[name]
                wanted = {"url": spec.url, "branch": spec.branch}
                if all(current.get(k) == v for k, v in wanted.items()):
                    continue
                for key, value in wanted.items():
                    r = self._git(["config", "-f", GITMODULES, f"submodule.{name}.{key}", value])
                    if r.returncode != 0:
                        return self._receipt("sync_config", r, start=start)
                changed.append(spec.path)

            if not (self._root / GITMODULES).is_file():
                return Receipt.success(
                    adapter=self.name,
                    operation="sync_config",
                    duration_ms=_elapsed(start),
                    metadata={"changed": changed},
                )
            r = self._git(["submodule", "sync", "--quiet"])
        return self._receipt("sync_config", r, start=start, changed=changed)

    def fetch(
        self,
        path: str,
        remote: str = "origin",
        branch: str | None = None,
        depth: int = 0,
    ) -> Receipt:
        start = time.monotonic()
        args = ["fetch", "--quiet"]
        if depth:
            args += ["--depth", str(depth)]
        args.append(remote)
        if branch:
            args.append(f"+refs/heads/{branch}:refs/remotes/{remote}/{branch}")
        r = self._git(args, cwd=self._root / path, timeout=self._network_timeout)
        return self._receipt("fetch", r, path=path, start=start)

    def checkout_tracking_branch(self, path: str, branch: str, remote: str = "origin") -> Receipt:
        start = time.monotonic()
        cwd = self._root / path
        r = self._git(["checkout", "-q", "-B", branch], cwd=cwd)
        if r.returncode != 0:
            return self._receipt("checkout_tracking_branch", r, path=path, start=start)
        r_up = self._git(["branch", f"--set-upstream-to={remote}/{branch}", branch], cwd=cwd)
        return self._receipt("checkout_tracking_branch", r_up, path=path, start=start)

    def reset_hard(self, path: str, ref: str) -> Receipt:
        start = time.monotonic()
        r = self._git(["reset", "-q", "--hard", ref], cwd=self._root / path)
        return self._receipt("reset_hard", r, path=path, start=start)

    def merge_fast_forward_only(self, path: str, ref: str) -> Receipt:
        start = time.monotonic()
        r = self._git(["merge", "-q", "--ff-only", ref], cwd=self._root / path)
        return self._receipt("merge_fast_forward_only", r, path=path, start=start)

    def stage(self, paths: Iterable[str]) -> Receipt:
        start = time.monotonic()
        staged: list[str] = []
        with self._index_lock:
            for p in paths:
                if (self._root / p).exists():
                    r = self._git(["add", "-f", "--", p])
                else:
                    r = self._git(["rm", "-r", "--cached", "-q", "--ignore-unmatch", "--", p])
                if r.returncode != 0:
                    return self._receipt("stage", r, start=start, staged=staged)
                staged.append(p)
        return Receipt.success(
            adapter=self.name,
            operation="stage",
            output=", ".join(staged),
            duration_ms=_elapsed(start),
            metadata={"staged": staged},
        )

    def commit(self, message: str) -> Receipt:
        start = time.monotonic()
        with self._index_lock:
            r = self._git(["commit", "-q", "-m", message])
        if r.returncode != 0:
            return self._receipt("commit", r, start=start)
        r_hash = self._git(["rev-parse", "HEAD"])
        return self._receipt(
            "commit", r, start=start,
            commit_id=r_hash.stdout.strip() if r_hash.returncode == 0 else None,
        )

    def push(self, remote: str | None = None, branch: str | None = None, set_upstream: bool = False) -> Receipt:
        start = time.monotonic()
        args = ["push"]
        if set_upstream:
            args.append("--set-upstream")
        if remote:
            args.append(remote)
        if branch:
            args.append(branch)
        r = self._git(args, timeout=self._network_timeout)
        stderr = r.stderr.lower()
        rejected = r.returncode != 0 and any(m in stderr for m in _REJECTED_MARKERS)
        return self._receipt("push", r, start=start, rejected=rejected)

    # ── Helpers ─────────────────────────────────────────────────

    def _git(
        self,
        args: list[str],
        cwd: Path | None = None,
        timeout: int | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run a git command. Never raises; failures come back as a non-zero returncode."""
        cmd = ["git"]
        for key, value in self._git_config.items():
            cmd += ["-c", f"{key}={value}"]
        cmd += args
        timeout = timeout or self._timeout
        logger.debug("git %s (cwd=%s)", " ".join(args), cwd or self._root)
        try:
            return subprocess.run(
                cmd,
                cwd=str(cwd or self._root),
                capture_output=True,
                text=True,
                timeout=timeout,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
            )
        except subprocess.TimeoutExpired:
            return subprocess.CompletedProcess(cmd, 124, "", f"git {args[0]} timed out after {timeout}s")
        except OSError as e:
            return subprocess.CompletedProcess(cmd, 127, "", f"Cannot run git: {e}")

    def _receipt(
        self,
        operation: str,
        result: subprocess.CompletedProcess[str],
        path: str | None = None,
        start: float | None = None,
        **metadata,
    ) -> Receipt:
        duration = _elapsed(start) if start is not None else 0
        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                operation=operation,
                path=path,
                output=result.stdout.strip(),
                duration_ms=duration,
                metadata=metadata,
            )
        return Receipt.failure(
            adapter=self.name,
            operation=operation,
            path=path,
            error=result.stderr.strip() or result.stdout.strip() or f"git exited with {result.returncode}",
            duration_ms=duration,
            metadata={**metadata, "return_code": result.returncode},
        )

    def _resolve_git_dir(self) -> Path | None:
        if self._git_dir is None:
            r = self._git(["rev-parse", "--absolute-git-dir"])
            if r.returncode != 0:
                return None
            self._git_dir = Path(r.stdout.strip())
        return self._git_dir

    def _read_gitmodules(self) -> dict[str, dict[str, str]]:
        """``[submodule "name"]`` sections of .gitmodules: name -> {key: value}."""
        if not (self._root / GITMODULES).is_file():
            return {}
        r = self._git(["config", "-f", GITMODULES, "-z", "--get-regexp", r"^submodule\."])
        if r.returncode != 0:
            return {}
        sections: dict[str, dict[str, str]] = {}
        for entry in r.stdout.split("\0"):
            if not entry:
                continue
            key, _, value = entry.partition("\n")
            # submodule.<name>.<var>; the name itself may contain dots
            name, _, var = key[len("submodule."):].rpartition(".")
            if name:
                sections.setdefault(name, {})[var] = value
        return sections

    def _section_name(self, path: str) -> str | None:
        for name, section in self._read_gitmodules().items():
            if section.get("path") == path:
                return name
        return None


def _elapsed(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
