"""
State inspector — observe the parent repository's submodule links.

Reads .gitmodules, the index and every checkout through the adapter
and produces one LinkRecord per path. Never mutates anything except
(in ``refresh``) each submodule's own remote-tracking refs.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed

from subsync.adapters.base import VcsAdapter
from subsync.core.errors import NotARepository
from subsync.core.models.link import LinkRecord
from subsync.core.models.submodule import DEFAULT_REMOTE, DeclaredSet, SubmoduleSpec

logger = logging.getLogger(__name__)


def inspect(
    adapter: VcsAdapter,
    declared_paths: Iterable[str],
    declared: DeclaredSet | None = None,
    remote: str = DEFAULT_REMOTE,
) -> dict[str, LinkRecord]:
    """Build a LinkRecord for every registered or declared path.

    Args:
        adapter: VCS adapter bound to the parent repository.
        declared_paths: Paths the declaration knows about. Registered
            paths outside this set are reported as orphaned.
        declared: When given, ``remote_tip`` is resolved against each
            path's declared branch.
        remote: Remote name inside each submodule checkout.

    Returns:
        Records keyed by path.

    Raises:
        NotARepository: If the adapter's root isn't a working tree root.
    """
    if not adapter.is_repository_root():
        raise NotARepository(f"Not a git repository root: {adapter.repo_root}")

    wanted = set(declared_paths)
    config_links = adapter.list_config_links()
    index_links = adapter.list_index_links()

    records: dict[str, LinkRecord] = {}
    for path in sorted(set(config_links) | set(index_links) | wanted):
        link = config_links.get(path)
        record = LinkRecord(
            path=path,
            registered_url=link.url if link and link.url else None,
            registered_branch=link.branch if link else None,
            in_config=link is not None,
            in_index=path in index_links,
            recorded_commit=adapter.recorded_commit(path),
            is_orphaned=path not in wanted,
            working_dir_present=adapter.working_dir_present(path),
        )
        if record.working_dir_present:
            record.is_repo = adapter.is_repo(path)
        record.has_local_repo = adapter.has_local_repo(path)

        if record.is_repo:
            record.checkout_url = adapter.checkout_url(path, remote)
            status = adapter.query_link_status(path, remote)
            record.local_commit = status.commit_id
            record.local_branch = status.branch
            spec = declared.get(path) if declared else None
            if spec is not None:
                record.resolved_url = adapter.resolve_url(spec.url)
            branch = spec.branch if spec else record.registered_branch
            if branch:
                record.remote_tip = adapter.resolve_ref(path, f"{remote}/{branch}")

        records[path] = record

    logger.debug(
        "Inspected %d path(s): %d registered, %d orphaned",
        len(records),
        sum(1 for r in records.values() if r.is_registered),
        sum(1 for r in records.values() if r.is_orphaned),
    )
    return records


def refresh(
    adapter: VcsAdapter,
    records: dict[str, LinkRecord],
    specs: Iterable[SubmoduleSpec],
    workers: int = 4,
    remote: str = DEFAULT_REMOTE,
) -> dict[str, bool]:
    """Fetch the declared branch of every already-valid link.

    Lets the planner compare each checkout against the real remote tip
    instead of a stale remote-tracking ref. Failures are logged and
    left for the fast-forward step to report.

    Returns:
        Path -> whether the fetch succeeded.
    """
    targets = [
        spec for spec in specs
        if spec.path in records and records[spec.path].is_valid_link(spec)
    ]
    if not targets:
        return {}

    results: dict[str, bool] = {}
    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(targets)))) as pool:
        futures = {
            pool.submit(adapter.fetch, spec.path, remote, spec.branch, spec.depth): spec.path
            for spec in targets
        }
        for future in as_completed(futures):
            path = futures[future]
            receipt = future.result()
            results[path] = receipt.ok
            if receipt.ok:
                logger.debug("Refreshed %s", path)
            else:
                logger.warning("Refresh failed for %s: %s", path, receipt.error)
    return results
