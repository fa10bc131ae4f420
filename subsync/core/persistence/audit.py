"""
Audit ledger — one line per reconciliation run.

Entries are appended to ``.git/subsync/audit.ndjson`` in the parent
repository (inside the git directory, so the ledger never appears as an
untracked file). The ledger is append-only and purely informational:
a failed write is logged and the run carries on.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from subsync.core.models.report import ReconciliationReport

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_DIR = Path(".git") / "subsync"
DEFAULT_AUDIT_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """Summary of one reconcile run."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    status: str = ""               # ok, partial, failed

    purged: int = 0
    added: int = 0
    fast_forwarded: int = 0
    unchanged: int = 0
    failed: int = 0
    failed_paths: list[str] = Field(default_factory=list)

    commit_id: str | None = None
    commit_status: str = ""        # committed, no_changes
    push_status: str = ""          # pushed, upstream_established, up_to_date, skipped
    cancelled: bool = False
    duration_ms: int = 0

    errors: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_report(cls, report: ReconciliationReport, duration_ms: int = 0, **context: Any) -> AuditEntry:
        errors = [o.error for o in report.outcomes.values() if o.error]
        if report.sync_error:
            errors.append(report.sync_error)
        return cls(
            operation_id=report.operation_id,
            status=report.status,
            purged=report.purged,
            added=report.added,
            fast_forwarded=report.fast_forwarded,
            unchanged=report.unchanged,
            failed=report.failed,
            failed_paths=report.failed_paths,
            commit_id=report.commit.commit_id if report.commit else None,
            commit_status=report.commit.status if report.commit else "",
            push_status=report.push.status if report.push else "",
            cancelled=report.cancelled,
            duration_ms=duration_ms,
            errors=errors,
            context=context,
        )


class AuditWriter:
    """Append-only writer/reader for the audit ledger."""

    def __init__(self, path: Path | None = None, repo_root: Path | None = None):
        if path is not None:
            self._path = path
        else:
            self._path = (repo_root or Path.cwd()) / DEFAULT_AUDIT_DIR / DEFAULT_AUDIT_FILE

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append ``entry``. Never raises on I/O errors."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Audit entry written: %s", entry.operation_id)
        except OSError as e:
            logger.error("Failed to write audit entry: %s", e)

    def read_all(self) -> list[AuditEntry]:
        """All entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(AuditEntry.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read audit ledger: %s", e)
        return entries

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        """The most recent ``n`` entries, oldest first."""
        return self.read_all()[-n:] if n > 0 else []
