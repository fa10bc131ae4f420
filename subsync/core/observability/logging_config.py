"""
Logging configuration — set up once by the CLI before any command runs.

Every module logs through ``logging.getLogger(__name__)`` and inherits
what is configured here.

Console level, highest precedence first:
    --debug  >  -v  >  -q  >  SUBSYNC_LOG_LEVEL  >  WARNING

SUBSYNC_LOG_FILE adds a file handler; SUBSYNC_LOG_FILE_LEVEL gives it
its own level (defaults to the console level).
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LEVEL = "SUBSYNC_LOG_LEVEL"
ENV_FILE = "SUBSYNC_LOG_FILE"
ENV_FILE_LEVEL = "SUBSYNC_LOG_FILE_LEVEL"

# ── Formats per console level ───────────────────────────────────

_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_FMT_MINIMAL = "%(message)s"

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level name from CLI flags and the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LEVEL, "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional log file path (falls back to SUBSYNC_LOG_FILE).
        log_file_level: Optional file level (falls back to
            SUBSYNC_LOG_FILE_LEVEL, then ``level``).
    """
    console_level = _parse_level(level)
    fmt, datefmt = _console_format(console_level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    effective = console_level

    log_file = log_file or os.environ.get(ENV_FILE)
    if log_file:
        file_level = _parse_level(log_file_level or os.environ.get(ENV_FILE_LEVEL) or level)
        effective = min(effective, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(effective)
    logging.raiseExceptions = False


def _console_format(numeric_level: int) -> tuple[str, str | None]:
    for threshold in sorted(_CONSOLE_FORMATS):
        if numeric_level <= threshold:
            return _CONSOLE_FORMATS[threshold]
    return _FMT_MINIMAL, None


def _parse_level(level: str | None) -> int:
    """Level name to its numeric constant; unknown names mean WARNING."""
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
