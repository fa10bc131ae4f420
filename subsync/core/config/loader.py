"""
Configuration loader — reads submodules.yml into a DeclaredSet.

This is the primary entry point for loading the declared submodules.
It reads YAML, merges per-file defaults into each declaration,
validates against the Pydantic schemas, and returns typed domain
objects. A .gitmodules file is also accepted as a declaration source.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from subsync.core.config.gitmodules import GITMODULES_FILE, load_gitmodules
from subsync.core.errors import ConfigError
from subsync.core.models.submodule import DeclaredSet

logger = logging.getLogger(__name__)

# Config filenames, in lookup order
CONFIG_FILES = ("submodules.yml", "submodules.yaml")

_DEFAULT_KEYS = ("branch", "depth", "track_branch")


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for submodules.yml starting from the given directory, walking up.

    This allows running commands from inside a submodule checkout or any
    subdirectory and still finding the parent repository's declaration.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to the config file, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        for name in CONFIG_FILES:
            candidate = current / name
            if candidate.is_file():
                return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_declared_set(path: Path | None = None) -> DeclaredSet:
    """Load and validate the declared submodule set.

    Args:
        path: Explicit path to submodules.yml (or a .gitmodules file).
            If None, searches upward from the working directory.

    Returns:
        Validated DeclaredSet.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_config_file()

    if path is None:
        raise ConfigError(
            f"No {CONFIG_FILES[0]} found. "
            "Create one next to .gitmodules, or specify --config."
        )

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    if path.name == GITMODULES_FILE:
        return load_gitmodules(path)

    logger.debug("Loading submodule config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    declared = parse_declared_set(data, source=str(path))
    logger.info("Loaded %d declared submodule(s) from %s", len(declared.submodules), path.name)
    return declared


def parse_declared_set(data: dict, source: str = "<config>") -> DeclaredSet:
    """Validate an already-parsed mapping.

    Values under ``defaults`` fill in whatever a declaration leaves out.

    Raises:
        ConfigError: On any schema or validation failure.
    """
    defaults = data.get("defaults") or {}
    entries = data.get("submodules") or []
    if not isinstance(defaults, dict):
        raise ConfigError(f"'defaults' must be a mapping in {source}")
    if not isinstance(entries, list):
        raise ConfigError(f"'submodules' must be a list in {source}")

    merged = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigError(f"submodules[{index}] must be a mapping in {source}")
        item = {k: defaults[k] for k in _DEFAULT_KEYS if k in defaults}
        item.update(entry)
        merged.append(item)

    try:
        return DeclaredSet.model_validate({**data, "defaults": defaults, "submodules": merged})
    except ValidationError as e:
        raise ConfigError(f"Invalid submodule configuration in {source}: {e}") from e


def repo_root(config_path: Path) -> Path:
    """Get the parent repository root from a config file path."""
    return config_path.parent.resolve()
