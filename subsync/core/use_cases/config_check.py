"""
Config check use case — validate submodules.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from subsync.core.config.gitmodules import GITMODULES_FILE, load_gitmodules
from subsync.core.config.loader import find_config_file, load_declared_set
from subsync.core.errors import ConfigError
from subsync.core.models.submodule import DeclaredSet


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    declared: DeclaredSet | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "submodule_count": len(self.declared.submodules) if self.declared else 0,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate the declaration and report issues.

    Errors make the declaration unusable; warnings point at things a
    reconcile run would do that may surprise the user.

    Args:
        config_path: Optional explicit path to submodules.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    if config_path is None:
        result.errors.append("No submodules.yml found.")
        return result
    result.config_path = config_path

    try:
        declared = load_declared_set(config_path)
    except ConfigError as e:
        result.errors.append(str(e))
        return result
    result.declared = declared

    if not declared.submodules:
        result.warnings.append("No submodules declared. A reconcile run would purge every registered link.")

    # One declared path nested inside another can't both be gitlinks
    paths = sorted(declared.paths())
    for outer in paths:
        for inner in paths:
            if inner != outer and inner.startswith(outer + "/"):
                result.errors.append(f"Submodule path {inner!r} is nested inside {outer!r}")

    for spec in declared.submodules:
        if spec.depth and not spec.track_branch:
            result.warnings.append(
                f"{spec.path}: shallow clone (depth={spec.depth}) of a pinned commit; "
                "the recorded commit may be outside the fetched history."
            )

    # Registered links the declaration doesn't know about will be purged
    gitmodules = config_path.parent / GITMODULES_FILE
    if config_path.name != GITMODULES_FILE and gitmodules.is_file():
        try:
            registered = load_gitmodules(gitmodules)
        except ConfigError as e:
            result.warnings.append(f"Could not read {GITMODULES_FILE}: {e}")
        else:
            for path in sorted(set(registered.paths()) - set(declared.paths())):
                result.warnings.append(f"{path} is registered in {GITMODULES_FILE} but not declared; it will be purged.")

    result.valid = not result.errors
    return result
