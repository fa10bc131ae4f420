"""
.gitmodules as a declaration source.

Lets a repository that has no submodules.yml reconcile against what
it already registers: every ``[submodule "<name>"]`` section becomes
one declaration.
"""

from __future__ import annotations

import configparser
import logging
from pathlib import Path

from pydantic import ValidationError

from subsync.core.errors import ConfigError
from subsync.core.models.submodule import DeclaredSet, SubmoduleSpec

logger = logging.getLogger(__name__)

GITMODULES_FILE = ".gitmodules"


def load_gitmodules(path: Path) -> DeclaredSet:
    """Parse a .gitmodules file into a DeclaredSet.

    Raises:
        ConfigError: If the file can't be parsed or an entry is invalid.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    return parse_gitmodules(text, source=str(path))


def parse_gitmodules(text: str, source: str = GITMODULES_FILE) -> DeclaredSet:
    """Parse .gitmodules content.

    Sections without a ``path`` or ``url`` are rejected; ``branch``
    falls back to the default branch.
    """
    parser = configparser.ConfigParser(interpolation=None)
    # git indents keys with tabs; configparser would read them as continuations
    flattened = "\n".join(line.strip() for line in text.splitlines())
    try:
        parser.read_string(flattened, source=source)
    except configparser.Error as e:
        raise ConfigError(f"Invalid {GITMODULES_FILE} in {source}: {e}") from e

    specs = []
    for section in parser.sections():
        if not section.startswith("submodule "):
            continue
        name = section[len("submodule "):].strip('"')
        sub_path = parser.get(section, "path", fallback="").strip()
        url = parser.get(section, "url", fallback="").strip()
        if not sub_path:
            raise ConfigError(f"{source}: submodule {name!r} has no path")
        if not url:
            raise ConfigError(f"{source}: submodule {name!r} has no url")

        entry = {"path": sub_path, "url": url}
        branch = parser.get(section, "branch", fallback="").strip()
        if branch and branch != ".":
            entry["branch"] = branch
        shallow = parser.get(section, "shallow", fallback="").strip().lower()
        if shallow == "true":
            entry["depth"] = 1

        try:
            specs.append(SubmoduleSpec.model_validate(entry))
        except ValidationError as e:
            raise ConfigError(f"{source}: invalid submodule {name!r}: {e}") from e

    try:
        declared = DeclaredSet(submodules=specs)
    except ValidationError as e:
        raise ConfigError(f"Invalid {GITMODULES_FILE} in {source}: {e}") from e

    logger.debug("Parsed %d submodule(s) from %s", len(specs), source)
    return declared
