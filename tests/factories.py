"""
Shared builders for engine tests.
"""

from subsync.core.models.submodule import DeclaredSet, SubmoduleSpec

CORE_URL = "https://example.com/org/core.git"
UI_URL = "https://example.com/org/ui.git"
DOCS_URL = "git@example.com:org/docs.git"


def declare(*specs: dict, **settings) -> DeclaredSet:
    """Build a DeclaredSet from plain dicts."""
    return DeclaredSet(submodules=[SubmoduleSpec(**s) for s in specs], **settings)
