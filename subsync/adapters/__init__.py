"""Adapters — bindings to the version-control system.

Public re-exports for convenient access.
"""

from subsync.adapters.base import VcsAdapter
from subsync.adapters.mock import MockVcsAdapter

__all__ = [
    "MockVcsAdapter",
    "VcsAdapter",
]
