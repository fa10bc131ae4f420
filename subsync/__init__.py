"""subsync — declarative git submodule reconciliation."""

__version__ = "0.1.0"
