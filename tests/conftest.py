"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from factories import CORE_URL, DOCS_URL, UI_URL
from subsync.adapters.mock import MockVcsAdapter


@pytest.fixture
def mock_vcs(tmp_path: Path) -> MockVcsAdapter:
    """An empty in-memory parent repository rooted at tmp_path."""
    return MockVcsAdapter(repo_root=tmp_path)


@pytest.fixture
def remotes(mock_vcs: MockVcsAdapter) -> MockVcsAdapter:
    """Mock repository with three remotes, each with a short main history."""
    mock_vcs.add_remote(CORE_URL, "main", ["core-1", "core-2"])
    mock_vcs.add_remote(UI_URL, "main", ["ui-1"])
    mock_vcs.add_remote(DOCS_URL, "main", ["docs-1", "docs-2", "docs-3"])
    return mock_vcs
