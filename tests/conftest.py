"""
Pytest configuration for the Tidy Monster test suite.
"""

import pytest

from tidymonster.settings import InMemoryCache, JsonFileStore


@pytest.fixture
def settings_store(tmp_path):
    """Settings store backed by a throwaway JSON file."""
    return InMemoryCache(JsonFileStore(tmp_path / "settings.json"))


@pytest.fixture
def desktop(tmp_path):
    """Empty directory standing in for a desktop."""
    path = tmp_path / "Desktop"
    path.mkdir()
    return path
