# tests/conftest.py
import pytest

from sitemirror.core.managers.config_manager import config_manager


@pytest.fixture(autouse=True)
def fresh_config():
    """The ConfigManager is a process-wide singleton; reload it from disk after every test."""
    yield
    config_manager.reset()
