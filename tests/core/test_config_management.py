# tests/core/test_config_management.py
import json

import pytest

from fetcher.model import AssetKind, FetchSettings
from sitemirror.core.managers.config_manager import ConfigManager, load_section
from sitemirror.core.utils.path_utils import PathUtils

# A small, predictable configuration for the tests
MOCK_SETTINGS_CONTENT = {
    "debug": {
        "level": "WARNING"
    },
    "fetch": {
        "enabled": True,
        "max_retries": 3,
        "limits": {"css": 1024}
    }
}


@pytest.fixture
def config_env(tmp_path, monkeypatch):
    """
    Sets up an isolated environment for the ConfigManager:
    - writes a fake 'settings.json' to a temporary directory;
    - monkeypatches PathUtils so the manager loads that file.
    """
    settings_file = tmp_path / "settings.json"
    settings_file.write_text(json.dumps(MOCK_SETTINGS_CONTENT))

    monkeypatch.setattr(PathUtils, "get_settings_file", lambda: settings_file)

    # The global instance may already be loaded, so force a reload from the fake file.
    manager = ConfigManager()
    manager.reset()
    return manager


def test_config_manager_is_a_singleton(config_env):
    """Every construction returns the same instance."""
    assert ConfigManager() is config_env


def test_config_manager_load(config_env):
    """The manager loads the configuration from disk."""
    config = config_env.get_all()
    assert config["debug"]["level"] == "WARNING"
    assert config["fetch"]["limits"]["css"] == 1024


def test_config_manager_get_nested(config_env):
    """Nested values are reachable with dotted paths."""
    assert config_env.get_nested("fetch.max_retries") == 3
    assert config_env.get_nested("non.existent.key", "default") == "default"
    assert config_env.get_nested("debug.level.deeper", "default") == "default"


def test_config_manager_set_nested(config_env):
    """Values can be changed in memory, with type casting to the original type."""
    config_env.set_nested("debug.level", "INFO")
    assert config_env.get_nested("debug.level") == "INFO"

    # A brand new key is stored as given.
    config_env.set_nested("classifier.enabled", "True")
    assert config_env.get_nested("classifier.enabled") == "True"

    # The original is an int, so the string '5' becomes an int.
    config_env.set_nested("fetch.max_retries", "5")
    assert config_env.get_nested("fetch.max_retries") == 5

    # Booleans are parsed instead of passed to bool().
    config_env.set_nested("fetch.enabled", "false")
    assert config_env.get_nested("fetch.enabled") is False


def test_config_manager_set_nested_refuses_non_dict_parent(config_env):
    """A path that runs through a scalar cannot be set."""
    assert config_env.set_nested("debug.level.deeper", 1) is False


def test_config_manager_reset(config_env):
    """reset() reloads the configuration from disk."""
    config_env.set_nested("debug.level", "DEBUG")
    assert config_env.get_nested("debug.level") == "DEBUG"

    config_env.reset()

    assert config_env.get_nested("debug.level") == "WARNING"


def test_config_manager_missing_file(tmp_path, monkeypatch):
    """A missing settings.json leaves an empty configuration instead of raising."""
    monkeypatch.setattr(PathUtils, "get_settings_file", lambda: tmp_path / "absent.json")
    manager = ConfigManager()
    manager.reset()
    assert manager.get_all() == {}
    assert manager.get_nested("fetch.enabled", True) is True


def test_packaged_settings_match_the_models():
    """The shipped settings.json has a section for every settings model."""
    with open(PathUtils.get_settings_file(), encoding="utf-8") as f:
        settings = json.load(f)
    assert {"debug", "output", "fetch", "classifier"} <= set(settings)
    assert set(settings["fetch"]["limits"]) == {"css", "js", "image"}


def test_config_manager_apply_overrides(config_env):
    """Several dotted keys can be set in one call."""
    config_env.apply_overrides({"fetch.enabled": False, "fetch.limits.css": "2048"})
    assert config_env.get_nested("fetch.enabled") is False
    assert config_env.get_nested("fetch.limits.css") == 2048


def test_config_manager_load_file_merges_sections(config_env, tmp_path):
    """A user file only replaces the keys it names."""
    user_file = tmp_path / "user.json"
    user_file.write_text(json.dumps({"fetch": {"limits": {"js": 10}}, "output": {"pretty_print": False}}))

    config_env.load_file(user_file)

    assert config_env.get_nested("fetch.limits.css") == 1024
    assert config_env.get_nested("fetch.limits.js") == 10
    assert config_env.get_nested("fetch.max_retries") == 3
    assert config_env.get_nested("output.pretty_print") is False


def test_config_manager_load_file_rejects_non_objects(config_env, tmp_path):
    user_file = tmp_path / "user.json"
    user_file.write_text("[1, 2]")
    with pytest.raises(ValueError):
        config_env.load_file(user_file)


def test_load_section_builds_typed_settings(config_env):
    """Sections become pydantic settings; invalid sections fall back to defaults."""
    settings = load_section(config_env, "fetch", FetchSettings)
    assert settings.max_retries == 3
    assert settings.max_size_for(AssetKind.CSS) == 1024

    config_env.set_nested("fetch.max_retries", 0)
    assert load_section(config_env, "fetch", FetchSettings).max_retries == FetchSettings().max_retries

    assert load_section(config_env, "missing", FetchSettings) == FetchSettings()
