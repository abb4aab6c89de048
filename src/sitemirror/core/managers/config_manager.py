# src/sitemirror/core/managers/config_manager.py
import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from sitemirror.core.utils.path_utils import PathUtils

logger = logging.getLogger(__name__)

SettingsModel = TypeVar("SettingsModel", bound=BaseModel)

_TRUE_STRINGS = ("1", "true", "yes", "on")


def _merge(base: Dict[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively lays `overlay` over `base`; nested sections are merged key by key."""
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def _cast_like(original: Any, value: Any) -> Any:
    """Converts CLI-style strings to the type of the value they replace."""
    if original is None or isinstance(original, (dict, list)):
        return value
    if isinstance(original, bool):
        return value.strip().lower() in _TRUE_STRINGS if isinstance(value, str) else bool(value)
    return type(original)(value)


class ConfigManager:
    """
    Process-wide holder of the sitemirror configuration.

    The packaged settings.json provides the defaults; a user file (`load_file`)
    and command line flags (`apply_overrides` / `set_nested`) are layered on
    top in memory. Nothing is ever written back to disk.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._config = {}
            cls._instance.reset()
        return cls._instance

    def _parent_of(self, key_path: str, create: bool) -> Tuple[Optional[Dict[str, Any]], str]:
        *parents, leaf = key_path.split(".")
        node: Any = self._config
        for key in parents:
            if not isinstance(node, dict):
                return None, leaf
            node = node.setdefault(key, {}) if create else node.get(key)
        return (node if isinstance(node, dict) else None), leaf

    def get_all(self) -> Dict[str, Any]:
        return self._config

    def get_nested(self, key_path: str, default: Optional[Any] = None) -> Any:
        """Looks up a dotted path such as 'fetch.limits.css'."""
        parent, leaf = self._parent_of(key_path, create=False)
        if parent is None or parent.get(leaf) is None:
            return default
        return parent[leaf]

    def set_nested(self, key_path: str, value: Any) -> bool:
        parent, leaf = self._parent_of(key_path, create=True)
        if parent is None:
            logger.error("Cannot set '%s': a parent of '%s' is not a section.", key_path, leaf)
            return False
        try:
            value = _cast_like(parent.get(leaf), value)
        except (ValueError, TypeError):
            logger.warning("Could not cast '%s' to %s, storing it as given.", key_path, type(parent.get(leaf)).__name__)
        parent[leaf] = value
        logger.debug("Configuration updated: %s = %r", key_path, value)
        return True

    def apply_overrides(self, overrides: Mapping[str, Any]) -> None:
        """Sets several dotted keys at once, e.g. from command line flags."""
        for key_path, value in overrides.items():
            self.set_nested(key_path, value)

    def load_file(self, path: Union[str, Path]) -> None:
        """Merges a user settings file over the current configuration."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            overlay = json.load(f)
        if not isinstance(overlay, dict):
            raise ValueError(f"{path} must contain a JSON object")
        _merge(self._config, overlay)
        logger.info("Merged settings from %s", path)

    def reset(self) -> None:
        """Drops every in-memory change and reloads the packaged settings.json."""
        config_path = PathUtils.get_settings_file()
        if not config_path.exists():
            logger.warning("settings.json not found at %s. Using empty config.", config_path)
            self._config = {}
            return
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                self._config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load settings.json: %s", e, exc_info=True)
            self._config = {}
            return
        logger.debug("Configuration (re)loaded from %s", config_path)


def load_section(config, key: str, model: Type[SettingsModel]) -> SettingsModel:
    """
    Builds a typed settings model from one configuration section.
    An invalid section is logged and replaced by the model's defaults.
    """
    raw = config.get_nested(key, {}) or {}
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        logger.error("Invalid '%s' settings, using defaults: %s", key, e)
        return model()


config_manager = ConfigManager()
