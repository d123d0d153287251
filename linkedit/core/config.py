"""Configuration management for linked editing."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable

import yaml

CONFIG_DIR = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "linkedit"
DEFAULTS_PATH = Path(__file__).resolve().parent.parent / "settings" / "defaults.yaml"
USER_SETTINGS_PATH = CONFIG_DIR / "settings.yaml"

LINKED_EDITING_KEY = "linked_editing"

logger = logging.getLogger(__name__)


class ConfigManager:
    """Loads default and user configuration and provides helpers to query values.

    User settings are only read. Writes made through :meth:`set` live for the
    session and are announced to subscribers of the top-level key.
    """

    def __init__(self, user_settings_path: Path | None = None) -> None:
        self.defaults = self._load_yaml(DEFAULTS_PATH)
        user_path = user_settings_path or USER_SETTINGS_PATH
        self.user_settings = self._load_yaml(user_path)
        self.settings = self._deep_merge(self.defaults, self.user_settings)
        self._subscribers: dict[str, list[Callable[[Any], None]]] = {}

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except yaml.YAMLError:
            logger.warning("Ignoring unreadable settings file %s", path, exc_info=True)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any | None = None) -> Any:
        return self.settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        previous = self.settings.get(key)
        self.settings[key] = value
        if previous != value:
            self._notify(key, value)

    def subscribe(self, key: str, callback: Callable[[Any], None]) -> None:
        self._subscribers.setdefault(key, []).append(callback)

    def unsubscribe(self, key: str, callback: Callable[[Any], None]) -> None:
        callbacks = self._subscribers.get(key, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _notify(self, key: str, value: Any) -> None:
        for callback in list(self._subscribers.get(key, [])):
            try:
                callback(value)
            except Exception:
                logger.exception("Settings subscriber for %s failed", key)

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        merged: dict[str, Any] = dict(base)
        for key, value in override.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self._deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    # Linked editing helpers
    def linked_editing_enabled(self) -> bool:
        """Flag for the linked editing feature."""

        return bool(self.settings.get(LINKED_EDITING_KEY, {}).get("enabled", True))

    def set_linked_editing_enabled(self, enabled: bool) -> None:
        section = dict(self.settings.get(LINKED_EDITING_KEY, {}))
        section["enabled"] = bool(enabled)
        self.set(LINKED_EDITING_KEY, section)

    def linked_editing_seconds(self, name: str, default_ms: int) -> float:
        """Read a ``*_ms`` duration from the linked editing section as seconds."""

        value = self.settings.get(LINKED_EDITING_KEY, {}).get(name, default_ms)
        try:
            return max(0.0, float(value) / 1000.0)
        except (TypeError, ValueError):
            logger.warning("Invalid %s.%s value %r; using %sms", LINKED_EDITING_KEY, name, value, default_ms)
            return default_ms / 1000.0
