"""
Persistent settings for termsession.

Stored as JSON in ~/.termsession/config.json, or wherever
TERMSESSION_CONFIG points.
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TERMSESSION_CONFIG"
DEFAULT_CONFIG_FILE = Path.home() / ".termsession" / "config.json"


@dataclass
class AppSettings:
    """
    Defaults applied to sessions whose options leave a field unset.
    """
    # Terminal geometry
    default_cols: int = 80
    default_rows: int = 24
    default_term_type: str = "xterm-color"

    # SSH connection (seconds, 0 disables keepalive)
    ready_timeout: float = 20.0
    keepalive_interval: int = 0

    # X11 forwarding
    x11_connect_timeout: float = 1.0

    log_level: str = "INFO"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> AppSettings:
        """Deserialize from dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def _coerce(name: str, value: Any) -> Any:
    """Convert a command-line string to the type of the named setting."""
    field_type = {f.name: f.type for f in fields(AppSettings)}[name]
    if not isinstance(value, str) or field_type == "str":
        return value
    if field_type == "int":
        return int(value)
    if field_type == "float":
        return float(value)
    return value


class SettingsManager:
    """
    Loads, updates and saves AppSettings.

    Usage:
        manager = SettingsManager()
        manager.update(ready_timeout="30")
        manager.save()
    """

    def __init__(self, config_path: Path = None):
        if config_path is None:
            config_path = Path(os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE)
        self._config_path = Path(config_path)
        self._settings: Optional[AppSettings] = None

    @property
    def settings(self) -> AppSettings:
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def config_dir(self) -> Path:
        return self._config_path.parent

    def load(self) -> AppSettings:
        """Read settings from disk; a missing or unreadable file gives defaults."""
        try:
            data = json.loads(self._config_path.read_text())
        except FileNotFoundError:
            logger.debug(f"No settings at {self._config_path}, using defaults")
            return AppSettings()
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load settings from {self._config_path}: {e}, using defaults")
            return AppSettings()

        if not isinstance(data, dict):
            logger.warning(f"Ignoring settings file {self._config_path}: not a JSON object")
            return AppSettings()
        return AppSettings.from_dict(data)

    def update(self, **changes) -> AppSettings:
        """
        Change settings in memory (call save() to persist).

        String values are converted to the setting's type, so values from
        the command line can be passed straight through.

        Raises:
            ValueError: Unknown setting name or unconvertible value
        """
        settings = self.settings
        known = {f.name for f in fields(AppSettings)}
        for name, value in changes.items():
            if name not in known:
                raise ValueError(f"Unknown setting: {name}")
            setattr(settings, name, _coerce(name, value))
        return settings

    def save(self) -> None:
        """Write current settings to disk."""
        if self._settings is None:
            return

        try:
            self._config_path.parent.mkdir(parents=True, exist_ok=True)
            self._config_path.write_text(json.dumps(self._settings.to_dict(), indent=2))
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")
            return
        logger.debug(f"Saved settings to {self._config_path}")

    def reset(self) -> AppSettings:
        """Back to defaults (does not save automatically)."""
        self._settings = AppSettings()
        return self._settings


_manager: Optional[SettingsManager] = None


def get_settings_manager() -> SettingsManager:
    """Process-wide settings manager."""
    global _manager
    if _manager is None:
        _manager = SettingsManager()
    return _manager


def get_settings() -> AppSettings:
    return get_settings_manager().settings


def save_settings() -> None:
    get_settings_manager().save()
