"""Persistent settings for valwatch.

Settings are stored in ~/.valwatch/settings.json and merged over DEFAULTS.
Path settings can also be overridden with environment variables, which take
precedence over the file.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Settings file location
SETTINGS_DIR = Path.home() / ".valwatch"
SETTINGS_FILE = SETTINGS_DIR / "settings.json"

# Environment overrides for path settings
ENV_OVERRIDES = {
    "log_path": "VALORANT_LOG_PATH",
    "lockfile_path": "RIOT_LOCKFILE_PATH",
}

# Default settings
DEFAULTS: dict[str, Any] = {
    "log_path": None,  # None = standard ShooterGame.log location
    "lockfile_path": None,  # None = search the usual Riot Client locations
    "poll_interval": 0.1,  # Seconds between reads when the log is idle
    "buffer_size": 64,  # Per-subscriber event buffer
    "http_timeout": 10.0,
}

# Settings that must be positive numbers of the given type; anything else
# falls back to DEFAULTS
POSITIVE_SETTINGS = {
    "poll_interval": (int, float),
    "buffer_size": int,
    "http_timeout": (int, float),
}


class Settings:
    """Persistent settings manager.

    Example:
        settings = Settings()
        interval = settings.get("poll_interval")
        settings.set("buffer_size", 128)
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        """Initialize settings, loading from disk if available.

        Args:
            path: Settings file. Defaults to ~/.valwatch/settings.json
        """
        self._path = path or SETTINGS_FILE
        self._data: dict[str, Any] = DEFAULTS.copy()
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        """Load settings from disk."""
        if not self._path.exists():
            return

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                loaded = json.load(f)
            if not isinstance(loaded, dict):
                raise ValueError("settings file must hold a JSON object")
            # Merge with defaults (new settings get defaults)
            self._data.update(loaded)
            logger.debug(f"Loaded settings from {self._path}")
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load settings: {e}")

    def save(self) -> None:
        """Save settings to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
            logger.debug(f"Saved settings to {self._path}")
        except OSError as e:
            logger.warning(f"Failed to save settings: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get a setting value.

        Environment overrides win for path settings.

        Args:
            key: Setting key
            default: Default value if key not found

        Returns:
            Setting value or default
        """
        env_name = ENV_OVERRIDES.get(key)
        if env_name and os.environ.get(env_name):
            return os.environ[env_name]
        value = self._data.get(key)
        if value is not None and key in POSITIVE_SETTINGS:
            expected = POSITIVE_SETTINGS[key]
            if isinstance(value, bool) or not isinstance(value, expected) or value <= 0:
                logger.warning(f"Ignoring invalid {key}={value!r}, using default")
                value = None
        if value is None:
            return default if default is not None else DEFAULTS.get(key)
        return value

    def set(self, key: str, value: Any, save: bool = True) -> None:
        """Set a setting value.

        Args:
            key: Setting key
            value: Value to set
            save: If True (default), immediately save to disk
        """
        self._data[key] = value
        if save:
            self.save()

    def reset(self) -> None:
        """Reset all settings to defaults."""
        self._data = DEFAULTS.copy()
        self.save()


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
