"""
Configuration loader for harbor.yml.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

import yaml

from harbor.config.models import HarborSettings
from harbor.config.settings import get_env

logger = logging.getLogger("harbor")

# Configuration paths
CONFIG_PATH = Path(get_env("config_path", "~/.config/harbormaster") or "~/.config/harbormaster").expanduser()
HARBOR_CONFIG_FILE = CONFIG_PATH / "harbor.yml"


class HarborConfig:
    """Manages Harbor configuration from YAML file."""

    _lock = threading.Lock()
    _config: dict = {}
    _typed_config: HarborSettings | None = None
    _last_load: float = 0
    _cache_duration: int = 60

    @classmethod
    def load(cls) -> dict:
        """Load configuration from YAML file."""
        now = time.time()
        if cls._config and (now - cls._last_load) < cls._cache_duration:
            return cls._config

        with cls._lock:
            # Double-check after acquiring the lock
            now = time.time()
            if cls._config and (now - cls._last_load) < cls._cache_duration:
                return cls._config
            return cls._load_locked(now)

    @classmethod
    def _load_locked(cls, now: float) -> dict:
        """Load config while holding ``_lock``. Called from :meth:`load`."""
        defaults = HarborSettings().model_dump()

        if not HARBOR_CONFIG_FILE.exists():
            logger.info(f"Harbor config not found, using defaults: {HARBOR_CONFIG_FILE}")
            cls._config = defaults
            cls._last_load = now
            cls._typed_config = HarborSettings.model_validate(cls._config)
            return cls._config

        try:
            with open(HARBOR_CONFIG_FILE, "r") as f:
                file_config = yaml.safe_load(f) or {}

            # Deep merge with defaults
            cls._config = cls._deep_merge(defaults, file_config)
            cls._last_load = now
            logger.info(f"Loaded harbor config from {HARBOR_CONFIG_FILE}")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading harbor config: {e}")
            cls._config = defaults

        cls._typed_config = HarborSettings.model_validate(cls._config)
        return cls._config

    @classmethod
    def _deep_merge(cls, base: dict, override: dict) -> dict:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = cls._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    @classmethod
    def get(cls, *keys: str, default: object = None) -> object:
        """Get a nested config value using multiple keys."""
        config = cls.load()
        for key in keys:
            if isinstance(config, dict) and key in config:
                config = config[key]
            else:
                return default
        return config

    @classmethod
    def settings(cls) -> HarborSettings:
        """Get typed configuration as a HarborSettings instance."""
        if cls._typed_config is None:
            cls.load()
        assert cls._typed_config is not None
        return cls._typed_config

    @classmethod
    def reset(cls) -> None:
        """Drop the cached configuration so the next access reloads it."""
        with cls._lock:
            cls._config = {}
            cls._typed_config = None
            cls._last_load = 0
