"""
Centralized configuration management.

Values are loaded, later sources overriding earlier ones, from:
1) `env.example` (committed, safe placeholders)
2) `env.local` (optional, MUST NOT be committed)
3) System environment variables (highest priority)
"""

import os
from pathlib import Path

from dotenv import dotenv_values
from loguru import logger


class EnvironConfig:
    """
    Singleton configuration class that loads environment variables from env files
    and system environment, providing dictionary-like access with default values.
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(EnvironConfig, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._config = {}
            self._load_config()
            EnvironConfig._initialized = True

    def _load_config(self):
        """
        Load configuration from env files and system environment.

        Priority order (later overrides earlier):
        1. env.example (committed placeholders)
        2. env.local (developer-local, not committed)
        3. System environment variables (highest priority)
        """
        root = Path(__file__).parent.parent

        example_path = root / "env.example"
        if example_path.exists():
            env_values = dotenv_values(example_path)
            self._config.update(env_values)
            logger.info("Loaded environment variables from {}", example_path)

        local_path = root / "env.local"
        if local_path.exists():
            local_values = dotenv_values(local_path)
            self._config.update(local_values)
            logger.info("Loaded and overrode environment variables from {}", local_path)

        self._config.update(os.environ)

    def __getitem__(self, key):
        """
        Get configuration value by key.

        Raises:
            KeyError: If key not found
        """
        if key not in self._config:
            raise KeyError(f"Configuration key '{key}' not found")

        return self._config[key]

    def get(self, key, default=None):
        """Get configuration value by key with optional default."""
        return self._config.get(key, default)

    def get_int(self, key: str, default: int, minimum: int = 1, maximum: int = 65535) -> int:
        """
        Get an integer value, falling back to the default when invalid or out of range.

        Args:
            key: Configuration key
            default: Value used when the key is missing, empty or invalid
            minimum: Smallest accepted value
            maximum: Largest accepted value

        Returns:
            int: Parsed value or default
        """
        raw = (self.get(key) or "").strip()
        if not raw:
            return default
        try:
            value = int(raw)
        except (ValueError, TypeError):
            logger.warning("Invalid {} value '{}', defaulting to {}", key, raw, default)
            return default
        if not minimum <= value <= maximum:
            logger.warning(
                "{} value {} is out of range ({}-{}), defaulting to {}",
                key, value, minimum, maximum, default,
            )
            return default
        return value

    def get_float(self, key: str, default: float, allow_zero: bool = False) -> float:
        """
        Get a positive float value (seconds), falling back to the default when invalid.

        With allow_zero, 0 is accepted (used as "disabled" by interval settings).
        """
        raw = (self.get(key) or "").strip()
        if not raw:
            return default
        try:
            value = float(raw)
        except (ValueError, TypeError):
            logger.warning("Invalid {} value '{}', defaulting to {}", key, raw, default)
            return default
        if value < 0 or (value == 0 and not allow_zero):
            logger.warning("{} value {} must be positive, defaulting to {}", key, value, default)
            return default
        return value

    def clear(self):
        """Clear configuration. Useful for testing."""
        self._config.clear()
        logger.info("Configuration cleared")

    def reload(self):
        """Reload configuration from files and environment."""
        self._config.clear()
        self._load_config()
        logger.info("Configuration reloaded")

    def __contains__(self, key):
        return key in self._config

    def __iter__(self):
        return iter(self._config)

    def keys(self):
        return self._config.keys()

    def values(self):
        return self._config.values()

    def items(self):
        return self._config.items()


# Global configuration instance
config = EnvironConfig()
