"""Configuration loader for viewstream.

Loads viewstream_config.py from the working directory or one of its
parents, falling back to defaults.
"""

import importlib.util
import logging
import sys
from pathlib import Path
from types import ModuleType
from typing import Any

from . import defaults

CONFIG_FILENAME = "viewstream_config.py"

logger = logging.getLogger(__name__)


def is_valid_warning_threshold(value: Any) -> bool:
    """A slow-fold threshold is a non-negative int or float (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value >= 0


class Config:
    """Configuration object with attribute access."""

    SUBSCRIBER_ERROR_POLICY: str
    SLOW_REDUCTION_WARNING_MS: int

    def __init__(self, search_from: Path | None = None) -> None:
        # Start with defaults
        for key in defaults.CONFIG_KEYS:
            setattr(self, key, getattr(defaults, key))

        self.source: Path | None = None

        # Load user config if available
        self._load_user_config(search_from)

    def _load_user_config(self, search_from: Path | None) -> None:
        """Load viewstream_config.py, overriding known keys only."""
        config_path = self._find_config_file(search_from)

        if config_path is None:
            return

        user_config = self._load_module_from_path(config_path)

        for key in defaults.CONFIG_KEYS:
            if hasattr(user_config, key):
                setattr(self, key, getattr(user_config, key))

        self.source = config_path
        logger.debug(f"Loaded configuration from {config_path}")

        for problem in self.validate():
            logger.warning(f"Invalid configuration in {config_path}: {problem}")

    def _find_config_file(self, search_from: Path | None) -> Path | None:
        """Find the config file in the start dir or its parents."""
        current = (search_from or Path.cwd()).resolve()

        search_paths = [current, *current.parents]

        for path in search_paths:
            config_path = path / CONFIG_FILENAME
            if config_path.is_file():
                return config_path

        return None

    def _load_module_from_path(self, path: Path) -> ModuleType:
        """Load a Python module from a file path."""
        spec = importlib.util.spec_from_file_location("viewstream_user_config", path)
        if spec is None or spec.loader is None:
            raise RuntimeError(f"Could not load config from {path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules["viewstream_user_config"] = module
        spec.loader.exec_module(module)
        return module

    def get(self, key: str, default: Any = None) -> Any:
        """Get config value with optional default."""
        return getattr(self, key, default)

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.SUBSCRIBER_ERROR_POLICY not in defaults.SUBSCRIBER_ERROR_POLICIES:
            errors.append(
                f"SUBSCRIBER_ERROR_POLICY must be one of "
                f"{defaults.SUBSCRIBER_ERROR_POLICIES}, got {self.SUBSCRIBER_ERROR_POLICY!r}"
            )

        if not is_valid_warning_threshold(self.SLOW_REDUCTION_WARNING_MS):
            errors.append("SLOW_REDUCTION_WARNING_MS must be a non-negative number")

        return errors

    def __repr__(self) -> str:
        return f"<Config source={self.source}>"


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reload_config() -> Config:
    """Reload configuration from disk."""
    global _config
    _config = Config()
    return _config
