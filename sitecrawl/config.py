"""Project configuration management."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from sitecrawl import paths

logger = logging.getLogger(__name__)


class ProjectConfig:
    """Access to project configuration values.

    Values come from an optional JSON file and act as defaults for the CLI;
    explicit command-line flags always win.
    """

    def __init__(self, config_path: Path | None = None) -> None:
        self._config_path = config_path
        self._data: dict[str, Any] = {}
        self._loaded = False

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return

        config_path = self._config_path or paths.get_config_file()
        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as exc:
                # If config fails to load, we treat it as empty
                logger.warning("Ignoring unreadable config file %s: %s", config_path, exc)
                data = {}
            self._data = data if isinstance(data, dict) else {}

        self._loaded = True

    @property
    def user_agent(self) -> Optional[str]:
        """Get the configured robots.txt user agent."""
        self._ensure_loaded()
        return self._data.get("user_agent")

    @property
    def state_dir(self) -> Path:
        """Get the crawl state directory, defaulting to the cache location."""
        self._ensure_loaded()
        value = self._data.get("state_dir")
        return Path(value) if value else paths.get_state_dir()

    @property
    def crawl_options(self) -> dict[str, Any]:
        """Get default crawl options (camelCase or snake_case keys)."""
        self._ensure_loaded()
        options = self._data.get("crawl")
        return dict(options) if isinstance(options, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get a raw configuration value."""
        self._ensure_loaded()
        return self._data.get(key, default)


@lru_cache(maxsize=1)
def get_config() -> ProjectConfig:
    """Get the singleton configuration instance."""
    return ProjectConfig()
