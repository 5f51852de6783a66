"""Filesystem locations used by sitecrawl."""

from __future__ import annotations

import os
from pathlib import Path

CACHE_DIR_ENV = "SITECRAWL_CACHE_DIR"
CONFIG_FILE_ENV = "SITECRAWL_CONFIG"

DEFAULT_CACHE_DIR = Path(".cache") / "sitecrawl"
DEFAULT_CONFIG_FILE = Path("sitecrawl.json")


def get_cache_root() -> Path:
    """Return the cache root, honoring ``SITECRAWL_CACHE_DIR``."""
    override = os.environ.get(CACHE_DIR_ENV)
    if override:
        return Path(override)
    return DEFAULT_CACHE_DIR


def get_state_dir() -> Path:
    """Return the directory crawl state snapshots are written to."""
    return get_cache_root() / "state"


def get_config_file() -> Path:
    """Return the project configuration file path."""
    override = os.environ.get(CONFIG_FILE_ENV)
    if override:
        return Path(override)
    return DEFAULT_CONFIG_FILE
