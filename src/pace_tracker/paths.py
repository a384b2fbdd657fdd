"""Helpers for locating application directories."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs


APP_NAME = "pace"
APP_AUTHOR = "pace"
CONFIG_FILE_NAME = "pace.toml"
CONFIG_ENV_VAR = "PACE_CONFIG"


def _dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True)


def get_data_dir() -> Path:
    """Return the base directory for persistent data."""
    path = Path(_dirs().user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_path() -> Path:
    """Return the config file location, honouring ``$PACE_CONFIG``."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path(_dirs().user_config_path) / CONFIG_FILE_NAME


def get_db_path() -> Path:
    return get_data_dir() / "activities.sqlite3"


def get_activity_log_path() -> Path:
    return get_data_dir() / "activities.json"
