"""Platform-specific per-user paths.

Keeps user-created data (daily log, health export, settings, logs) out of
the install folder.

We intentionally avoid extra dependencies (e.g. platformdirs) and rely on
standard environment variables. ``NEBRABREATH_HOME`` overrides everything,
which is also how the test-suite isolates itself from the real profile.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

APP_NAME = "NebraBreath"
HOME_ENV = "NEBRABREATH_HOME"


def is_windows() -> bool:
    return os.name == "nt"


def get_user_data_dir(app_name: str = APP_NAME) -> Path:
    """Return a persistent per-user data directory.

    NEBRABREATH_HOME if set, then:
    Windows: %APPDATA%\\NebraBreath
    Others:  $XDG_DATA_HOME/nebrabreath or ~/.nebrabreath
    """
    override = os.getenv(HOME_ENV)
    if override:
        return Path(override)

    if is_windows():
        base = os.getenv("APPDATA")
        if base:
            return Path(base) / app_name
        return Path.home() / "AppData" / "Roaming" / app_name

    xdg = os.getenv("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / app_name.lower()
    return Path.home() / f".{app_name.lower()}"


def get_log_dir(app_name: str = APP_NAME) -> Path:
    return get_user_data_dir(app_name) / "logs"


def get_daily_log_path(app_name: str = APP_NAME) -> Path:
    return get_user_data_dir(app_name) / "daily_log.json"


def get_health_export_path(app_name: str = APP_NAME) -> Path:
    return get_user_data_dir(app_name) / "health_sessions.jsonl"


def get_settings_path(app_name: str = APP_NAME) -> Path:
    return get_user_data_dir(app_name) / "settings.json"


def ensure_dir(path: Path) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
