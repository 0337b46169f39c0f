"""Per-user directories for settings and logs.

`HARMONY_PLAYER_HOME` relocates everything under one root, which keeps
portable installs and test runs away from the real user profile.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from platformdirs import AppDirs

DEFAULT_APP_NAME = "harmony-player"
HOME_ENV_VAR = "HARMONY_PLAYER_HOME"
SETTINGS_FILE_NAME = "settings.json"


@lru_cache(maxsize=4)
def get_app_dirs(app_name: str = DEFAULT_APP_NAME) -> AppDirs:
    return AppDirs(app_name, appauthor=False)


def _home_override() -> Path | None:
    value = os.environ.get(HOME_ENV_VAR, "").strip()
    return Path(value).expanduser() if value else None


def _ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def data_dir(app_name: str = DEFAULT_APP_NAME) -> Path:
    home = _home_override()
    if home is not None:
        return _ensure_dir(home / "data")
    return _ensure_dir(Path(get_app_dirs(app_name).user_data_dir))


def config_dir(app_name: str = DEFAULT_APP_NAME) -> Path:
    home = _home_override()
    if home is not None:
        return _ensure_dir(home / "config")
    return _ensure_dir(Path(get_app_dirs(app_name).user_config_dir))


def log_dir(app_name: str = DEFAULT_APP_NAME) -> Path:
    """Rotating logs live under the data directory."""
    return _ensure_dir(data_dir(app_name) / "logs")


def state_path(app_name: str = DEFAULT_APP_NAME) -> Path:
    return config_dir(app_name) / SETTINGS_FILE_NAME
