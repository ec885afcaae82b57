from __future__ import annotations

import os
from pathlib import Path

APP_ENV_HOME = "ROSTER_HOME"
APP_ENV_DB = "ROSTER_DB"


def project_root() -> Path:
    """
    Repository/project root directory.
    Contains roster/, api/, cli/, tests/.
    """
    return Path(__file__).parent.parent.resolve()


def app_home() -> Path:
    """
    User-writable home for Meeting Roster.
    Override with ROSTER_HOME.
    """
    if os.environ.get(APP_ENV_HOME):
        return Path(os.environ[APP_ENV_HOME]).expanduser().resolve()
    return (Path.home() / ".meeting_roster").resolve()


def config_dir() -> Path:
    d = app_home() / "config"
    d.mkdir(parents=True, exist_ok=True)
    return d


def data_dir() -> Path:
    d = app_home() / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


def db_path() -> Path:
    """
    Canonical DB path for meeting roster.

    Resolution order:
    1. ROSTER_DB env var (explicit override)
    2. ~/.meeting_roster/data/roster.db (default)
    """
    if os.environ.get(APP_ENV_DB):
        return Path(os.environ[APP_ENV_DB]).expanduser().resolve()
    return data_dir() / "roster.db"
