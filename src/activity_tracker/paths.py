"""Helpers for locating application directories."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs


APP_NAME = "ActivityTracker"
APP_AUTHOR = "ActivityTracker"
DATA_DIR_ENV = "ACTIVITY_TRACKER_DATA_DIR"


def get_data_dir() -> Path:
    """Return the base directory for persistent data.

    The directory is not created here; the store decides whether it can run
    with persistence or has to fall back to memory-only mode.
    """
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True)
    return Path(dirs.user_data_path)


def summary_path(data_dir: Path, day: str) -> Path:
    return data_dir / f"segments_{day}.json"


def corrupt_summary_path(data_dir: Path, day: str) -> Path:
    return data_dir / f"segments_{day}.corrupt.json"


def settings_path(data_dir: Path) -> Path:
    return data_dir / "settings.json"


def labels_path(data_dir: Path) -> Path:
    return data_dir / "labels.json"


def projects_path(data_dir: Path) -> Path:
    return data_dir / "projects.json"


def goals_path(data_dir: Path) -> Path:
    return data_dir / "goals.json"


def export_path(data_dir: Path, day: str, extension: str) -> Path:
    return data_dir / f"export_{day}.{extension}"


def timesheet_path(data_dir: Path, day: str) -> Path:
    return data_dir / f"timesheet_{day}.csv"


def get_log_path(data_dir: Path | None = None) -> Path:
    return (data_dir or get_data_dir()) / "tracker.log"
