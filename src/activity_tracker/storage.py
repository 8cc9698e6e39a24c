"""JSON file layer for daily summaries, settings and rule files."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, TypeVar

from .clock import parse_day_key
from .config import TrackerSettings
from .errors import MalformedDataError, PersistenceError
from .models import (
    ActivityLabel,
    DailySummary,
    Goal,
    Project,
    default_labels,
    to_json_value,
)
from .paths import (
    corrupt_summary_path,
    goals_path,
    labels_path,
    projects_path,
    settings_path,
    summary_path,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SUMMARY_FILE_PATTERN = re.compile(r"^segments_(\d{4}-\d{2}-\d{2})\.json$")


def ensure_data_dir(data_dir: Path) -> bool:
    """Create the data directory and check that it accepts writes."""
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=data_dir, prefix=".probe-", delete=True):
            pass
    except OSError:
        logger.warning("Data directory %s is not writable; running in memory only.", data_dir)
        return False
    return True


def write_json(path: Path, payload: Any) -> None:
    """Atomically replace ``path`` with pretty-printed JSON."""
    write_text(path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


def write_text(path: Path, text: str) -> None:
    """Write through a temporary file in the same directory, then replace."""
    tmp_name: Optional[str] = None
    try:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as exc:
        raise PersistenceError(path, exc) from exc
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass


def read_json(path: Path) -> Optional[Any]:
    """Return decoded JSON, or ``None`` when the file does not exist."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise PersistenceError(path, exc) from exc
    try:
        return json.loads(text)
    except ValueError as exc:
        raise MalformedDataError(path, str(exc)) from exc


def read_summary(data_dir: Path, day: str) -> DailySummary:
    """Load one day. A missing file yields an empty summary."""
    path = summary_path(data_dir, day)
    payload = read_json(path)
    if payload is None:
        return DailySummary(date=day)
    try:
        summary = DailySummary.from_dict(payload)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise MalformedDataError(path, f"invalid summary: {exc!r}") from exc
    if summary.date != day:
        raise MalformedDataError(path, f"file holds {summary.date}, expected {day}")
    return summary


def write_summary(data_dir: Path, summary: DailySummary) -> Path:
    path = summary_path(data_dir, summary.date)
    write_json(path, summary.to_dict())
    return path


def preserve_corrupt_summary(data_dir: Path, day: str) -> Optional[Path]:
    """Move an undecodable day file aside so it is never overwritten."""
    source = summary_path(data_dir, day)
    if not source.exists():
        return None
    target = corrupt_summary_path(data_dir, day)
    try:
        os.replace(source, target)
    except OSError as exc:
        raise PersistenceError(source, exc) from exc
    logger.warning("Kept malformed data file as %s", target.name)
    return target


def list_summary_days(data_dir: Path) -> list[str]:
    if not data_dir.is_dir():
        return []
    days = []
    for entry in data_dir.iterdir():
        match = _SUMMARY_FILE_PATTERN.match(entry.name)
        if match:
            days.append(match.group(1))
    return sorted(days)


def cleanup_expired(data_dir: Path, retention_days: int, today: date) -> list[Path]:
    """Delete day files whose embedded date is older than the retention window."""
    cutoff = today - timedelta(days=retention_days)
    removed: list[Path] = []
    for day in list_summary_days(data_dir):
        try:
            file_day = parse_day_key(day)
        except ValueError:
            continue
        if file_day >= cutoff:
            continue
        path = summary_path(data_dir, day)
        try:
            path.unlink()
        except OSError:
            logger.exception("Failed to remove expired data file %s", path)
            continue
        logger.info("Cleaned up old data: %s", path.name)
        removed.append(path)
    return removed


def load_settings(data_dir: Path) -> TrackerSettings:
    path = settings_path(data_dir)
    try:
        payload = read_json(path)
    except (MalformedDataError, PersistenceError):
        logger.warning("Failed to load settings from %s; using defaults.", path, exc_info=True)
        return TrackerSettings()
    if not isinstance(payload, dict):
        return TrackerSettings()
    try:
        return TrackerSettings.from_dict(payload)
    except (TypeError, ValueError):
        logger.warning("Invalid settings in %s; using defaults.", path, exc_info=True)
        return TrackerSettings()


def save_settings(data_dir: Path, settings: TrackerSettings) -> None:
    write_json(settings_path(data_dir), settings.to_dict())


def _load_records(
    path: Path,
    factory: Callable[[dict[str, Any]], T],
    default: Callable[[], list[T]],
) -> list[T]:
    try:
        payload = read_json(path)
    except (MalformedDataError, PersistenceError):
        logger.warning("Failed to load %s; using defaults.", path, exc_info=True)
        return default()
    if payload is None:
        return default()
    try:
        return [factory(item) for item in payload]
    except (KeyError, TypeError, ValueError):
        logger.warning("Invalid records in %s; using defaults.", path, exc_info=True)
        return default()


def _save_records(path: Path, records: Iterable[Any]) -> None:
    write_json(path, [to_json_value(record) for record in records])


def load_labels(data_dir: Path) -> list[ActivityLabel]:
    return _load_records(
        labels_path(data_dir),
        ActivityLabel.from_dict,
        default_labels,
    )


def save_labels(data_dir: Path, labels: Iterable[ActivityLabel]) -> None:
    _save_records(labels_path(data_dir), labels)


def load_projects(data_dir: Path) -> list[Project]:
    return _load_records(projects_path(data_dir), Project.from_dict, list)


def save_projects(data_dir: Path, projects: Iterable[Project]) -> None:
    _save_records(projects_path(data_dir), projects)


def load_goals(data_dir: Path) -> list[Goal]:
    return _load_records(goals_path(data_dir), Goal.from_dict, list)


def save_goals(data_dir: Path, goals: Iterable[Goal]) -> None:
    _save_records(goals_path(data_dir), goals)
