"""Time sources for the tracker."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Local wall-clock time."""

    def now(self) -> datetime:
        return datetime.now()


def day_key(value: datetime | date) -> str:
    return value.strftime("%Y-%m-%d")


def parse_day_key(value: str) -> date:
    return datetime.strptime(value, "%Y-%m-%d").date()


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime) -> datetime:
    """Midnight that closes the day ``value`` belongs to."""
    return start_of_day(value) + timedelta(days=1)


def floor_to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)
