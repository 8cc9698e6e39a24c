"""Renderers for CSV, JSON and timesheet exports."""

from __future__ import annotations

import json
from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Optional

from .models import DailySummary

CSV_HEADER = (
    "ID",
    "Start Time",
    "End Time",
    "Duration (s)",
    "Bundle ID",
    "App Name",
    "Window Title",
    "Label",
    "Project",
    "Is Meeting",
    "Engagement",
)

TIMESHEET_HEADER = ("Category", "Minutes", "Hours")

UNASSIGNED = "unassigned"


class TimesheetGrouping(str, Enum):
    LABEL = "label"
    PROJECT = "project"
    APP = "app"


def _quoted(value: Optional[str]) -> str:
    return '"' + (value or "").replace('"', '""') + '"'


def _plain(value: str) -> str:
    if any(char in value for char in ',"\n'):
        return _quoted(value)
    return value


def _timestamp(value: datetime) -> str:
    return value.astimezone().isoformat(timespec="seconds")


def render_segments_csv(summary: DailySummary) -> str:
    lines = [",".join(CSV_HEADER)]
    for segment in summary.segments:
        lines.append(
            ",".join(
                (
                    segment.id,
                    _timestamp(segment.start_time),
                    _timestamp(segment.end_time),
                    str(int(segment.duration_seconds)),
                    _plain(segment.bundle_id),
                    _quoted(segment.app_name),
                    _quoted(segment.window_title),
                    _quoted(segment.label_id),
                    _quoted(segment.project_id),
                    "true" if segment.is_meeting else "false",
                    str(segment.engagement_score or 0),
                )
            )
        )
    return "\n".join(lines) + "\n"


def render_summary_json(summary: DailySummary) -> str:
    return json.dumps(summary.to_dict(), indent=2, ensure_ascii=False) + "\n"


def build_timesheet(
    summary: DailySummary, group_by: TimesheetGrouping = TimesheetGrouping.LABEL
) -> list[tuple[str, float]]:
    """Non-idle seconds per category, longest first."""
    totals: defaultdict[str, float] = defaultdict(float)
    for segment in summary.segments:
        if segment.is_idle:
            continue
        if group_by is TimesheetGrouping.PROJECT:
            key = segment.project_id or UNASSIGNED
        elif group_by is TimesheetGrouping.APP:
            key = segment.app_name
        else:
            key = segment.label_id or UNASSIGNED
        totals[key] += segment.duration_seconds
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def render_timesheet_csv(
    summary: DailySummary, group_by: TimesheetGrouping = TimesheetGrouping.LABEL
) -> str:
    lines = [",".join(TIMESHEET_HEADER)]
    for key, seconds in build_timesheet(summary, group_by):
        lines.append(f"{_quoted(key)},{int(seconds // 60)},{seconds / 3600:.2f}")
    return "\n".join(lines) + "\n"
