"""Read-only projections over daily summaries."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Iterable, Optional

from .clock import day_key
from .exporting import UNASSIGNED
from .models import DailySummary, Segment

TOP_APPS_LIMIT = 10
TOP_INTERRUPTERS_LIMIT = 5
FOCUS_ENGAGEMENT = 70


@dataclass(slots=True)
class AppStatistics:
    bundle_id: str
    app_name: str
    total_duration: float
    label_id: Optional[str] = None

    def percentage(self, total: float) -> float:
        return (self.total_duration / total) * 100 if total > 0 else 0.0


def top_apps(summary: DailySummary, limit: int = TOP_APPS_LIMIT) -> list[AppStatistics]:
    """Non-idle time per bundle id, longest first."""
    apps: dict[str, AppStatistics] = {}
    for segment in summary.segments:
        if segment.is_idle:
            continue
        stats = apps.get(segment.bundle_id)
        if stats is None:
            stats = apps[segment.bundle_id] = AppStatistics(
                bundle_id=segment.bundle_id,
                app_name=segment.app_name,
                total_duration=0.0,
                label_id=segment.label_id,
            )
        stats.total_duration += segment.duration_seconds
    ranked = sorted(apps.values(), key=lambda item: item.total_duration, reverse=True)
    return ranked[:limit]


def _breakdown(
    summary: DailySummary, key: Callable[[Segment], Optional[str]]
) -> dict[str, float]:
    totals: dict[str, float] = {}
    for segment in summary.segments:
        if segment.is_idle:
            continue
        name = key(segment) or UNASSIGNED
        totals[name] = totals.get(name, 0.0) + segment.duration_seconds
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def label_breakdown(summary: DailySummary) -> dict[str, float]:
    return _breakdown(summary, lambda segment: segment.label_id)


def project_breakdown(summary: DailySummary) -> dict[str, float]:
    return _breakdown(summary, lambda segment: segment.project_id)


@dataclass(slots=True)
class SwitchFlow:
    from_bundle_id: str
    to_bundle_id: str
    count: int = 0
    total_duration: float = 0.0


@dataclass(slots=True)
class Interrupter:
    bundle_id: str
    app_name: str
    count: int


@dataclass(slots=True)
class SwitchAnalysis:
    edges: list[SwitchFlow] = field(default_factory=list)
    context_switch_count: int = 0
    average_segment_duration: float = 0.0
    top_interrupters: list[Interrupter] = field(default_factory=list)
    fragmentation_index: float = 0.0
    switches_per_hour: list[int] = field(default_factory=lambda: [0] * 24)


def analyze_switches(summary: DailySummary) -> SwitchAnalysis:
    """Walk adjacent segment pairs and summarize how often the user switched.

    The fragmentation index is switches per active hour times two, capped at
    100, with at least 0.1 hours assumed.
    """
    segments = summary.segments
    analysis = SwitchAnalysis()
    if len(segments) < 2:
        return analysis

    flows: dict[tuple[str, str], SwitchFlow] = {}
    incoming: Counter[str] = Counter()
    names: dict[str, str] = {}
    for previous, current in zip(segments, segments[1:]):
        if previous.bundle_id == current.bundle_id:
            continue
        analysis.context_switch_count += 1
        key = (previous.bundle_id, current.bundle_id)
        flow = flows.setdefault(key, SwitchFlow(*key))
        flow.count += 1
        flow.total_duration += current.duration_seconds
        incoming[current.bundle_id] += 1
        names.setdefault(current.bundle_id, current.app_name)
        analysis.switches_per_hour[current.start_time.hour] += 1

    analysis.edges = sorted(flows.values(), key=lambda flow: flow.count, reverse=True)
    analysis.average_segment_duration = sum(seg.duration_seconds for seg in segments) / len(
        segments
    )
    analysis.top_interrupters = [
        Interrupter(bundle_id, names[bundle_id], count)
        for bundle_id, count in incoming.most_common(TOP_INTERRUPTERS_LIMIT)
    ]
    active_seconds = sum(seg.duration_seconds for seg in segments if not seg.is_idle)
    hours = max(active_seconds / 3600, 0.1)
    analysis.fragmentation_index = min(100.0, analysis.context_switch_count / hours * 2)
    return analysis


class HeatmapType(str, Enum):
    ACTIVE = "active"
    IDLE = "idle"
    FOCUS = "focus"
    ALL = "all"

    def counts(self, segment: Segment) -> bool:
        if self is HeatmapType.ACTIVE:
            return not segment.is_idle
        if self is HeatmapType.IDLE:
            return segment.is_idle
        if self is HeatmapType.FOCUS:
            return (segment.engagement_score or 0) >= FOCUS_ENGAGEMENT
        return True


@dataclass(slots=True)
class HeatmapCell:
    day_of_week: int
    hour: int
    value: float
    minutes: int


@dataclass(slots=True)
class Heatmap:
    type: HeatmapType
    cells: list[HeatmapCell]
    max_minutes: int

    def value(self, day_of_week: int, hour: int) -> float:
        return self.cells[day_of_week * 24 + hour].value


def day_of_week(value: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (value.weekday() + 1) % 7


def build_heatmap(
    summaries: Iterable[DailySummary], heatmap_type: HeatmapType | str = HeatmapType.ACTIVE
) -> Heatmap:
    """Bucket segment minutes by weekday and hour of their start."""
    kind = HeatmapType(heatmap_type)
    minutes = [[0] * 24 for _ in range(7)]
    for summary in summaries:
        for segment in summary.segments:
            if not kind.counts(segment):
                continue
            start = segment.start_time
            minutes[day_of_week(start.date())][start.hour] += int(segment.duration_seconds / 60)

    max_minutes = max(max(row) for row in minutes)
    scale = max(max_minutes, 1)
    cells = [
        HeatmapCell(day, hour, minutes[day][hour] / scale, minutes[day][hour])
        for day in range(7)
        for hour in range(24)
    ]
    return Heatmap(type=kind, cells=cells, max_minutes=max_minutes)


def recent_summaries(
    load: Callable[[str], DailySummary], today: date, days: int = 7
) -> list[DailySummary]:
    """Load the summaries for ``today`` and the ``days - 1`` days before it."""
    return [load(day_key(today - timedelta(days=offset))) for offset in range(max(days, 0))]
