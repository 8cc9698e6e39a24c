from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from activity_tracker.models import DailySummary, Segment
from activity_tracker.statistics import (
    HeatmapType,
    analyze_switches,
    build_heatmap,
    day_of_week,
    label_breakdown,
    project_breakdown,
    recent_summaries,
    top_apps,
)

# 2024-05-05 is a Sunday.
SUNDAY = datetime(2024, 5, 5, 10, 0)


def build_summary(start: datetime, *parts) -> DailySummary:
    segments = []
    cursor = start
    for bundle_id, minutes, extra in parts:
        end = cursor + timedelta(minutes=minutes)
        segments.append(
            Segment(start_time=cursor, end_time=end, bundle_id=bundle_id, app_name=bundle_id.upper(), **extra)
        )
        cursor = end
    summary = DailySummary(date=start.strftime("%Y-%m-%d"), segments=segments)
    summary.recalculate()
    return summary


@pytest.fixture
def summary() -> DailySummary:
    return build_summary(
        SUNDAY,
        ("editor", 30, {"label_id": "dev", "project_id": "p1"}),
        ("chat", 5, {}),
        ("editor", 20, {"label_id": "dev"}),
        ("idle", 15, {}),
        ("chat", 5, {"engagement_score": 90}),
        ("browser", 10, {"label_id": "learning"}),
    )


def test_top_apps_rank_non_idle_time(summary: DailySummary) -> None:
    ranked = top_apps(summary)

    assert [(app.bundle_id, app.total_duration) for app in ranked] == [
        ("editor", 3000.0),
        ("chat", 600.0),
        ("browser", 600.0),
    ]
    assert ranked[0].app_name == "EDITOR"
    assert ranked[0].label_id == "dev"
    assert top_apps(summary, limit=1)[0].bundle_id == "editor"


def test_breakdowns_group_missing_keys_as_unassigned(summary: DailySummary) -> None:
    assert label_breakdown(summary) == {"dev": 3000.0, "learning": 600.0, "unassigned": 600.0}
    assert project_breakdown(summary) == {"unassigned": 2400.0, "p1": 1800.0}


def test_switch_analysis(summary: DailySummary) -> None:
    analysis = analyze_switches(summary)

    assert analysis.context_switch_count == 5
    flows = {(flow.from_bundle_id, flow.to_bundle_id): flow for flow in analysis.edges}
    assert flows[("editor", "chat")].count == 1
    assert flows[("chat", "editor")].total_duration == 1200.0
    assert analysis.average_segment_duration == pytest.approx(85 * 60 / 6)
    assert analysis.top_interrupters[0].bundle_id == "chat"
    assert analysis.top_interrupters[0].count == 2
    assert analysis.top_interrupters[0].app_name == "CHAT"
    # 5 switches over 70 active minutes.
    assert analysis.fragmentation_index == pytest.approx(5 / (70 / 60) * 2)
    assert analysis.switches_per_hour[10] == 3
    assert analysis.switches_per_hour[11] == 2
    assert sum(analysis.switches_per_hour) == 5


def test_fragmentation_is_capped() -> None:
    parts = [("a" if index % 2 else "b", 0.1, {}) for index in range(40)]

    assert analyze_switches(build_summary(SUNDAY, *parts)).fragmentation_index == 100.0


def test_single_segment_has_no_switches() -> None:
    analysis = analyze_switches(build_summary(SUNDAY, ("a", 10, {})))

    assert analysis.context_switch_count == 0
    assert analysis.edges == []
    assert analysis.fragmentation_index == 0.0


def test_day_of_week_starts_on_sunday() -> None:
    assert day_of_week(date(2024, 5, 5)) == 0
    assert day_of_week(date(2024, 5, 6)) == 1
    assert day_of_week(date(2024, 5, 11)) == 6


def test_heatmap_buckets_by_start_hour_and_normalizes(summary: DailySummary) -> None:
    heatmap = build_heatmap([summary], HeatmapType.ACTIVE)

    assert len(heatmap.cells) == 7 * 24
    assert heatmap.max_minutes == 55
    assert heatmap.value(0, 10) == 1.0
    cell_11 = heatmap.cells[11]
    assert (cell_11.day_of_week, cell_11.hour, cell_11.minutes) == (0, 11, 15)
    assert heatmap.value(0, 11) == pytest.approx(15 / 55)
    assert heatmap.value(1, 10) == 0.0


def test_heatmap_type_filters(summary: DailySummary) -> None:
    idle = build_heatmap([summary], "idle")
    focus = build_heatmap([summary], HeatmapType.FOCUS)
    everything = build_heatmap([summary], HeatmapType.ALL)

    assert idle.cells[10].minutes == 15
    assert focus.cells[11].minutes == 5
    assert focus.max_minutes == 5
    assert everything.cells[10].minutes + everything.cells[11].minutes == 85


def test_empty_heatmap_has_zero_values() -> None:
    heatmap = build_heatmap([], HeatmapType.ACTIVE)

    assert heatmap.max_minutes == 0
    assert all(cell.value == 0.0 for cell in heatmap.cells)


def test_recent_summaries_loads_each_day() -> None:
    requested: list[str] = []

    def load(day: str) -> DailySummary:
        requested.append(day)
        return DailySummary(date=day)

    summaries = recent_summaries(load, date(2024, 5, 6), days=3)

    assert requested == ["2024-05-06", "2024-05-05", "2024-05-04"]
    assert [summary.date for summary in summaries] == requested
