"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .catalog import RuleCatalog
from .errors import MalformedDataError, PersistenceError
from .models import DailySummary
from .statistics import analyze_switches, label_breakdown, project_breakdown, top_apps
from .storage import read_summary


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, data_dir: Path, catalog: Optional[RuleCatalog] = None) -> None:
        self.data_dir = Path(data_dir)
        self.catalog = catalog or RuleCatalog(self.data_dir)

    def load(self, day: str) -> Optional[DailySummary]:
        try:
            return read_summary(self.data_dir, day)
        except MalformedDataError:
            print(f"The data file for {day} is damaged and cannot be read.")
        except PersistenceError as exc:
            print(f"Could not read data for {day}: {exc}")
        return None

    def print_daily_summary(self, day: str) -> None:
        summary = self.load(day)
        if summary is None:
            return
        if not summary.segments:
            print("No activity recorded for the selected day.")
            return

        print(f"Summary for {summary.date}")
        print("-" * 40)
        print(f"Active time: {format_duration(summary.total_active_time)}")
        print(f"Idle time:   {format_duration(summary.total_idle_time)}")
        print(f"Focus time:  {format_duration(summary.focus_time())}")
        print(f"Switches:    {summary.context_switch_count}")
        print()

        apps = top_apps(summary, limit=5)
        if apps:
            print("Top apps:")
            for stats in apps:
                print(f"  {stats.app_name:<30} {format_duration(stats.total_duration)}")

        labels = label_breakdown(summary)
        if labels:
            print()
            print("By activity:")
            for label_id, seconds in labels.items():
                label = self.catalog.get_label(label_id)
                name = label.name if label else label_id
                print(f"  {name:<30} {format_duration(seconds)}")

        projects = project_breakdown(summary)
        if any(key != "unassigned" for key in projects):
            print()
            print("By project:")
            for project_id, seconds in projects.items():
                project = self.catalog.get_project(project_id)
                name = project.name if project else project_id
                print(f"  {name:<30} {format_duration(seconds)}")

        analysis = analyze_switches(summary)
        if analysis.top_interrupters:
            print()
            print(f"Fragmentation index: {analysis.fragmentation_index:.0f}")
            print("Top interrupters:")
            for interrupter in analysis.top_interrupters:
                print(f"  {interrupter.app_name:<30} {interrupter.count}x")

        if summary.bookmarks:
            print()
            print("Bookmarks:")
            for bookmark in summary.bookmarks:
                print(f"  {bookmark.time.strftime('%H:%M')}  {bookmark.text}")


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
