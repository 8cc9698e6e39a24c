from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest
from typer.testing import CliRunner

from activity_tracker.cli import app
from activity_tracker.models import Bookmark, DailySummary, Segment
from activity_tracker.paths import summary_path
from activity_tracker.storage import write_summary

DAY = "2024-05-06"
START = datetime(2024, 5, 6, 9, 0)

runner = CliRunner()


@pytest.fixture
def populated(tmp_path: Path) -> Path:
    segments = [
        Segment(
            start_time=START,
            end_time=START + timedelta(minutes=45),
            bundle_id="com.microsoft.VSCode",
            app_name="Code",
            label_id="dev",
        ),
        Segment(
            start_time=START + timedelta(minutes=45),
            end_time=START + timedelta(minutes=50),
            bundle_id="com.slack",
            app_name="Slack",
        ),
        Segment(
            start_time=START + timedelta(minutes=50),
            end_time=START + timedelta(minutes=80),
            bundle_id="com.microsoft.VSCode",
            app_name="Code",
            label_id="dev",
        ),
    ]
    summary = DailySummary(
        date=DAY,
        segments=segments,
        bookmarks=[Bookmark(time=START, text="Start work", color_tag="blue")],
    )
    summary.recalculate()
    write_summary(tmp_path, summary)
    return tmp_path


def invoke(data_dir: Path, *args: str):
    return runner.invoke(app, ["--data-dir", str(data_dir), *args])


def test_summary_prints_totals(populated: Path) -> None:
    result = invoke(populated, "summary", "--date", DAY)

    assert result.exit_code == 0, result.output
    assert f"Summary for {DAY}" in result.output
    assert "01:15:00" in result.output
    assert "Development" in result.output
    assert "Slack" in result.output
    assert "Start work" in result.output


def test_summary_without_data(tmp_path: Path) -> None:
    result = invoke(tmp_path, "summary", "--date", "2024-01-01")

    assert result.exit_code == 0
    assert "No activity recorded for the selected day." in result.output


def test_summary_rejects_bad_date(tmp_path: Path) -> None:
    result = invoke(tmp_path, "summary", "--date", "yesterday")

    assert result.exit_code != 0


def test_export_csv_prints_path(populated: Path) -> None:
    result = invoke(populated, "export", "csv", "--date", DAY)

    assert result.exit_code == 0, result.output
    path = Path(result.output.strip().splitlines()[-1])
    assert path.exists()
    assert len(path.read_text(encoding="utf-8").splitlines()) == 4


def test_export_timesheet_by_label(populated: Path) -> None:
    result = invoke(populated, "export", "timesheet", "--date", DAY, "--group-by", "label")

    assert result.exit_code == 0, result.output
    lines = Path(result.output.strip().splitlines()[-1]).read_text(encoding="utf-8").splitlines()
    assert lines[0] == "Category,Minutes,Hours"
    assert lines[1] == '"dev",75,1.25'
    assert lines[2] == '"unassigned",5,0.08'


def test_cleanup_removes_old_files(populated: Path) -> None:
    old_day = "2020-01-01"
    write_summary(populated, DailySummary(date=old_day))

    result = invoke(populated, "cleanup", "--days", "30")

    assert result.exit_code == 0
    assert "Removed" in result.output
    assert not summary_path(populated, old_day).exists()
