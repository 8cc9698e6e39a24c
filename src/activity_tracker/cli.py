"""Command-line interface for the activity tracker."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

import typer

from .clock import day_key
from .exporting import TimesheetGrouping
from .paths import DATA_DIR_ENV, get_data_dir, get_log_path

app = typer.Typer(help="Local-first activity tracker.")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class ExportKind(str, Enum):
    CSV = "csv"
    JSON = "json"
    TIMESHEET = "timesheet"


@app.callback(no_args_is_help=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs."),
    data_dir: Optional[Path] = typer.Option(
        None,
        "--data-dir",
        envvar=DATA_DIR_ENV,
        path_type=Path,
        help="Directory holding day files, settings and exports.",
    ),
    log_file: bool = typer.Option(
        False, "--log-file", help="Also write logs to tracker.log in the data directory."
    ),
) -> None:
    resolved = data_dir or get_data_dir()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = get_log_path(resolved)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    ctx.obj = {"data_dir": resolved}


def _data_dir(ctx: typer.Context) -> Path:
    return Path(ctx.obj["data_dir"])


def _target_day(value: Optional[str]) -> str:
    if not value:
        return day_key(datetime.now())
    try:
        return day_key(datetime.strptime(value, "%Y-%m-%d"))
    except ValueError as exc:
        raise typer.BadParameter("Use the YYYY-MM-DD format.", param_hint="--date") from exc


@app.command()
def collect(
    ctx: typer.Context,
    sample_seconds: Optional[float] = typer.Option(
        None,
        "--interval",
        min=0.5,
        max=5.0,
        help="Sampling interval in seconds.",
    ),
    idle_seconds: Optional[float] = typer.Option(
        None,
        "--idle-threshold",
        min=1.0,
        help="Seconds of inactivity before counting time as idle.",
    ),
    window_titles: Optional[bool] = typer.Option(
        None,
        "--window-titles/--no-window-titles",
        help="Record window titles.",
    ),
    input_stats: Optional[bool] = typer.Option(
        None,
        "--input-stats/--no-input-stats",
        help="Count keyboard and mouse activity per minute.",
    ),
) -> None:
    """Run the tracker until interrupted."""
    from .storage import load_settings
    from .tracker import ActivityTracker

    data_dir = _data_dir(ctx)
    overrides = {
        "sampling_interval": sample_seconds,
        "idle_threshold": idle_seconds,
        "enable_window_title": window_titles,
        "enable_input_stats": input_stats,
    }
    settings = load_settings(data_dir).with_changes(
        **{key: value for key, value in overrides.items() if value is not None}
    )
    tracker = ActivityTracker(data_dir, settings)
    tracker.run_forever()


@app.command()
def summary(
    ctx: typer.Context,
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) to summarize. Defaults to today.",
    ),
) -> None:
    """Print a high-level summary for a specific day."""
    from .reporting import SummaryPrinter

    summary_printer = SummaryPrinter(data_dir=_data_dir(ctx))
    summary_printer.print_daily_summary(_target_day(date))


@app.command()
def export(
    ctx: typer.Context,
    kind: ExportKind = typer.Argument(..., help="csv, json or timesheet."),
    date: Optional[str] = typer.Option(
        None, "--date", help="Date (YYYY-MM-DD) to export. Defaults to today."
    ),
    group_by: TimesheetGrouping = typer.Option(
        TimesheetGrouping.LABEL, "--group-by", help="Timesheet grouping."
    ),
) -> None:
    """Write an export file into the data directory."""
    from .clock import SystemClock
    from .store import DailySummaryStore

    day = _target_day(date)
    store = DailySummaryStore(_data_dir(ctx), SystemClock())
    if kind is ExportKind.CSV:
        path = store.export_csv(day)
    elif kind is ExportKind.JSON:
        path = store.export_json(day)
    else:
        path = store.export_timesheet(group_by, day)
    if path is None:
        typer.echo("Export failed; see the log for details.", err=True)
        raise typer.Exit(code=1)
    typer.echo(str(path))


@app.command()
def cleanup(
    ctx: typer.Context,
    retention_days: Optional[int] = typer.Option(
        None,
        "--days",
        min=1,
        help="Keep this many days (defaults to the configured retention).",
    ),
) -> None:
    """Delete day files older than the retention window."""
    from .clock import SystemClock
    from .storage import load_settings
    from .store import DailySummaryStore

    data_dir = _data_dir(ctx)
    days = retention_days or load_settings(data_dir).data_retention_days
    removed = DailySummaryStore(data_dir, SystemClock()).cleanup_expired(days)
    typer.echo(f"Removed {len(removed)} file(s).")


@app.command()
def web(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Open the interactive API docs in your default browser.",
    ),
) -> None:
    """Start the local API with the tracker running in the background."""
    from .server_runner import run_dashboard

    run_dashboard(
        host=host,
        port=port,
        data_dir=_data_dir(ctx),
        open_browser=open_browser,
        log_level="debug" if logging.getLogger().level == logging.DEBUG else "info",
    )
