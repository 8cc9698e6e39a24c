"""FastAPI application that exposes a local API for the activity tracker."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from .clock import day_key, parse_day_key
from .config import TrackerSettings
from .exporting import TimesheetGrouping
from .models import BOOKMARK_PRESETS, Goal, GoalFilter, Project, ProjectRule, RuleType, to_json_value
from .paths import get_data_dir
from .statistics import (
    HeatmapType,
    analyze_switches,
    build_heatmap,
    label_breakdown,
    project_breakdown,
    recent_summaries,
    top_apps,
)
from .tracker import ActivityTracker

logger = logging.getLogger(__name__)

JOIN_TIMEOUT = 10.0


class TrackerRunner:
    """Manage the tracker loop in a background thread."""

    def __init__(self, tracker: ActivityTracker) -> None:
        self._tracker = tracker
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._tracker.run_until_stopped,
                args=(stop_event,),
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("Tracker background thread started.")

    def stop(self) -> None:
        """Stop the loop thread, then make sure the open segment is closed."""
        thread: Optional[threading.Thread] = None
        with self._lock:
            if self._thread and self._thread.is_alive() and self._stop_event:
                self._stop_event.set()
                thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=JOIN_TIMEOUT)
            if thread.is_alive():
                logger.warning("Tracker thread did not exit within %.0fs.", JOIN_TIMEOUT)
            else:
                logger.info("Tracker background thread stopped.")
        self._tracker.stop_tracking()

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())


class BookmarkPayload(BaseModel):
    text: str
    color_tag: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class FocusStartPayload(BaseModel):
    project_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class GoalPayload(BaseModel):
    name: str
    target_minutes: int = Field(gt=0)
    is_upper_limit: bool = False
    filter_type: GoalFilter
    filter_value: str
    is_enabled: bool = True

    model_config = ConfigDict(extra="forbid")


class ProjectRulePayload(BaseModel):
    type: RuleType
    pattern: str

    model_config = ConfigDict(extra="forbid")


class ProjectPayload(BaseModel):
    name: str
    color: Optional[str] = None
    rules: list[ProjectRulePayload] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class SettingsUpdate(BaseModel):
    sampling_interval: Optional[float] = None
    idle_threshold: Optional[float] = Field(default=None, gt=0)
    enable_window_title: Optional[bool] = None
    data_retention_days: Optional[int] = Field(default=None, ge=1)
    enable_project_detection: Optional[bool] = None
    enable_activity_labels: Optional[bool] = None
    enable_meeting_detection: Optional[bool] = None
    enable_engagement_score: Optional[bool] = None
    enable_input_stats: Optional[bool] = None
    enable_goals: Optional[bool] = None
    enable_focus_sessions: Optional[bool] = None
    enable_data_redaction: Optional[bool] = None
    whitelist_mode: Optional[bool] = None
    blacklisted_bundle_ids: Optional[list[str]] = None
    whitelisted_bundle_ids: Optional[list[str]] = None
    redaction_patterns: Optional[list[str]] = None

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    data_dir: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    tracker: Optional[ActivityTracker] = None,
    autostart: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    if tracker is None:
        tracker = ActivityTracker(Path(data_dir or get_data_dir()), settings)
    runner = TrackerRunner(tracker)

    app = FastAPI(title="Activity Tracker", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.tracker = tracker
    app.state.tracker_runner = runner

    @app.on_event("startup")
    async def _startup() -> None:
        if autostart:
            runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        current: ActivityTracker = request.app.state.tracker
        current_settings = current.settings
        return {
            "tracking": current.is_tracking,
            "runner_alive": request.app.state.tracker_runner.is_running(),
            "data_dir": str(current.data_dir) if current.data_dir else None,
            "memory_only": current.store.memory_only,
            "persistence_failing": current.store.persistence_failing,
            "sampling_interval": current_settings.sampling_interval,
            "idle_threshold": current_settings.idle_threshold,
            "current_app": current.sampler.current_app,
        }

    @app.get("/api/snapshot")
    def snapshot(request: Request) -> Dict[str, Any]:
        return request.app.state.tracker.snapshot().to_dict()

    @app.get("/api/settings")
    def get_settings(request: Request) -> Dict[str, Any]:
        return request.app.state.tracker.settings.to_dict()

    @app.patch("/api/settings")
    def update_settings(payload: SettingsUpdate, request: Request) -> Dict[str, Any]:
        changes = {
            key: tuple(value) if isinstance(value, list) else value
            for key, value in payload.model_dump(exclude_unset=True).items()
            if value is not None
        }
        updated = request.app.state.tracker.update_settings(**changes)
        return updated.to_dict()

    @app.get("/api/summary")
    def summary(
        request: Request,
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        day = _parse_date(date, request.app.state.tracker.store.current_date)
        day_summary = request.app.state.tracker.store.load_summary(day)
        return {
            "date": day,
            "totals": {
                "active_seconds": day_summary.total_active_time,
                "idle_seconds": day_summary.total_idle_time,
                "context_switches": day_summary.context_switch_count,
                "average_segment_seconds": day_summary.average_segment_duration,
                "focus_seconds": day_summary.focus_time(),
            },
            "summary": day_summary.to_dict(),
        }

    @app.get("/api/statistics")
    def statistics(
        request: Request,
        date: Optional[str] = Query(default=None, description="Target date in YYYY-MM-DD format."),
        limit: int = Query(default=10, ge=1, le=100),
    ) -> Dict[str, Any]:
        day = _parse_date(date, request.app.state.tracker.store.current_date)
        day_summary = request.app.state.tracker.store.load_summary(day)
        return {
            "date": day,
            "top_apps": to_json_value(top_apps(day_summary, limit)),
            "labels": label_breakdown(day_summary),
            "projects": project_breakdown(day_summary),
            "switches": to_json_value(analyze_switches(day_summary)),
        }

    @app.get("/api/heatmap")
    def heatmap(
        request: Request,
        type: str = Query(default=HeatmapType.ACTIVE.value, description="active, idle, focus or all."),
        days: int = Query(default=7, ge=1, le=90),
    ) -> Dict[str, Any]:
        try:
            kind = HeatmapType(type)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Unknown heatmap type") from exc
        current: ActivityTracker = request.app.state.tracker
        today = parse_day_key(current.store.current_date)
        result = build_heatmap(recent_summaries(current.store.load_summary, today, days), kind)
        return {"days": days, **to_json_value(result)}

    @app.post("/api/tracking/start")
    def start_tracking(request: Request) -> Dict[str, Any]:
        request.app.state.tracker_runner.start()
        return {"tracking": True}

    @app.post("/api/tracking/stop")
    def stop_tracking(request: Request) -> Dict[str, Any]:
        request.app.state.tracker_runner.stop()
        return {"tracking": False}

    @app.get("/api/bookmarks/presets")
    def bookmark_presets() -> Dict[str, Any]:
        return {
            "presets": [{"text": text, "color_tag": color} for text, color in BOOKMARK_PRESETS]
        }

    @app.post("/api/bookmarks")
    def add_bookmark(payload: BookmarkPayload, request: Request) -> Dict[str, Any]:
        try:
            bookmark = request.app.state.tracker.add_bookmark(payload.text, payload.color_tag)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"bookmark": to_json_value(bookmark)}

    @app.delete("/api/bookmarks/{bookmark_id}")
    def remove_bookmark(bookmark_id: str, request: Request) -> Dict[str, Any]:
        if not request.app.state.tracker.remove_bookmark(bookmark_id):
            raise HTTPException(status_code=404, detail="Bookmark not found")
        return {"removed": bookmark_id}

    @app.post("/api/focus/start")
    def start_focus(request: Request, payload: Optional[FocusStartPayload] = None) -> Dict[str, Any]:
        project_id = payload.project_id if payload else None
        session = request.app.state.tracker.start_focus(project_id)
        if session is None:
            raise HTTPException(status_code=400, detail="A focus session is already running")
        return {"session": to_json_value(session)}

    @app.post("/api/focus/end")
    def end_focus(request: Request) -> Dict[str, Any]:
        session = request.app.state.tracker.end_focus()
        if session is None:
            raise HTTPException(status_code=404, detail="No focus session is running")
        return {"session": to_json_value(session)}

    @app.get("/api/goals")
    def list_goals(request: Request) -> Dict[str, Any]:
        current: ActivityTracker = request.app.state.tracker
        return {
            "goals": to_json_value(current.catalog.goals),
            "progress": dict(current.goals.goal_progress),
        }

    @app.post("/api/goals")
    def create_goal(payload: GoalPayload, request: Request) -> Dict[str, Any]:
        name = payload.name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="name is required")
        goal = Goal(
            name=name,
            target_minutes=payload.target_minutes,
            is_upper_limit=payload.is_upper_limit,
            filter_type=payload.filter_type,
            filter_value=payload.filter_value,
            is_enabled=payload.is_enabled,
        )
        request.app.state.tracker.catalog.add_goal(goal)
        return {"goal": to_json_value(goal)}

    @app.delete("/api/goals/{goal_id}")
    def remove_goal(goal_id: str, request: Request) -> Dict[str, Any]:
        if not request.app.state.tracker.catalog.remove_goal(goal_id):
            raise HTTPException(status_code=404, detail="Goal not found")
        return {"removed": goal_id}

    @app.get("/api/labels")
    def list_labels(request: Request) -> Dict[str, Any]:
        return {"labels": to_json_value(request.app.state.tracker.catalog.labels)}

    @app.get("/api/projects")
    def list_projects(request: Request) -> Dict[str, Any]:
        return {"projects": to_json_value(request.app.state.tracker.catalog.projects)}

    @app.post("/api/projects")
    def create_project(payload: ProjectPayload, request: Request) -> Dict[str, Any]:
        name = payload.name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="name is required")
        project = Project(
            name=name,
            color=payload.color,
            rules=[ProjectRule(type=rule.type, pattern=rule.pattern) for rule in payload.rules],
        )
        request.app.state.tracker.catalog.add_project(project)
        return {"project": to_json_value(project)}

    @app.delete("/api/projects/{project_id}")
    def remove_project(project_id: str, request: Request) -> Dict[str, Any]:
        if not request.app.state.tracker.catalog.remove_project(project_id):
            raise HTTPException(status_code=404, detail="Project not found")
        return {"removed": project_id}

    @app.post("/api/export/{kind}")
    def export(
        kind: str,
        request: Request,
        date: Optional[str] = Query(default=None, description="Target date in YYYY-MM-DD format."),
        group_by: str = Query(default=TimesheetGrouping.LABEL.value),
    ) -> Dict[str, Any]:
        store = request.app.state.tracker.store
        day = _parse_date(date, store.current_date)
        if kind == "csv":
            path = store.export_csv(day)
        elif kind == "json":
            path = store.export_json(day)
        elif kind == "timesheet":
            try:
                grouping = TimesheetGrouping(group_by)
            except ValueError as exc:
                raise HTTPException(status_code=400, detail="Unknown grouping") from exc
            path = store.export_timesheet(grouping, day)
        else:
            raise HTTPException(status_code=404, detail="Unknown export kind")
        if path is None:
            raise HTTPException(status_code=500, detail="Export could not be written.")
        return {"path": str(path)}

    @app.delete("/api/today")
    def clear_today(request: Request) -> Dict[str, Any]:
        current: ActivityTracker = request.app.state.tracker
        current.clear_today()
        return {"cleared": current.store.current_date}

    return app


def _parse_date(value: Optional[str], today: str) -> str:
    if not value:
        return today
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
    return day_key(parsed)
