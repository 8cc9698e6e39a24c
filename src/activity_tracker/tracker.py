"""Composition root: wires probes, store and analyzers into one tracker loop."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

from .catalog import RuleCatalog
from .clock import Clock, SystemClock, floor_to_minute
from .config import TrackerSettings
from .engagement import EngagementMeter
from .focus import FocusSupervisor
from .goals import GoalMonitor, Notifier
from .models import Bookmark, DailySummary, EngagementMode, FocusSession, to_json_value
from .probes import (
    ForegroundProbe,
    IdleDetector,
    IdleProbe,
    InputSource,
    PynputInputSource,
    default_probes,
)
from .sampler import ActivitySampler
from .statistics import (
    AppStatistics,
    SwitchAnalysis,
    analyze_switches,
    label_breakdown,
    project_breakdown,
    top_apps,
)
from .storage import load_settings, save_settings
from .store import DailySummaryStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TrackerSnapshot:
    """Point-in-time view of the tracker for UIs."""

    is_tracking: bool
    current_app: str
    current_bundle_id: str
    today_summary: DailySummary
    engagement_score: int
    engagement_mode: EngagementMode
    in_focus: bool
    current_focus_session: Optional[FocusSession]
    focus_time: float
    goal_progress: dict[str, float] = field(default_factory=dict)
    top_apps: list[AppStatistics] = field(default_factory=list)
    label_breakdown: dict[str, float] = field(default_factory=dict)
    project_breakdown: dict[str, float] = field(default_factory=dict)
    switch_analysis: SwitchAnalysis = field(default_factory=SwitchAnalysis)
    persistence_failing: bool = False
    memory_only: bool = False

    def to_dict(self) -> dict[str, Any]:
        return to_json_value(self)


class ActivityTracker:
    """Runs the sampler and the once-a-minute tasks on a single thread.

    Commands (bookmarks, focus, settings, clearing the day) may arrive from
    other threads; they share one lock with the loop's ticks.
    """

    def __init__(
        self,
        data_dir: Optional[Path],
        settings: Optional[TrackerSettings] = None,
        *,
        clock: Optional[Clock] = None,
        foreground: Optional[ForegroundProbe] = None,
        idle_probe: Optional[IdleProbe] = None,
        input_source: Optional[InputSource] = None,
        catalog: Optional[RuleCatalog] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.clock = clock or SystemClock()
        if foreground is None or idle_probe is None:
            default_foreground, default_idle = default_probes()
            foreground = foreground or default_foreground
            idle_probe = idle_probe or default_idle
        if settings is None:
            settings = load_settings(self.data_dir) if self.data_dir else TrackerSettings()
        self._settings = settings
        self._lock = threading.RLock()

        self.catalog = catalog or RuleCatalog(self.data_dir)
        self.store = DailySummaryStore(
            self.data_dir, self.clock, rollover_grace=self._settings.rollover_grace
        )
        self.idle_detector = IdleDetector(idle_probe)
        self.engagement = EngagementMeter(
            self.clock, input_source if input_source is not None else PynputInputSource()
        )
        self.sampler = ActivitySampler(
            store=self.store,
            clock=self.clock,
            foreground=foreground,
            idle_detector=self.idle_detector,
            settings=lambda: self.settings,
            catalog=self.catalog,
            engagement=self.engagement,
        )
        self.focus = FocusSupervisor(self.store, self.clock, lambda: self.settings)
        self.goals = GoalMonitor(
            self.store, self.catalog, self.clock, notifier, lambda: self.settings
        )
        self.is_tracking = False
        self._next_minute: Optional[datetime] = None

    @property
    def settings(self) -> TrackerSettings:
        return self._settings

    # -- lifecycle -------------------------------------------------------

    def start_tracking(self) -> None:
        with self._lock:
            if self.is_tracking:
                return
            self.is_tracking = True
            removed = self.store.cleanup_expired(self.settings.data_retention_days)
            if removed:
                logger.info("Removed %d expired day files.", len(removed))
            self._sync_engagement()
            self._next_minute = floor_to_minute(self.clock.now()) + timedelta(minutes=1)
            logger.info("Tracking started; data dir %s", self.data_dir or "(memory only)")

    def stop_tracking(self) -> None:
        with self._lock:
            if not self.is_tracking:
                return
            self.is_tracking = False
            self._next_minute = None
            self.engagement.stop()
            if self.focus.in_focus:
                self.focus.end_session()
            self.sampler.close(self.clock.now())
            logger.info("Tracking stopped.")

    def run_forever(self) -> None:
        stop_event = threading.Event()
        try:
            self.run_until_stopped(stop_event)
        except KeyboardInterrupt:
            logger.info("Tracker interrupted; closing the current segment.")
            self.stop_tracking()

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Run the tracker loop until the provided event is set."""
        self.start_tracking()
        try:
            while not stop_event.is_set():
                self.tick()
                stop_event.wait(self.settings.sampling_interval)
        finally:
            self.stop_tracking()

    def tick(self) -> None:
        """One pass of the loop: sample, then the minute task when it is due."""
        with self._lock:
            if not self.is_tracking:
                return
            try:
                self.sampler.sample_once()
            except Exception:
                logger.exception("Sampling failed.")
            now = self.clock.now()
            if self._next_minute is not None and now >= self._next_minute:
                self._next_minute = floor_to_minute(now) + timedelta(minutes=1)
                self.minute_tick(now)

    def minute_tick(self, now: Optional[datetime] = None) -> None:
        now = now or self.clock.now()
        settings = self.settings
        try:
            stats = self.engagement.roll_minute(now)
            if stats is not None:
                if settings.enable_input_stats:
                    self.store.add_minute_stats(stats)
                self.focus.observe_minute(EngagementMode.from_score(stats.score))
        except Exception:
            logger.exception("Engagement update failed.")
        try:
            self.goals.check_goals()
        except Exception:
            logger.exception("Goal check failed.")

    # -- commands --------------------------------------------------------

    def add_bookmark(self, text: str, color_tag: Optional[str] = None) -> Bookmark:
        text = text.strip()
        if not text:
            raise ValueError("bookmark text must not be empty")
        bookmark = Bookmark(time=self.clock.now(), text=text, color_tag=color_tag)
        with self._lock:
            self.store.add_bookmark(bookmark)
        return bookmark

    def remove_bookmark(self, bookmark_id: str) -> bool:
        with self._lock:
            return self.store.remove_bookmark(bookmark_id)

    def start_focus(self, project_id: Optional[str] = None) -> Optional[FocusSession]:
        with self._lock:
            return self.focus.start_manual_session(project_id)

    def end_focus(self) -> Optional[FocusSession]:
        with self._lock:
            return self.focus.end_session()

    def clear_today(self) -> None:
        with self._lock:
            self.store.clear_today()
            self.sampler.reset()

    def update_settings(self, **changes: Any) -> TrackerSettings:
        with self._lock:
            self._settings = self._settings.with_changes(**changes)
            self.store.rollover_grace = self._settings.rollover_grace
            if self.data_dir is not None and not self.store.memory_only:
                save_settings(self.data_dir, self._settings)
            if self.is_tracking:
                self._sync_engagement()
            return self._settings

    # -- observation -----------------------------------------------------

    def snapshot(self) -> TrackerSnapshot:
        with self._lock:
            summary = self.store.snapshot()
            return TrackerSnapshot(
                is_tracking=self.is_tracking,
                current_app=self.sampler.current_app,
                current_bundle_id=self.sampler.current_bundle_id,
                today_summary=summary,
                engagement_score=self.engagement.score,
                engagement_mode=self.engagement.mode,
                in_focus=self.focus.in_focus,
                current_focus_session=self.focus.current_session,
                focus_time=self.focus.today_focus_time(),
                goal_progress=dict(self.goals.goal_progress),
                top_apps=top_apps(summary),
                label_breakdown=label_breakdown(summary),
                project_breakdown=project_breakdown(summary),
                switch_analysis=analyze_switches(summary),
                persistence_failing=self.store.persistence_failing,
                memory_only=self.store.memory_only,
            )

    def _sync_engagement(self) -> None:
        settings = self.settings
        wanted = settings.enable_input_stats or settings.enable_engagement_score
        if wanted and not self.engagement.running:
            if not self.engagement.start():
                logger.info("Input monitoring unavailable; engagement score stays at 0.")
        elif not wanted and self.engagement.running:
            self.engagement.stop()
