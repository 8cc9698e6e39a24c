"""Manual and engagement-driven focus sessions."""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from .clock import Clock, day_key, start_of_day
from .config import TrackerSettings
from .models import EngagementMode, FocusSession
from .store import DailySummaryStore

logger = logging.getLogger(__name__)

AUTO_START_MINUTES = 5
AUTO_END_BELOW = 2


class FocusSupervisor:
    """Owns the single in-progress focus session.

    Auto-detection counts consecutive Focus minutes: after
    ``AUTO_START_MINUTES`` an automatic session opens, back-dated to when the
    streak started. Each non-Focus minute decays the counter by one; an
    automatic session ends once the counter has decayed below
    ``AUTO_END_BELOW``. Manual sessions only end on request.
    """

    def __init__(
        self,
        store: DailySummaryStore,
        clock: Clock,
        settings: Optional[Callable[[], TrackerSettings]] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._settings = settings or TrackerSettings
        self._lock = threading.RLock()
        self._session: Optional[FocusSession] = None
        self.consecutive_focus_minutes = 0

    @property
    def current_session(self) -> Optional[FocusSession]:
        with self._lock:
            return copy.copy(self._session)

    @property
    def in_focus(self) -> bool:
        with self._lock:
            return self._session is not None

    def start_manual_session(self, project_id: Optional[str] = None) -> Optional[FocusSession]:
        """Open a manual session; returns None if one is already running."""
        with self._lock:
            if self._session is not None:
                return None
            self._session = FocusSession(
                start_time=self._clock.now(), project_id=project_id, is_manual=True
            )
            logger.info("Focus session started.")
            return copy.copy(self._session)

    def end_session(self) -> Optional[FocusSession]:
        """Close the running session and store it."""
        with self._lock:
            session = self._session
            if session is None:
                return None
            now = self._clock.now()
            session.end_time = max(now, session.start_time)
            self._session = None
            self.consecutive_focus_minutes = 0
            self._store.ensure_day(now)
            if day_key(session.start_time) != self._store.current_date:
                session.start_time = start_of_day(now)
            self._store.add_focus_session(session)
            logger.info(
                "Focus session ended after %.0f minutes (manual=%s).",
                session.duration_seconds() / 60,
                session.is_manual,
            )
            return copy.copy(session)

    def observe_minute(self, mode: EngagementMode) -> None:
        """Feed one finished minute's engagement mode to the detector."""
        settings = self._settings()
        if not (settings.enable_focus_sessions and settings.enable_engagement_score):
            return
        with self._lock:
            if mode is EngagementMode.FOCUS:
                self.consecutive_focus_minutes += 1
                if self.consecutive_focus_minutes >= AUTO_START_MINUTES and self._session is None:
                    self._start_auto_session()
                return
            session = self._session
            if (
                session is not None
                and not session.is_manual
                and self.consecutive_focus_minutes < AUTO_END_BELOW
            ):
                self.end_session()
            self.consecutive_focus_minutes = max(0, self.consecutive_focus_minutes - 1)

    def today_focus_time(self) -> float:
        """Seconds of focus today, including the running session."""
        now = self._clock.now()
        total = self._store.snapshot().focus_time(now)
        with self._lock:
            if self._session is not None:
                start = max(self._session.start_time, start_of_day(now))
                total += max(0.0, (now - start).total_seconds())
        return total

    def today_session_count(self) -> int:
        count = len(self._store.snapshot().focus_sessions)
        with self._lock:
            return count + (1 if self._session is not None else 0)

    def _start_auto_session(self) -> None:
        now = self._clock.now()
        start = max(now - timedelta(minutes=AUTO_START_MINUTES), start_of_day(now))
        self._session = FocusSession(start_time=start, is_manual=False)
        logger.info("Sustained engagement detected; focus session started.")
