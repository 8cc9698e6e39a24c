"""Turns periodic foreground observations into day segments."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .catalog import RuleCatalog
from .classifiers import ClassifierSet, is_tracked
from .clock import Clock, day_key, start_of_day
from .config import TrackerSettings
from .engagement import EngagementMeter
from .errors import ProbeUnavailable
from .models import (
    IDLE_APP_NAME,
    IDLE_BUNDLE_ID,
    UNKNOWN_APP_NAME,
    UNKNOWN_BUNDLE_ID,
    Segment,
)
from .probes import ForegroundProbe, IdleDetector
from .store import DailySummaryStore

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Observation:
    bundle_id: str
    app_name: str
    window_title: Optional[str] = None

    @property
    def is_idle(self) -> bool:
        return self.bundle_id == IDLE_BUNDLE_ID


IDLE_OBSERVATION = Observation(IDLE_BUNDLE_ID, IDLE_APP_NAME)


class ActivitySampler:
    """Samples the foreground target and feeds the store.

    The sampler owns the open-segment state: ``None`` until the first
    observation, then the id of the segment it is extending. Consecutive
    observations of the same target extend that segment; a different target
    closes it, records a switch edge and opens a new segment sharing the
    boundary.
    """

    def __init__(
        self,
        *,
        store: DailySummaryStore,
        clock: Clock,
        foreground: ForegroundProbe,
        idle_detector: IdleDetector,
        settings: Callable[[], TrackerSettings],
        catalog: RuleCatalog,
        engagement: Optional[EngagementMeter] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._foreground = foreground
        self._idle_detector = idle_detector
        self._settings = settings
        self._catalog = catalog
        self._engagement = engagement
        self._current_id: Optional[str] = None
        self._current_day: Optional[str] = None
        self._last_tick: Optional[datetime] = None
        self.current_app = ""
        self.current_bundle_id = ""

    @property
    def is_open(self) -> bool:
        return self._current_id is not None

    def reset(self) -> None:
        """Forget the open segment; the next tick starts a new one."""
        self._current_id = None
        self._current_day = None
        self._last_tick = None

    def observe(self, settings: TrackerSettings) -> Observation:
        """Ask the probes what the user is doing right now."""
        if self._idle_detector.is_idle(settings.idle_threshold):
            return IDLE_OBSERVATION
        try:
            target = self._foreground.foreground_target()
        except ProbeUnavailable as exc:
            logger.debug("Foreground probe unavailable: %s", exc)
            return IDLE_OBSERVATION
        except Exception:
            logger.exception("Foreground probe failed; recording idle.")
            return IDLE_OBSERVATION
        return Observation(
            bundle_id=target.bundle_id or UNKNOWN_BUNDLE_ID,
            app_name=target.app_name or UNKNOWN_APP_NAME,
            window_title=target.window_title if settings.enable_window_title else None,
        )

    def sample_once(self) -> Optional[Segment]:
        """Run one tick. Returns the segment that was opened or extended."""
        settings = self._settings()
        observation = self.observe(settings)
        now = self._clock.now()
        self.current_app = observation.app_name
        self.current_bundle_id = observation.bundle_id

        if not is_tracked(observation.bundle_id, settings):
            logger.debug("Skipping filtered target %s", observation.bundle_id)
            return None

        with self._store.transaction():
            self._store.ensure_day(now)
            carried_from = self._carry_in(now, settings)
            try:
                segment = self._apply(observation, now, settings, carried_from)
            except ValueError:
                logger.warning("Discarding observation at %s.", now, exc_info=True)
                return None
            self._current_day = day_key(segment.start_time)
            self._last_tick = now
        logger.debug(
            "Segment updated: idle=%s bundle=%s title=%s",
            segment.is_idle,
            segment.bundle_id,
            segment.window_title,
        )
        return segment

    def close(self, now: Optional[datetime] = None) -> None:
        """Close the open segment at ``now`` and write the day file."""
        if self._current_id is None:
            self._store.flush()
            return
        last = self._store.last_segment
        if last is not None and last.id == self._current_id:
            self._store.close(now)
        else:
            self._store.flush()
        self._current_id = None

    def _carry_in(self, now: datetime, settings: TrackerSettings) -> Optional[datetime]:
        """Midnight, when the owned segment was left behind in the previous day.

        The day may have been rolled by any store mutation, not only by this
        tick. The target is carried in only if it was observed within
        ``rollover_grace`` seconds of ``now``.
        """
        if self._current_id is None or self._current_day == self._store.current_date:
            return None
        self._current_id = None
        if self._last_tick is None:
            return None
        if (now - self._last_tick).total_seconds() > settings.rollover_grace:
            logger.debug("Not carrying %s across a gap since %s.", self._current_day, self._last_tick)
            return None
        return start_of_day(now)

    def _apply(
        self,
        observation: Observation,
        now: datetime,
        settings: TrackerSettings,
        carried_from: Optional[datetime],
    ) -> Segment:
        last = self._store.last_segment
        if self._current_id is not None and last is not None and last.id == self._current_id:
            if last.bundle_id == observation.bundle_id:
                score = None
                if settings.enable_engagement_score and self._engagement is not None:
                    score = self._engagement.score
                self._store.extend_last_segment(now, score)
                return self._store.last_segment or last
            self._store.extend_last_segment(now)
            self._store.record_switch(last.bundle_id, observation.bundle_id)

        segment = self._build_segment(observation, carried_from or now, now, settings)
        self._store.add_segment(segment)
        self._current_id = segment.id
        return segment

    def _build_segment(
        self,
        observation: Observation,
        start: datetime,
        end: datetime,
        settings: TrackerSettings,
    ) -> Segment:
        segment = Segment(
            start_time=start,
            end_time=end,
            bundle_id=observation.bundle_id,
            app_name=observation.app_name,
        )
        if observation.is_idle:
            return segment
        classifiers = ClassifierSet(settings, self._catalog.labels, self._catalog.projects)
        result = classifiers.classify(observation.bundle_id, observation.window_title)
        segment.window_title = result.window_title
        segment.label_id = result.label_id
        segment.project_id = result.project_id
        segment.is_meeting = result.is_meeting
        return segment
