"""Engagement scoring from global input activity."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Optional

from .clock import Clock, floor_to_minute
from .models import EngagementMode, MinuteStats, engagement_score
from .probes import InputEvent, InputKind, InputSource

logger = logging.getLogger(__name__)


class EngagementMeter:
    """Counts input events for the current minute.

    ``record`` is called from the input listener threads; ``roll_minute`` from
    the tracker loop. Both go through the same lock.
    """

    def __init__(self, clock: Clock, source: Optional[InputSource] = None) -> None:
        self._clock = clock
        self._source = source
        self._lock = threading.Lock()
        self._minute_start: Optional[datetime] = None
        self._keys = 0
        self._clicks = 0
        self._scrolls = 0
        self._distance = 0.0
        self.active = False
        self.last_minute: Optional[MinuteStats] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._minute_start is not None

    def start(self) -> bool:
        """Subscribe to the input source and open the first minute window.

        Returns False, leaving the meter stopped, when the source cannot
        deliver events.
        """
        if self.active:
            return True
        if self._source is None or not self._source.start(self.record):
            return False
        with self._lock:
            self._minute_start = floor_to_minute(self._clock.now())
            self._reset_locked()
        self.active = True
        return True

    def stop(self) -> None:
        if self._source is not None and self.active:
            self._source.stop()
        self.active = False
        with self._lock:
            self._minute_start = None
            self._reset_locked()

    def record(self, event: InputEvent) -> None:
        with self._lock:
            if event.kind is InputKind.KEY_DOWN:
                self._keys += 1
            elif event.kind is InputKind.MOUSE_DOWN:
                self._clicks += 1
            elif event.kind is InputKind.SCROLL:
                self._scrolls += 1
            elif event.kind is InputKind.MOUSE_MOVED:
                self._distance += event.distance

    @property
    def score(self) -> int:
        with self._lock:
            return engagement_score(self._keys, self._clicks, self._scrolls)

    @property
    def mode(self) -> EngagementMode:
        return EngagementMode.from_score(self.score)

    def roll_minute(self, now: Optional[datetime] = None) -> Optional[MinuteStats]:
        """Close the current minute window and start the next one."""
        now = now or self._clock.now()
        with self._lock:
            if self._minute_start is None:
                return None
            stats = MinuteStats(
                minute_start_time=self._minute_start,
                key_down_count=self._keys,
                mouse_click_count=self._clicks,
                scroll_count=self._scrolls,
                mouse_move_distance=self._distance,
            )
            self._minute_start = floor_to_minute(now)
            self._reset_locked()
        self.last_minute = stats
        logger.debug(
            "Minute %s: keys=%d clicks=%d scrolls=%d score=%d",
            stats.minute_start_time.strftime("%H:%M"),
            stats.key_down_count,
            stats.mouse_click_count,
            stats.scroll_count,
            stats.score,
        )
        return stats

    def _reset_locked(self) -> None:
        self._keys = 0
        self._clicks = 0
        self._scrolls = 0
        self._distance = 0.0
