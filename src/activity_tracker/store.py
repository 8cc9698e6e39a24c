"""Owner of the current day's summary and its on-disk file."""

from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, time, timedelta
from pathlib import Path
from typing import Callable, Iterator, Optional

from .clock import Clock, day_key, end_of_day, parse_day_key, start_of_day
from .config import MIN_ROLLOVER_GRACE
from .errors import MalformedDataError, PersistenceError
from .exporting import (
    TimesheetGrouping,
    render_segments_csv,
    render_summary_json,
    render_timesheet_csv,
)
from .models import Bookmark, DailySummary, FocusSession, MinuteStats, Segment, SwitchEdge
from .paths import export_path, timesheet_path
from .storage import (
    cleanup_expired,
    ensure_data_dir,
    preserve_corrupt_summary,
    read_summary,
    write_summary,
    write_text,
)

logger = logging.getLogger(__name__)

StoreListener = Callable[[str], None]


class DailySummaryStore:
    """Serializes every mutation of the current :class:`DailySummary`.

    Each mutation checks for a day change first, recomputes the cached totals,
    rewrites the day file and notifies listeners with a short change tag
    (``"segments"``, ``"switches"``, ``"minute_stats"``, ``"bookmarks"``,
    ``"focus_sessions"``, ``"rollover"``, ``"cleared"``). Several mutations can
    share one write with :meth:`transaction`.

    ``data_dir=None`` or an unwritable directory puts the store in memory-only
    mode; the in-memory summary stays authoritative either way.

    At a day change the open segment is stretched towards midnight by at
    most ``rollover_grace`` seconds past its recorded end.
    """

    def __init__(
        self,
        data_dir: Optional[Path],
        clock: Clock,
        *,
        rollover_grace: float = MIN_ROLLOVER_GRACE,
    ) -> None:
        self.rollover_grace = rollover_grace
        self._clock = clock
        self._lock = threading.RLock()
        self._listeners: list[StoreListener] = []
        self._corrupt_days: set[str] = set()
        self._batch_depth = 0
        self._pending: list[str] = []
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.memory_only = self.data_dir is None or not ensure_data_dir(self.data_dir)
        self.persistence_failing = False
        self._summary = self._load_day(day_key(clock.now()))
        self._summary.recalculate()
        self._previous: Optional[DailySummary] = None

    # -- read side -------------------------------------------------------

    @property
    def current_date(self) -> str:
        with self._lock:
            return self._summary.date

    def snapshot(self) -> DailySummary:
        """Deep copy of today's summary, consistent with one mutation boundary."""
        with self._lock:
            return copy.deepcopy(self._summary)

    @property
    def last_segment(self) -> Optional[Segment]:
        with self._lock:
            last = self._summary.last_segment
            return copy.copy(last) if last else None

    def load_summary(self, day: str) -> DailySummary:
        """Return the summary for ``day``; missing or unreadable files yield an empty one."""
        with self._lock:
            if day == self._summary.date:
                return copy.deepcopy(self._summary)
        if self.memory_only or self.data_dir is None:
            return DailySummary(date=day)
        try:
            return read_summary(self.data_dir, day)
        except (MalformedDataError, PersistenceError):
            logger.warning("Could not read data for %s; treating as empty.", day, exc_info=True)
            return DailySummary(date=day)

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # -- day handling ----------------------------------------------------

    def ensure_day(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Roll over to ``now``'s date if needed.

        The open segment is closed at the old day's midnight, or at most
        ``rollover_grace`` seconds past its recorded end, and the old summary
        is written out. Returns the start of the new day when a rollover
        happened, otherwise ``None``.
        """
        now = now or self._clock.now()
        key = day_key(now)
        with self._lock:
            if key == self._summary.date:
                return None
            old = self._summary
            last = old.last_segment
            if last is not None:
                boundary = min(
                    end_of_day(last.start_time),
                    last.end_time + timedelta(seconds=self.rollover_grace),
                )
                if last.end_time < boundary:
                    self._extend_segment_locked(old, last, boundary)
            old.recalculate()
            logger.info("Day changed from %s to %s.", old.date, key)
            self._write(old)
            self._previous = old
            self._summary = self._load_day(key)
            self._summary.recalculate()
            self._changed("rollover")
            return start_of_day(now)

    def recalculate(self) -> None:
        with self._lock:
            self._summary.recalculate()

    # -- mutations -------------------------------------------------------

    def add_segment(self, segment: Segment) -> None:
        with self._lock:
            self.ensure_day()
            summary = self._summary
            if day_key(segment.start_time) != summary.date:
                raise ValueError(
                    f"segment starting {segment.start_time} does not belong to {summary.date}"
                )
            if segment.end_time < segment.start_time:
                raise ValueError("segment ends before it starts")
            last = summary.last_segment
            if last is not None and segment.start_time < last.end_time:
                raise ValueError("segments must not overlap")
            summary.segments.append(segment)
            summary.recalculate()
            self._changed("segments")

    def extend_last_segment(self, end: datetime, engagement: Optional[int] = None) -> bool:
        """Move the last segment's end forward; returns False when nothing changed."""
        with self._lock:
            self.ensure_day()
            summary = self._summary
            last = summary.last_segment
            if last is None:
                return False
            changed = False
            if end > last.end_time:
                self._extend_segment_locked(summary, last, end)
                changed = True
            if engagement is not None and engagement != last.engagement_score:
                last.engagement_score = engagement
                changed = True
            if changed:
                summary.recalculate()
                self._changed("segments")
            return changed

    def record_switch(self, from_bundle_id: str, to_bundle_id: str) -> SwitchEdge:
        if from_bundle_id == to_bundle_id:
            raise ValueError("a switch needs two distinct targets")
        with self._lock:
            self.ensure_day()
            edge = self._summary.find_edge(from_bundle_id, to_bundle_id)
            if edge is None:
                edge = SwitchEdge(from_bundle_id=from_bundle_id, to_bundle_id=to_bundle_id)
                self._summary.switch_edges.append(edge)
            else:
                edge.count += 1
            self._changed("switches")
            return copy.copy(edge)

    def add_minute_stats(self, stats: MinuteStats) -> bool:
        """Append ``stats`` to its own day.

        The last minute before midnight usually arrives after the rollover and
        goes to the previous day's summary, which is rewritten on its own.
        """
        with self._lock:
            self.ensure_day()
            key = day_key(stats.minute_start_time)
            if key == self._summary.date:
                summary = self._summary
            elif self._previous is not None and key == self._previous.date:
                summary = self._previous
            else:
                logger.debug("Dropping minute stats for %s outside %s.", stats.minute_start_time, self._summary.date)
                return False
            if summary.minute_stats and (
                stats.minute_start_time <= summary.minute_stats[-1].minute_start_time
            ):
                logger.debug("Dropping out-of-order minute stats for %s.", stats.minute_start_time)
                return False
            summary.minute_stats.append(stats)
            if summary is self._previous:
                self._write(summary)
            else:
                self._changed("minute_stats")
            return True

    def add_bookmark(self, bookmark: Bookmark) -> None:
        with self._lock:
            self.ensure_day()
            self._summary.bookmarks.append(bookmark)
            self._changed("bookmarks")

    def remove_bookmark(self, bookmark_id: str) -> bool:
        with self._lock:
            bookmarks = self._summary.bookmarks
            remaining = [bookmark for bookmark in bookmarks if bookmark.id != bookmark_id]
            if len(remaining) == len(bookmarks):
                return False
            self._summary.bookmarks = remaining
            self._changed("bookmarks")
            return True

    def add_focus_session(self, session: FocusSession) -> None:
        if session.end_time is None:
            raise ValueError("only finished focus sessions are stored")
        with self._lock:
            self.ensure_day()
            day_start = datetime.combine(parse_day_key(self._summary.date), time())
            if session.start_time < day_start:
                session = copy.copy(session)
                session.start_time = day_start
            self._summary.focus_sessions.append(session)
            self._changed("focus_sessions")

    def clear_today(self) -> None:
        with self._lock:
            self._summary = DailySummary(date=day_key(self._clock.now()))
            self._changed("cleared")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group mutations so they are written and announced once."""
        with self._lock:
            self._batch_depth += 1
            try:
                yield
            finally:
                self._batch_depth -= 1
                if self._batch_depth == 0 and self._pending:
                    self._flush_pending()

    def close(self, now: Optional[datetime] = None) -> bool:
        """End the last segment at ``now`` and write the day file."""
        now = now or self._clock.now()
        with self.transaction():
            self.ensure_day(now)
            self.extend_last_segment(now)
        return self.flush()

    def flush(self) -> bool:
        """Write today's summary now. Returns True on success."""
        with self._lock:
            return self._write(self._summary)

    # -- maintenance -----------------------------------------------------

    def cleanup_expired(self, retention_days: int) -> list[Path]:
        if self.memory_only or self.data_dir is None:
            return []
        today = parse_day_key(self.current_date)
        return cleanup_expired(self.data_dir, retention_days, today)

    # -- exports ---------------------------------------------------------

    def export_csv(self, day: Optional[str] = None) -> Optional[Path]:
        summary = self._export_source(day)
        return self._write_export(
            lambda root: export_path(root, summary.date, "csv"), render_segments_csv(summary)
        )

    def export_json(self, day: Optional[str] = None) -> Optional[Path]:
        summary = self._export_source(day)
        return self._write_export(
            lambda root: export_path(root, summary.date, "json"), render_summary_json(summary)
        )

    def export_timesheet(
        self,
        group_by: TimesheetGrouping | str = TimesheetGrouping.LABEL,
        day: Optional[str] = None,
    ) -> Optional[Path]:
        grouping = TimesheetGrouping(group_by)
        summary = self._export_source(day)
        return self._write_export(
            lambda root: timesheet_path(root, summary.date),
            render_timesheet_csv(summary, grouping),
        )

    # -- internals -------------------------------------------------------

    def _export_source(self, day: Optional[str]) -> DailySummary:
        return self.load_summary(day) if day else self.snapshot()

    def _write_export(self, path_for: Callable[[Path], Path], text: str) -> Optional[Path]:
        if self.data_dir is None or self.memory_only:
            logger.warning("Exports are unavailable in memory-only mode.")
            return None
        path = path_for(self.data_dir)
        try:
            write_text(path, text)
        except PersistenceError:
            logger.exception("Failed to write export %s.", path.name)
            return None
        logger.info("Exported %s", path)
        return path

    def _load_day(self, day: str) -> DailySummary:
        if self.memory_only or self.data_dir is None:
            return DailySummary(date=day)
        try:
            return read_summary(self.data_dir, day)
        except MalformedDataError:
            logger.warning("Data for %s is malformed; starting empty.", day, exc_info=True)
            self._corrupt_days.add(day)
        except PersistenceError:
            logger.warning("Could not read data for %s; starting empty.", day, exc_info=True)
            self.persistence_failing = True
        return DailySummary(date=day)

    @staticmethod
    def _extend_segment_locked(summary: DailySummary, segment: Segment, end: datetime) -> None:
        delta = (end - segment.end_time).total_seconds()
        segment.end_time = end
        if len(summary.segments) >= 2:
            previous = summary.segments[-2]
            if previous.bundle_id != segment.bundle_id:
                edge = summary.find_edge(previous.bundle_id, segment.bundle_id)
                if edge is not None:
                    edge.total_duration += delta

    def _changed(self, kind: str) -> None:
        self._pending.append(kind)
        if self._batch_depth == 0:
            self._flush_pending()

    def _flush_pending(self) -> None:
        kinds = list(dict.fromkeys(self._pending))
        self._pending.clear()
        self._write(self._summary)
        for kind in kinds:
            for listener in list(self._listeners):
                try:
                    listener(kind)
                except Exception:
                    logger.exception("Store listener failed.")

    def _write(self, summary: DailySummary) -> bool:
        if self.memory_only or self.data_dir is None:
            return False
        try:
            if summary.date in self._corrupt_days:
                preserve_corrupt_summary(self.data_dir, summary.date)
                self._corrupt_days.discard(summary.date)
            write_summary(self.data_dir, summary)
        except PersistenceError:
            if not self.persistence_failing:
                logger.exception("Failed to save data for %s; will retry.", summary.date)
            self.persistence_failing = True
            return False
        if self.persistence_failing:
            logger.info("Saving data works again.")
        self.persistence_failing = False
        return True
