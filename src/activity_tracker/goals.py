"""Daily goal progress and notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from .catalog import RuleCatalog
from .clock import Clock, day_key
from .config import TrackerSettings
from .models import DailySummary, Goal
from .store import DailySummaryStore

logger = logging.getLogger(__name__)

APPROACHING_RATIO = 0.9


class Notifier(Protocol):
    def notify(self, title: str, body: str) -> None: ...


class LoggingNotifier:
    """Default notifier: writes the notification to the log."""

    def notify(self, title: str, body: str) -> None:
        logger.info("%s: %s", title, body)


@dataclass(slots=True, frozen=True)
class GoalAlert:
    goal_id: str
    title: str
    body: str


def goal_minutes(goal: Goal, summary: DailySummary) -> int:
    seconds = sum(seg.duration_seconds for seg in summary.segments if goal.matches(seg))
    return int(seconds / 60)


def evaluate_goal(goal: Goal, minutes: int) -> Optional[GoalAlert]:
    """Return the alert ``goal`` warrants at ``minutes``, if any."""
    if goal.target_minutes <= 0:
        return None
    progress = minutes / goal.target_minutes
    if goal.is_upper_limit:
        if minutes >= goal.target_minutes:
            return GoalAlert(
                goal.id,
                "Goal limit reached",
                f"{goal.name}: {minutes} of {goal.target_minutes} minutes used.",
            )
        return None
    if APPROACHING_RATIO <= progress < 1.0:
        return GoalAlert(
            goal.id,
            "Goal almost reached",
            f"{goal.name}: {minutes} of {goal.target_minutes} minutes done.",
        )
    return None


class GoalMonitor:
    """Checks enabled goals against today's segments.

    Each goal notifies at most once per day.
    """

    def __init__(
        self,
        store: DailySummaryStore,
        catalog: RuleCatalog,
        clock: Clock,
        notifier: Optional[Notifier] = None,
        settings: Optional[Callable[[], TrackerSettings]] = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._clock = clock
        self._notifier = notifier or LoggingNotifier()
        self._settings = settings or TrackerSettings
        self._notified: set[str] = set()
        self._notified_day: Optional[str] = None
        self.goal_progress: dict[str, float] = {}

    def check_goals(self) -> list[GoalAlert]:
        if not self._settings().enable_goals:
            return []
        today = day_key(self._clock.now())
        if today != self._notified_day:
            self._notified.clear()
            self._notified_day = today

        summary = self._store.snapshot()
        progress: dict[str, float] = {}
        sent: list[GoalAlert] = []
        for goal in self._catalog.goals:
            if not goal.is_enabled:
                continue
            minutes = goal_minutes(goal, summary)
            if goal.target_minutes > 0:
                progress[goal.id] = minutes / goal.target_minutes
            alert = evaluate_goal(goal, minutes)
            if alert is None or goal.id in self._notified:
                continue
            self._notified.add(goal.id)
            self._deliver(alert)
            sent.append(alert)
        self.goal_progress = progress
        return sent

    def _deliver(self, alert: GoalAlert) -> None:
        try:
            self._notifier.notify(alert.title, alert.body)
        except Exception:
            logger.debug("Notification for goal %s was not delivered.", alert.goal_id, exc_info=True)
