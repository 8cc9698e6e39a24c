from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import pytest

from activity_tracker.catalog import RuleCatalog
from activity_tracker.config import TrackerSettings
from activity_tracker.engagement import EngagementMeter
from activity_tracker.errors import ProbeUnavailable
from activity_tracker.probes import ForegroundTarget, IdleDetector, InputCallback
from activity_tracker.sampler import ActivitySampler
from activity_tracker.store import DailySummaryStore

BASE_TIME = datetime(2024, 5, 6, 9, 0, 0)


class FakeClock:
    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value


class ScriptedForeground:
    def __init__(self) -> None:
        self.target: Optional[ForegroundTarget] = ForegroundTarget("com.apple.Safari", "Safari")
        self.error: Optional[Exception] = None

    def show(self, bundle_id: Optional[str], app_name: Optional[str] = None, title: Optional[str] = None) -> None:
        self.error = None
        self.target = ForegroundTarget(bundle_id, app_name or bundle_id, title)

    def foreground_target(self) -> ForegroundTarget:
        if self.error is not None:
            raise self.error
        if self.target is None:
            raise ProbeUnavailable("nothing focused")
        return self.target


class ScriptedIdle:
    def __init__(self, seconds: float = 0.0) -> None:
        self.seconds = seconds
        self.error: Optional[Exception] = None

    def system_idle_seconds(self) -> float:
        if self.error is not None:
            raise self.error
        return self.seconds


class FakeInputSource:
    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.callback: Optional[InputCallback] = None
        self.stopped = False

    def start(self, callback: InputCallback) -> bool:
        if not self.available:
            return False
        self.callback = callback
        return True

    def stop(self) -> None:
        self.stopped = True
        self.callback = None


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def notify(self, title: str, body: str) -> None:
        self.messages.append((title, body))


class SamplerHarness:
    """Sampler wired to fakes; ``tick`` moves the clock to ``BASE_TIME + seconds``."""

    def __init__(self, data_dir: Optional[Path], clock: FakeClock, settings: TrackerSettings) -> None:
        self.clock = clock
        self.settings = settings
        self.foreground = ScriptedForeground()
        self.idle = ScriptedIdle()
        self.store = DailySummaryStore(data_dir, clock)
        self.catalog = RuleCatalog(None)
        self.meter = EngagementMeter(clock, FakeInputSource())
        self.sampler = ActivitySampler(
            store=self.store,
            clock=clock,
            foreground=self.foreground,
            idle_detector=IdleDetector(self.idle),
            settings=lambda: self.settings,
            catalog=self.catalog,
            engagement=self.meter,
        )

    def tick(self, seconds: float, bundle_id: Optional[str] = None, title: Optional[str] = None):
        self.clock.set(BASE_TIME + timedelta(seconds=seconds))
        if bundle_id is not None:
            self.foreground.show(bundle_id, bundle_id.upper(), title)
        return self.sampler.sample_once()

    def at(self, seconds: float) -> datetime:
        return BASE_TIME + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def store(data_dir: Path, clock: FakeClock) -> DailySummaryStore:
    return DailySummaryStore(data_dir, clock)


@pytest.fixture
def harness(data_dir: Path, clock: FakeClock) -> SamplerHarness:
    return SamplerHarness(data_dir, clock, TrackerSettings())
