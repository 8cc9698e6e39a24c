from __future__ import annotations

from datetime import datetime

from conftest import FakeClock, FakeInputSource

from activity_tracker.engagement import EngagementMeter
from activity_tracker.models import EngagementMode
from activity_tracker.probes import IdleDetector, InputEvent, InputKind


def feed(meter: EngagementMeter, kind: InputKind, count: int) -> None:
    for _ in range(count):
        meter.record(InputEvent(kind))


def test_score_and_mode_follow_current_minute() -> None:
    meter = EngagementMeter(FakeClock(), FakeInputSource())
    meter.start()

    feed(meter, InputKind.KEY_DOWN, 10)
    assert meter.score == 20
    assert meter.mode is EngagementMode.PASSIVE

    feed(meter, InputKind.MOUSE_DOWN, 5)
    feed(meter, InputKind.SCROLL, 5)
    assert meter.score == 50
    assert meter.mode is EngagementMode.LIGHT


def test_roll_minute_emits_aligned_stats_and_resets() -> None:
    clock = FakeClock(datetime(2024, 5, 6, 9, 0, 42))
    meter = EngagementMeter(clock, FakeInputSource())
    meter.start()
    feed(meter, InputKind.KEY_DOWN, 40)
    meter.record(InputEvent(InputKind.MOUSE_MOVED, dx=3, dy=4))

    stats = meter.roll_minute(datetime(2024, 5, 6, 9, 1, 0, 5000))

    assert stats is not None
    assert stats.minute_start_time == datetime(2024, 5, 6, 9, 0)
    assert stats.key_down_count == 40
    assert stats.mouse_move_distance == 5.0
    assert stats.score == 80
    assert meter.score == 0
    assert meter.last_minute is stats

    following = meter.roll_minute(datetime(2024, 5, 6, 9, 2, 0))
    assert following is not None
    assert following.minute_start_time == datetime(2024, 5, 6, 9, 1)
    assert following.total_activity == 0


def test_input_source_callback_feeds_the_meter() -> None:
    source = FakeInputSource()
    meter = EngagementMeter(FakeClock(), source)

    assert meter.start()
    assert source.callback is not None
    source.callback(InputEvent(InputKind.MOUSE_DOWN))

    assert meter.score == 4


def test_meter_without_permission_stays_at_zero() -> None:
    meter = EngagementMeter(FakeClock(), FakeInputSource(available=False))

    assert meter.start() is False
    assert not meter.running
    assert meter.roll_minute() is None
    assert meter.score == 0
    assert meter.mode is EngagementMode.PASSIVE


def test_roll_minute_before_start_returns_none() -> None:
    meter = EngagementMeter(FakeClock())

    assert meter.roll_minute() is None
    assert not meter.running


def test_stop_releases_the_source() -> None:
    source = FakeInputSource()
    meter = EngagementMeter(FakeClock(), source)
    meter.start()
    meter.stop()

    assert source.stopped
    assert not meter.active
    assert not meter.running


class _BrokenIdle:
    def system_idle_seconds(self) -> float:
        raise OSError("no idle counter")


class _FixedIdle:
    def __init__(self, seconds: float) -> None:
        self.seconds = seconds

    def system_idle_seconds(self) -> float:
        return self.seconds


def test_idle_detector_threshold() -> None:
    assert IdleDetector(_FixedIdle(300)).is_idle(300)
    assert not IdleDetector(_FixedIdle(299.5)).is_idle(300)


def test_idle_detector_treats_failure_as_idle() -> None:
    detector = IdleDetector(_BrokenIdle())

    assert detector.idle_seconds() is None
    assert detector.is_idle(300)
