"""Configuration models and helpers for the activity tracker."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, fields
from typing import Any

from .models import camel_case, to_json_value

MIN_SAMPLING_INTERVAL = 0.5
MAX_SAMPLING_INTERVAL = 5.0
MIN_ROLLOVER_GRACE = 10.0

DEFAULT_REDACTION_PATTERNS: tuple[str, ...] = (
    # e-mail addresses
    r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}",
    # opaque tokens
    r"\b[A-Za-z0-9]{32,}\b",
)


@dataclass(slots=True, frozen=True)
class TrackerSettings:
    """Snapshot of user configuration, read once per sampling tick."""

    sampling_interval: float = 1.0
    idle_threshold: float = 300.0
    enable_window_title: bool = False
    data_retention_days: int = 90
    launch_at_login: bool = False

    enable_project_detection: bool = True
    enable_activity_labels: bool = True
    enable_meeting_detection: bool = True
    enable_engagement_score: bool = False
    enable_input_stats: bool = False
    enable_goals: bool = False
    enable_focus_sessions: bool = True
    enable_data_redaction: bool = False

    blacklisted_bundle_ids: tuple[str, ...] = ()
    whitelist_mode: bool = False
    whitelisted_bundle_ids: tuple[str, ...] = ()

    redaction_patterns: tuple[str, ...] = DEFAULT_REDACTION_PATTERNS

    def __post_init__(self) -> None:
        clamped = min(
            MAX_SAMPLING_INTERVAL, max(MIN_SAMPLING_INTERVAL, float(self.sampling_interval))
        )
        object.__setattr__(self, "sampling_interval", clamped)
        object.__setattr__(self, "idle_threshold", max(0.0, float(self.idle_threshold)))
        object.__setattr__(self, "data_retention_days", max(1, int(self.data_retention_days)))
        for name in ("blacklisted_bundle_ids", "whitelisted_bundle_ids", "redaction_patterns"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    @property
    def rollover_grace(self) -> float:
        """Longest gap between ticks that still counts as continuous observation."""
        return max(MIN_ROLLOVER_GRACE, 3 * self.sampling_interval)

    def with_changes(self, **changes: Any) -> "TrackerSettings":
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return to_json_value(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackerSettings":
        """Build settings from the on-disk camelCase mapping.

        Unknown keys are ignored and missing keys keep their defaults.
        """
        known = {camel_case(f.name): f.name for f in fields(cls)}
        kwargs = {known[key]: value for key, value in data.items() if key in known}
        return cls(**kwargs)
