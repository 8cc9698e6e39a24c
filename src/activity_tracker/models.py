"""Domain models for recorded activity."""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

IDLE_BUNDLE_ID = "idle"
IDLE_APP_NAME = "Idle"
UNKNOWN_BUNDLE_ID = "unknown"
UNKNOWN_APP_NAME = "Unknown"


def new_id() -> str:
    return str(uuid.uuid4()).upper()


def camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def to_json_value(value: Any) -> Any:
    """Convert models into plain JSON data with camelCase keys."""
    if is_dataclass(value) and not isinstance(value, type):
        return {
            camel_case(f.name): to_json_value(getattr(value, f.name))
            for f in fields(value)
        }
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    if isinstance(value, dict):
        return {key: to_json_value(item) for key, item in value.items()}
    return value


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def engagement_score(keys: int, clicks: int, scrolls: int) -> int:
    """Weighted activity for one minute: clicks count double, capped at 100."""
    return min(100, 2 * (keys + 2 * clicks + scrolls))


class EngagementMode(str, Enum):
    FOCUS = "Focus"
    LIGHT = "Light"
    PASSIVE = "Passive"

    @classmethod
    def from_score(cls, score: int) -> "EngagementMode":
        if score >= 70:
            return cls.FOCUS
        if score >= 30:
            return cls.LIGHT
        return cls.PASSIVE


@dataclass(slots=True)
class Segment:
    """A contiguous block of time spent on a single target."""

    start_time: datetime
    end_time: datetime
    bundle_id: str
    app_name: str
    window_title: Optional[str] = None
    label_id: Optional[str] = None
    project_id: Optional[str] = None
    is_idle: bool = False
    is_meeting: bool = False
    engagement_score: Optional[int] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        if self.bundle_id == IDLE_BUNDLE_ID:
            self.is_idle = True

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Segment":
        return cls(
            id=data["id"],
            start_time=datetime.fromisoformat(data["startTime"]),
            end_time=datetime.fromisoformat(data["endTime"]),
            bundle_id=data["bundleId"],
            app_name=data["appName"],
            window_title=data.get("windowTitle"),
            label_id=data.get("labelId"),
            project_id=data.get("projectId"),
            is_idle=bool(data.get("isIdle", False)),
            is_meeting=bool(data.get("isMeeting", False)),
            engagement_score=data.get("engagementScore"),
        )


@dataclass(slots=True)
class MinuteStats:
    """Input counters for one wall-clock minute."""

    minute_start_time: datetime
    key_down_count: int = 0
    mouse_click_count: int = 0
    scroll_count: int = 0
    mouse_move_distance: float = 0.0
    id: str = field(default_factory=new_id)

    @property
    def total_activity(self) -> int:
        return self.key_down_count + self.mouse_click_count + self.scroll_count

    @property
    def score(self) -> int:
        return engagement_score(
            self.key_down_count, self.mouse_click_count, self.scroll_count
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MinuteStats":
        return cls(
            id=data["id"],
            minute_start_time=datetime.fromisoformat(data["minuteStartTime"]),
            key_down_count=int(data.get("keyDownCount", 0)),
            mouse_click_count=int(data.get("mouseClickCount", 0)),
            scroll_count=int(data.get("scrollCount", 0)),
            mouse_move_distance=float(data.get("mouseMoveDistance", 0.0)),
        )


@dataclass(slots=True)
class SwitchEdge:
    """Aggregated transitions between two distinct targets within a day."""

    from_bundle_id: str
    to_bundle_id: str
    count: int = 1
    total_duration: float = 0.0
    id: str = field(default_factory=new_id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SwitchEdge":
        return cls(
            id=data["id"],
            from_bundle_id=data["fromBundleId"],
            to_bundle_id=data["toBundleId"],
            count=int(data.get("count", 1)),
            total_duration=float(data.get("totalDuration", 0.0)),
        )


@dataclass(slots=True)
class Bookmark:
    time: datetime
    text: str
    color_tag: Optional[str] = None
    id: str = field(default_factory=new_id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Bookmark":
        return cls(
            id=data["id"],
            time=datetime.fromisoformat(data["time"]),
            text=data["text"],
            color_tag=data.get("colorTag"),
        )


BOOKMARK_PRESETS: tuple[tuple[str, str], ...] = (
    ("Start work", "blue"),
    ("Break", "green"),
    ("Meeting started", "orange"),
    ("Weekly report", "purple"),
    ("Study", "cyan"),
)


@dataclass(slots=True)
class FocusSession:
    """Manual or inferred stretch of sustained engagement."""

    start_time: datetime
    end_time: Optional[datetime] = None
    project_id: Optional[str] = None
    is_manual: bool = True
    id: str = field(default_factory=new_id)

    @property
    def in_progress(self) -> bool:
        return self.end_time is None

    def duration_seconds(self, now: Optional[datetime] = None) -> float:
        end = self.end_time or now or datetime.now()
        return (end - self.start_time).total_seconds()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FocusSession":
        return cls(
            id=data["id"],
            start_time=datetime.fromisoformat(data["startTime"]),
            end_time=_parse_time(data.get("endTime")),
            project_id=data.get("projectId"),
            is_manual=bool(data.get("isManual", True)),
        )


@dataclass(slots=True)
class DailySummary:
    """Everything recorded for one local calendar day."""

    date: str
    segments: list[Segment] = field(default_factory=list)
    total_active_time: float = 0.0
    total_idle_time: float = 0.0
    minute_stats: list[MinuteStats] = field(default_factory=list)
    switch_edges: list[SwitchEdge] = field(default_factory=list)
    bookmarks: list[Bookmark] = field(default_factory=list)
    focus_sessions: list[FocusSession] = field(default_factory=list)

    def recalculate(self) -> None:
        self.total_active_time = sum(
            seg.duration_seconds for seg in self.segments if not seg.is_idle
        )
        self.total_idle_time = sum(
            seg.duration_seconds for seg in self.segments if seg.is_idle
        )

    @property
    def last_segment(self) -> Optional[Segment]:
        return self.segments[-1] if self.segments else None

    @property
    def context_switch_count(self) -> int:
        return sum(
            1
            for previous, current in zip(self.segments, self.segments[1:])
            if previous.bundle_id != current.bundle_id
        )

    @property
    def average_segment_duration(self) -> float:
        if not self.segments:
            return 0.0
        total = sum(seg.duration_seconds for seg in self.segments)
        return total / len(self.segments)

    def focus_time(self, now: Optional[datetime] = None) -> float:
        return sum(session.duration_seconds(now) for session in self.focus_sessions)

    def find_edge(self, from_bundle_id: str, to_bundle_id: str) -> Optional[SwitchEdge]:
        for edge in self.switch_edges:
            if edge.from_bundle_id == from_bundle_id and edge.to_bundle_id == to_bundle_id:
                return edge
        return None

    def to_dict(self) -> dict[str, Any]:
        return to_json_value(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DailySummary":
        summary = cls(
            date=data["date"],
            segments=[Segment.from_dict(item) for item in data.get("segments", [])],
            total_active_time=float(data.get("totalActiveTime", 0.0)),
            total_idle_time=float(data.get("totalIdleTime", 0.0)),
            minute_stats=[
                MinuteStats.from_dict(item) for item in data.get("minuteStats", [])
            ],
            switch_edges=[
                SwitchEdge.from_dict(item) for item in data.get("switchEdges", [])
            ],
            bookmarks=[Bookmark.from_dict(item) for item in data.get("bookmarks", [])],
            focus_sessions=[
                FocusSession.from_dict(item) for item in data.get("focusSessions", [])
            ],
        )
        return summary


@dataclass(slots=True)
class ActivityLabel:
    id: str
    name: str
    icon: str
    color: str
    bundle_ids: list[str] = field(default_factory=list)
    title_keywords: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ActivityLabel":
        return cls(
            id=data["id"],
            name=data["name"],
            icon=data.get("icon", ""),
            color=data.get("color", ""),
            bundle_ids=list(data.get("bundleIds", [])),
            title_keywords=list(data.get("titleKeywords", [])),
        )


DEFAULT_LABELS: tuple[ActivityLabel, ...] = (
    ActivityLabel(
        id="dev",
        name="Development",
        icon="hammer.fill",
        color="blue",
        bundle_ids=["com.apple.dt.Xcode", "com.microsoft.VSCode", "com.jetbrains"],
        title_keywords=["code", "debug", "build"],
    ),
    ActivityLabel(
        id="writing",
        name="Writing",
        icon="doc.text.fill",
        color="green",
        bundle_ids=["com.apple.Notes", "com.notion", "md.obsidian"],
        title_keywords=["doc", "note", "write"],
    ),
    ActivityLabel(
        id="learning",
        name="Learning",
        icon="book.fill",
        color="purple",
        bundle_ids=["com.apple.Safari", "com.google.Chrome"],
        title_keywords=["course", "tutorial", "learn", "教程"],
    ),
    ActivityLabel(
        id="meeting",
        name="Meeting",
        icon="video.fill",
        color="orange",
        bundle_ids=["us.zoom.xos", "com.microsoft.teams", "com.slack"],
        title_keywords=["meeting", "call", "会议"],
    ),
    ActivityLabel(
        id="entertainment",
        name="Entertainment",
        icon="gamecontroller.fill",
        color="red",
        bundle_ids=["com.spotify.client", "com.apple.Music", "com.netflix"],
        title_keywords=["youtube", "video", "game", "视频"],
    ),
)



def default_labels() -> list[ActivityLabel]:
    return copy.deepcopy(list(DEFAULT_LABELS))


class RuleType(str, Enum):
    WINDOW_TITLE_REGEX = "windowTitleRegex"
    BUNDLE_ID_KEYWORD = "bundleIdKeyword"
    FILE_PATH_PREFIX = "filePathPrefix"


@dataclass(slots=True)
class ProjectRule:
    type: RuleType
    pattern: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectRule":
        return cls(type=RuleType(data["type"]), pattern=data["pattern"])


@dataclass(slots=True)
class Project:
    name: str
    rules: list[ProjectRule] = field(default_factory=list)
    color: Optional[str] = None
    id: str = field(default_factory=new_id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        return cls(
            id=data["id"],
            name=data["name"],
            rules=[ProjectRule.from_dict(item) for item in data.get("rules", [])],
            color=data.get("color"),
        )


class GoalFilter(str, Enum):
    LABEL = "label"
    APP = "app"
    PROJECT = "project"


@dataclass(slots=True)
class Goal:
    """Daily time target: a cap when ``is_upper_limit`` else a floor."""

    name: str
    target_minutes: int
    is_upper_limit: bool
    filter_type: GoalFilter
    filter_value: str
    is_enabled: bool = True
    id: str = field(default_factory=new_id)

    def matches(self, segment: Segment) -> bool:
        if self.filter_type is GoalFilter.LABEL:
            return segment.label_id == self.filter_value
        if self.filter_type is GoalFilter.PROJECT:
            return segment.project_id == self.filter_value
        return segment.bundle_id == self.filter_value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Goal":
        return cls(
            id=data["id"],
            name=data["name"],
            target_minutes=int(data["targetMinutes"]),
            is_upper_limit=bool(data["isUpperLimit"]),
            filter_type=GoalFilter(data["filterType"]),
            filter_value=data["filterValue"],
            is_enabled=bool(data.get("isEnabled", True)),
        )
