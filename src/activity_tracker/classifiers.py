"""Pure classification rules applied when a segment is opened."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from .config import TrackerSettings
from .models import IDLE_BUNDLE_ID, ActivityLabel, Project, ProjectRule, RuleType

logger = logging.getLogger(__name__)

REDACTION_MASK = "***"
MIN_PROJECT_CONFIDENCE = 0.5

RULE_CONFIDENCE: dict[RuleType, float] = {
    RuleType.WINDOW_TITLE_REGEX: 0.8,
    RuleType.BUNDLE_ID_KEYWORD: 0.7,
    RuleType.FILE_PATH_PREFIX: 0.9,
}

MEETING_BUNDLE_IDS: tuple[str, ...] = (
    "us.zoom.xos",
    "com.microsoft.teams",
    "com.google.Chrome.app.kjgfgldnnfoeklkmfkjfagphfepbbdan",  # Google Meet PWA
    "com.slack",
    "com.discord",
    "com.skype.skype",
    "com.webex.meetingmanager",
    "com.facetime",
    "com.apple.FaceTime",
)

MEETING_KEYWORDS: tuple[str, ...] = (
    "meeting",
    "call",
    "会议",
    "通話",
    "会議",
    "webinar",
    "huddle",
    "standup",
    "sync",
    "1:1",
    "interview",
    "conference",
    "video chat",
)


def is_tracked(bundle_id: str, settings: TrackerSettings) -> bool:
    """Apply the black/whitelist. The idle sentinel is always tracked."""
    if bundle_id == IDLE_BUNDLE_ID:
        return True
    if settings.whitelist_mode:
        return bundle_id in settings.whitelisted_bundle_ids
    return bundle_id not in settings.blacklisted_bundle_ids


def compile_patterns(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    """Compile case-insensitive patterns, skipping the ones that do not parse."""
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as exc:
            logger.warning("Skipping invalid pattern %r: %s", pattern, exc)
    return compiled


class Redactor:
    """Masks sensitive fragments of window titles."""

    def __init__(self, patterns: Iterable[str], enabled: bool = True) -> None:
        self.enabled = enabled
        self._patterns = compile_patterns(patterns)

    @classmethod
    def from_settings(cls, settings: TrackerSettings) -> "Redactor":
        return cls(settings.redaction_patterns, enabled=settings.enable_data_redaction)

    def redact(self, text: Optional[str]) -> Optional[str]:
        if not self.enabled or text is None:
            return text
        result = text
        for regex in self._patterns:
            result = regex.sub(REDACTION_MASK, result)
        return result

    def contains_sensitive_data(self, text: str) -> bool:
        return any(regex.search(text) for regex in self._patterns)


def detect_label(
    labels: Sequence[ActivityLabel], bundle_id: str, window_title: Optional[str]
) -> Optional[str]:
    """Bundle-id substrings win over title keywords; first matching label wins."""
    normalized_id = bundle_id.lower()
    for label in labels:
        for candidate in label.bundle_ids:
            if candidate.lower() in normalized_id:
                return label.id

    if window_title:
        title = window_title.lower()
        for label in labels:
            for keyword in label.title_keywords:
                if keyword.lower() in title:
                    return label.id
    return None


def rule_confidence(rule: ProjectRule, bundle_id: str, window_title: Optional[str]) -> float:
    if rule.type is RuleType.BUNDLE_ID_KEYWORD:
        matched = rule.pattern.lower() in bundle_id.lower()
    elif window_title is None:
        matched = False
    elif rule.type is RuleType.WINDOW_TITLE_REGEX:
        try:
            matched = re.search(rule.pattern, window_title, re.IGNORECASE) is not None
        except re.error:
            logger.debug("Ignoring invalid project rule %r", rule.pattern)
            matched = False
    else:
        matched = rule.pattern in window_title
    return RULE_CONFIDENCE[rule.type] if matched else 0.0


def project_confidence(project: Project, bundle_id: str, window_title: Optional[str]) -> float:
    scores = [
        score
        for score in (rule_confidence(rule, bundle_id, window_title) for rule in project.rules)
        if score > 0
    ]
    if not scores:
        return 0.0
    return max(0.0, min(sum(scores) / len(scores), 1.0))


def detect_project(
    projects: Sequence[Project], bundle_id: str, window_title: Optional[str]
) -> tuple[Optional[str], float]:
    """Return ``(project_id, confidence)`` for the best match, if confident enough."""
    best_id: Optional[str] = None
    best_confidence = 0.0
    for project in projects:
        confidence = project_confidence(project, bundle_id, window_title)
        if confidence > best_confidence:
            best_id, best_confidence = project.id, confidence
    if best_confidence >= MIN_PROJECT_CONFIDENCE:
        return best_id, best_confidence
    return None, 0.0


def is_meeting(bundle_id: str, window_title: Optional[str]) -> bool:
    normalized_id = bundle_id.lower()
    if any(meeting_id.lower() in normalized_id for meeting_id in MEETING_BUNDLE_IDS):
        return True
    if window_title:
        title = window_title.lower()
        return any(keyword in title for keyword in MEETING_KEYWORDS)
    return False


@dataclass(slots=True)
class Classification:
    window_title: Optional[str]
    label_id: Optional[str]
    project_id: Optional[str]
    is_meeting: bool


class ClassifierSet:
    """All classifiers bound to one settings snapshot and rule catalog."""

    def __init__(
        self,
        settings: TrackerSettings,
        labels: Sequence[ActivityLabel] = (),
        projects: Sequence[Project] = (),
    ) -> None:
        self.settings = settings
        self.labels = list(labels)
        self.projects = list(projects)
        self.redactor = Redactor.from_settings(settings)

    def allows(self, bundle_id: str) -> bool:
        return is_tracked(bundle_id, self.settings)

    def classify(self, bundle_id: str, window_title: Optional[str]) -> Classification:
        """Redact the title, then label, project and meeting detection.

        Matching runs on the unredacted title.
        """
        settings = self.settings
        label_id = (
            detect_label(self.labels, bundle_id, window_title)
            if settings.enable_activity_labels
            else None
        )
        project_id = (
            detect_project(self.projects, bundle_id, window_title)[0]
            if settings.enable_project_detection
            else None
        )
        meeting = (
            is_meeting(bundle_id, window_title) if settings.enable_meeting_detection else False
        )
        return Classification(
            window_title=self.redactor.redact(window_title),
            label_id=label_id,
            project_id=project_id,
            is_meeting=meeting,
        )
