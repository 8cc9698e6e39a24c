from __future__ import annotations

import logging

import pytest

from activity_tracker.classifiers import (
    ClassifierSet,
    Redactor,
    detect_label,
    detect_project,
    is_meeting,
    is_tracked,
    project_confidence,
)
from activity_tracker.config import TrackerSettings
from activity_tracker.models import Project, ProjectRule, RuleType, default_labels
from activity_tracker.probes import normalize_window_title


@pytest.fixture
def labels():
    return default_labels()


def test_xcode_is_development(labels) -> None:
    assert detect_label(labels, "com.apple.dt.Xcode", None) == "dev"


def test_zoom_is_meeting_label(labels) -> None:
    assert detect_label(labels, "us.zoom.xos", None) == "meeting"


def test_unknown_bundle_has_no_label(labels) -> None:
    assert detect_label(labels, "com.random.unknown", None) is None


def test_title_keywords_apply_after_bundle_ids(labels) -> None:
    assert detect_label(labels, "com.random.unknown", "Python Tutorial - part 3") == "learning"
    assert detect_label(labels, "com.google.Chrome", "YouTube") == "learning"


def test_redactor_hides_email() -> None:
    redactor = Redactor.from_settings(TrackerSettings(enable_data_redaction=True))

    assert redactor.redact("Inbox - bob@example.org") == "Inbox - ***"
    assert redactor.contains_sensitive_data("bob@example.org")
    assert not redactor.contains_sensitive_data("Inbox")


def test_redactor_is_identity_when_disabled() -> None:
    redactor = Redactor.from_settings(TrackerSettings())

    assert redactor.redact("bob@example.org") == "bob@example.org"
    assert redactor.redact(None) is None


def test_invalid_redaction_pattern_is_skipped(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        redactor = Redactor(["(unclosed", r"\d{4}"])

    assert redactor.redact("pin 1234") == "pin ***"
    assert "Skipping invalid pattern" in caplog.text


@pytest.mark.parametrize(
    ("bundle_id", "title", "expected"),
    [
        ("us.zoom.xos", None, True),
        ("com.microsoft.teams2", "Chat", True),
        ("com.apple.Safari", "Weekly sync with design", True),
        ("com.apple.Safari", "Team 会议", True),
        ("com.apple.Safari", "Recipes", False),
        ("com.apple.Terminal", None, False),
    ],
)
def test_meeting_detection(bundle_id: str, title, expected: bool) -> None:
    assert is_meeting(bundle_id, title) is expected


def test_project_confidence_is_mean_of_matching_rules() -> None:
    project = Project(
        name="Tracker",
        rules=[
            ProjectRule(RuleType.WINDOW_TITLE_REGEX, r"tracker"),
            ProjectRule(RuleType.BUNDLE_ID_KEYWORD, "vscode"),
            ProjectRule(RuleType.FILE_PATH_PREFIX, "/nowhere"),
        ],
    )

    confidence = project_confidence(project, "com.microsoft.VSCode", "activity-tracker - main.py")

    assert confidence == pytest.approx(0.75)


def test_project_below_threshold_is_not_reported() -> None:
    projects = [Project(name="none", rules=[ProjectRule(RuleType.WINDOW_TITLE_REGEX, "zzz")])]

    assert detect_project(projects, "com.example", "title") == (None, 0.0)


def test_best_project_wins_and_ties_keep_first() -> None:
    first = Project(name="first", rules=[ProjectRule(RuleType.BUNDLE_ID_KEYWORD, "code")])
    second = Project(name="second", rules=[ProjectRule(RuleType.BUNDLE_ID_KEYWORD, "vscode")])
    third = Project(name="third", rules=[ProjectRule(RuleType.FILE_PATH_PREFIX, "~/work/")])

    assert detect_project([first, second], "com.microsoft.vscode", None)[0] == first.id
    assert detect_project([first, third], "com.microsoft.vscode", "~/work/app.py") == (third.id, 0.9)


def test_invalid_project_regex_does_not_match() -> None:
    project = Project(name="bad", rules=[ProjectRule(RuleType.WINDOW_TITLE_REGEX, "(")])

    assert project_confidence(project, "x", "(") == 0.0


def test_blacklist_and_whitelist_filtering() -> None:
    blacklist = TrackerSettings(blacklisted_bundle_ids=("com.secret",))
    whitelist = TrackerSettings(whitelist_mode=True, whitelisted_bundle_ids=("com.ok",))

    assert not is_tracked("com.secret", blacklist)
    assert is_tracked("com.other", blacklist)
    assert is_tracked("com.ok", whitelist)
    assert not is_tracked("com.other", whitelist)
    assert is_tracked("idle", whitelist)


def test_classifier_set_respects_toggles(labels) -> None:
    settings = TrackerSettings(
        enable_activity_labels=False,
        enable_project_detection=False,
        enable_meeting_detection=False,
    )
    project = Project(name="zoom", rules=[ProjectRule(RuleType.BUNDLE_ID_KEYWORD, "zoom")])

    result = ClassifierSet(settings, labels, [project]).classify("us.zoom.xos", "meeting")

    assert result.label_id is None
    assert result.project_id is None
    assert result.is_meeting is False


def test_classifier_set_matches_before_redacting(labels) -> None:
    settings = TrackerSettings(enable_data_redaction=True, redaction_patterns=("tutorial",))

    result = ClassifierSet(settings, labels).classify("com.random.unknown", "Tutorial video")

    assert result.label_id == "learning"
    assert result.window_title == "*** video"


@pytest.mark.parametrize(
    ("app", "title", "expected"),
    [
        ("chrome.exe", "Docs - Google Chrome", "Docs"),
        ("msedge.exe", "Inbox and 3 more pages - Microsoft Edge", "Inbox"),
        ("notepad.exe", "  notes   draft  ", "notes draft"),
        ("notepad.exe", "   ", None),
        (None, None, None),
    ],
)
def test_window_title_normalization(app, title, expected) -> None:
    assert normalize_window_title(app, title) == expected
