from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeInputSource, RecordingNotifier, ScriptedForeground, ScriptedIdle
from fastapi.testclient import TestClient

from activity_tracker.catalog import RuleCatalog
from activity_tracker.config import TrackerSettings
from activity_tracker.tracker import ActivityTracker
from activity_tracker.webapp import create_app

DAY = "2024-05-06"


@pytest.fixture
def tracker(data_dir, clock) -> ActivityTracker:
    return ActivityTracker(
        data_dir,
        TrackerSettings(),
        clock=clock,
        foreground=ScriptedForeground(),
        idle_probe=ScriptedIdle(),
        input_source=FakeInputSource(),
        catalog=RuleCatalog(None),
        notifier=RecordingNotifier(),
    )


@pytest.fixture
def client(tracker: ActivityTracker) -> TestClient:
    return TestClient(create_app(tracker=tracker, autostart=False))


def record_activity(tracker: ActivityTracker, clock, seconds: float = 120) -> None:
    tracker.start_tracking()
    tracker.tick()
    clock.advance(seconds)
    tracker.tick()


def test_status_reports_tracker_state(client: TestClient, data_dir: Path) -> None:
    response = client.get("/api/status")

    assert response.status_code == 200
    payload = response.json()
    assert payload["tracking"] is False
    assert payload["runner_alive"] is False
    assert payload["data_dir"] == str(data_dir)
    assert payload["memory_only"] is False
    assert payload["sampling_interval"] == 1.0


def test_snapshot_and_summary(client: TestClient, tracker: ActivityTracker, clock) -> None:
    record_activity(tracker, clock)

    snapshot = client.get("/api/snapshot").json()
    assert snapshot["isTracking"] is True
    assert snapshot["currentApp"] == "Safari"

    summary = client.get("/api/summary").json()
    assert summary["date"] == DAY
    assert summary["totals"]["active_seconds"] == 120
    assert summary["summary"]["segments"][0]["bundleId"] == "com.apple.Safari"


def test_tracking_stop_closes_the_day(client: TestClient, tracker: ActivityTracker, clock, data_dir: Path) -> None:
    record_activity(tracker, clock)
    clock.advance(30)

    response = client.post("/api/tracking/stop")

    assert response.json() == {"tracking": False}
    assert not tracker.is_tracking
    assert (data_dir / f"segments_{DAY}.json").exists()
    assert tracker.store.snapshot().segments[-1].end_time == clock.now()


def test_statistics_endpoint(client: TestClient, tracker: ActivityTracker, clock) -> None:
    record_activity(tracker, clock)

    payload = client.get("/api/statistics", params={"date": DAY}).json()

    assert payload["top_apps"][0]["bundleId"] == "com.apple.Safari"
    assert payload["labels"] == {"learning": 120.0}
    assert payload["switches"]["contextSwitchCount"] == 0


def test_invalid_date_is_rejected(client: TestClient) -> None:
    assert client.get("/api/summary", params={"date": "06/05/2024"}).status_code == 400


def test_heatmap_type_validation(client: TestClient) -> None:
    assert client.get("/api/heatmap", params={"type": "loud"}).status_code == 400

    payload = client.get("/api/heatmap", params={"type": "idle", "days": 3}).json()
    assert payload["days"] == 3
    assert len(payload["cells"]) == 7 * 24


def test_bookmark_endpoints(client: TestClient, tracker: ActivityTracker) -> None:
    presets = client.get("/api/bookmarks/presets").json()["presets"]
    assert {"text": "Break", "color_tag": "green"} in presets

    created = client.post("/api/bookmarks", json={"text": "Start work", "color_tag": "blue"})
    assert created.status_code == 200
    bookmark_id = created.json()["bookmark"]["id"]
    assert tracker.store.snapshot().bookmarks[0].id == bookmark_id

    assert client.post("/api/bookmarks", json={"text": "  "}).status_code == 400
    assert client.post("/api/bookmarks", json={"text": "x", "colour": "red"}).status_code == 422
    assert client.delete(f"/api/bookmarks/{bookmark_id}").status_code == 200
    assert client.delete(f"/api/bookmarks/{bookmark_id}").status_code == 404


def test_focus_endpoints(client: TestClient, clock) -> None:
    started = client.post("/api/focus/start", json={"project_id": "p1"})
    assert started.status_code == 200
    assert started.json()["session"]["projectId"] == "p1"
    assert client.post("/api/focus/start").status_code == 400

    clock.advance(300)
    ended = client.post("/api/focus/end")
    assert ended.status_code == 200
    assert ended.json()["session"]["isManual"] is True
    assert client.post("/api/focus/end").status_code == 404


def test_goal_crud(client: TestClient, tracker: ActivityTracker) -> None:
    created = client.post(
        "/api/goals",
        json={"name": "Less chat", "target_minutes": 30, "is_upper_limit": True, "filter_type": "app", "filter_value": "com.slack"},
    )
    assert created.status_code == 200
    goal_id = created.json()["goal"]["id"]
    assert tracker.catalog.get_goal(goal_id).target_minutes == 30

    listed = client.get("/api/goals").json()
    assert [goal["id"] for goal in listed["goals"]] == [goal_id]

    invalid = {"name": "x", "target_minutes": 0, "filter_type": "app", "filter_value": "a"}
    assert client.post("/api/goals", json=invalid).status_code == 422
    assert client.delete(f"/api/goals/{goal_id}").status_code == 200
    assert client.delete(f"/api/goals/{goal_id}").status_code == 404


def test_project_crud_and_labels(client: TestClient, tracker: ActivityTracker) -> None:
    labels = client.get("/api/labels").json()["labels"]
    assert "dev" in [label["id"] for label in labels]

    created = client.post(
        "/api/projects",
        json={"name": "Website", "rules": [{"type": "windowTitleRegex", "pattern": "site-.*"}]},
    )
    assert created.status_code == 200
    project_id = created.json()["project"]["id"]
    assert tracker.catalog.get_project(project_id).rules[0].pattern == "site-.*"
    assert client.get("/api/projects").json()["projects"][0]["name"] == "Website"

    assert client.post("/api/projects", json={"name": " "}).status_code == 400
    assert client.delete(f"/api/projects/{project_id}").status_code == 200
    assert client.delete(f"/api/projects/{project_id}").status_code == 404


def test_exports(client: TestClient, tracker: ActivityTracker, clock) -> None:
    record_activity(tracker, clock)

    csv_response = client.post("/api/export/csv")
    assert csv_response.status_code == 200
    assert Path(csv_response.json()["path"]).read_text(encoding="utf-8").startswith("ID,")

    timesheet = client.post("/api/export/timesheet", params={"group_by": "app"})
    assert timesheet.status_code == 200
    assert "\"Safari\"" in Path(timesheet.json()["path"]).read_text(encoding="utf-8")

    assert client.post("/api/export/timesheet", params={"group_by": "week"}).status_code == 400
    assert client.post("/api/export/pdf").status_code == 404


def test_settings_patch_persists(client: TestClient, tracker: ActivityTracker) -> None:
    response = client.patch(
        "/api/settings",
        json={"idle_threshold": 60, "blacklisted_bundle_ids": ["com.secret"]},
    )

    assert response.status_code == 200
    assert response.json()["idleThreshold"] == 60
    assert tracker.settings.blacklisted_bundle_ids == ("com.secret",)
    assert client.get("/api/settings").json()["blacklistedBundleIds"] == ["com.secret"]
    assert client.patch("/api/settings", json={"unknown": 1}).status_code == 422


def test_clear_today(client: TestClient, tracker: ActivityTracker, clock) -> None:
    record_activity(tracker, clock)

    response = client.delete("/api/today")

    assert response.json() == {"cleared": DAY}
    assert tracker.store.snapshot().segments == []
