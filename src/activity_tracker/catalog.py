"""User-defined labels, projects and goals."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional

from .errors import PersistenceError
from .models import ActivityLabel, Goal, Project, default_labels
from .storage import (
    load_goals,
    load_labels,
    load_projects,
    save_goals,
    save_labels,
    save_projects,
)

logger = logging.getLogger(__name__)


class RuleCatalog:
    """Classification rules and goals, persisted independently of daily data.

    ``data_dir=None`` keeps everything in memory.
    """

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        *,
        labels: Optional[Iterable[ActivityLabel]] = None,
        projects: Optional[Iterable[Project]] = None,
        goals: Optional[Iterable[Goal]] = None,
    ) -> None:
        self._data_dir = data_dir
        self._lock = threading.Lock()
        if labels is None:
            labels = load_labels(data_dir) if data_dir else default_labels()
        if projects is None:
            projects = load_projects(data_dir) if data_dir else []
        if goals is None:
            goals = load_goals(data_dir) if data_dir else []
        self._labels = list(labels)
        self._projects = list(projects)
        self._goals = list(goals)

    @property
    def labels(self) -> list[ActivityLabel]:
        with self._lock:
            return list(self._labels)

    @property
    def projects(self) -> list[Project]:
        with self._lock:
            return list(self._projects)

    @property
    def goals(self) -> list[Goal]:
        with self._lock:
            return list(self._goals)

    def get_label(self, label_id: str) -> Optional[ActivityLabel]:
        return next((label for label in self.labels if label.id == label_id), None)

    def get_project(self, project_id: str) -> Optional[Project]:
        return next((project for project in self.projects if project.id == project_id), None)

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        return next((goal for goal in self.goals if goal.id == goal_id), None)

    def add_label(self, label: ActivityLabel) -> None:
        with self._lock:
            self._labels.append(label)
            self._persist(save_labels, self._labels)

    def update_label(self, label: ActivityLabel) -> bool:
        with self._lock:
            replaced = _replace_by_id(self._labels, label)
            if replaced:
                self._persist(save_labels, self._labels)
            return replaced

    def remove_label(self, label_id: str) -> bool:
        with self._lock:
            removed = _remove_by_id(self._labels, label_id)
            if removed:
                self._persist(save_labels, self._labels)
            return removed

    def add_project(self, project: Project) -> None:
        with self._lock:
            self._projects.append(project)
            self._persist(save_projects, self._projects)

    def update_project(self, project: Project) -> bool:
        with self._lock:
            replaced = _replace_by_id(self._projects, project)
            if replaced:
                self._persist(save_projects, self._projects)
            return replaced

    def remove_project(self, project_id: str) -> bool:
        with self._lock:
            removed = _remove_by_id(self._projects, project_id)
            if removed:
                self._persist(save_projects, self._projects)
            return removed

    def add_goal(self, goal: Goal) -> None:
        with self._lock:
            self._goals.append(goal)
            self._persist(save_goals, self._goals)

    def update_goal(self, goal: Goal) -> bool:
        with self._lock:
            replaced = _replace_by_id(self._goals, goal)
            if replaced:
                self._persist(save_goals, self._goals)
            return replaced

    def remove_goal(self, goal_id: str) -> bool:
        with self._lock:
            removed = _remove_by_id(self._goals, goal_id)
            if removed:
                self._persist(save_goals, self._goals)
            return removed

    def _persist(self, writer: Callable[[Path, list], None], records: list) -> None:
        if self._data_dir is None:
            return
        try:
            writer(self._data_dir, records)
        except PersistenceError:
            logger.exception("Failed to save rule file.")


def _replace_by_id(items: list, item) -> bool:
    for index, existing in enumerate(items):
        if existing.id == item.id:
            items[index] = item
            return True
    return False


def _remove_by_id(items: list, item_id: str) -> bool:
    before = len(items)
    items[:] = [item for item in items if item.id != item_id]
    return len(items) != before
