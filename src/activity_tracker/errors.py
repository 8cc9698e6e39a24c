"""Exception types shared across the tracker."""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for tracker failures."""


class ProbeUnavailable(TrackerError):
    """A platform probe could not answer (no foreground app, no permission)."""


class PersistenceError(TrackerError):
    """Reading or writing a data file failed."""

    def __init__(self, path, cause: OSError) -> None:
        super().__init__(f"{path}: {cause}")
        self.path = path
        self.cause = cause


class MalformedDataError(TrackerError):
    """A data file exists but cannot be decoded."""

    def __init__(self, path, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason
