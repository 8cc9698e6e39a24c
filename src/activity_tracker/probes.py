"""Platform probes: foreground window, idle time and global input events."""

from __future__ import annotations

import ctypes
import logging
import math
import re
import sys
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Protocol

import psutil

from .errors import ProbeUnavailable

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ForegroundTarget:
    bundle_id: Optional[str]
    app_name: Optional[str]
    window_title: Optional[str] = None


class ForegroundProbe(Protocol):
    def foreground_target(self) -> ForegroundTarget: ...


class IdleProbe(Protocol):
    def system_idle_seconds(self) -> float: ...


class InputKind(str, Enum):
    KEY_DOWN = "keyDown"
    MOUSE_DOWN = "mouseDown"
    SCROLL = "scroll"
    MOUSE_MOVED = "mouseMoved"


@dataclass(slots=True, frozen=True)
class InputEvent:
    kind: InputKind
    dx: float = 0.0
    dy: float = 0.0

    @property
    def distance(self) -> float:
        return math.hypot(self.dx, self.dy)


InputCallback = Callable[[InputEvent], None]


class InputSource(Protocol):
    def start(self, callback: InputCallback) -> bool: ...

    def stop(self) -> None: ...


class IdleDetector:
    """Threshold predicate over the platform idle counter.

    A failing probe counts as idle.
    """

    def __init__(self, probe: IdleProbe) -> None:
        self._probe = probe

    def idle_seconds(self) -> Optional[float]:
        try:
            return float(self._probe.system_idle_seconds())
        except Exception:
            logger.debug("Idle probe failed.", exc_info=True)
            return None

    def is_idle(self, threshold_seconds: float) -> bool:
        idle = self.idle_seconds()
        return idle is None or idle >= threshold_seconds


class WindowsIdleProbe:
    """Detects idle time using Win32 APIs."""

    class LASTINPUTINFO(ctypes.Structure):
        _fields_ = [("cbSize", ctypes.c_uint), ("dwTime", ctypes.c_ulong)]

    def __init__(self) -> None:
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]
        self._kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        self._kernel32.GetTickCount64.restype = ctypes.c_ulonglong

    def system_idle_seconds(self) -> float:
        last_input = self.LASTINPUTINFO()
        last_input.cbSize = ctypes.sizeof(last_input)
        if not self._user32.GetLastInputInfo(ctypes.byref(last_input)):
            raise ProbeUnavailable("GetLastInputInfo failed")
        # dwTime wraps every 49.7 days, compare in the same 32-bit space.
        now_ticks = self._kernel32.GetTickCount64() & 0xFFFFFFFF
        elapsed_ms = (now_ticks - last_input.dwTime) & 0xFFFFFFFF
        return elapsed_ms / 1000.0


class WindowsForegroundProbe:
    """Retrieves the foreground process and window title."""

    def __init__(self) -> None:
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]

    def foreground_target(self) -> ForegroundTarget:
        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            raise ProbeUnavailable("no foreground window")

        length = self._user32.GetWindowTextLengthW(hwnd)
        buffer = ctypes.create_unicode_buffer(length + 1)
        self._user32.GetWindowTextW(hwnd, buffer, length + 1)
        window_title = buffer.value.strip() or None

        pid = ctypes.c_ulong()
        self._user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        process_name: Optional[str] = None
        try:
            if pid.value:
                process_name = psutil.Process(pid.value).name()
        except (psutil.Error, ProcessLookupError):
            process_name = None

        if not process_name:
            return ForegroundTarget(None, None, window_title)
        return ForegroundTarget(
            bundle_id=process_name.lower(),
            app_name=Path(process_name).stem,
            window_title=normalize_window_title(process_name, window_title),
        )


class NullProbe:
    """Stand-in for platforms without a foreground/idle implementation."""

    def foreground_target(self) -> ForegroundTarget:
        raise ProbeUnavailable(f"foreground probe not supported on {sys.platform}")

    def system_idle_seconds(self) -> float:
        raise ProbeUnavailable(f"idle probe not supported on {sys.platform}")


class PynputInputSource:
    """Global keyboard and mouse listeners.

    Listener callbacks run on pynput's threads. When the listeners cannot be
    started (no display, no accessibility permission) ``start`` returns False
    and no events are delivered.
    """

    def __init__(self) -> None:
        self._keyboard_listener = None
        self._mouse_listener = None
        self._callback: Optional[InputCallback] = None
        self._last_position: Optional[tuple[float, float]] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._keyboard_listener is not None

    def start(self, callback: InputCallback) -> bool:
        if self.running:
            return True
        try:
            from pynput import keyboard, mouse

            self._callback = callback
            self._keyboard_listener = keyboard.Listener(on_press=self._on_press)
            self._mouse_listener = mouse.Listener(
                on_move=self._on_move,
                on_click=self._on_click,
                on_scroll=self._on_scroll,
            )
            self._keyboard_listener.start()
            self._mouse_listener.start()
        except Exception:
            logger.warning("Global input monitoring unavailable; engagement disabled.", exc_info=True)
            self.stop()
            return False
        return True

    def stop(self) -> None:
        for listener in (self._keyboard_listener, self._mouse_listener):
            if listener is not None:
                try:
                    listener.stop()
                except Exception:
                    logger.debug("Failed to stop input listener.", exc_info=True)
        self._keyboard_listener = None
        self._mouse_listener = None
        self._callback = None
        self._last_position = None

    def _emit(self, event: InputEvent) -> None:
        callback = self._callback
        if callback is not None:
            callback(event)

    def _on_press(self, key) -> None:
        self._emit(InputEvent(InputKind.KEY_DOWN))

    def _on_click(self, x, y, button, pressed) -> None:
        if pressed:
            self._emit(InputEvent(InputKind.MOUSE_DOWN))

    def _on_scroll(self, x, y, dx, dy) -> None:
        self._emit(InputEvent(InputKind.SCROLL))

    def _on_move(self, x, y) -> None:
        with self._lock:
            last = self._last_position
            self._last_position = (x, y)
        if last is not None:
            self._emit(InputEvent(InputKind.MOUSE_MOVED, dx=x - last[0], dy=y - last[1]))


def default_probes() -> tuple[ForegroundProbe, IdleProbe]:
    """Return the foreground and idle probes for the running platform."""
    if sys.platform == "win32":
        return WindowsForegroundProbe(), WindowsIdleProbe()
    logger.warning("No foreground probe for %s; all time will be recorded as idle.", sys.platform)
    probe = NullProbe()
    return probe, probe


_BROWSER_SUFFIXES: dict[str, tuple[str, ...]] = {
    "msedge.exe": (" - Microsoft Edge",),
    "chrome.exe": (" - Google Chrome",),
    "firefox.exe": (" - Mozilla Firefox", " — Mozilla Firefox"),
    "brave.exe": (" - Brave",),
    "opera.exe": (" - Opera",),
    "com.google.chrome": (" - Google Chrome",),
    "org.mozilla.firefox": (" — Mozilla Firefox",),
}

_EXTRA_TAB_COUNT_PATTERN = re.compile(r"\s+and\s+\d+\s+more\s+pages?", re.IGNORECASE)


def normalize_window_title(app_key: Optional[str], window_title: Optional[str]) -> Optional[str]:
    """Strip browser suffixes and tab counters, collapse whitespace."""
    if not window_title:
        return None
    normalized = window_title.strip()
    suffixes = _BROWSER_SUFFIXES.get(app_key.lower()) if app_key else None
    if suffixes:
        for suffix in suffixes:
            if normalized.endswith(suffix):
                normalized = normalized[: -len(suffix)].rstrip(" -")
                break
    normalized = _EXTRA_TAB_COUNT_PATTERN.sub("", normalized).strip(" -|")
    normalized = re.sub(r"\s{2,}", " ", normalized).strip()
    return normalized or None
