"""
notify.py

Typed, timed status-message channel shared by the importer, the repository
and the store. Holds at most one message; a new message replaces and re-times
the current one (no queue). A duration of None or <= 0 means sticky.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional, Protocol

logger = logging.getLogger(__name__)

NotificationKind = Literal["success", "error", "info", "warning"]
KINDS = ("success", "error", "info", "warning")

DEFAULT_DURATIONS_MS: Dict[str, int] = {
    "success": 3000,
    "error": 5000,
    "info": 3000,
    "warning": 4000,
}


@dataclass(frozen=True)
class Notification:
    message: str
    kind: NotificationKind
    duration_ms: Optional[int] = None
    serial: int = 0


class TimerHandle(Protocol):
    def cancel(self) -> Any: ...


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Schedules on the running asyncio loop; a daemon timer thread otherwise."""

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            timer = threading.Timer(delay_s, callback)
            timer.daemon = True
            timer.start()
            return timer
        return loop.call_later(delay_s, callback)


Listener = Callable[[Optional[Notification]], None]


class NotificationBroker:
    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        durations_ms: Optional[Dict[str, int]] = None,
    ):
        self._scheduler = scheduler or LoopScheduler()
        self._durations = {**DEFAULT_DURATIONS_MS, **(durations_ms or {})}
        self._current: Optional[Notification] = None
        self._timer: Optional[TimerHandle] = None
        self._listeners: List[Listener] = []
        self._serials = itertools.count(1)
        self._lock = threading.RLock()

    @property
    def current(self) -> Optional[Notification]:
        return self._current

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; it immediately receives the current message."""
        with self._lock:
            self._listeners.append(listener)
            current = self._current
        listener(current)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(
        self,
        message: str,
        kind: NotificationKind = "info",
        duration_ms: Optional[int] = None,
    ) -> Notification:
        if kind not in KINDS:
            raise ValueError(f"Unknown notification kind: {kind}")
        with self._lock:
            self._cancel_timer()
            note = Notification(
                message=message,
                kind=kind,
                duration_ms=duration_ms if duration_ms and duration_ms > 0 else None,
                serial=next(self._serials),
            )
            self._current = note
            if note.duration_ms:
                serial = note.serial
                self._timer = self._scheduler.call_later(
                    note.duration_ms / 1000.0, lambda: self._expire(serial)
                )
        logger.debug("notify [%s] %s", kind, message)
        self._emit(note)
        return note

    def clear(self) -> None:
        with self._lock:
            self._cancel_timer()
            if self._current is None:
                return
            self._current = None
        self._emit(None)

    # convenience wrappers with per-kind default durations
    def success(self, message: str, duration_ms: Optional[int] = -1) -> Notification:
        return self.publish(message, "success", self._duration("success", duration_ms))

    def error(self, message: str, duration_ms: Optional[int] = -1) -> Notification:
        return self.publish(message, "error", self._duration("error", duration_ms))

    def info(self, message: str, duration_ms: Optional[int] = -1) -> Notification:
        return self.publish(message, "info", self._duration("info", duration_ms))

    def warning(self, message: str, duration_ms: Optional[int] = -1) -> Notification:
        return self.publish(message, "warning", self._duration("warning", duration_ms))

    def _duration(self, kind: str, duration_ms: Optional[int]) -> Optional[int]:
        # -1 selects the configured default; None and other values <= 0 mean sticky
        return self._durations[kind] if duration_ms == -1 else duration_ms

    def _expire(self, serial: int) -> None:
        with self._lock:
            if self._current is None or self._current.serial != serial:
                return  # superseded
            self._current = None
            self._timer = None
        self._emit(None)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _emit(self, note: Optional[Notification]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(note)
            except Exception:
                logger.exception("notification listener failed")
