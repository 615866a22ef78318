"""Qt (PyQt6) implementations of the engine schedulers.

Used when the session runs inside a Qt event loop (GUI shell or the headless
``run`` CLI command with a ``QCoreApplication``). Both classes use precise
timers so the 1 Hz accumulator is not coalesced by the OS.
"""

from __future__ import annotations

import logging
import time
from functools import partial
from typing import Optional, Set

from PyQt6.QtCore import QTimer, Qt

from .scheduling import (
    DEFAULT_FRAME_INTERVAL_MS,
    DEFAULT_TICK_INTERVAL_MS,
    FrameCallback,
    FrameScheduler,
    IntervalTimer,
    ScheduledFrame,
    TickCallback,
)

logger = logging.getLogger(__name__)


class _QtFrame(ScheduledFrame):
    __slots__ = ("_timer", "_cancelled", "_owner")

    def __init__(self, owner: "QtFrameScheduler", timer: QTimer):
        self._owner = owner
        self._timer = timer
        self._cancelled = False

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._timer.stop()
        self._owner._release(self)

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class QtFrameScheduler(FrameScheduler):
    """Single-shot QTimer per frame at display-refresh cadence (~60 Hz)."""

    def __init__(self, frame_interval_ms: float = DEFAULT_FRAME_INTERVAL_MS):
        self.frame_interval_ms = float(frame_interval_ms)
        self._live: Set[_QtFrame] = set()

    def now_ms(self) -> float:
        return time.perf_counter() * 1000.0

    def schedule(self, callback: FrameCallback) -> ScheduledFrame:
        timer = QTimer()
        timer.setSingleShot(True)
        timer.setTimerType(Qt.TimerType.PreciseTimer)
        frame = _QtFrame(self, timer)
        timer.timeout.connect(partial(self._fire, frame, callback))
        self._live.add(frame)
        timer.start(max(0, int(round(self.frame_interval_ms))))
        return frame

    def _fire(self, frame: _QtFrame, callback: FrameCallback) -> None:
        if frame.cancelled:
            return
        frame._cancelled = True
        self._release(frame)
        callback(self.now_ms())

    def _release(self, frame: _QtFrame) -> None:
        self._live.discard(frame)
        frame._timer.deleteLater()


class QtIntervalTimer(IntervalTimer):
    """Repeating precise QTimer."""

    def __init__(self, interval_ms: float = DEFAULT_TICK_INTERVAL_MS):
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self.interval_ms = float(interval_ms)
        self._callback: Optional[TickCallback] = None
        self._timer = QTimer()
        self._timer.setTimerType(Qt.TimerType.PreciseTimer)
        self._timer.setInterval(int(round(self.interval_ms)))
        self._timer.timeout.connect(self._on_timeout)

    def start(self, callback: TickCallback) -> None:
        self._callback = callback
        self._timer.start()  # restarts the phase when already running

    def stop(self) -> None:
        self._timer.stop()

    @property
    def is_active(self) -> bool:
        return self._timer.isActive()

    def _on_timeout(self) -> None:
        if self._callback is not None:
            self._callback()
