"""
Session Timer - 1 Hz elapsed-seconds accumulator.

Independent of the frame-driven Phase Clock: logging attribution, preset
segment boundaries and the sleep threshold are all whole-second events and
must not depend on the display refresh rate. Only active time counts;
pausing freezes the accumulator and resuming continues from the frozen value
with no wall-clock gap compensation.
"""

from __future__ import annotations
import logging
from typing import Callable, Optional

from .scheduling import IntervalTimer

DEFAULT_SLEEP_THRESHOLD_SECONDS = 420


class SessionTimer:
    """
    Counts active seconds on an IntervalTimer.

    Every tick increments ``total_seconds`` and calls ``on_tick(total)``.
    When the total first reaches ``threshold_seconds`` the sleep callback
    fires once; it is re-armed only by ``reset()``.
    """

    def __init__(
        self,
        interval_timer: IntervalTimer,
        on_tick: Callable[[int], None],
        on_sleep_threshold: Optional[Callable[[int], None]] = None,
        threshold_seconds: Optional[int] = DEFAULT_SLEEP_THRESHOLD_SECONDS,
    ):
        self._timer = interval_timer
        self.on_tick = on_tick
        self.on_sleep_threshold = on_sleep_threshold
        self.threshold_seconds = threshold_seconds
        self.logger = logging.getLogger(__name__)

        self._total_seconds = 0
        self._threshold_fired = False

    @property
    def total_seconds(self) -> int:
        return self._total_seconds

    @property
    def threshold_fired(self) -> bool:
        return self._threshold_fired

    @property
    def is_running(self) -> bool:
        return self._timer.is_active

    def start(self) -> None:
        if self._timer.is_active:
            return
        self._timer.start(self._on_interval)
        self.logger.debug(f"[timer] Started at {self._total_seconds}s")

    def stop(self) -> None:
        if self._timer.is_active:
            self.logger.debug(f"[timer] Stopped at {self._total_seconds}s")
        self._timer.stop()

    def reset(self) -> None:
        """Stop, zero the accumulator and re-arm the sleep threshold."""
        self.stop()
        self._total_seconds = 0
        self._threshold_fired = False

    def _on_interval(self) -> None:
        self._total_seconds += 1
        total = self._total_seconds
        self.on_tick(total)

        # on_tick may have reset the session
        if self._total_seconds != total or self._threshold_fired:
            return
        if self.threshold_seconds and total >= self.threshold_seconds:
            self._threshold_fired = True
            self.logger.info(f"[timer] Sleep threshold reached at {total}s")
            if self.on_sleep_threshold is not None:
                self.on_sleep_threshold(total)
