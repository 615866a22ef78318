"""
Scheduling primitives for the session engine.

Two independent cadences drive a session:

- a frame scheduler ("run on next display refresh") for the Phase Clock,
  called with a millisecond timestamp, rescheduled one frame at a time;
- a fixed interval timer (1 Hz) for the Session Timer.

They are separate objects on purpose and are never merged into one loop.

Implementations:
    ManualClock            deterministic virtual time (tests, offline simulation)
    AsyncioFrameScheduler  asyncio event loop hosts
    AsyncioIntervalTimer   asyncio, tick times anchored to the start instant
    (Qt versions live in :mod:`nebrabreath.engine.qt_timers`)
"""

from __future__ import annotations
import asyncio
import itertools
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Iterator, List, Optional, Union

FrameCallback = Callable[[float], None]
TickCallback = Callable[[], None]

DEFAULT_FRAME_INTERVAL_MS = 16.0
DEFAULT_TICK_INTERVAL_MS = 1000.0


class ScheduledFrame(ABC):
    """Cancellation handle for one scheduled frame callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Cancel the pending callback. Idempotent."""
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class FrameScheduler(ABC):
    """Schedules a callback for the next frame."""

    @abstractmethod
    def schedule(self, callback: FrameCallback) -> ScheduledFrame:
        """Run *callback(timestamp_ms)* on the next frame."""
        pass

    @abstractmethod
    def now_ms(self) -> float:
        """Current time on the scheduler's monotonic clock."""
        pass


class IntervalTimer(ABC):
    """Fixed-cadence repeating timer."""

    interval_ms: float = DEFAULT_TICK_INTERVAL_MS

    @abstractmethod
    def start(self, callback: TickCallback) -> None:
        """Start ticking every ``interval_ms``; restarting resets the phase."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop ticking. Idempotent."""
        pass

    @property
    @abstractmethod
    def is_active(self) -> bool:
        pass


# ===== Deterministic virtual clock =====


class _ManualFrame(ScheduledFrame):
    __slots__ = ("callback", "_cancelled")

    def __init__(self, callback: FrameCallback):
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualFrameScheduler(FrameScheduler):
    """Frame scheduler bound to a :class:`ManualClock`."""

    def __init__(self, clock: ManualClock):
        self._clock = clock

    def schedule(self, callback: FrameCallback) -> ScheduledFrame:
        frame = _ManualFrame(callback)
        self._clock._pending_frames.append(frame)
        return frame

    def now_ms(self) -> float:
        return self._clock.now_ms


class ManualIntervalTimer(IntervalTimer):
    """Interval timer bound to a :class:`ManualClock`."""

    def __init__(self, clock: ManualClock, interval_ms: float = DEFAULT_TICK_INTERVAL_MS):
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self._clock = clock
        self.interval_ms = float(interval_ms)
        self._callback: Optional[TickCallback] = None
        self._active = False
        self.next_due_ms = 0.0
        self.fired = 0

    def start(self, callback: TickCallback) -> None:
        self._callback = callback
        self._active = True
        self.next_due_ms = self._clock.now_ms + self.interval_ms

    def stop(self) -> None:
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def _fire(self) -> None:
        self.next_due_ms += self.interval_ms
        self.fired += 1
        if self._callback is not None:
            self._callback()


class ManualClock:
    """
    Virtual time source driving manual schedulers deterministically.

    ``advance(ms)`` walks time forward frame by frame. Interval timers fire
    at their exact due times (before a frame at the same instant); frame
    callbacks queued at the current instant are delivered first, then once
    per frame boundary. Callbacks scheduled from inside a frame run on the
    following frame, like a real display refresh loop.

    Example:
        clock = ManualClock()
        frames = clock.frame_scheduler()
        ticks = clock.interval_timer(1000)
        clock.advance(4000, frame_ms=[16, 33, 10])  # irregular frame cadence
    """

    def __init__(self, frame_interval_ms: float = DEFAULT_FRAME_INTERVAL_MS, start_ms: float = 0.0):
        if frame_interval_ms <= 0:
            raise ValueError(f"frame_interval_ms must be positive, got {frame_interval_ms}")
        self.frame_interval_ms = float(frame_interval_ms)
        self.now_ms = float(start_ms)
        self.frames_delivered = 0
        self._pending_frames: List[_ManualFrame] = []
        self._timers: List[ManualIntervalTimer] = []

    def frame_scheduler(self) -> ManualFrameScheduler:
        return ManualFrameScheduler(self)

    def interval_timer(self, interval_ms: float = DEFAULT_TICK_INTERVAL_MS) -> ManualIntervalTimer:
        timer = ManualIntervalTimer(self, interval_ms)
        self._timers.append(timer)
        return timer

    @property
    def pending_frames(self) -> int:
        return sum(1 for frame in self._pending_frames if not frame.cancelled)

    def advance(self, ms: float, frame_ms: Union[float, Iterable[float], None] = None) -> None:
        """
        Move virtual time forward by *ms*.

        Args:
            ms: Amount of virtual time to advance
            frame_ms: Frame length (number) or a repeating sequence of frame
                lengths; defaults to ``frame_interval_ms``
        """
        if ms < 0:
            raise ValueError(f"Cannot advance by negative time: {ms}")
        cadence = self._cadence(frame_ms)
        target = self.now_ms + ms

        self._deliver_frames()
        while self.now_ms < target:
            step = next(cadence)
            if step <= 0:
                raise ValueError(f"Frame length must be positive, got {step}")
            frame_time = min(self.now_ms + step, target)
            self._fire_timers_until(frame_time)
            self.now_ms = frame_time
            self._deliver_frames()

    def _cadence(self, frame_ms: Union[float, Iterable[float], None]) -> Iterator[float]:
        if frame_ms is None:
            return itertools.repeat(self.frame_interval_ms)
        if isinstance(frame_ms, (int, float)):
            return itertools.repeat(float(frame_ms))
        lengths = [float(v) for v in frame_ms]
        if not lengths:
            raise ValueError("frame_ms sequence cannot be empty")
        return itertools.cycle(lengths)

    def _fire_timers_until(self, limit_ms: float) -> None:
        while True:
            due = [t for t in self._timers if t.is_active and t.next_due_ms <= limit_ms]
            if not due:
                return
            timer = min(due, key=lambda t: t.next_due_ms)
            self.now_ms = max(self.now_ms, timer.next_due_ms)
            timer._fire()

    def _deliver_frames(self) -> None:
        pending, self._pending_frames = self._pending_frames, []
        for frame in pending:
            if frame.cancelled:
                continue
            frame.cancel()  # delivered frames cannot fire twice
            self.frames_delivered += 1
            frame.callback(self.now_ms)


# ===== asyncio =====


class _AsyncioFrame(ScheduledFrame):
    __slots__ = ("_handle",)

    def __init__(self, handle: asyncio.Handle):
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()


class AsyncioFrameScheduler(FrameScheduler):
    """Frame scheduler on an asyncio loop (``call_later`` at frame cadence)."""

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        frame_interval_ms: float = DEFAULT_FRAME_INTERVAL_MS,
    ):
        self._loop = loop
        self.frame_interval_ms = float(frame_interval_ms)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now_ms(self) -> float:
        return self.loop.time() * 1000.0

    def schedule(self, callback: FrameCallback) -> ScheduledFrame:
        handle = self.loop.call_later(self.frame_interval_ms / 1000.0, self._run, callback)
        return _AsyncioFrame(handle)

    def _run(self, callback: FrameCallback) -> None:
        callback(self.now_ms())


class AsyncioIntervalTimer(IntervalTimer):
    """
    Interval timer on an asyncio loop.

    Tick *n* is due at ``start + n * interval`` so callback latency never
    accumulates into drift.
    """

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        interval_ms: float = DEFAULT_TICK_INTERVAL_MS,
    ):
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self._loop = loop
        self.interval_ms = float(interval_ms)
        self._callback: Optional[TickCallback] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._anchor = 0.0
        self._count = 0

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def start(self, callback: TickCallback) -> None:
        self.stop()
        self._callback = callback
        self._anchor = self.loop.time()
        self._count = 0
        self._schedule_next()

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def is_active(self) -> bool:
        return self._handle is not None

    def _schedule_next(self) -> None:
        self._count += 1
        due = self._anchor + self._count * self.interval_ms / 1000.0
        self._handle = self.loop.call_at(due, self._tick)

    def _tick(self) -> None:
        # Schedule first so a stop() from inside the callback cancels the next tick.
        self._schedule_next()
        if self._callback is not None:
            self._callback()
