"""
Phase Clock - animates exactly one phase step from 0 to 100 percent.

Progress is recomputed on every frame from a fixed start timestamp instead of
summing frame deltas, so an irregular frame cadence never accumulates drift.
The start timestamp is captured on the first frame, not when ``start()`` is
called, so scheduler queuing latency does not bias the step.

Architecture:
    start(step, ...) → schedule frame
    frame(ts) → first frame captures start_ts, calls on_begin(start_ts)
              → pct = min(elapsed / duration * 100, 100) → on_progress(pct)
              → elapsed < duration ? reschedule : on_complete(start_ts + duration)
"""

from __future__ import annotations
import logging
from typing import Callable, Optional

from ..catalog.models import PhaseStep
from ..errors import ConfigurationError
from ..logging_utils import BurstSampler
from .scheduling import FrameScheduler, ScheduledFrame

ProgressCallback = Callable[[float], None]
BoundaryCallback = Callable[[float], None]

# A chained step keeps the previous boundary only if its first frame lands this close to it
MAX_CHAIN_GAP_MS = 250.0


class PhaseClock:
    """
    Frame-driven timer for a single PhaseStep.

    Only one run is ever in flight: ``start()`` cancels the previous run, and
    callbacks of a cancelled run are ignored even if the scheduler still
    delivers them (generation token).

    Usage:
        clock = PhaseClock(scheduler)
        clock.start(step, on_progress=print, on_complete=lambda boundary: ...)
    """

    def __init__(self, scheduler: FrameScheduler, max_chain_gap_ms: float = MAX_CHAIN_GAP_MS):
        self._scheduler = scheduler
        self.max_chain_gap_ms = float(max_chain_gap_ms)
        self.logger = logging.getLogger(__name__)

        self._handle: Optional[ScheduledFrame] = None
        self._generation = 0
        self._running = False

        self._step: Optional[PhaseStep] = None
        self._start_ts: Optional[float] = None
        self._elapsed_ms = 0.0
        self._progress_pct = 0.0

        self._frame_sampler = BurstSampler(interval_s=2.0)

    # ===== Observable state =====

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def step(self) -> Optional[PhaseStep]:
        return self._step

    @property
    def progress_pct(self) -> float:
        return self._progress_pct

    @property
    def elapsed_ms(self) -> float:
        """Elapsed time within the current step, clamped to its duration."""
        return self._elapsed_ms

    @property
    def start_timestamp(self) -> Optional[float]:
        return self._start_ts

    # ===== Control =====

    def start(
        self,
        step: PhaseStep,
        on_progress: ProgressCallback,
        on_complete: BoundaryCallback,
        *,
        on_begin: Optional[BoundaryCallback] = None,
        resume_from_ms: float = 0.0,
        start_at_ms: Optional[float] = None,
    ) -> None:
        """
        Begin timing *step*.

        Args:
            step: Phase step to animate
            on_progress: Called with pct (0-100) on every frame
            on_complete: Called once with the ideal end boundary (start + duration)
            on_begin: Called once with the start timestamp on the first frame
            resume_from_ms: Elapsed time already spent in this step (pause/resume)
            start_at_ms: Explicit start timestamp, used to chain a step directly
                after the previous step's end boundary; ignored in favour of
                the first frame's timestamp when that frame arrives more than
                ``max_chain_gap_ms`` late

        Raises:
            ConfigurationError: If the step duration is not positive
        """
        duration = step.duration_ms
        if duration <= 0:
            raise ConfigurationError(f"Phase step duration must be positive, got {duration}")

        self.cancel()
        self._generation += 1
        generation = self._generation

        resume = min(max(0.0, float(resume_from_ms)), float(duration))
        self._step = step
        self._start_ts = None
        self._elapsed_ms = resume
        self._progress_pct = resume / duration * 100.0
        self._running = True

        def on_frame(ts: float) -> None:
            if generation != self._generation:
                return
            self._handle = None

            if self._start_ts is None:
                self._start_ts = self._resolve_start(ts, resume, start_at_ms)
                if on_begin is not None:
                    on_begin(self._start_ts)
                    if generation != self._generation:
                        return

            elapsed = max(0.0, ts - self._start_ts)
            pct = min(elapsed / duration * 100.0, 100.0)
            self._elapsed_ms = min(elapsed, float(duration))
            self._progress_pct = pct
            self._trace_frame()

            on_progress(pct)
            if generation != self._generation:
                return

            if elapsed < duration:
                self._handle = self._scheduler.schedule(on_frame)
            else:
                self._running = False
                on_complete(self._start_ts + duration)

        self._handle = self._scheduler.schedule(on_frame)

    def _resolve_start(self, ts: float, resume: float, start_at_ms: Optional[float]) -> float:
        if start_at_ms is None:
            return ts - resume
        gap = ts - float(start_at_ms)
        if gap > self.max_chain_gap_ms:
            # Frames stalled past the boundary; time the step from now instead of replaying it instantly
            self.logger.debug(f"[clock] Chain gap {gap:.0f}ms, restarting step at {ts:.0f}ms")
            return ts
        return float(start_at_ms)

    def cancel(self) -> None:
        """Stop the in-flight run. Idempotent; progress is left frozen."""
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._running = False

    def clear(self) -> None:
        """Cancel and zero the progress."""
        self.cancel()
        self._start_ts = None
        self._elapsed_ms = 0.0
        self._progress_pct = 0.0

    def _trace_frame(self) -> None:
        total = self._frame_sampler.record()
        if total:
            self.logger.debug(
                "[clock.trace] %d frames, step=%s pct=%.1f",
                total, self._step.action.value if self._step else None, self._progress_pct,
            )
