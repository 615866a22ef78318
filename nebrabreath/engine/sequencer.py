"""
Cycle Sequencer - turns a technique's flat step list into a cyclic stream of
Phase Clock runs.

``advance()`` is the only place the cycle count changes: past the last step
the index wraps to 0 and exactly one cycle is counted. Consecutive steps are
chained on the ideal end boundary of the previous step so a long session does
not lose one frame of latency per step.
"""

from __future__ import annotations
import logging
from typing import Callable, Optional

from ..catalog.models import PhaseStep, Technique
from ..errors import ConfigurationError, InvariantViolation
from .phase_clock import PhaseClock


class CycleSequencer:
    """
    Step index / cycle counter driving a PhaseClock.

    Callbacks:
        on_progress(pct): every frame of the current step
        on_step_enter(index, step): first frame of a step after the index
            changed (or the step was restarted); never on a mid-step resume
        on_cycle_complete(cycle_count): after a wrap to step 0
    """

    def __init__(
        self,
        clock: PhaseClock,
        on_progress: Optional[Callable[[float], None]] = None,
        on_step_enter: Optional[Callable[[int, PhaseStep], None]] = None,
        on_cycle_complete: Optional[Callable[[int], None]] = None,
    ):
        self._clock = clock
        self.on_progress = on_progress
        self.on_step_enter = on_step_enter
        self.on_cycle_complete = on_cycle_complete
        self.logger = logging.getLogger(__name__)

        self._technique: Optional[Technique] = None
        self._step_index = 0
        self._cycle_count = 0
        self._progress_pct = 0.0
        self._resume_ms = 0.0
        self._entered = False  # on_step_enter already fired for this index

    # ===== Observable state =====

    @property
    def technique(self) -> Optional[Technique]:
        return self._technique

    @property
    def step_index(self) -> int:
        return self._step_index

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    @property
    def progress_pct(self) -> float:
        return self._progress_pct

    @property
    def is_playing(self) -> bool:
        return self._clock.is_running

    @property
    def current_step(self) -> PhaseStep:
        """
        Step at the current index.

        Raises:
            ConfigurationError: No technique loaded or technique has no steps
            InvariantViolation: Index outside the step list
        """
        steps = self._steps()
        if not 0 <= self._step_index < len(steps):
            raise InvariantViolation(
                f"Step index {self._step_index} out of range for '{self._technique.id}' "
                f"({len(steps)} steps)"
            )
        return steps[self._step_index]

    # ===== Control =====

    def load(self, technique: Technique, reset_cycles: bool = True) -> None:
        """
        Point the sequencer at *technique*, cancelling any in-flight step.

        Index and progress go back to 0; the cycle count is only cleared when
        *reset_cycles* is set, never incremented.
        """
        if not technique.steps:
            raise ConfigurationError(f"Technique '{technique.id}' has no steps")
        self._clock.clear()
        self._technique = technique
        self._step_index = 0
        self._progress_pct = 0.0
        self._resume_ms = 0.0
        self._entered = False
        if reset_cycles:
            self._cycle_count = 0
        self.logger.debug(f"[sequencer] Loaded '{technique.id}' ({len(technique.steps)} steps)")

    def play(self) -> None:
        """Start (or resume) timing the current step."""
        self._start_step(resume_from_ms=self._resume_ms)

    def halt(self) -> None:
        """Pause: cancel the clock, keep index and progress."""
        if self._clock.is_running:
            self._resume_ms = self._clock.elapsed_ms
        self._clock.cancel()

    def restart_step(self) -> None:
        """Cancel and replay the current step from 0 on the next play()."""
        self._clock.clear()
        self._progress_pct = 0.0
        self._resume_ms = 0.0
        self._entered = False

    def rewind(self) -> None:
        """Cancel, snap index and progress to 0; cycle count kept."""
        self._step_index = 0
        self.restart_step()

    def reset(self) -> None:
        """Rewind and clear the cycle count."""
        self.rewind()
        self._cycle_count = 0

    def advance(self, chain_from_ms: Optional[float] = None) -> None:
        """
        Move to the next step, wrapping to 0 and counting a cycle after the last.

        Args:
            chain_from_ms: End boundary of the finished step; when given, the
                next step is started with that as its start timestamp
        """
        steps = self._steps()
        was_playing = self._clock.is_running
        self._clock.clear()

        cycled = False
        if self._step_index < len(steps) - 1:
            self._step_index += 1
        else:
            self._step_index = 0
            self._cycle_count += 1
            cycled = True

        self._progress_pct = 0.0
        self._resume_ms = 0.0
        self._entered = False

        if cycled:
            self.logger.debug(f"[sequencer] Cycle {self._cycle_count} complete ({self._technique.id})")
            if self.on_cycle_complete is not None:
                self.on_cycle_complete(self._cycle_count)

        if chain_from_ms is not None:
            self._start_step(start_at_ms=chain_from_ms)
        elif was_playing:
            self._start_step()

    # ===== Internals =====

    def _steps(self):
        if self._technique is None:
            raise ConfigurationError("No technique loaded")
        if not self._technique.steps:
            raise ConfigurationError(f"Technique '{self._technique.id}' has no steps")
        return self._technique.steps

    def _start_step(self, *, resume_from_ms: float = 0.0, start_at_ms: Optional[float] = None) -> None:
        step = self.current_step
        self._clock.start(
            step,
            self._handle_progress,
            self._handle_complete,
            on_begin=self._handle_begin,
            resume_from_ms=resume_from_ms,
            start_at_ms=start_at_ms,
        )

    def _handle_begin(self, _start_ts: float) -> None:
        if self._entered:
            return
        self._entered = True
        if self.on_step_enter is not None:
            self.on_step_enter(self._step_index, self.current_step)

    def _handle_progress(self, pct: float) -> None:
        self._progress_pct = pct
        if self.on_progress is not None:
            self.on_progress(pct)

    def _handle_complete(self, boundary_ms: float) -> None:
        self.advance(chain_from_ms=boundary_ms)
