"""
Session Controller - public surface of the breathing session engine.

The controller composes the Cycle Sequencer (which drives the Phase Clock),
the Session Timer and the Preset Director, and owns every side effect:

- step transition → audio cue, then haptic pulse (when enabled), exactly once
  per step index change, dispatched on the first frame of the new step
- elapsed second → tick logger (attributed to the technique active during
  that second), then preset evaluation, then the sleep threshold check
- reset / preset completion → finalized SessionSummary to the health exporter

State machine:
    IDLE ──toggle/start──► RUNNING ──toggle/pause──► PAUSED ──toggle──► RUNNING
    RUNNING/PAUSED ──stop / preset finished──► IDLE (counters kept)
    any ──reset──► IDLE (counters cleared)

Collaborator failures are contained: logged, converted to
TransientCollaboratorError and published as ERROR events. Only
ConfigurationError propagates to callers, and only before any state changed.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from enum import Enum, auto
from typing import Any, Callable, Dict, Optional, Union

from ..catalog.loader import Catalog
from ..catalog.models import PhaseStep, Technique
from ..engine.phase_clock import PhaseClock
from ..engine.preset_director import PresetDecision, PresetDirector, PresetOutcome
from ..engine.scheduling import FrameScheduler, IntervalTimer
from ..engine.sequencer import CycleSequencer
from ..engine.session_timer import SessionTimer
from ..errors import ConfigurationError, TransientCollaboratorError
from ..services.settings import SessionSettings
from .collaborators import (
    AudioCollaborator,
    HapticsCollaborator,
    HealthExporter,
    SessionSummary,
    StepCue,
    TickLogger,
)
from .events import SessionEvent, SessionEventEmitter, SessionEventType


class SessionState(Enum):
    """Session execution states."""
    IDLE = auto()       # Not running; next start restarts the current step from 0
    RUNNING = auto()    # Phase Clock and Session Timer scheduled
    PAUSED = auto()     # Counters and step progress frozen


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only copy of the observable session outputs."""
    state: SessionState
    technique_id: str
    technique_name: str
    step_index: int
    step_action: str
    step_progress_pct: float
    cycle_count: int
    total_elapsed_seconds: int
    active_preset_id: Optional[str]
    preset_segment_index: int
    preset_segment_start_second: int

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.RUNNING

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.name
        data["is_active"] = self.is_active
        return data


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionController:
    """
    Orchestrates one breathing session at a time; reusable indefinitely via reset().

    Usage:
        clock = ManualClock()
        controller = SessionController(
            catalog, clock.frame_scheduler(), clock.interval_timer(),
            audio=my_audio, tick_logger=daily_log,
        )
        controller.change_technique("box")
        controller.toggle()
        clock.advance(16000)
    """

    def __init__(
        self,
        catalog: Catalog,
        frame_scheduler: FrameScheduler,
        interval_timer: IntervalTimer,
        *,
        settings: Optional[SessionSettings] = None,
        audio: Optional[AudioCollaborator] = None,
        haptics: Optional[HapticsCollaborator] = None,
        tick_logger: Optional[TickLogger] = None,
        health_exporter: Optional[HealthExporter] = None,
        on_sleep_threshold: Optional[Callable[[int], Any]] = None,
        event_emitter: Optional[SessionEventEmitter] = None,
        wall_clock: Optional[Callable[[], datetime]] = None,
        initial_technique_id: Optional[str] = None,
    ):
        """
        Initialize session controller.

        Args:
            catalog: Validated technique/preset catalog
            frame_scheduler: Frame cadence for the Phase Clock
            interval_timer: 1 Hz cadence for the Session Timer (separate object)
            settings: Shared settings (sound mode, haptics flag, sleep threshold)
            audio / haptics / tick_logger / health_exporter: Injected collaborators
            on_sleep_threshold: Called once per session when the threshold is reached
            event_emitter: Event bus (created if omitted)
            wall_clock: Source of wall-clock datetimes for session summaries
            initial_technique_id: Technique selected at construction (first in catalog if omitted)

        Raises:
            ConfigurationError: Empty catalog or unknown initial technique
        """
        self.catalog = catalog
        self.settings = settings or SessionSettings()
        self.audio = audio or AudioCollaborator()
        self.haptics = haptics or HapticsCollaborator()
        self.tick_logger = tick_logger or TickLogger()
        self.health_exporter = health_exporter or HealthExporter()
        self.on_sleep_threshold = on_sleep_threshold
        self.event_emitter = event_emitter or SessionEventEmitter()
        self._wall_clock = wall_clock or _utc_now

        self.logger = logging.getLogger(__name__)

        if not catalog.techniques:
            raise ConfigurationError("Catalog has no techniques")
        if initial_technique_id is None:
            initial = next(iter(catalog.techniques.values()))
        else:
            initial = catalog.technique(initial_technique_id)

        # Engine
        self._sequencer = CycleSequencer(
            PhaseClock(frame_scheduler),
            on_step_enter=self._on_step_enter,
            on_cycle_complete=self._on_cycle_complete,
        )
        self._timer = SessionTimer(
            interval_timer,
            on_tick=self._on_second,
            on_sleep_threshold=self._on_sleep_threshold,
            threshold_seconds=self.settings.sleep_threshold_seconds,
        )
        self._director = PresetDirector()

        # State machine
        self._state = SessionState.IDLE

        # Finalization bookkeeping
        self._session_started_at: Optional[datetime] = None
        self._finalized_seconds = 0

        self._sequencer.load(initial)

    # ===== Observable outputs =====

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def is_paused(self) -> bool:
        return self._state is SessionState.PAUSED

    @property
    def selected_technique(self) -> Technique:
        return self._sequencer.technique

    @property
    def current_step_index(self) -> int:
        return self._sequencer.step_index

    @property
    def current_step(self) -> PhaseStep:
        return self._sequencer.current_step

    @property
    def step_progress_pct(self) -> float:
        return self._sequencer.progress_pct

    @property
    def cycle_count(self) -> int:
        return self._sequencer.cycle_count

    @property
    def total_elapsed_seconds(self) -> int:
        return self._timer.total_seconds

    @property
    def active_preset_id(self) -> Optional[str]:
        return self._director.active_preset_id

    @property
    def preset_segment_index(self) -> int:
        return self._director.segment_index

    @property
    def preset_segment_start_second(self) -> int:
        return self._director.segment_start_second

    def snapshot(self) -> SessionSnapshot:
        technique = self.selected_technique
        return SessionSnapshot(
            state=self._state,
            technique_id=technique.id,
            technique_name=technique.display_name,
            step_index=self.current_step_index,
            step_action=self.current_step.action.value,
            step_progress_pct=self.step_progress_pct,
            cycle_count=self.cycle_count,
            total_elapsed_seconds=self.total_elapsed_seconds,
            active_preset_id=self.active_preset_id,
            preset_segment_index=self.preset_segment_index,
            preset_segment_start_second=self.preset_segment_start_second,
        )

    # ===== Public operations =====

    def start(self, technique_id: Optional[str] = None) -> None:
        """Optionally switch technique, then activate. No-op when already running."""
        if technique_id is not None:
            self.change_technique(technique_id)
        if self._state is SessionState.RUNNING:
            return
        self._activate()

    def toggle(self) -> SessionState:
        """IDLE/PAUSED → RUNNING, RUNNING → PAUSED. Returns the new state."""
        if self._state is SessionState.RUNNING:
            self.pause()
        else:
            self._activate()
        return self._state

    def pause(self) -> None:
        if self._state is not SessionState.RUNNING:
            return
        self._sequencer.halt()
        self._timer.stop()
        self._state = SessionState.PAUSED
        self._call("audio", "stop_drone", self.audio.stop_drone)
        self.logger.info(
            f"[session] Paused at {self.total_elapsed_seconds}s "
            f"(step {self.current_step_index}, {self.step_progress_pct:.1f}%)"
        )
        self._emit(SessionEventType.SESSION_PAUSE, self._position())

    def stop(self) -> None:
        """Deactivate and re-center: step index and progress to 0, totals kept."""
        was_running = self._state is SessionState.RUNNING
        self._sequencer.halt()
        self._sequencer.rewind()
        self._timer.stop()
        self._state = SessionState.IDLE
        if was_running:
            self._call("audio", "stop_drone", self.audio.stop_drone)
        self.logger.info(f"[session] Stopped at {self.total_elapsed_seconds}s ({self.cycle_count} cycles)")
        self._emit(SessionEventType.SESSION_STOP, self._position())

    def reset(self) -> None:
        """Finalize unreported time, then clear every counter and the preset."""
        was_running = self._state is SessionState.RUNNING
        self._finalize()

        self._sequencer.halt()
        self._sequencer.reset()
        self._timer.reset()
        self._director.cancel()
        self._state = SessionState.IDLE
        self._session_started_at = None
        self._finalized_seconds = 0

        if was_running:
            self._call("audio", "stop_drone", self.audio.stop_drone)
        self.logger.debug("[session] Reset")
        self._emit(SessionEventType.SESSION_RESET, {"technique_id": self.selected_technique.id})

    def change_technique(self, technique: Union[str, Technique]) -> Technique:
        """
        Reset the session and select *technique* (cancels any active preset).

        Raises:
            ConfigurationError: Unknown id or unplayable technique; nothing changed
        """
        resolved = self._resolve_technique(technique)
        self.reset()
        self._sequencer.load(resolved)
        self.logger.info(f"[session] Technique -> '{resolved.id}'")
        self._emit(SessionEventType.TECHNIQUE_CHANGE, {"technique_id": resolved.id, "reason": "user"})
        return resolved

    def start_preset(self, preset_id: str) -> None:
        """
        Reset, load segment 0 of the preset and activate.

        Raises:
            ConfigurationError: Unknown preset or a segment references an unknown technique
        """
        preset = self.catalog.preset(preset_id)
        self.catalog.check_preset(preset)
        first = self._resolve_technique(preset.segments[0].technique_id)

        self.reset()
        self._sequencer.load(first)
        segment = self._director.begin(preset, start_second=self.total_elapsed_seconds)
        self._emit(SessionEventType.PRESET_START, {
            "preset_id": preset.id,
            "segments": [s.to_dict() for s in preset.segments],
        })
        self._emit(SessionEventType.SEGMENT_START, {
            "preset_id": preset.id,
            "segment_index": 0,
            "technique_id": segment.technique_id,
            "duration_seconds": segment.duration_seconds,
        })
        self._activate()

    # ===== Transitions =====

    def _activate(self) -> None:
        """Enter RUNNING from IDLE (fresh step) or PAUSED (frozen progress)."""
        if self._state is SessionState.RUNNING:
            return
        resuming = self._state is SessionState.PAUSED
        if not resuming:
            self._sequencer.restart_step()

        technique = self.selected_technique
        self._state = SessionState.RUNNING
        if self._session_started_at is None:
            self._session_started_at = self._wall_clock()

        self._call("audio", "init", self.audio.init)
        self._call("audio", "start_drone", self.audio.start_drone, technique, self.settings.sound_mode)

        self._timer.start()
        self._sequencer.play()

        if resuming:
            self.logger.info(f"[session] Resumed at {self.total_elapsed_seconds}s")
            self._emit(SessionEventType.SESSION_RESUME, self._position())
        else:
            self.logger.info(f"[session] Started '{technique.id}' at {self.total_elapsed_seconds}s")
            self._emit(SessionEventType.SESSION_START, self._position())

    def _finalize(self, preset_id: Optional[str] = None) -> Optional[SessionSummary]:
        """Report seconds not yet handed to the health exporter.

        *preset_id* names a preset the director has already released.
        """
        unreported = self.total_elapsed_seconds - self._finalized_seconds
        if unreported <= 0:
            return None

        technique = self.selected_technique
        end = self._wall_clock()
        start = self._session_started_at or (end - timedelta(seconds=unreported))
        summary = SessionSummary(
            start_time=start,
            end_time=end,
            duration_seconds=unreported,
            technique_id=technique.id,
            technique_name=technique.display_name,
            preset_id=preset_id or self.active_preset_id,
        )
        self._finalized_seconds = self.total_elapsed_seconds
        self._session_started_at = None

        self.logger.info(f"[session] Finalized {unreported}s of '{technique.id}'")
        self._call("health_exporter", "save_session", self.health_exporter.save_session, summary)
        self._emit(SessionEventType.SESSION_END, summary.to_dict())
        return summary

    # ===== Engine callbacks =====

    def _on_step_enter(self, index: int, step: PhaseStep) -> None:
        technique = self.selected_technique
        cue = StepCue(
            technique_id=technique.id,
            action=step.action,
            duration_ms=step.duration_ms,
            entrainment_freq=technique.effective_entrainment_freq,
            vibration_pattern=step.haptic_pattern,
            step_index=index,
            cycle_count=self.cycle_count,
            sound_mode=self.settings.sound_mode,
            audio_profile=technique.audio_profile,
        )
        self._emit(SessionEventType.STEP_START, cue.to_dict())
        self._call("audio", "play_step", self.audio.play_step, cue)
        if self.settings.haptics_enabled:
            self._call("haptics", "vibrate", self.haptics.vibrate, cue.vibration_pattern)

    def _on_cycle_complete(self, cycle_count: int) -> None:
        self._emit(SessionEventType.CYCLE_COMPLETE, {
            "technique_id": self.selected_technique.id,
            "cycle_count": cycle_count,
        })

    def _on_second(self, total_seconds: int) -> None:
        # Attribute the second before any swap it triggers
        technique_id = self.selected_technique.id
        self._emit(SessionEventType.SECOND_TICK, {"total_seconds": total_seconds, "technique_id": technique_id})
        self._call("tick_logger", "log_second", self.tick_logger.log_second, technique_id)

        if not self._director.active:
            return
        outcome = self._director.on_second(total_seconds)
        if outcome.decision is PresetDecision.NEXT_SEGMENT:
            self._swap_segment(outcome)
        elif outcome.decision is PresetDecision.FINISHED:
            self._finish_preset(outcome)

    def _swap_segment(self, outcome: PresetOutcome) -> None:
        technique = self.catalog.technique(outcome.technique_id)
        running = self._state is SessionState.RUNNING
        self._sequencer.load(technique, reset_cycles=True)

        self._emit(SessionEventType.SEGMENT_START, {
            "preset_id": self.active_preset_id,
            "segment_index": outcome.segment_index,
            "technique_id": technique.id,
            "duration_seconds": self._director.current_segment.duration_seconds,
        })
        self._emit(SessionEventType.TECHNIQUE_CHANGE, {"technique_id": technique.id, "reason": "preset"})

        if running:
            self._call("audio", "stop_drone", self.audio.stop_drone)
            self._call("audio", "start_drone", self.audio.start_drone, technique, self.settings.sound_mode)
            self._sequencer.play()

    def _finish_preset(self, outcome: PresetOutcome) -> None:
        preset_id = outcome.preset_id or self._director.active_preset_id
        was_running = self._state is SessionState.RUNNING

        self._sequencer.halt()
        self._timer.stop()
        self._state = SessionState.IDLE
        if was_running:
            self._call("audio", "stop_drone", self.audio.stop_drone)

        summary = self._finalize(preset_id)
        self._director.cancel()
        self._emit(SessionEventType.PRESET_COMPLETE, {
            "preset_id": preset_id,
            "segment_index": outcome.segment_index,
            "total_seconds": self.total_elapsed_seconds,
            "finalized": summary is not None,
        })

    def _on_sleep_threshold(self, total_seconds: int) -> None:
        sound_mode = self.settings.sound_mode
        self._emit(SessionEventType.SLEEP_THRESHOLD, {"total_seconds": total_seconds})
        if self.on_sleep_threshold is not None:
            self._call("settings", "sleep_threshold", self.on_sleep_threshold, total_seconds)
        if self._state is SessionState.RUNNING and self.settings.sound_mode is not sound_mode:
            # Drone follows the sound mode
            self._call("audio", "stop_drone", self.audio.stop_drone)
            self._call("audio", "start_drone", self.audio.start_drone,
                       self.selected_technique, self.settings.sound_mode)

    # ===== Helpers =====

    def _resolve_technique(self, technique: Union[str, Technique]) -> Technique:
        if isinstance(technique, Technique):
            is_valid, msg = technique.validate()
            if not is_valid:
                raise ConfigurationError(f"Technique '{technique.id}': {msg}")
            return technique
        return self.catalog.technique(technique)

    def _call(self, collaborator: str, operation: str, fn: Callable[..., Any], *args: Any) -> bool:
        """Invoke a collaborator; failures are reported, never raised into the timing loop."""
        try:
            fn(*args)
            return True
        except Exception as exc:
            error = TransientCollaboratorError(collaborator, operation, exc)
            self.logger.error(f"[session] {error}", exc_info=True)
            self._emit(SessionEventType.ERROR, {
                "collaborator": collaborator,
                "operation": operation,
                "message": str(error),
                "error": error,
            })
            return False

    def _position(self) -> Dict[str, Any]:
        return {
            "technique_id": self.selected_technique.id,
            "step_index": self.current_step_index,
            "step_progress_pct": round(self.step_progress_pct, 3),
            "cycle_count": self.cycle_count,
            "total_seconds": self.total_elapsed_seconds,
        }

    def _emit(self, event_type: SessionEventType, data: Optional[Dict[str, Any]] = None) -> None:
        self.event_emitter.emit(SessionEvent(event_type, data=data))
