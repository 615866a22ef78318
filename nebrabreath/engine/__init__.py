"""
Session timing engine.

Two independent cadences: a frame-driven Phase Clock (sequenced through a
technique by the Cycle Sequencer) and a 1 Hz Session Timer that the Preset
Director observes. Qt schedulers live in ``engine.qt_timers`` and are only
imported by Qt hosts.
"""

from .scheduling import (
    ScheduledFrame,
    FrameScheduler,
    IntervalTimer,
    ManualClock,
    ManualFrameScheduler,
    ManualIntervalTimer,
    AsyncioFrameScheduler,
    AsyncioIntervalTimer,
)
from .phase_clock import PhaseClock
from .sequencer import CycleSequencer
from .session_timer import SessionTimer, DEFAULT_SLEEP_THRESHOLD_SECONDS
from .preset_director import PresetDirector, PresetDecision, PresetOutcome

__all__ = [
    'ScheduledFrame',
    'FrameScheduler',
    'IntervalTimer',
    'ManualClock',
    'ManualFrameScheduler',
    'ManualIntervalTimer',
    'AsyncioFrameScheduler',
    'AsyncioIntervalTimer',
    'PhaseClock',
    'CycleSequencer',
    'SessionTimer',
    'DEFAULT_SLEEP_THRESHOLD_SECONDS',
    'PresetDirector',
    'PresetDecision',
    'PresetOutcome',
]
