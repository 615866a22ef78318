"""
Preset Director - plays a multi-technique preset as one continuous session.

Segment boundaries are measured in Session Timer seconds, never in phase
steps: segment durations are whole seconds while technique cycles generally
do not divide evenly into them. The director only decides; the controller
applies the swap after the tick has been attributed to the old technique.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from ..catalog.models import Preset, PresetSegment
from ..errors import InvariantViolation


class PresetDecision(Enum):
    """Outcome of evaluating one elapsed second."""
    CONTINUE = auto()       # Current segment still running
    NEXT_SEGMENT = auto()   # Swap to the next segment's technique
    FINISHED = auto()       # Last segment exhausted


@dataclass(frozen=True)
class PresetOutcome:
    decision: PresetDecision
    segment_index: int
    technique_id: Optional[str] = None
    preset_id: Optional[str] = None


class PresetDirector:
    """Tracks the active preset, its segment index and segment start second."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._preset: Optional[Preset] = None
        self._segment_index = 0
        self._segment_start_second = 0

    @property
    def preset(self) -> Optional[Preset]:
        return self._preset

    @property
    def active(self) -> bool:
        return self._preset is not None

    @property
    def active_preset_id(self) -> Optional[str]:
        return self._preset.id if self._preset else None

    @property
    def segment_index(self) -> int:
        return self._segment_index

    @property
    def segment_start_second(self) -> int:
        return self._segment_start_second

    @property
    def current_segment(self) -> Optional[PresetSegment]:
        if self._preset is None:
            return None
        return self._preset.get_segment(self._segment_index)

    def begin(self, preset: Preset, start_second: int = 0) -> PresetSegment:
        """Activate *preset* at segment 0; returns that segment."""
        if not preset.segments:
            raise InvariantViolation(f"Preset '{preset.id}' has no segments")
        self._preset = preset
        self._segment_index = 0
        self._segment_start_second = start_second
        self.logger.info(
            f"[preset] Started '{preset.id}' ({len(preset.segments)} segments, "
            f"{preset.total_duration_seconds()}s)"
        )
        return preset.segments[0]

    def cancel(self) -> None:
        if self._preset is not None:
            self.logger.debug(f"[preset] Cleared '{self._preset.id}'")
        self._preset = None
        self._segment_index = 0
        self._segment_start_second = 0

    def elapsed_in_segment(self, total_seconds: int) -> int:
        elapsed = total_seconds - self._segment_start_second
        if elapsed < 0:
            raise InvariantViolation(
                f"Segment-local elapsed time is negative ({total_seconds} - {self._segment_start_second})"
            )
        return elapsed

    def on_second(self, total_seconds: int) -> PresetOutcome:
        """
        Evaluate the segment after the tick that brought the session to
        *total_seconds*. Advances internal state on NEXT_SEGMENT and clears
        the preset on FINISHED.
        """
        segment = self.current_segment
        if segment is None:
            return PresetOutcome(PresetDecision.CONTINUE, self._segment_index)

        if self.elapsed_in_segment(total_seconds) < segment.duration_seconds:
            return PresetOutcome(PresetDecision.CONTINUE, self._segment_index, segment.technique_id)

        next_index = self._segment_index + 1
        next_segment = self._preset.get_segment(next_index)
        if next_segment is not None:
            self._segment_index = next_index
            self._segment_start_second = total_seconds
            self.logger.info(
                f"[preset] Segment {next_index} -> '{next_segment.technique_id}' at {total_seconds}s"
            )
            return PresetOutcome(PresetDecision.NEXT_SEGMENT, next_index, next_segment.technique_id)

        finished_index = self._segment_index
        finished_id = self._preset.id
        self.logger.info(f"[preset] '{finished_id}' finished at {total_seconds}s")
        self.cancel()
        return PresetOutcome(PresetDecision.FINISHED, finished_index, preset_id=finished_id)
