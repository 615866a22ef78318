"""
Collaborator interfaces consumed by the session controller.

Audio, haptics, per-second logging and health export are injected into the
controller at construction. The base classes here are the null
implementations used when a host does not supply one; real collaborators
subclass them (or duck-type the same methods). Collaborators only ever
receive immutable payloads (StepCue, SessionSummary), never session state.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any, Tuple

from ..catalog.models import ActionType, AudioProfile, Technique
from ..services.settings import SoundMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepCue:
    """Payload of a step transition (audio + haptic trigger)."""
    technique_id: str
    action: ActionType
    duration_ms: int
    entrainment_freq: float
    vibration_pattern: Tuple[int, ...]
    step_index: int
    cycle_count: int
    sound_mode: SoundMode = SoundMode.MINIMAL
    audio_profile: Optional[AudioProfile] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "technique_id": self.technique_id,
            "action": self.action.value,
            "duration_ms": self.duration_ms,
            "entrainment_freq": self.entrainment_freq,
            "vibration_pattern": list(self.vibration_pattern),
            "step_index": self.step_index,
            "cycle_count": self.cycle_count,
            "sound_mode": self.sound_mode.value,
        }


@dataclass(frozen=True)
class SessionSummary:
    """Finalized session handed to the health exporter."""
    start_time: datetime
    end_time: datetime
    duration_seconds: int
    technique_id: str
    technique_name: str
    preset_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Health payload shape (camelCase keys, ISO-8601 timestamps)."""
        data: Dict[str, Any] = {
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "durationSeconds": self.duration_seconds,
            "techniqueName": self.technique_name,
            "techniqueId": self.technique_id,
        }
        if self.preset_id:
            data["presetId"] = self.preset_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SessionSummary:
        return cls(
            start_time=datetime.fromisoformat(data["startTime"]),
            end_time=datetime.fromisoformat(data["endTime"]),
            duration_seconds=int(data["durationSeconds"]),
            technique_id=data["techniqueId"],
            technique_name=data.get("techniqueName", ""),
            preset_id=data.get("presetId"),
        )


class AudioCollaborator:
    """Audio engine interface. Default implementation does nothing."""

    def init(self) -> None:
        """Prepare the audio device. Called on every entry into RUNNING; must be idempotent."""
        pass

    def play_step(self, cue: StepCue) -> None:
        pass

    def start_drone(self, technique: Technique, sound_mode: SoundMode) -> None:
        pass

    def stop_drone(self) -> None:
        pass


class HapticsCollaborator:
    """Haptic pulse dispatch. Default implementation does nothing."""

    def vibrate(self, pattern: Tuple[int, ...]) -> None:
        pass


class TickLogger:
    """Per-second logging sink. Default implementation does nothing."""

    def log_second(self, technique_id: str) -> None:
        pass


class HealthExporter:
    """Finalized-session sink. Default implementation does nothing."""

    def save_session(self, summary: SessionSummary) -> None:
        pass


class LoggingAudio(AudioCollaborator):
    """Audio stand-in for headless hosts: logs cues instead of playing them."""

    def init(self) -> None:
        logger.debug("[audio] init")

    def play_step(self, cue: StepCue) -> None:
        if cue.sound_mode is SoundMode.SILENT:
            return
        logger.info(
            f"[audio] {cue.technique_id} step {cue.step_index}: {cue.action.value} "
            f"{cue.duration_ms}ms ({cue.entrainment_freq:g} Hz)"
        )

    def start_drone(self, technique: Technique, sound_mode: SoundMode) -> None:
        if sound_mode is not SoundMode.SILENT:
            logger.info(f"[audio] drone on ({technique.id}, {sound_mode.value})")

    def stop_drone(self) -> None:
        logger.debug("[audio] drone off")
