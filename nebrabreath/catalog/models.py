"""
Catalog Data Models - breathing phases, techniques and presets.

A Technique is a cyclic sequence of PhaseSteps (Inhale, Hold, Exhale...).
A Preset chains several techniques back to back, each for a fixed number of
seconds. Both are read-only catalog data: the session core only references
them, it never mutates them.

Serialization uses the key names of the catalog JSON files
(``duration``, ``vibration``, ``techId``, ``durationSec``).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, Tuple, Union


DEFAULT_VIBRATION_MS = 40
DEFAULT_RANK = 99


class ActionType(str, Enum):
    """Breathing instruction carried by a phase step."""
    INHALE = "Inhale"
    INHALE2 = "Inhale2"  # Quick top-up inhale (physiological sigh)
    HOLD = "Hold"
    EXHALE = "Exhale"


class RankFilter(str, Enum):
    """Closed set of keys a technique can be ranked by."""
    PAS = "pas"
    HRV = "hrv"
    SLEEP = "sleep"
    STRESS = "stress"
    SPEED = "speed"
    DEEP_SLEEP = "deepSleep"
    DISCREET = "discreet"

    @classmethod
    def parse(cls, key: Union["RankFilter", str, None]) -> Optional["RankFilter"]:
        """Return the filter for *key*, or None when the key is unknown."""
        if isinstance(key, RankFilter):
            return key
        if not key:
            return None
        try:
            return cls(key)
        except ValueError:
            return None


def _normalize_pattern(value: Any) -> Tuple[int, ...]:
    if value is None:
        return ()
    if isinstance(value, (int, float)):
        return (int(value),)
    return tuple(int(v) for v in value)


@dataclass(frozen=True)
class PhaseStep:
    """
    One breathing instruction within a technique cycle.

    Attributes:
        action: Inhale / Inhale2 / Hold / Exhale
        duration_ms: How long the phase lasts (must be positive)
        scale: Target visual expansion factor (UI passthrough)
        text: Display label (UI passthrough)
        vibration_pattern: Haptic pulses in ms (haptics passthrough)
    """
    action: ActionType
    duration_ms: int
    scale: float = 1.0
    text: str = ""
    vibration_pattern: Tuple[int, ...] = ()

    def __post_init__(self):
        """Coerce loose input types (str action, int/list pattern)."""
        if not isinstance(self.action, ActionType):
            object.__setattr__(self, "action", ActionType(self.action))
        object.__setattr__(self, "vibration_pattern", _normalize_pattern(self.vibration_pattern))

    @property
    def haptic_pattern(self) -> Tuple[int, ...]:
        """Vibration pattern with the default single pulse for empty patterns."""
        return self.vibration_pattern or (DEFAULT_VIBRATION_MS,)

    def validate(self) -> tuple[bool, str]:
        """
        Validate phase step values.

        Returns:
            (is_valid, error_message)
        """
        if self.duration_ms <= 0:
            return False, f"duration_ms must be positive, got {self.duration_ms}"

        if self.scale <= 0:
            return False, f"scale must be positive, got {self.scale}"

        for pulse in self.vibration_pattern:
            if pulse <= 0:
                return False, f"vibration pulses must be positive, got {list(self.vibration_pattern)}"

        return True, ""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "action": self.action.value,
            "duration": self.duration_ms,
            "scale": self.scale,
            "text": self.text,
            "vibration": list(self.vibration_pattern),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PhaseStep:
        """Deserialize from dict (accepts ``duration`` or ``duration_ms``)."""
        if "duration" in data:
            duration = data["duration"]
        elif "duration_ms" in data:
            duration = data["duration_ms"]
        else:
            raise KeyError("Missing 'duration' field in step data")

        return cls(
            action=ActionType(data["action"]),
            duration_ms=int(duration),
            scale=float(data.get("scale", 1.0)),
            text=data.get("text", ""),
            vibration_pattern=_normalize_pattern(data.get("vibration")),
        )


@dataclass(frozen=True)
class AudioProfile:
    """Tone parameters handed through to the audio collaborator."""
    base_frequency: float
    binaural_beat_hz: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"baseFreq": self.base_frequency, "binauralBeat": self.binaural_beat_hz}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AudioProfile:
        return cls(
            base_frequency=float(data["baseFreq"]),
            binaural_beat_hz=float(data.get("binauralBeat", 0.0)),
        )


@dataclass(frozen=True)
class Technique:
    """
    Named, repeatable breathing cycle.

    The step sequence is cyclic: after the last step playback restarts at
    index 0 and one cycle is counted. Techniques are swapped by reference,
    never edited in place.

    Attributes:
        id: Unique catalog id
        steps: Ordered phase steps (non-empty for a usable technique)
        name: Display name
        audio_profile: Optional tone parameters for the audio collaborator
        entrainment_freq: Target binaural-beat frequency (Hz), if any
        ranks: Rank per RankFilter key (1 = best)
    """
    id: str
    steps: Tuple[PhaseStep, ...]
    name: str = ""
    tagline: str = ""
    description: str = ""
    pas: float = 0.0
    categories: Tuple[str, ...] = ()
    audio_profile: Optional[AudioProfile] = None
    entrainment_freq: Optional[float] = None
    ranks: Dict[RankFilter, int] = field(default_factory=dict, compare=False, hash=False)
    color: str = ""

    def __post_init__(self):
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "categories", tuple(self.categories))

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def cycle_duration_ms(self) -> int:
        """Length of one full traversal of the steps."""
        return sum(step.duration_ms for step in self.steps)

    @property
    def effective_entrainment_freq(self) -> float:
        """Entrainment frequency reported with step cues."""
        if self.entrainment_freq is not None:
            return float(self.entrainment_freq)
        if self.audio_profile is not None:
            return float(self.audio_profile.binaural_beat_hz)
        return 0.0

    def rank_for(self, key: Union[RankFilter, str, None]) -> int:
        """Rank for *key*, or DEFAULT_RANK for unknown keys or missing ranks."""
        rank_filter = RankFilter.parse(key)
        if rank_filter is None:
            return DEFAULT_RANK
        return self.ranks.get(rank_filter, DEFAULT_RANK)

    def validate(self) -> tuple[bool, str]:
        """
        Validate technique configuration.

        Returns:
            (is_valid, error_message)
        """
        if not self.id or not self.id.strip():
            return False, "Technique id cannot be empty"

        if not self.steps:
            return False, "steps cannot be empty"

        for i, step in enumerate(self.steps):
            is_valid, msg = step.validate()
            if not is_valid:
                return False, f"Step {i} ({step.action.value}): {msg}"

        return True, ""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "steps": [step.to_dict() for step in self.steps],
        }
        if self.tagline:
            data["tagline"] = self.tagline
        if self.description:
            data["description"] = self.description
        if self.pas:
            data["pas"] = self.pas
        if self.categories:
            data["categories"] = list(self.categories)
        if self.audio_profile is not None:
            data["audioProfile"] = self.audio_profile.to_dict()
        if self.entrainment_freq is not None:
            data["entrainmentFreq"] = self.entrainment_freq
        if self.ranks:
            data["ranks"] = {key.value: rank for key, rank in self.ranks.items()}
        if self.color:
            data["color"] = self.color
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Technique:
        """Deserialize from dict. Unknown rank keys are dropped."""
        ranks: Dict[RankFilter, int] = {}
        for key, value in (data.get("ranks") or {}).items():
            rank_filter = RankFilter.parse(key)
            if rank_filter is not None and value is not None:
                ranks[rank_filter] = int(value)

        profile = data.get("audioProfile")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            tagline=data.get("tagline", ""),
            description=data.get("description", ""),
            pas=float(data.get("pas", 0.0)),
            categories=tuple(data.get("categories", ())),
            steps=tuple(PhaseStep.from_dict(step) for step in data.get("steps", [])),
            audio_profile=AudioProfile.from_dict(profile) if profile else None,
            entrainment_freq=data.get("entrainmentFreq"),
            ranks=ranks,
            color=data.get("color", ""),
        )


@dataclass(frozen=True)
class PresetSegment:
    """One technique played for a fixed number of seconds."""
    technique_id: str
    duration_seconds: int

    def validate(self) -> tuple[bool, str]:
        if not self.technique_id:
            return False, "technique_id cannot be empty"
        if self.duration_seconds <= 0:
            return False, f"duration_seconds must be positive, got {self.duration_seconds}"
        return True, ""

    def to_dict(self) -> Dict[str, Any]:
        return {"techId": self.technique_id, "durationSec": self.duration_seconds}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PresetSegment:
        return cls(
            technique_id=data["techId"],
            duration_seconds=int(data["durationSec"]),
        )


@dataclass(frozen=True)
class Preset:
    """
    Scripted program over existing techniques.

    Segments play back to back as one continuous session; a preset never
    defines steps of its own.
    """
    id: str
    segments: Tuple[PresetSegment, ...]
    label: str = ""
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, "segments", tuple(self.segments))

    def total_duration_seconds(self) -> int:
        return sum(segment.duration_seconds for segment in self.segments)

    def get_segment(self, index: int) -> Optional[PresetSegment]:
        if 0 <= index < len(self.segments):
            return self.segments[index]
        return None

    def validate(self) -> tuple[bool, str]:
        """
        Validate preset structure (technique references are checked by the catalog).

        Returns:
            (is_valid, error_message)
        """
        if not self.id or not self.id.strip():
            return False, "Preset id cannot be empty"

        if not self.segments:
            return False, "Preset must contain at least one segment"

        for i, segment in enumerate(self.segments):
            is_valid, msg = segment.validate()
            if not is_valid:
                return False, f"Segment {i}: {msg}"

        return True, ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "segments": [segment.to_dict() for segment in self.segments],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Preset:
        return cls(
            id=data["id"],
            label=data.get("label", ""),
            description=data.get("description", ""),
            segments=tuple(PresetSegment.from_dict(seg) for seg in data.get("segments", [])),
        )
