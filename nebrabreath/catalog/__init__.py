"""
Breathing catalog: phase steps, techniques, presets.

Catalog data is loaded once at startup and only referenced by the session
core, never mutated.
"""

from .models import (
    ActionType,
    PhaseStep,
    AudioProfile,
    Technique,
    PresetSegment,
    Preset,
    RankFilter,
    DEFAULT_RANK,
    DEFAULT_VIBRATION_MS,
)

from .loader import Catalog, BUILTIN_CATALOG_PATH

__all__ = [
    'ActionType',
    'PhaseStep',
    'AudioProfile',
    'Technique',
    'PresetSegment',
    'Preset',
    'RankFilter',
    'DEFAULT_RANK',
    'DEFAULT_VIBRATION_MS',
    'Catalog',
    'BUILTIN_CATALOG_PATH',
]
