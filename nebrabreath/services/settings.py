"""
Session settings - sound mode, haptics, sleep mode and engine cadences.

Settings are a plain mutable dataclass shared by reference with the session
controller, which reads ``sound_mode`` and ``haptics_enabled`` at dispatch
time. Persisted as JSON in the per-user data directory; environment variables
in the ``NEBRABREATH_*`` namespace override stored values.
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, Mapping

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_SOUND_MODE = "NEBRABREATH_SOUND_MODE"
ENV_HAPTICS = "NEBRABREATH_HAPTICS"
ENV_SLEEP_MODE = "NEBRABREATH_SLEEP_MODE"
ENV_LOG_MODE = "NEBRABREATH_LOG_MODE"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class SoundMode(str, Enum):
    """Audio richness selected by the user."""
    SILENT = "silent"
    MINIMAL = "minimal"
    RICH = "rich"


def _parse_bool(name: str, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    value = str(raw).strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name}: expected a boolean, got {raw!r}")


@dataclass
class SessionSettings:
    """
    User-facing session configuration.

    Attributes:
        sound_mode: silent / minimal / rich
        volume: Master volume 0.0-1.0 (audio passthrough)
        haptics_enabled: Gate for haptic pulses on step transitions
        sleep_mode: Auto-silence once the sleep threshold is reached
        office_mode: Discreet preset (minimal sound, low volume, no haptics)
        sleep_threshold_seconds: Active seconds before the sleep threshold fires
        frame_interval_ms: Phase Clock frame cadence for timer-based hosts
        tick_interval_ms: Session Timer cadence
        log_mode: quiet / normal / perf
    """
    sound_mode: SoundMode = SoundMode.MINIMAL
    volume: float = 0.5
    haptics_enabled: bool = True
    sleep_mode: bool = False
    office_mode: bool = False
    sleep_threshold_seconds: int = 420
    frame_interval_ms: float = 16.0
    tick_interval_ms: float = 1000.0
    log_mode: str = "normal"

    def __post_init__(self):
        if not isinstance(self.sound_mode, SoundMode):
            try:
                self.sound_mode = SoundMode(str(self.sound_mode).lower())
            except ValueError:
                raise ConfigurationError(f"Unknown sound mode {self.sound_mode!r}") from None
        is_valid, msg = self.validate()
        if not is_valid:
            raise ConfigurationError(msg)

    def validate(self) -> tuple[bool, str]:
        """
        Validate settings values.

        Returns:
            (is_valid, error_message)
        """
        if not 0.0 <= self.volume <= 1.0:
            return False, f"volume must be between 0 and 1, got {self.volume}"
        if self.sleep_threshold_seconds < 0:
            return False, f"sleep_threshold_seconds cannot be negative, got {self.sleep_threshold_seconds}"
        if self.frame_interval_ms <= 0:
            return False, f"frame_interval_ms must be positive, got {self.frame_interval_ms}"
        if self.tick_interval_ms <= 0:
            return False, f"tick_interval_ms must be positive, got {self.tick_interval_ms}"
        return True, ""

    # ===== Behaviour =====

    def apply_sleep_threshold(self, total_seconds: Optional[int] = None) -> bool:
        """
        Sleep threshold handler: silence sound and haptics when sleep mode is on.

        Returns:
            True if settings changed
        """
        if not self.sleep_mode:
            return False
        changed = self.sound_mode is not SoundMode.SILENT or self.haptics_enabled
        self.sound_mode = SoundMode.SILENT
        self.haptics_enabled = False
        if changed:
            logger.info(f"[settings] Sleep mode: audio silenced at {total_seconds}s")
        return changed

    def set_office_mode(self, enabled: bool) -> None:
        """Discreet mode: minimal sound, volume capped at 0.3, no haptics."""
        self.office_mode = enabled
        if enabled:
            self.sound_mode = SoundMode.MINIMAL
            self.volume = min(self.volume, 0.3)
            self.haptics_enabled = False

    # ===== Serialization =====

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["sound_mode"] = self.sound_mode.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SessionSettings:
        """Build from dict; unknown keys are ignored, bad values raise ConfigurationError."""
        known = set(cls.__dataclass_fields__)
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.debug(f"[settings] Ignoring unknown key '{key}'")
                continue
            kwargs[key] = value
        try:
            for name in ("haptics_enabled", "sleep_mode", "office_mode"):
                if name in kwargs:
                    kwargs[name] = _parse_bool(name, kwargs[name])
            for name in ("volume", "frame_interval_ms", "tick_interval_ms"):
                if name in kwargs:
                    kwargs[name] = float(kwargs[name])
            if "sleep_threshold_seconds" in kwargs:
                kwargs["sleep_threshold_seconds"] = int(kwargs["sleep_threshold_seconds"])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid settings value: {exc}") from exc
        return cls(**kwargs)

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> SessionSettings:
        """Return a copy with NEBRABREATH_* overrides applied."""
        env = os.environ if environ is None else environ
        data = self.to_dict()
        if env.get(ENV_SOUND_MODE):
            data["sound_mode"] = env[ENV_SOUND_MODE]
        if env.get(ENV_HAPTICS):
            data["haptics_enabled"] = env[ENV_HAPTICS]
        if env.get(ENV_SLEEP_MODE):
            data["sleep_mode"] = env[ENV_SLEEP_MODE]
        if env.get(ENV_LOG_MODE):
            data["log_mode"] = env[ENV_LOG_MODE]
        return SessionSettings.from_dict(data)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> SessionSettings:
        return cls().with_env(environ)

    @classmethod
    def load(cls, path: Path) -> SessionSettings:
        """
        Load settings from JSON file; a missing file yields defaults.

        Raises:
            ConfigurationError: If the file is not valid JSON or holds bad values
        """
        path = Path(path)
        if not path.exists():
            logger.debug(f"[settings] {path} not found, using defaults")
            return cls()
        with open(path, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Invalid settings JSON in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {path} must contain a JSON object")
        return cls.from_dict(data)

    def save(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"[settings] Saved to {path}")
        return path
