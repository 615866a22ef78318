"""pytest configuration file."""

import pytest, os, logging

# Headless Qt for the QTimer scheduler tests
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

pytest_plugins = [
    "pytest_asyncio",
]

from nebrabreath.catalog.loader import Catalog
from nebrabreath.catalog.models import ActionType, PhaseStep, Preset, PresetSegment, Technique
from nebrabreath.engine.scheduling import ManualClock
from nebrabreath.services.settings import SessionSettings
from nebrabreath.session.collaborators import (
    AudioCollaborator,
    HapticsCollaborator,
    HealthExporter,
    TickLogger,
)
from nebrabreath.session.controller import SessionController
from nebrabreath.session.events import SessionEventEmitter


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (may take several seconds)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "qt: marks tests that need a Qt event loop"
    )


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    """Keep per-user files (logs, daily log, settings) inside tmp_path."""
    monkeypatch.setenv("NEBRABREATH_HOME", str(tmp_path / "home"))
    for name in ("NEBRABREATH_SOUND_MODE", "NEBRABREATH_HAPTICS", "NEBRABREATH_SLEEP_MODE", "NEBRABREATH_LOG_MODE"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True, scope="session")
def _silence_logs():
    logging.getLogger("nebrabreath.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.ERROR)
    yield


# ===== Recording collaborators =====


class RecordingAudio(AudioCollaborator):
    def __init__(self):
        self.calls = []
        self.cues = []

    def init(self):
        self.calls.append(("init",))

    def play_step(self, cue):
        self.cues.append(cue)
        self.calls.append(("play_step", cue.action.value))

    def start_drone(self, technique, sound_mode):
        self.calls.append(("start_drone", technique.id, sound_mode.value))

    def stop_drone(self):
        self.calls.append(("stop_drone",))

    @property
    def actions(self):
        return [cue.action.value for cue in self.cues]


class RecordingHaptics(HapticsCollaborator):
    def __init__(self):
        self.patterns = []

    def vibrate(self, pattern):
        self.patterns.append(tuple(pattern))


class RecordingTicks(TickLogger):
    def __init__(self):
        self.seconds = []

    def log_second(self, technique_id):
        self.seconds.append(technique_id)


class RecordingHealth(HealthExporter):
    def __init__(self):
        self.summaries = []

    def save_session(self, summary):
        self.summaries.append(summary)


# ===== Catalog fixtures =====


def make_technique(tech_id, *durations, actions=None, **kwargs):
    actions = actions or [ActionType.INHALE, ActionType.HOLD, ActionType.EXHALE, ActionType.HOLD]
    steps = [
        PhaseStep(actions[i % len(actions)], duration, text=f"step {i}")
        for i, duration in enumerate(durations)
    ]
    return Technique(id=tech_id, name=tech_id.title(), steps=tuple(steps), **kwargs)


@pytest.fixture
def make_tech():
    """Factory: make_tech("id", 4000, 2000, ...) builds a technique with those step durations."""
    return make_technique


@pytest.fixture
def box():
    return make_technique("box", 4000, 4000, 4000, 4000)


@pytest.fixture
def catalog(box):
    techniques = [
        box,
        make_technique("tech_a", 2000, 3000, actions=[ActionType.INHALE, ActionType.EXHALE]),
        make_technique("tech_b", 1500, 1500, actions=[ActionType.INHALE, ActionType.EXHALE]),
        make_technique("single", 1000, actions=[ActionType.INHALE]),
    ]
    presets = [
        Preset("ab", (PresetSegment("tech_a", 5), PresetSegment("tech_b", 3)), label="A then B"),
        Preset("solo", (PresetSegment("box", 4),)),
    ]
    return Catalog(techniques, presets, {"box": 8, "tech_a": 3})


@pytest.fixture
def manual_clock():
    return ManualClock(frame_interval_ms=16)


@pytest.fixture
def harness(catalog, manual_clock):
    """Controller wired to ManualClock and recording collaborators."""

    class Harness:
        pass

    h = Harness()
    h.clock = manual_clock
    h.audio = RecordingAudio()
    h.haptics = RecordingHaptics()
    h.ticks = RecordingTicks()
    h.health = RecordingHealth()
    h.settings = SessionSettings()
    h.events = []
    h.emitter = SessionEventEmitter(clock=lambda: manual_clock.now_ms / 1000.0)
    h.emitter.subscribe_all(h.events.append)
    h.controller = SessionController(
        catalog,
        manual_clock.frame_scheduler(),
        manual_clock.interval_timer(1000),
        settings=h.settings,
        audio=h.audio,
        haptics=h.haptics,
        tick_logger=h.ticks,
        health_exporter=h.health,
        on_sleep_threshold=h.settings.apply_sleep_threshold,
        event_emitter=h.emitter,
        initial_technique_id="box",
    )

    def event_names():
        return [e.event_type.name for e in h.events]

    h.event_names = event_names
    return h
