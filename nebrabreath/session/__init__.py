"""Session orchestration: controller, collaborator interfaces and event bus."""

from .events import SessionEventType, SessionEvent, SessionEventEmitter
from .collaborators import (
    StepCue,
    SessionSummary,
    AudioCollaborator,
    HapticsCollaborator,
    TickLogger,
    HealthExporter,
    LoggingAudio,
)
from .controller import SessionController, SessionState, SessionSnapshot

__all__ = [
    'SessionEventType',
    'SessionEvent',
    'SessionEventEmitter',
    'StepCue',
    'SessionSummary',
    'AudioCollaborator',
    'HapticsCollaborator',
    'TickLogger',
    'HealthExporter',
    'LoggingAudio',
    'SessionController',
    'SessionState',
    'SessionSnapshot',
]
