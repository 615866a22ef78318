"""Session event system for broadcasting session state changes.

Provides event types, event data structures, and event emitter for decoupled
communication between SessionController and UI/logging/external systems. The
ERROR event is the side channel for contained collaborator failures.

Usage:
    emitter = SessionEventEmitter()
    emitter.subscribe(SessionEventType.STEP_START, lambda evt: print(evt.data["action"]))
    emitter.emit(SessionEvent(SessionEventType.STEP_START, data={"action": "Inhale"}))
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Any, Optional
import logging
import time


class SessionEventType(Enum):
    """Types of events that can occur during a breathing session."""

    # Session lifecycle
    SESSION_START = auto()     # Entered RUNNING from IDLE
    SESSION_PAUSE = auto()     # RUNNING -> PAUSED
    SESSION_RESUME = auto()    # PAUSED -> RUNNING
    SESSION_STOP = auto()      # stop(): re-centered, counters kept
    SESSION_RESET = auto()     # reset(): counters cleared
    SESSION_END = auto()       # Session finalized (summary emitted)

    # Playback
    TECHNIQUE_CHANGE = auto()  # Selected technique replaced
    STEP_START = auto()        # Step cue dispatched
    CYCLE_COMPLETE = auto()    # Wrapped to step 0
    SECOND_TICK = auto()       # One active second elapsed
    SLEEP_THRESHOLD = auto()   # Sleep threshold reached

    # Presets
    PRESET_START = auto()
    SEGMENT_START = auto()
    PRESET_COMPLETE = auto()

    # Error events
    ERROR = auto()             # Contained collaborator failure


@dataclass
class SessionEvent:
    """Represents a session event with optional payload data.

    Attributes:
        event_type: Type of event that occurred
        data: Optional dictionary with event-specific data
        timestamp: Optional timestamp (set by emitter)
    """
    event_type: SessionEventType
    data: Optional[dict[str, Any]] = None
    timestamp: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form (non-serializable payload values are stringified)."""
        payload = {}
        for key, value in (self.data or {}).items():
            if isinstance(value, (str, int, float, bool, type(None), list, dict)):
                payload[key] = value
            else:
                payload[key] = str(value)
        return {"event": self.event_type.name, "timestamp": self.timestamp, "data": payload}

    def __str__(self) -> str:
        if self.data:
            data_str = ", ".join(f"{k}={v}" for k, v in self.data.items())
            return f"SessionEvent({self.event_type.name}, {data_str})"
        return f"SessionEvent({self.event_type.name})"


EventCallback = Callable[[SessionEvent], None]


class SessionEventEmitter:
    """Event bus for session state changes.

    Subscribers register per event type, or for every event with
    ``subscribe_all``. A subscriber that raises is logged and skipped; the
    exception never reaches the emitting timing loop.

    Args:
        clock: Timestamp source for events (defaults to ``time.time``)
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._subscribers: dict[SessionEventType, list[EventCallback]] = {}
        self._wildcard: list[EventCallback] = []
        self._clock = clock or time.time
        self.logger = logging.getLogger(__name__)

    def subscribe(self, event_type: SessionEventType, callback: EventCallback) -> None:
        """Subscribe to a specific event type.

        Args:
            event_type: Type of event to listen for
            callback: Function to call when event occurs (receives SessionEvent)
        """
        callbacks = self._subscribers.setdefault(event_type, [])
        if callback not in callbacks:
            callbacks.append(callback)
            self.logger.debug(f"[events] Subscribed to {event_type.name} (total={len(callbacks)})")

    def subscribe_all(self, callback: EventCallback) -> None:
        """Subscribe to every event type."""
        if callback not in self._wildcard:
            self._wildcard.append(callback)

    def unsubscribe(self, event_type: SessionEventType, callback: EventCallback) -> None:
        callbacks = self._subscribers.get(event_type)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)
            self.logger.debug(f"[events] Unsubscribed from {event_type.name} (total={len(callbacks)})")

    def unsubscribe_all(self, callback: EventCallback) -> None:
        if callback in self._wildcard:
            self._wildcard.remove(callback)

    def emit(self, event: SessionEvent) -> None:
        """Emit an event to all subscribed callbacks."""
        if event.timestamp is None:
            event.timestamp = self._clock()

        if event.event_type is not SessionEventType.SECOND_TICK:
            self.logger.debug(f"[events] Emitting: {event}")

        for callback in list(self._subscribers.get(event.event_type, ())) + list(self._wildcard):
            try:
                callback(event)
            except Exception as e:
                self.logger.error(f"[events] Callback error for {event.event_type.name}: {e}", exc_info=True)

    def clear_all(self) -> None:
        """Remove all event subscribers (useful for testing/cleanup)."""
        self._subscribers.clear()
        self._wildcard.clear()
        self.logger.debug("[events] Cleared all subscribers")
