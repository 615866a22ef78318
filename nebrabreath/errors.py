"""Error taxonomy for the session timing core.

Only :class:`ConfigurationError` is ever raised to callers of the public
controller API. Collaborator failures are wrapped in
:class:`TransientCollaboratorError` and reported on the event bus, and
:class:`InvariantViolation` marks programmer errors that should be
unreachable.
"""

from __future__ import annotations

from typing import Optional


class NebraBreathError(Exception):
    """Base class for all nebrabreath errors."""


class ConfigurationError(NebraBreathError, ValueError):
    """Catalog data cannot be used to run a session.

    Raised for techniques without steps, non-positive durations and presets
    that reference unknown techniques. Detected at load/selection time so a
    bad technique never reaches the running state.
    """


class TransientCollaboratorError(NebraBreathError):
    """A side-effect collaborator (audio, haptics, log, export) failed.

    Attributes:
        collaborator: Short name of the collaborator that failed
        operation: Method that was being called
    """

    def __init__(self, collaborator: str, operation: str, cause: Optional[BaseException] = None):
        self.collaborator = collaborator
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{collaborator}.{operation} failed{detail}")


class InvariantViolation(NebraBreathError, AssertionError):
    """Internal state broke an invariant (e.g. step index out of range)."""
