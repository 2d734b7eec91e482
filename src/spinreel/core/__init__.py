"""Core framework components for spinreel."""

from .state import JobStatus, JobStateMachine, TERMINAL_STATES
from .events import EventBus, Event, EventType
from .errors import (
    Stage,
    SpinReelError,
    InvalidInput,
    SurfaceUnsupported,
    OutputTooLarge,
    RenderTimeout,
    InternalRenderFailure,
    JobCancelled,
    error_from_message,
    wrap_exception,
)

__all__ = [
    # State
    "JobStatus",
    "JobStateMachine",
    "TERMINAL_STATES",
    # Events
    "EventBus",
    "Event",
    "EventType",
    # Errors
    "Stage",
    "SpinReelError",
    "InvalidInput",
    "SurfaceUnsupported",
    "OutputTooLarge",
    "RenderTimeout",
    "InternalRenderFailure",
    "JobCancelled",
    "error_from_message",
    "wrap_exception",
]
