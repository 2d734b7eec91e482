"""
State machine for render jobs.

States:
    QUEUED: Waiting in the FIFO queue for a free worker
    PROCESSING: Dispatched to a worker
    COMPLETED: Worker returned an encoded result
    FAILED: Worker (or dispatch) reported a structured failure
    TIMED_OUT: Wall-clock bound expired before a result arrived

Every job moves through each state at most once and stops in a terminal state.
"""

from enum import Enum
from typing import Callable
import logging
import time

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Render job states."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMED_OUT})

StatusListener = Callable[[JobStatus, JobStatus], None]


class JobStateMachine:
    """
    Tracks one job's status and rejects invalid transitions.

    Transition timestamps are recorded so the pool can report queue wait
    and processing time.
    """

    # Valid state transitions
    VALID_TRANSITIONS: list[tuple[JobStatus, JobStatus]] = [
        # From QUEUED
        (JobStatus.QUEUED, JobStatus.PROCESSING),
        (JobStatus.QUEUED, JobStatus.FAILED),  # Pool shut down before dispatch

        # From PROCESSING
        (JobStatus.PROCESSING, JobStatus.COMPLETED),
        (JobStatus.PROCESSING, JobStatus.FAILED),
        (JobStatus.PROCESSING, JobStatus.TIMED_OUT),
    ]

    def __init__(self, job_id: str, initial_state: JobStatus = JobStatus.QUEUED) -> None:
        self.job_id = job_id
        self._state = initial_state
        self._valid_transitions = set(self.VALID_TRANSITIONS)
        self._listeners: list[StatusListener] = []
        self.timestamps: dict[JobStatus, float] = {initial_state: time.time()}

    @property
    def state(self) -> JobStatus:
        """Get current state."""
        return self._state

    def can_transition(self, to_state: JobStatus) -> bool:
        """Check if transition to given state is valid."""
        return (self._state, to_state) in self._valid_transitions

    def transition(self, to_state: JobStatus) -> bool:
        """
        Attempt to transition to a new state.

        Returns:
            True if transition successful, False otherwise
        """
        if not self.can_transition(to_state):
            logger.warning(
                f"Job {self.job_id}: invalid transition {self._state.value} -> {to_state.value}"
            )
            return False

        old_state = self._state
        self._state = to_state
        self.timestamps[to_state] = time.time()
        logger.debug(f"Job {self.job_id}: {old_state.value} -> {to_state.value}")

        for listener in self._listeners:
            try:
                listener(old_state, to_state)
            except Exception as e:
                logger.error(f"Error in job state listener: {e}")

        return True

    def add_listener(self, callback: StatusListener) -> None:
        """Add a state change listener."""
        self._listeners.append(callback)

    def elapsed(self, since: JobStatus) -> float:
        """Seconds since the job entered ``since`` (0.0 if it never did)."""
        started = self.timestamps.get(since)
        if started is None:
            return 0.0
        return time.time() - started
