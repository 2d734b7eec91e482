"""
Typed messages exchanged between the pool coordinator and worker processes.

Coordinator -> worker (per-worker task queue):
    RenderTask, TrimCaches, or ``None`` to stop

Worker -> coordinator (shared result queue):
    WorkerReady, ProgressMessage, ResultMessage, ErrorMessage,
    AbandonedMessage, CacheTrimmed

All messages are plain frozen dataclasses so they pickle across processes.
"""

from dataclasses import dataclass, field
from typing import Any, Union

from spinreel.runtime.job import RenderRequest, RenderResult


@dataclass(frozen=True)
class RenderTask:
    """Run one job."""
    job_id: str
    request: RenderRequest


@dataclass(frozen=True)
class TrimCaches:
    """Drop volatile sprites and collect garbage."""
    reason: str = "memory"


@dataclass(frozen=True)
class WorkerReady:
    worker_id: int
    pid: int
    essential_sprites: int


@dataclass(frozen=True)
class ProgressMessage:
    job_id: str
    worker_id: int
    frame: int
    total: int


@dataclass(frozen=True)
class ResultMessage:
    job_id: str
    worker_id: int
    result: RenderResult


@dataclass(frozen=True)
class ErrorMessage:
    """Structured failure; rebuilt with ``error_from_message`` on arrival."""
    job_id: str
    worker_id: int
    kind: str
    message: str
    stage: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AbandonedMessage:
    """The worker saw its cancel token and dropped the job."""
    job_id: str
    worker_id: int


@dataclass(frozen=True)
class CacheTrimmed:
    worker_id: int
    removed: int


WorkerMessage = Union[
    WorkerReady,
    ProgressMessage,
    ResultMessage,
    ErrorMessage,
    AbandonedMessage,
    CacheTrimmed,
]
