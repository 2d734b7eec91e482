"""Runtime module for spinreel: render jobs and the worker pool."""

from spinreel.runtime.job import (
    RenderOptions,
    RenderRequest,
    RenderResult,
    RenderJob,
    WorkerContext,
    build_request,
    run_render_job,
)
from spinreel.runtime.health import HealthMonitor, HealthStatus, WorkerHealth, classify, manage_memory
from spinreel.runtime.worker import RenderWorkerPool, PoolStats

__all__ = [
    # Jobs
    "RenderOptions",
    "RenderRequest",
    "RenderResult",
    "RenderJob",
    "WorkerContext",
    "build_request",
    "run_render_job",
    # Health
    "HealthMonitor",
    "HealthStatus",
    "WorkerHealth",
    "classify",
    "manage_memory",
    # Pool
    "RenderWorkerPool",
    "PoolStats",
]
