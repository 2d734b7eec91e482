"""Pool health snapshots and memory housekeeping."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Iterable
import gc
import logging
import os
import time

import psutil

from spinreel.graphics.sprites import SpriteCache

logger = logging.getLogger(__name__)

MB = 1024 * 1024


class HealthStatus(str, Enum):
    READY = "ready"
    BUSY = "busy"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class WorkerHealth:
    """Advisory snapshot for an external supervisor."""

    status: HealthStatus
    queue_length: int
    active_jobs: int
    max_workers: int
    memory_usage_bytes: int
    peak_process_bytes: int = 0
    workers_alive: int = 0
    completed: int = 0
    failed: int = 0
    timed_out: int = 0
    timestamp: float = field(default_factory=time.time)

    @property
    def memory_mb(self) -> float:
        return self.memory_usage_bytes / MB

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


def classify(
    memory_bytes: int,
    active_jobs: int,
    max_workers: int,
    busy_mb: int = 300,
    degraded_mb: int = 400,
) -> HealthStatus:
    """Map memory use and load onto ready / busy / degraded."""
    memory_mb = memory_bytes / MB
    if memory_mb > degraded_mb or active_jobs > max_workers:
        return HealthStatus.DEGRADED
    if memory_mb > busy_mb or active_jobs >= max_workers:
        return HealthStatus.BUSY
    return HealthStatus.READY


class HealthMonitor:
    """Measures resident memory of the coordinator and its workers.

    Status and trimming look at the largest single process, not the sum,
    so an idle pool with several warm workers still reads as ready.
    """

    def __init__(self, busy_mb: int = 300, degraded_mb: int = 400) -> None:
        self.busy_mb = busy_mb
        self.degraded_mb = degraded_mb
        self._process = psutil.Process(os.getpid())

    def process_memory(self, worker_pids: Iterable[int] = ()) -> list[int]:
        """Resident set size of the coordinator, then of each live worker."""
        sizes = [self._process.memory_info().rss]
        for pid in worker_pids:
            try:
                sizes.append(psutil.Process(pid).memory_info().rss)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                # Exited between listing and sampling
                continue
        return sizes

    def memory_usage_bytes(self, worker_pids: Iterable[int] = ()) -> int:
        return sum(self.process_memory(worker_pids))

    def snapshot(
        self,
        queue_length: int,
        active_jobs: int,
        max_workers: int,
        worker_pids: Iterable[int] = (),
        **counters: int,
    ) -> WorkerHealth:
        pids = list(worker_pids)
        sizes = self.process_memory(pids)
        # Thresholds are per process; the pool total only gets reported
        peak = max(sizes)
        return WorkerHealth(
            status=classify(peak, active_jobs, max_workers, self.busy_mb, self.degraded_mb),
            queue_length=queue_length,
            active_jobs=active_jobs,
            max_workers=max_workers,
            memory_usage_bytes=sum(sizes),
            peak_process_bytes=peak,
            workers_alive=len(pids),
            **counters,
        )

    def should_trim(self, memory_bytes: int) -> bool:
        """Largest process above the soft threshold: drop non-essential caches."""
        return memory_bytes / MB > self.busy_mb


def manage_memory(sprites: SpriteCache) -> int:
    """Drop volatile sprites, then run a full collection.

    Returns:
        Number of sprites removed
    """
    removed = sprites.clear_volatile()
    collected = gc.collect()
    logger.debug(f"Trimmed {removed} volatile sprites, collected {collected} objects")
    return removed
