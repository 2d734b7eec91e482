"""
Render worker pool.

One asyncio coordinator dispatches jobs to a fixed number of worker
processes, each running at most one job at a time. Every worker has a private
task queue and a cancel token; all workers share one result queue that the
coordinator drains without blocking the loop.

Notes:
- The job callable and everything in a task is pickled into the worker, so
  the callable must be a top-level function.
- Timed-out jobs are not killed mid-frame. The worker's cancel token is set,
  its slot goes to a fresh process right away, and the old process stops at
  its next frame checkpoint. It is terminated only if it is still alive after
  ``abandon_grace`` seconds.
- Sprite caches are per process. Each worker preloads its essential sprites
  once at startup and freezes them.
"""

from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Tuple
import asyncio
import gc
import itertools
import logging
import multiprocessing as mp
import os
import queue
import time

from spinreel.config.settings import PoolSettings
from spinreel.core.errors import (
    InternalRenderFailure,
    JobCancelled,
    RenderTimeout,
    SpinReelError,
    Stage,
    error_from_message,
    wrap_exception,
)
from spinreel.core.events import EventBus, EventType
from spinreel.core.state import JobStatus
from spinreel.graphics.sprites import SpriteCache
from spinreel.runtime.health import MB, HealthMonitor, WorkerHealth, manage_memory
from spinreel.runtime.job import RenderJob, RenderRequest, RenderResult, WorkerContext, run_render_job
from spinreel.runtime.messages import (
    AbandonedMessage,
    CacheTrimmed,
    ErrorMessage,
    ProgressMessage,
    RenderTask,
    ResultMessage,
    TrimCaches,
    WorkerReady,
)
from spinreel.wheel.layouts import LayoutRegistry, build_default_registry

logger = logging.getLogger(__name__)

JobFunction = Callable[[RenderRequest, WorkerContext], RenderResult]
PreloadTarget = Tuple[str, int, bool]


class _RenderProcess(mp.Process):
    """Runs render jobs from its own task queue until it receives ``None``."""

    def __init__(
        self,
        worker_id: int,
        task_q: Any,
        result_q: Any,
        cancel: Any,
        job_fn: JobFunction,
        registry: LayoutRegistry,
        preload: Tuple[PreloadTarget, ...] = (),
        progress_interval: float = 0.1,
        volatile_limit: int = 256,
    ):
        super().__init__(daemon=True, name=f"spinreel-worker-{worker_id}")
        self.worker_id = worker_id
        self.task_q, self.result_q = task_q, result_q
        self.cancel = cancel
        self.job_fn = job_fn
        self.registry = registry
        self.preload = preload
        self.progress_interval = progress_interval
        self.volatile_limit = volatile_limit

    def run(self) -> None:
        sprites = SpriteCache(self.volatile_limit)
        context = WorkerContext(
            registry=self.registry,
            sprites=sprites,
            worker_id=self.worker_id,
            cancelled=self.cancel.is_set,
            progress_interval=self.progress_interval,
        )
        try:
            context.preload(self.preload)
        except Exception as e:
            logger.error(f"Worker {self.worker_id}: sprite preload failed: {e}")
        sprites.freeze()
        self.result_q.put(WorkerReady(self.worker_id, os.getpid(), sprites.stats().essential_count))

        for message in iter(self.task_q.get, None):  # None = sentinel
            if isinstance(message, TrimCaches):
                removed = manage_memory(sprites)
                self.result_q.put(CacheTrimmed(self.worker_id, removed))
                continue
            self._run_task(message, context)

    def _run_task(self, task: RenderTask, context: WorkerContext) -> None:
        job_id = task.job_id

        def report(frame: int, total: int) -> None:
            self.result_q.put(ProgressMessage(job_id, self.worker_id, frame, total))

        context.report = report
        try:
            result = self.job_fn(task.request, context)
        except JobCancelled:
            logger.info(f"Worker {self.worker_id}: job {job_id} abandoned")
            self.result_q.put(AbandonedMessage(job_id, self.worker_id))
            return
        except Exception as e:
            error = wrap_exception(e, context.stage)
            logger.exception(f"Worker {self.worker_id}: job {job_id} failed in {error.stage.value}")
            self.result_q.put(
                ErrorMessage(job_id, self.worker_id, error.kind, error.message, error.stage.value, error.details)
            )
            return
        finally:
            context.report = None

        self.result_q.put(ResultMessage(job_id, self.worker_id, result))


@dataclass
class _Slot:
    """One concurrency slot and the process currently serving it."""
    worker_id: int
    process: _RenderProcess
    task_q: Any
    cancel: Any
    job_id: Optional[str] = None
    ready: bool = False


@dataclass
class _Retired:
    worker_id: int
    process: _RenderProcess
    task_q: Any
    deadline: float


@dataclass
class PoolStats:
    submitted: int = 0
    completed: int = 0
    failed: int = 0
    timed_out: int = 0
    peak_active: int = 0
    workers_spawned: int = 0
    workers_retired: int = 0


def _retrieve_exception(future: "asyncio.Future[Any]") -> None:
    # Callers may rely on on_result only and never await the future
    if not future.cancelled():
        future.exception()


class RenderWorkerPool:
    """Bounded process pool with per-job timeouts, driven from asyncio."""

    def __init__(
        self,
        settings: Optional[PoolSettings] = None,
        registry: Optional[LayoutRegistry] = None,
        job_fn: JobFunction = run_render_job,
        event_bus: Optional[EventBus] = None,
        preload: Iterable[PreloadTarget] = (),
        mp_context: Optional[Any] = None,
    ):
        self.settings = settings or PoolSettings()
        self.registry = registry or build_default_registry()
        self.job_fn = job_fn
        self.event_bus = event_bus or EventBus()
        self.preload = tuple(preload)
        self.stats = PoolStats()
        self.monitor = HealthMonitor(self.settings.busy_memory_mb, self.settings.degraded_memory_mb)

        self._ctx = mp_context or mp.get_context()
        self._result_q: Any = None
        self._slots: list[_Slot] = []
        self._retired: list[_Retired] = []
        self._queue: deque[str] = deque()
        self._jobs: dict[str, RenderJob] = {}
        self._archive: dict[str, RenderJob] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: list[asyncio.Task[None]] = []
        self._ids = itertools.count(1)
        self._worker_ids = itertools.count(1)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._last_health: Optional[WorkerHealth] = None
        self._running = False
        self._closed = False

    @property
    def max_workers(self) -> int:
        return self.settings.max_workers

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_jobs(self) -> int:
        return sum(1 for slot in self._slots if slot.job_id is not None)

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def ready_workers(self) -> int:
        """Workers that finished preloading and can take a job right away."""
        return sum(1 for slot in self._slots if slot.ready and slot.process.is_alive())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Spawn the workers and the housekeeping loops."""
        if self._running:
            return
        if self._closed:
            raise RuntimeError("Worker pool is closed")

        self._loop = asyncio.get_running_loop()
        self._result_q = self._ctx.Queue()
        self._slots = [self._spawn() for _ in range(self.max_workers)]
        self._running = True

        self._tasks = [
            asyncio.create_task(self._pump_loop(), name="spinreel-pump"),
            asyncio.create_task(self._health_loop(), name="spinreel-health"),
            asyncio.create_task(self._cleanup_loop(), name="spinreel-cleanup"),
        ]
        logger.info(f"Render pool started with {self.max_workers} workers")

    async def close(self) -> None:
        """Stop workers, fail unfinished jobs. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self._running = False

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        for job_id in list(self._jobs):
            self._fail(job_id, InternalRenderFailure("Worker pool closed", stage=Stage.WORKER))

        processes = [(s.process, s.task_q) for s in self._slots]
        processes += [(r.process, r.task_q) for r in self._retired]
        self._slots, self._retired = [], []
        if processes:
            await asyncio.get_running_loop().run_in_executor(None, _stop_processes, processes)

        if self._result_q is not None:
            self._result_q.close()
            self._result_q = None
        logger.info("Render pool closed")

    async def __aenter__(self) -> "RenderWorkerPool":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def submit(
        self,
        request: RenderRequest,
        on_progress: Optional[Callable[[str, int, int], None]] = None,
        on_result: Optional[Callable[[RenderJob], None]] = None,
    ) -> str:
        """Queue a request and return its job id immediately.

        ``on_progress(job_id, frame, total)`` fires at a bounded rate;
        ``on_result(job)`` fires once the job reaches a terminal state.
        """
        if not self._running or self._loop is None:
            raise RuntimeError("Worker pool is not running")

        job_id = f"job-{next(self._ids)}"
        future: asyncio.Future[RenderResult] = self._loop.create_future()
        future.add_done_callback(_retrieve_exception)
        job = RenderJob(job_id, request, future, on_progress=on_progress, on_result=on_result)

        self._jobs[job_id] = job
        self._queue.append(job_id)
        self.stats.submitted += 1
        self.event_bus.publish(
            EventType.JOB_QUEUED, source="pool",
            job_id=job_id, winning_number=request.winning_number, queue_length=len(self._queue),
        )
        self._dispatch()
        return job_id

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> RenderResult:
        """Await a job's result.

        Raises:
            KeyError: Unknown (or expired) job id
            SpinReelError: The job failed or timed out
        """
        job = self.get_job(job_id)
        if job is None:
            raise KeyError(job_id)
        if timeout is None:
            return await asyncio.shield(job.future)
        return await asyncio.wait_for(asyncio.shield(job.future), timeout)

    def get_job(self, job_id: str) -> Optional[RenderJob]:
        return self._jobs.get(job_id) or self._archive.get(job_id)

    def get_health(self) -> WorkerHealth:
        """Fresh health snapshot."""
        self._last_health = self.monitor.snapshot(
            queue_length=len(self._queue),
            active_jobs=self.active_jobs,
            max_workers=self.max_workers,
            worker_pids=self._worker_pids(),
            completed=self.stats.completed,
            failed=self.stats.failed,
            timed_out=self.stats.timed_out,
        )
        return self._last_health

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _spawn(self) -> _Slot:
        worker_id = next(self._worker_ids)
        task_q = self._ctx.Queue()
        cancel = self._ctx.Event()
        process = _RenderProcess(
            worker_id,
            task_q,
            self._result_q,
            cancel,
            self.job_fn,
            self.registry,
            self.preload,
            self.settings.progress_interval,
            self.settings.volatile_sprite_limit,
        )
        process.start()
        self.stats.workers_spawned += 1
        logger.debug(f"Spawned worker {worker_id} (pid {process.pid})")
        return _Slot(worker_id, process, task_q, cancel)

    def _dispatch(self) -> None:
        if not self._running:
            return
        for slot in self._slots:
            if not self._queue:
                return
            if slot.job_id is not None:
                continue

            job = self._next_queued()
            if job is None:
                return

            job.machine.transition(JobStatus.PROCESSING)
            job.worker_id = slot.worker_id
            slot.job_id = job.job_id
            slot.task_q.put(RenderTask(job.job_id, job.request))

            assert self._loop is not None
            self._timers[job.job_id] = self._loop.call_later(
                self.settings.job_timeout, self._on_timeout, job.job_id
            )
            self.stats.peak_active = max(self.stats.peak_active, self.active_jobs)
            self.event_bus.publish(
                EventType.JOB_STARTED, source="pool",
                job_id=job.job_id, worker_id=slot.worker_id, active_jobs=self.active_jobs,
            )

    def _next_queued(self) -> Optional[RenderJob]:
        while self._queue:
            job = self._jobs.get(self._queue.popleft())
            if job is not None and job.status is JobStatus.QUEUED:
                return job
        return None

    def _slot_for(self, worker_id: int) -> Optional[_Slot]:
        for slot in self._slots:
            if slot.worker_id == worker_id:
                return slot
        return None

    def _release(self, job: RenderJob) -> None:
        timer = self._timers.pop(job.job_id, None)
        if timer is not None:
            timer.cancel()
        if job.worker_id is not None:
            slot = self._slot_for(job.worker_id)
            if slot is not None and slot.job_id == job.job_id:
                slot.job_id = None

    def _finish(self, job: RenderJob) -> None:
        job.finished_at = time.monotonic()
        self._jobs.pop(job.job_id, None)
        self._archive[job.job_id] = job
        if job.on_result is not None:
            try:
                job.on_result(job)
            except Exception as e:
                logger.error(f"Error in result callback for {job.job_id}: {e}")
        self._dispatch()

    def _complete(self, job_id: str, result: RenderResult) -> None:
        job = self._jobs.get(job_id)
        if job is None or not job.machine.transition(JobStatus.COMPLETED):
            logger.debug(f"Dropping late result for {job_id}")
            return

        self._release(job)
        job.result = result
        job.future.set_result(result)
        self.stats.completed += 1
        self.event_bus.publish(
            EventType.JOB_COMPLETED, source="pool",
            job_id=job_id, size_bytes=result.size_bytes, frame_count=result.frame_count,
            encode_time_ms=result.encode_time_ms, attempts=result.attempts,
        )
        self._finish(job)

    def _fail(self, job_id: str, error: SpinReelError) -> None:
        job = self._jobs.get(job_id)
        if job is None or not job.machine.transition(JobStatus.FAILED):
            logger.debug(f"Dropping late failure for {job_id}: {error}")
            return

        self._release(job)
        job.error = error
        job.future.set_exception(error)
        self.stats.failed += 1
        logger.warning(f"Job {job_id} ({job.winning_number}) failed: {error}")
        self.event_bus.publish(
            EventType.JOB_FAILED, source="pool",
            job_id=job_id, kind=error.kind, stage=error.stage.value, message=error.message,
        )
        self._finish(job)

    def _on_timeout(self, job_id: str) -> None:
        self._timers.pop(job_id, None)
        job = self._jobs.get(job_id)
        if job is None or not job.machine.transition(JobStatus.TIMED_OUT):
            return

        timeout = self.settings.job_timeout
        error = RenderTimeout(f"Job exceeded {timeout:.1f}s", job_id=job_id, timeout=timeout)
        job.error = error
        job.future.set_exception(error)
        self.stats.timed_out += 1
        logger.warning(f"Job {job_id} ({job.winning_number}) timed out after {timeout:.1f}s")
        self.event_bus.publish(EventType.JOB_TIMED_OUT, source="pool", job_id=job_id, timeout=timeout)

        if job.worker_id is not None:
            slot = self._slot_for(job.worker_id)
            if slot is not None and slot.job_id == job_id:
                self._retire(slot)
        self._finish(job)

    def _retire(self, slot: _Slot) -> None:
        """Cancel the slot's job and hand the slot to a fresh process."""
        slot.cancel.set()
        slot.task_q.put(None)
        self._retired.append(
            _Retired(slot.worker_id, slot.process, slot.task_q, time.monotonic() + self.settings.abandon_grace)
        )
        index = self._slots.index(slot)
        self._slots[index] = self._spawn()
        self.stats.workers_retired += 1
        self.event_bus.publish(
            EventType.WORKER_RETIRED, source="pool",
            worker_id=slot.worker_id, job_id=slot.job_id, replacement=self._slots[index].worker_id,
        )

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    async def _pump_loop(self) -> None:
        interval = self.settings.poll_interval
        while self._running:
            try:
                self._drain()
            except Exception as e:
                logger.exception(f"Error handling worker message: {e}")
            await asyncio.sleep(interval)

    def _drain(self) -> None:
        while True:
            try:
                message = self._result_q.get_nowait()
            except queue.Empty:
                return
            self._handle(message)

    def _handle(self, message: Any) -> None:
        if isinstance(message, ProgressMessage):
            job = self._jobs.get(message.job_id)
            if job is None or job.status is not JobStatus.PROCESSING:
                return
            job.progress = (message.frame, message.total)
            if job.on_progress is not None:
                try:
                    job.on_progress(message.job_id, message.frame, message.total)
                except Exception as e:
                    logger.error(f"Error in progress callback for {message.job_id}: {e}")
            self.event_bus.publish(
                EventType.JOB_PROGRESS, source="pool",
                job_id=message.job_id, frame=message.frame, total=message.total,
            )
        elif isinstance(message, ResultMessage):
            self._complete(message.job_id, message.result)
        elif isinstance(message, ErrorMessage):
            error = error_from_message(message.kind, message.message, message.stage, message.details)
            self._fail(message.job_id, error)
        elif isinstance(message, AbandonedMessage):
            logger.debug(f"Worker {message.worker_id} dropped {message.job_id}")
        elif isinstance(message, WorkerReady):
            slot = self._slot_for(message.worker_id)
            if slot is not None:
                slot.ready = True
            self.event_bus.publish(
                EventType.WORKER_READY, source="pool",
                worker_id=message.worker_id, pid=message.pid, essential_sprites=message.essential_sprites,
            )
        elif isinstance(message, CacheTrimmed):
            self.event_bus.publish(
                EventType.CACHE_TRIMMED, source="pool", worker_id=message.worker_id, removed=message.removed,
            )
        else:
            logger.warning(f"Unknown worker message: {message!r}")

    async def _health_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.settings.health_interval)
            try:
                health = self.get_health()
            except Exception as e:
                logger.error(f"Health snapshot failed: {e}")
                continue

            self.event_bus.publish(EventType.HEALTH_SNAPSHOT, source="pool", **health.as_dict())
            if self.monitor.should_trim(health.peak_process_bytes):
                logger.info(f"Largest process at {health.peak_process_bytes / MB:.0f}MB, trimming caches")
                for slot in self._slots:
                    slot.task_q.put(TrimCaches("memory"))
                gc.collect()

    async def _cleanup_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.settings.cleanup_interval)
            try:
                self._cleanup()
            except Exception as e:
                logger.error(f"Pool cleanup failed: {e}")

    def _cleanup(self) -> None:
        now = time.monotonic()

        expired = [
            job_id for job_id, job in self._archive.items()
            if job.finished_at is not None and now - job.finished_at > self.settings.archive_ttl
        ]
        for job_id in expired:
            del self._archive[job_id]
        if expired:
            logger.debug(f"Expired {len(expired)} archived jobs")

        for index, slot in enumerate(self._slots):
            if slot.process.is_alive():
                continue
            logger.warning(f"Worker {slot.worker_id} exited with code {slot.process.exitcode}, respawning")
            self._slots[index] = self._spawn()
            if slot.job_id is not None:
                self._fail(slot.job_id, InternalRenderFailure(
                    f"Worker {slot.worker_id} exited unexpectedly", stage=Stage.WORKER,
                ))

        still_retiring = []
        for retired in self._retired:
            if not retired.process.is_alive():
                retired.process.join(timeout=0)
                continue
            if now >= retired.deadline:
                logger.warning(f"Terminating unresponsive worker {retired.worker_id}")
                retired.process.terminate()
                retired.process.join(timeout=0)
                continue
            still_retiring.append(retired)
        self._retired = still_retiring

        self._dispatch()

    def _worker_pids(self) -> list[int]:
        pids = [slot.process.pid for slot in self._slots if slot.process.is_alive()]
        pids += [r.process.pid for r in self._retired if r.process.is_alive()]
        return [pid for pid in pids if pid is not None]


def _stop_processes(processes: list[Tuple[_RenderProcess, Any]]) -> None:
    """Send sentinels, join briefly, terminate stragglers."""
    for _, task_q in processes:
        try:
            task_q.put_nowait(None)
        except (queue.Full, ValueError):
            # Closed or full: join/terminate below still stops it
            continue
    for process, _ in processes:
        process.join(timeout=1.0)
        if process.is_alive():
            process.terminate()
            process.join(timeout=1.0)
    for _, task_q in processes:
        task_q.close()
