from __future__ import annotations

import asyncio
import time

import pytest

from job_stubs import FAIL, FRAMES, SLOW, STALL, STUBBORN, scripted_job
from spinreel.core.errors import InternalRenderFailure, RenderTimeout, Stage
from spinreel.core.events import EventBus, EventType
from spinreel.core.state import JobStatus
from spinreel.runtime.health import HealthStatus
from spinreel.runtime.job import RenderOptions, build_request
from spinreel.runtime.worker import RenderWorkerPool


async def _until(predicate, timeout: float = 15.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.02)


async def _started_pool(settings, registry, **kwargs) -> RenderWorkerPool:
    pool = RenderWorkerPool(settings, registry, job_fn=scripted_job, **kwargs)
    await pool.start()
    await _until(lambda: pool.ready_workers == pool.max_workers)
    return pool


def _request(registry, number: int):
    return build_request(number, registry, RenderOptions(size=96, fps=10), seed=number)


@pytest.mark.integration
def test_jobs_complete_with_progress(fast_pool_settings, registry) -> None:
    async def scenario() -> None:
        bus = EventBus()
        pool = await _started_pool(fast_pool_settings, registry, event_bus=bus)
        try:
            progress = []
            finished = []
            job_id = pool.submit(
                _request(registry, 17),
                on_progress=lambda jid, frame, total: progress.append((jid, frame, total)),
                on_result=finished.append,
            )
            assert job_id.startswith("job-")

            result = await pool.wait(job_id)
            assert result.winning_number == 17
            assert result.frame_count == FRAMES

            job = pool.get_job(job_id)
            assert job.status is JobStatus.COMPLETED
            assert len(finished) == 1 and finished[0] is job
            assert progress[0] == (job_id, 1, FRAMES)
            assert progress[-1] == (job_id, FRAMES, FRAMES)
            assert [p[1] for p in progress] == sorted(p[1] for p in progress)

            types = [e.type for e in bus.get_history(limit=100)]
            assert EventType.JOB_QUEUED in types
            assert EventType.JOB_STARTED in types
            assert EventType.JOB_COMPLETED in types
        finally:
            await pool.close()

    asyncio.run(scenario())


@pytest.mark.integration
def test_concurrency_is_bounded(fast_pool_settings, registry) -> None:
    async def scenario() -> None:
        pool = await _started_pool(fast_pool_settings, registry)
        try:
            job_ids = [pool.submit(_request(registry, SLOW)) for _ in range(5)]
            assert pool.active_jobs <= pool.max_workers
            assert pool.queue_length == 5 - pool.active_jobs

            results = await asyncio.gather(*(pool.wait(job_id) for job_id in job_ids))
            assert len(results) == 5
            assert pool.stats.peak_active == pool.max_workers
            assert pool.stats.completed == 5
            assert pool.active_jobs == 0
        finally:
            await pool.close()

    asyncio.run(scenario())


@pytest.mark.integration
def test_failure_is_isolated(fast_pool_settings, registry) -> None:
    async def scenario() -> None:
        pool = await _started_pool(fast_pool_settings, registry)
        try:
            bad = pool.submit(_request(registry, FAIL))
            good = pool.submit(_request(registry, 5))

            with pytest.raises(InternalRenderFailure) as info:
                await pool.wait(bad)
            assert "boom" in info.value.message
            assert info.value.stage is Stage.WORKER
            assert pool.get_job(bad).status is JobStatus.FAILED

            assert (await pool.wait(good)).winning_number == 5
            # same workers keep serving
            again = pool.submit(_request(registry, 6))
            assert (await pool.wait(again)).winning_number == 6
            assert pool.stats.workers_spawned == pool.max_workers
        finally:
            await pool.close()

    asyncio.run(scenario())


@pytest.mark.integration
def test_timeout_frees_the_slot(fast_pool_settings, registry) -> None:
    settings = fast_pool_settings.model_copy(update={"job_timeout": 1.0, "max_workers": 1})

    async def scenario() -> None:
        bus = EventBus()
        pool = await _started_pool(settings, registry, event_bus=bus)
        try:
            stalled = pool.submit(_request(registry, STALL))
            with pytest.raises(RenderTimeout):
                await pool.wait(stalled)
            assert pool.get_job(stalled).status is JobStatus.TIMED_OUT
            assert pool.stats.timed_out == 1
            assert pool.stats.workers_retired == 1
            assert bus.get_history(EventType.WORKER_RETIRED)

            await _until(lambda: pool.ready_workers == 1)
            following = pool.submit(_request(registry, 9))
            assert (await pool.wait(following)).winning_number == 9
        finally:
            await pool.close()

    asyncio.run(scenario())


@pytest.mark.integration
def test_unresponsive_worker_is_terminated(fast_pool_settings, registry) -> None:
    settings = fast_pool_settings.model_copy(update={"job_timeout": 0.5, "max_workers": 1})

    async def scenario() -> None:
        pool = await _started_pool(settings, registry)
        try:
            job_id = pool.submit(_request(registry, STUBBORN))
            with pytest.raises(RenderTimeout):
                await pool.wait(job_id)
            # abandon_grace passes, the cleanup loop terminates the old process
            await _until(lambda: pool.get_health().workers_alive == 1, timeout=10.0)
        finally:
            await pool.close()

    asyncio.run(scenario())


@pytest.mark.integration
def test_health_and_close(fast_pool_settings, registry) -> None:
    async def scenario() -> None:
        bus = EventBus()
        pool = await _started_pool(fast_pool_settings, registry, event_bus=bus)
        try:
            health = pool.get_health()
            assert isinstance(health.status, HealthStatus)
            assert health.active_jobs == 0
            assert health.memory_usage_bytes > health.peak_process_bytes > 0
            assert health.workers_alive == 2
            # Idle: each process is far below the per-process thresholds
            assert health.status is HealthStatus.READY

            await _until(lambda: bool(bus.get_history(EventType.HEALTH_SNAPSHOT)))
            snapshot = bus.get_history(EventType.HEALTH_SNAPSHOT)[-1]
            assert snapshot.data["status"] in ("ready", "busy", "degraded")

            queued = [pool.submit(_request(registry, STALL)) for _ in range(3)]
        finally:
            await pool.close()
            await pool.close()

        assert not pool.is_running
        for job_id in queued:
            with pytest.raises(InternalRenderFailure):
                await pool.wait(job_id)
        with pytest.raises(RuntimeError):
            pool.submit(_request(registry, 5))

    asyncio.run(scenario())
