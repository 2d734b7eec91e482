from __future__ import annotations

import asyncio

import pytest

from job_stubs import always_fail, scripted_job
from spinreel.config.settings import PoolSettings, RenderSettings, Settings
from spinreel.core.errors import InvalidInput
from spinreel.core.events import EventType
from spinreel.fallback import AnimatedImage, StaticImage
from spinreel.service import SpinService
from spinreel.wheel.layouts import PocketColor


def _settings() -> Settings:
    return Settings(
        render=RenderSettings(size=96, fps=10, duration=1.0, result_hold=0.5, static_size=160),
        pool=PoolSettings(max_workers=1, job_timeout=20.0, health_interval=0.2, cleanup_interval=0.1, poll_interval=0.01),
    )


@pytest.mark.integration
def test_service_renders_a_real_spin() -> None:
    async def scenario() -> None:
        async with SpinService(_settings()) as service:
            progress = []
            representation = await service.request_spin(
                36, seed=7, on_progress=lambda job_id, frame, total: progress.append(frame),
            )
            assert isinstance(representation, AnimatedImage)
            assert representation.format == "gif"
            assert representation.summary.color is PocketColor.RED
            assert 1 < representation.result.frame_count <= 15
            assert progress and progress[-1] == 15

            health = service.get_health()
            assert set(health) == {"status", "queueLength", "activeJobs", "memoryUsageBytes"}
            assert health["activeJobs"] == 0

    asyncio.run(scenario())


@pytest.mark.integration
def test_service_falls_back_when_workers_fail() -> None:
    async def scenario() -> None:
        async with SpinService(_settings(), job_fn=always_fail) as service:
            representation = await service.request_spin(0)
            assert isinstance(representation, StaticImage)
            assert representation.winning_number == 0
            assert representation.summary.color is PocketColor.GREEN

            failed = service.event_bus.get_history(EventType.TIER_FAILED)
            assert failed[-1].data["kind"] == "InternalRenderFailure"
            assert "renderer unavailable" in failed[-1].data["message"]

    asyncio.run(scenario())


@pytest.mark.integration
def test_service_rejects_bad_requests() -> None:
    async def scenario() -> None:
        async with SpinService(_settings(), job_fn=scripted_job) as service:
            with pytest.raises(InvalidInput):
                await service.request_spin(37)
            with pytest.raises(InvalidInput):
                await service.request_spin(5, layout="french")
            with pytest.raises(InvalidInput):
                await service.request_spin(5, size=4096)

    asyncio.run(scenario())
