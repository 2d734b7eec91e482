"""
Spin service: the surface external game logic talks to.

    async with SpinService() as service:
        representation = await service.request_spin(17, layout="american")
        health = service.get_health()
"""

from typing import Any, Callable, Optional
import logging

from spinreel.config.settings import Settings, get_settings
from spinreel.core.events import EventBus
from spinreel.fallback import FallbackChain, Representation, StaticRenderer, render_static
from spinreel.runtime.job import RenderOptions, run_render_job
from spinreel.runtime.worker import JobFunction, RenderWorkerPool
from spinreel.wheel.layouts import LayoutRegistry, build_default_registry

logger = logging.getLogger(__name__)


class SpinService:
    """Owns the layout registry, the worker pool and the fallback chain."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[LayoutRegistry] = None,
        event_bus: Optional[EventBus] = None,
        job_fn: JobFunction = run_render_job,
        static_renderer: StaticRenderer = render_static,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or build_default_registry()
        self.event_bus = event_bus or EventBus()

        render = self.settings.render
        flat = render.profile != "high_fidelity"
        self.pool = RenderWorkerPool(
            settings=self.settings.pool,
            registry=self.registry,
            job_fn=job_fn,
            event_bus=self.event_bus,
            preload=[(render.layout, render.size, flat)],
        )
        self.fallback = FallbackChain(
            self.pool,
            registry=self.registry,
            settings=self.settings,
            event_bus=self.event_bus,
            static_renderer=static_renderer,
        )

    async def start(self) -> None:
        await self.pool.start()

    async def close(self) -> None:
        await self.pool.close()

    async def __aenter__(self) -> "SpinService":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def request_spin(
        self,
        winning_number: int,
        seed: Optional[int] = None,
        on_progress: Optional[Callable[[str, int, int], None]] = None,
        **options: Any,
    ) -> Representation:
        """Render a spin that lands on ``winning_number``.

        Options (all optional): layout, profile, size, fps, duration,
        result_hold, byte_budget.

        Raises:
            InvalidInput: Bad number, layout or option
        """
        render_options = RenderOptions.from_settings(self.settings, **options)
        representation = await self.fallback.produce_result(
            winning_number, render_options, seed=seed, on_progress=on_progress
        )
        logger.info(
            f"Spin {winning_number} delivered as {representation.kind}"
            f"{' (degraded)' if representation.degraded else ''}"
        )
        return representation

    def get_health(self) -> dict[str, Any]:
        """{status, queueLength, activeJobs, memoryUsageBytes} for a supervisor."""
        health = self.pool.get_health()
        return {
            "status": health.status.value,
            "queueLength": health.queue_length,
            "activeJobs": health.active_jobs,
            "memoryUsageBytes": health.memory_usage_bytes,
        }
