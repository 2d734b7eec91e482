import asyncio

import pytest

from spinreel.config.settings import RenderSettings, Settings
from spinreel.core.errors import InvalidInput, OutputTooLarge, RenderTimeout
from spinreel.core.events import EventBus, EventType
from spinreel.fallback import AnimatedImage, FallbackChain, StaticImage, TextSummary, render_static
from spinreel.graphics.effects import QualityProfile
from spinreel.runtime.job import RenderResult
from spinreel.wheel.layouts import DOUBLE_ZERO, PocketColor


class _StubPool:
    """Stands in for the worker pool: records requests, answers from a script."""

    def __init__(self, registry, outcome):
        self.registry = registry
        self.event_bus = EventBus()
        self.outcome = outcome
        self.requests = []

    def submit(self, request, on_progress=None, on_result=None):
        self.requests.append(request)
        return f"job-{len(self.requests)}"

    async def wait(self, job_id, timeout=None):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def _result(number: int, degraded: bool = False) -> RenderResult:
    return RenderResult(
        buffer=b"GIF89a",
        format="gif",
        size_bytes=6,
        frame_count=152,
        fps=16,
        resolution=(360, 360),
        winning_number=number,
        encode_time_ms=12.0,
        attempts=2 if degraded else 1,
        degraded=degraded,
    )


@pytest.fixture()
def settings() -> Settings:
    return Settings(render=RenderSettings(static_size=160))


def _broken_static(*args):
    raise RuntimeError("no canvas")


def test_animation_is_delivered(registry, settings) -> None:
    pool = _StubPool(registry, _result(17, degraded=True))
    chain = FallbackChain(pool, registry, settings)

    representation = asyncio.run(chain.produce_result(17, seed=3))
    assert isinstance(representation, AnimatedImage)
    assert representation.winning_number == 17
    assert representation.degraded
    assert representation.result.attempts == 2
    assert pool.requests[0].seed == 3

    delivered = pool.event_bus.get_history(EventType.RESULT_DELIVERED)
    assert delivered[-1].data["kind"] == "animated"


def test_failed_animation_falls_back_to_static(registry, settings) -> None:
    pool = _StubPool(registry, RenderTimeout("slow", job_id="job-1"))
    chain = FallbackChain(pool, registry, settings)

    representation = asyncio.run(chain.produce_result(17))
    assert isinstance(representation, StaticImage)
    assert representation.format == "png"
    assert representation.buffer.startswith(b"\x89PNG")
    assert representation.resolution == (160, 160)
    assert representation.degraded
    assert representation.summary.color is PocketColor.BLACK

    failed = pool.event_bus.get_history(EventType.TIER_FAILED)
    assert failed[-1].data["tier"] == "animated"
    assert failed[-1].data["kind"] == "RenderTimeout"


def test_text_summary_is_the_last_resort(registry, settings) -> None:
    pool = _StubPool(registry, OutputTooLarge("big", size_bytes=4, budget_bytes=3))
    chain = FallbackChain(pool, registry, settings, static_renderer=_broken_static)

    representation = asyncio.run(chain.produce_result(36))
    assert isinstance(representation, TextSummary)
    assert representation.winning_number == 36
    assert representation.color is PocketColor.RED
    assert representation.text == "The ball landed on 36 Red"

    tiers = [e.data["tier"] for e in pool.event_bus.get_history(EventType.TIER_FAILED)]
    assert tiers == ["animated", "static"]


def test_double_zero_summary(registry, settings) -> None:
    american = settings.model_copy(update={"render": RenderSettings(layout="american", static_size=160)})
    pool = _StubPool(registry, RuntimeError("worker gone"))
    chain = FallbackChain(pool, registry, american, static_renderer=_broken_static)

    representation = asyncio.run(chain.produce_result(DOUBLE_ZERO))
    assert representation.label == "00"
    assert representation.color is PocketColor.GREEN
    assert representation.text == "The ball landed on 00 Green"


def test_invalid_input_aborts_the_chain(registry, settings) -> None:
    pool = _StubPool(registry, _result(5))
    chain = FallbackChain(pool, registry, settings)

    with pytest.raises(InvalidInput):
        asyncio.run(chain.produce_result(DOUBLE_ZERO))
    assert pool.requests == []

    pool.outcome = InvalidInput("layout vanished")
    with pytest.raises(InvalidInput):
        asyncio.run(chain.produce_result(5))
    assert pool.event_bus.get_history(EventType.TIER_FAILED) == []


def test_render_static_retries_with_fewer_colors(european) -> None:
    full = render_static(17, european, 200, 10_000_000, QualityProfile.HIGH_FIDELITY)
    reduced = render_static(17, european, 200, full.size_bytes - 1, QualityProfile.HIGH_FIDELITY)
    assert reduced.size_bytes < full.size_bytes
    assert reduced.format == "png"

    with pytest.raises(OutputTooLarge):
        render_static(17, european, 200, 50, QualityProfile.HIGH_FIDELITY)
