"""
Fallback chain: always produce something for a resolved spin.

Tiers, tried strictly in order:
    1. AnimatedImage: full animation from the worker pool
    2. StaticImage: one frame of the resolved wheel, PNG
    3. TextSummary: number and color, no imagery

Any failure advances to the next tier except ``InvalidInput``, which means
the caller asked for a number or layout that does not exist and aborts the
whole chain.
"""

from dataclasses import dataclass, field
from typing import Callable, ClassVar, Optional, Union
import asyncio
import logging

from spinreel.config.settings import Settings, get_settings
from spinreel.core.errors import InvalidInput, OutputTooLarge, SpinReelError, Stage
from spinreel.core.events import EventBus, EventType
from spinreel.encoding.encoder import EncodedImage, encode_still
from spinreel.graphics.effects import QualityProfile, effects_for
from spinreel.graphics.renderer import WheelRenderer
from spinreel.runtime.job import RenderOptions, RenderResult, build_request
from spinreel.runtime.worker import RenderWorkerPool
from spinreel.wheel.layouts import LayoutRegistry, PocketColor, WheelLayout, build_default_registry, color_of, number_label

logger = logging.getLogger(__name__)

# Palette used when a full-color still is over budget
STATIC_FALLBACK_COLORS = 64


@dataclass(frozen=True)
class TextSummary:
    """Plain-text result. Building one never fails."""

    kind: ClassVar[str] = "text"

    winning_number: int
    label: str
    color: PocketColor
    degraded: bool = True

    @classmethod
    def for_number(cls, winning_number: int) -> "TextSummary":
        return cls(winning_number, number_label(winning_number), color_of(winning_number))

    @property
    def text(self) -> str:
        return f"The ball landed on {self.label} {self.color.label}"

    @property
    def summary(self) -> "TextSummary":
        return self


@dataclass(frozen=True)
class AnimatedImage:
    kind: ClassVar[str] = "animated"

    buffer: bytes = field(repr=False)
    format: str
    result: RenderResult
    summary: TextSummary
    degraded: bool = False

    @property
    def winning_number(self) -> int:
        return self.summary.winning_number


@dataclass(frozen=True)
class StaticImage:
    kind: ClassVar[str] = "static"

    buffer: bytes = field(repr=False)
    format: str
    size_bytes: int
    resolution: tuple[int, int]
    summary: TextSummary
    degraded: bool = True

    @property
    def winning_number(self) -> int:
        return self.summary.winning_number


Representation = Union[AnimatedImage, StaticImage, TextSummary]

StaticRenderer = Callable[[int, WheelLayout, int, int, QualityProfile], EncodedImage]


def render_static(
    winning_number: int,
    layout: WheelLayout,
    size: int,
    byte_budget: int,
    profile: QualityProfile = QualityProfile.BALANCED,
) -> EncodedImage:
    """Render and encode the resolved wheel as one PNG.

    Uses its own renderer and sprite cache so it can run in any thread.
    """
    renderer = WheelRenderer(layout, size)
    image = renderer.render_still(winning_number, effects_for(profile))
    try:
        return encode_still(image, byte_budget)
    except OutputTooLarge as e:
        logger.info(f"Still for {winning_number} is {e.size_bytes} bytes, retrying with {STATIC_FALLBACK_COLORS} colors")
        return encode_still(image, byte_budget, colors=STATIC_FALLBACK_COLORS)


class FallbackChain:
    """Turns a winning number into the best representation available."""

    def __init__(
        self,
        pool: RenderWorkerPool,
        registry: Optional[LayoutRegistry] = None,
        settings: Optional[Settings] = None,
        event_bus: Optional[EventBus] = None,
        static_renderer: StaticRenderer = render_static,
    ):
        self.pool = pool
        self.registry = registry or pool.registry or build_default_registry()
        self.settings = settings or get_settings()
        self.event_bus = event_bus or pool.event_bus
        self.static_renderer = static_renderer

    async def produce_result(
        self,
        winning_number: int,
        options: Optional[RenderOptions] = None,
        seed: Optional[int] = None,
        on_progress: Optional[Callable[[str, int, int], None]] = None,
    ) -> Representation:
        """Walk the tiers until one succeeds.

        Raises:
            InvalidInput: Unknown layout or number (never retried)
        """
        options = options or RenderOptions.from_settings(self.settings)
        request = build_request(winning_number, self.registry, options, seed)
        summary = TextSummary.for_number(winning_number)

        # Tier 1: animation
        try:
            job_id = self.pool.submit(request, on_progress=on_progress)
            result = await self.pool.wait(job_id)
            return self._delivered(AnimatedImage(
                buffer=result.buffer,
                format=result.format,
                result=result,
                summary=summary,
                degraded=result.degraded,
            ))
        except InvalidInput:
            raise
        except Exception as e:
            self._tier_failed("animated", winning_number, e)

        # Tier 2: static image
        try:
            layout = self.registry.get(options.layout)
            loop = asyncio.get_running_loop()
            still = await loop.run_in_executor(
                None,
                self.static_renderer,
                winning_number,
                layout,
                self.settings.render.static_size,
                options.byte_budget,
                options.profile,
            )
            return self._delivered(StaticImage(
                buffer=still.buffer,
                format=still.format,
                size_bytes=still.size_bytes,
                resolution=still.resolution,
                summary=summary,
            ))
        except InvalidInput:
            raise
        except Exception as e:
            self._tier_failed("static", winning_number, e)

        # Tier 3: text
        return self._delivered(summary)

    def _tier_failed(self, tier: str, winning_number: int, error: Exception) -> None:
        if isinstance(error, SpinReelError):
            stage, kind, message = error.stage.value, error.kind, error.message
        else:
            stage = Stage.STATIC.value if tier == "static" else Stage.WORKER.value
            kind, message = type(error).__name__, str(error)

        logger.warning(f"{tier} tier failed for {winning_number} in {stage}: {kind}: {message}")
        self.event_bus.publish(
            EventType.TIER_FAILED, source="fallback",
            tier=tier, winning_number=winning_number, stage=stage, kind=kind, message=message,
        )

    def _delivered(self, representation: Representation) -> Representation:
        self.event_bus.publish(
            EventType.RESULT_DELIVERED, source="fallback",
            kind=representation.kind,
            winning_number=representation.summary.winning_number,
            degraded=representation.degraded,
        )
        return representation
