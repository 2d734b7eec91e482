"""
Render jobs: request/result types and the per-job pipeline.

``run_render_job`` is what a worker process executes for each request:
plan -> verify -> render frames -> encode, retrying with cheaper parameters
when the encoder reports ``OutputTooLarge``. Frames stream straight into the
encoder in order, one at a time.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Tuple
import asyncio
import logging
import math
import random
import time

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from spinreel.animation.spin import SpinAnimation
from spinreel.config.settings import EncoderSettings, PhysicsSettings, Settings, get_settings
from spinreel.core.errors import InternalRenderFailure, InvalidInput, JobCancelled, OutputTooLarge, Stage
from spinreel.core.state import JobStateMachine, JobStatus
from spinreel.encoding.encoder import AnimatedEncoder
from spinreel.encoding.governor import SizeGovernor
from spinreel.graphics.effects import QualityProfile, effects_for
from spinreel.graphics.renderer import WheelRenderer
from spinreel.graphics.sprites import SpriteCache
from spinreel.physics.planner import SpinParameters, plan_spin, verify_plan
from spinreel.wheel.layouts import LayoutRegistry, build_default_registry

logger = logging.getLogger(__name__)

# Frame rates outside this range are clamped
FPS_RANGE = (10, 30)


class RenderOptions(BaseModel):
    """Caller-facing render options, validated at submission."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    layout: str = "european"
    profile: QualityProfile = QualityProfile.BALANCED
    size: int = Field(default=360, ge=64, le=2048)
    min_size: int = Field(default=240, ge=64)
    fps: int = Field(default=16, ge=1, le=60)
    min_fps: int = Field(default=10, ge=1)
    duration: float = Field(default=8.5, gt=0.0, le=30.0)
    result_hold: float = Field(default=1.0, ge=0.0, le=5.0)
    byte_budget: int = Field(default=int(2.9 * 1024 * 1024), gt=0)
    physics: PhysicsSettings = Field(default_factory=PhysicsSettings)
    encoder: EncoderSettings = Field(default_factory=EncoderSettings)

    @field_validator("layout", mode="before")
    @classmethod
    def _normalize_layout(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("fps")
    @classmethod
    def _clamp_fps(cls, value: int) -> int:
        low, high = FPS_RANGE
        return max(low, min(high, value))

    @property
    def hold_frames(self) -> int:
        return math.ceil(self.result_hold * self.fps)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides: Any) -> "RenderOptions":
        """Defaults from settings, with ``overrides`` on top (None values ignored).

        Raises:
            InvalidInput: An option is out of range or unknown
        """
        settings = settings or get_settings()
        render = settings.render
        values: dict[str, Any] = dict(
            layout=render.layout,
            profile=render.profile,
            size=render.size,
            min_size=render.min_size,
            fps=render.fps,
            min_fps=render.min_fps,
            duration=render.duration,
            result_hold=render.result_hold,
            byte_budget=settings.encoder.byte_budget,
            physics=settings.physics,
            encoder=settings.encoder,
        )
        values.update({key: value for key, value in overrides.items() if value is not None})

        try:
            options = cls(**values)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise InvalidInput(f"Invalid render options: {problems}", stage=Stage.SUBMIT) from e

        if options.size > render.max_size:
            raise InvalidInput(
                f"Canvas size {options.size} exceeds the maximum of {render.max_size}",
                stage=Stage.SUBMIT,
            )
        return options


@dataclass(frozen=True)
class RenderRequest:
    """One validated spin to render. ``seed`` fixes every cosmetic draw."""

    winning_number: int
    options: RenderOptions
    seed: int


def build_request(
    winning_number: int,
    registry: LayoutRegistry,
    options: Optional[RenderOptions] = None,
    seed: Optional[int] = None,
) -> RenderRequest:
    """Validate a number against its layout and freeze the request.

    Raises:
        InvalidInput: Unknown layout or a number not on it
    """
    options = options or RenderOptions()
    registry.validate(winning_number, options.layout)
    if seed is None:
        seed = random.getrandbits(32)
    return RenderRequest(winning_number=winning_number, options=options, seed=seed)


@dataclass(frozen=True)
class RenderResult:
    """Encoded animation plus its metadata."""

    buffer: bytes = field(repr=False)
    format: str
    size_bytes: int
    frame_count: int
    fps: int
    resolution: Tuple[int, int]
    winning_number: int
    encode_time_ms: float
    attempts: int = 1
    degraded: bool = False

    def metadata(self) -> dict[str, Any]:
        return {
            "sizeBytes": self.size_bytes,
            "frameCount": self.frame_count,
            "fps": self.fps,
            "resolution": list(self.resolution),
            "winningNumber": self.winning_number,
            "encodeTimeMs": self.encode_time_ms,
        }


ProgressCallback = Callable[[str, int, int], None]


@dataclass
class RenderJob:
    """Coordinator-side record of one submitted request."""

    job_id: str
    request: RenderRequest
    future: "asyncio.Future[RenderResult]" = field(repr=False)
    on_progress: Optional[ProgressCallback] = field(default=None, repr=False)
    on_result: Optional[Callable[["RenderJob"], None]] = field(default=None, repr=False)
    worker_id: Optional[int] = None
    result: Optional[RenderResult] = field(default=None, repr=False)
    error: Optional[Exception] = None
    progress: Tuple[int, int] = (0, 0)
    finished_at: Optional[float] = None
    machine: JobStateMachine = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.machine = JobStateMachine(self.job_id)

    @property
    def status(self) -> JobStatus:
        return self.machine.state

    @property
    def winning_number(self) -> int:
        return self.request.winning_number


class WorkerContext:
    """What a job sees of the worker running it.

    Holds the layout registry, the worker's sprite cache and renderers, and
    the frame checkpoint that reports progress and honors cancellation.
    """

    def __init__(
        self,
        registry: Optional[LayoutRegistry] = None,
        sprites: Optional[SpriteCache] = None,
        worker_id: int = 0,
        report: Optional[Callable[[int, int], None]] = None,
        cancelled: Optional[Callable[[], bool]] = None,
        progress_interval: float = 0.1,
    ) -> None:
        self.registry = registry or build_default_registry()
        self.sprites = sprites or SpriteCache()
        self.worker_id = worker_id
        self.stage = Stage.WORKER
        self.report = report
        self._cancelled = cancelled
        self._progress_interval = progress_interval
        self._last_report = 0.0
        self._renderers: dict[tuple[str, int], WheelRenderer] = {}

    def renderer_for(self, layout_name: str, size: int) -> WheelRenderer:
        key = (layout_name, size)
        renderer = self._renderers.get(key)
        if renderer is None:
            renderer = WheelRenderer(self.registry.get(layout_name), size, self.sprites)
            self._renderers[key] = renderer
        return renderer

    def preload(self, targets: Iterable[Tuple[str, int, bool]]) -> int:
        """Build essential sprites for (layout, size, flat) targets."""
        count = 0
        for layout_name, size, flat in targets:
            self.renderer_for(layout_name, size).preload(flat)
            count += 1
        return count

    def begin(self) -> None:
        """Reset per-job state."""
        self.stage = Stage.WORKER
        self._last_report = 0.0

    def checkpoint(self, frame: int, total: int) -> None:
        """Frame boundary: stop if cancelled, report progress if due.

        Raises:
            JobCancelled: The coordinator abandoned this job
        """
        if self._cancelled is not None and self._cancelled():
            raise JobCancelled(f"Abandoned at frame {frame}/{total}", frame=frame)

        if self.report is None:
            return
        now = time.monotonic()
        if frame == 0 or frame >= total - 1 or now - self._last_report >= self._progress_interval:
            self._last_report = now
            self.report(frame + 1, total)


def spin_parameters(options: RenderOptions, fps: int) -> SpinParameters:
    physics = options.physics
    return SpinParameters(
        fps=fps,
        duration=options.duration,
        wheel_rpm=physics.wheel_rpm,
        ball_rpm=physics.ball_rpm,
        wheel_friction=physics.wheel_friction,
        ball_friction=physics.ball_friction,
        extra_ball_laps=physics.extra_ball_laps,
        drop_threshold_rpm=physics.drop_threshold_rpm,
        settle_steepness=physics.settle_steepness,
    )


def run_render_job(request: RenderRequest, context: WorkerContext) -> RenderResult:
    """Plan, render and encode one spin within the byte budget.

    Raises:
        InvalidInput: Layout or number rejected
        OutputTooLarge: Still over budget after the last governor step
        JobCancelled: The coordinator abandoned the job mid-render
        InternalRenderFailure: The plan failed verification
    """
    options = request.options
    number = request.winning_number
    context.begin()

    context.stage = Stage.PLAN
    layout = context.registry.get(options.layout)
    rng = random.Random(request.seed)
    base = spin_parameters(options, options.fps).randomized(
        rng, options.physics.velocity_jitter, options.physics.lap_jitter
    )
    landing_seed = rng.getrandbits(32)
    effects_seed = rng.getrandbits(32)

    governor = SizeGovernor(options.encoder, options.min_size, options.min_fps)
    hold = options.hold_frames
    attempt = governor.initial_attempt(
        options.size, options.fps, base.total_frames + hold, options.profile, options.byte_budget
    )

    while True:
        context.stage = Stage.PLAN
        params = base.with_fps(attempt.fps)
        plan = plan_spin(
            number,
            layout,
            params,
            rng=random.Random(landing_seed),
            landing_spread=options.physics.landing_spread,
        )
        if not verify_plan(plan):
            raise InternalRenderFailure(f"Plan for {number} does not land on it", stage=Stage.PLAN)

        context.stage = Stage.RENDER
        renderer = context.renderer_for(layout.name, attempt.size)
        animation = SpinAnimation(
            plan,
            renderer,
            effects_for(attempt.profile),
            rng=random.Random(effects_seed),
            hold_frames=math.ceil(options.result_hold * attempt.fps),
            checkpoint=context.checkpoint,
        )

        encoder = AnimatedEncoder(attempt.encode_settings(), options.byte_budget)
        try:
            for frame in animation.frames():
                encoder.add_frame(frame)
            context.stage = Stage.ENCODE
            encoded = encoder.finish()
        except OutputTooLarge as e:
            following = governor.next_attempt(attempt, e)
            if following is None:
                logger.warning(f"Spin {number}: {e.size_bytes} bytes after {attempt.number} attempts, giving up")
                raise
            logger.info(
                f"Spin {number}: {e.size_bytes} bytes over {e.budget_bytes}, retrying with {following.reason}"
            )
            attempt = following
            continue

        logger.info(
            f"Spin {number} encoded: {encoded.size_bytes} bytes, {encoded.frame_count} frames "
            f"@ {encoded.fps}fps, {attempt.size}px in {encoded.encode_time_ms:.0f}ms"
        )
        return RenderResult(
            buffer=encoded.buffer,
            format=encoded.format,
            size_bytes=encoded.size_bytes,
            frame_count=encoded.frame_count,
            fps=encoded.fps,
            resolution=encoded.resolution,
            winning_number=number,
            encode_time_ms=encoded.encode_time_ms,
            attempts=attempt.number,
            degraded=attempt.degraded,
        )
