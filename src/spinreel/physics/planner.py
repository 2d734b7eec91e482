"""Deterministic spin planner.

Both wheel and ball follow exponential angular-velocity decay,
``w(t) = w0 * exp(-k * t)``, whose integral gives the angular position
``theta(t) = (w0 / k) * (1 - exp(-k * t))``. The ball leaves the rim once its
speed falls below a threshold (the drop frame) and then settles into the
winning pocket along a curve expressed relative to the rotating wheel.

The settle curve is fixed first (it ends exactly on the landing angle) and
the ball's initial phase is solved backward from it, so random speeds and
lap counts never move the final pocket.
"""

from dataclasses import dataclass, field, replace
from typing import Optional
import logging
import math
import random

import numpy as np
from numpy.typing import NDArray

from spinreel.animation.easing import ease_out_bounce
from spinreel.core.errors import InvalidInput, Stage
from spinreel.wheel.layouts import (
    TWO_PI,
    Pocket,
    WheelLayout,
    angular_difference,
    normalize_angle,
)

logger = logging.getLogger(__name__)

DROP_THRESHOLD_RPM = 20.0

# Wheel turns clockwise, ball counter-clockwise
WHEEL_DIRECTION = 1.0
BALL_DIRECTION = -1.0

# Share of the settle phase spent spiralling from rim to pocket track
SPIRAL_SHARE = 0.7

Angles = NDArray[np.float64]


def rpm_to_rad(rpm: float) -> float:
    """Convert revolutions per minute to radians per second."""
    return rpm * TWO_PI / 60.0


def angular_position(omega0: float, k: float, t):
    """Angle travelled after ``t`` seconds under exponential decay.

    Works on scalars and numpy arrays. ``k == 0`` means no friction and
    falls back to linear motion.
    """
    if k == 0:
        return omega0 * t
    return (omega0 / k) * (1.0 - np.exp(-k * t))


def calculate_drop_frame(ball_rpm: float, k_ball: float, fps: float,
                         threshold_rpm: float = DROP_THRESHOLD_RPM) -> int:
    """Frame at which the ball's speed reaches the drop threshold.

    Returns 0 when the ball starts at or below the threshold, or when it
    never decelerates.
    """
    omega0 = rpm_to_rad(ball_rpm)
    threshold = rpm_to_rad(threshold_rpm)

    if omega0 <= threshold or k_ball <= 0:
        return 0

    drop_time = math.log(omega0 / threshold) / k_ball
    return max(0, math.ceil(drop_time * fps))


def settle_curve(u: NDArray[np.float64], steepness: float) -> NDArray[np.float64]:
    """Normalized decay from 1 (at u=0) to exactly 0 (at u=1)."""
    if steepness < 1e-6:
        return 1.0 - u
    tail = math.exp(-steepness)
    curve = (np.exp(-steepness * u) - tail) / (1.0 - tail)
    # pin the end point so the landing angle is exact
    curve[u >= 1.0] = 0.0
    return curve


@dataclass(frozen=True)
class SpinParameters:
    """Timing and kinematics for one spin.

    Attributes:
        fps: Frames per second
        duration: Spin length in seconds
        wheel_rpm: Initial wheel speed
        ball_rpm: Initial ball speed
        wheel_friction: Wheel decay coefficient k (1/s)
        ball_friction: Ball decay coefficient k (1/s)
        extra_ball_laps: Whole laps the ball makes relative to the wheel after dropping
        drop_threshold_rpm: Ball speed at which it leaves the rim
        settle_steepness: Shape of the post-drop deceleration
    """

    fps: int = 16
    duration: float = 8.5
    wheel_rpm: float = 30.0
    ball_rpm: float = 180.0
    wheel_friction: float = 0.8
    ball_friction: float = 0.6
    extra_ball_laps: int = 2
    drop_threshold_rpm: float = DROP_THRESHOLD_RPM
    settle_steepness: float = 4.0

    def __post_init__(self) -> None:
        if self.fps <= 0:
            raise InvalidInput(f"fps must be positive, got {self.fps}", stage=Stage.PLAN)
        for name in ("duration", "wheel_rpm", "ball_rpm", "wheel_friction",
                     "ball_friction", "drop_threshold_rpm", "settle_steepness"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise InvalidInput(f"{name} must be a finite non-negative number, got {value}",
                                   stage=Stage.PLAN)
        if self.duration <= 0:
            raise InvalidInput("duration must be positive", stage=Stage.PLAN)
        if self.extra_ball_laps < 0:
            raise InvalidInput("extra_ball_laps must be >= 0", stage=Stage.PLAN)

    @property
    def total_frames(self) -> int:
        return max(1, math.ceil(self.duration * self.fps))

    def with_fps(self, fps: int) -> "SpinParameters":
        return replace(self, fps=fps)

    def randomized(self, rng: random.Random, velocity_jitter: float = 0.15,
                   lap_jitter: int = 1) -> "SpinParameters":
        """Copy with cosmetic variance on speeds and lap count."""
        def jitter(value: float) -> float:
            return value * (1.0 + rng.uniform(-velocity_jitter, velocity_jitter))

        laps = self.extra_ball_laps + rng.randint(-lap_jitter, lap_jitter) if lap_jitter else self.extra_ball_laps
        return replace(
            self,
            wheel_rpm=jitter(self.wheel_rpm),
            ball_rpm=jitter(self.ball_rpm),
            extra_ball_laps=max(0, laps),
        )


@dataclass(frozen=True, eq=False)
class SpinPlan:
    """Frame-indexed wheel and ball angles for one request.

    Angles are screen angles in [0, 2*pi), clockwise from 12 o'clock.
    ``ball_radii`` is 1.0 on the rim track and 0.0 on the pocket track.
    The arrays are read-only.
    """

    winning_number: int
    layout: WheelLayout
    fps: int
    wheel_angles: Angles
    ball_angles: Angles
    ball_radii: Angles
    drop_frame: int
    total_frames: int
    winning_pocket_index: int
    pocket_angular_width: float
    landing_angle: float
    extra_ball_laps: int = 0
    metadata: dict = field(default_factory=dict, repr=False)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SpinPlan):
            return NotImplemented
        return (
            self.winning_number == other.winning_number
            and self.layout.name == other.layout.name
            and self.fps == other.fps
            and self.drop_frame == other.drop_frame
            and self.total_frames == other.total_frames
            and self.landing_angle == other.landing_angle
            and np.array_equal(self.wheel_angles, other.wheel_angles)
            and np.array_equal(self.ball_angles, other.ball_angles)
            and np.array_equal(self.ball_radii, other.ball_radii)
        )

    __hash__ = None  # type: ignore[assignment]

    @property
    def final_relative_angle(self) -> float:
        """Ball angle in the wheel's frame at the last frame."""
        return normalize_angle(float(self.ball_angles[-1]) - float(self.wheel_angles[-1]))

    def ball_speeds(self) -> Angles:
        """Signed ball speed per frame (radians per frame), 0 for frame 0."""
        unwrapped = np.unwrap(self.ball_angles)
        speeds = np.zeros_like(unwrapped)
        speeds[1:] = np.diff(unwrapped)
        return speeds


def _readonly(values: NDArray[np.float64]) -> Angles:
    values.setflags(write=False)
    return values


def plan_spin(
    winning_number: int,
    layout: WheelLayout,
    params: Optional[SpinParameters] = None,
    rng: Optional[random.Random] = None,
    landing_spread: float = 0.35,
) -> SpinPlan:
    """Compute a spin that lands on ``winning_number``.

    Args:
        winning_number: Number the ball must come to rest on
        layout: Wheel layout
        params: Timing and kinematics (defaults used when omitted)
        rng: Source for landing variance (sub-pocket offset, wheel phase,
            settle turns). ``None`` lands dead center with no variance.
        landing_spread: Maximum landing offset as a share of half a pocket

    Returns:
        Immutable SpinPlan

    Raises:
        InvalidInput: Number not on the layout or bad parameters
    """
    params = params or SpinParameters()
    pocket_index = layout.index_of(winning_number)
    width = layout.pocket_width

    if rng is not None:
        offset = rng.uniform(-landing_spread, landing_spread) * width / 2
        wheel_phase = rng.uniform(0.0, TWO_PI)
        settle_turns = rng.uniform(0.25, 0.75)
    else:
        offset, wheel_phase, settle_turns = 0.0, 0.0, 0.5

    total = params.total_frames
    fps = params.fps
    t = np.arange(total, dtype=np.float64) / fps
    end_time = (total - 1) / fps

    # Wheel
    wheel_omega = rpm_to_rad(params.wheel_rpm)
    wheel = wheel_phase + WHEEL_DIRECTION * angular_position(wheel_omega, params.wheel_friction, t)

    # Drop frame
    raw_drop = calculate_drop_frame(params.ball_rpm, params.ball_friction, fps, params.drop_threshold_rpm)
    drop_frame = min(max(raw_drop, 0), total - 1)
    drop_time = drop_frame / fps

    # Settle phase, relative to the wheel: starts `travel` ahead, ends on target
    target = (pocket_index + 0.5) * width + offset
    travel = TWO_PI * (params.extra_ball_laps + settle_turns)
    relative = np.empty(total, dtype=np.float64)
    radii = np.ones(total, dtype=np.float64)

    settle = slice(drop_frame, total)
    span = end_time - drop_time
    if span > 0:
        u = np.clip((t[settle] - drop_time) / span, 0.0, 1.0)
    else:
        u = np.ones(total - drop_frame, dtype=np.float64)
    relative[settle] = target - BALL_DIRECTION * travel * settle_curve(u, params.settle_steepness)
    radii[settle] = 1.0 - ease_out_bounce(u / SPIRAL_SHARE)

    ball = np.empty(total, dtype=np.float64)
    ball[settle] = wheel[settle] + relative[settle]

    # Free decay on the rim, phase solved backward from the drop point
    if drop_frame > 0:
        ball_omega = rpm_to_rad(params.ball_rpm)
        rim = BALL_DIRECTION * angular_position(ball_omega, params.ball_friction, t[:drop_frame + 1])
        phase = ball[drop_frame] - rim[-1]
        ball[:drop_frame] = phase + rim[:-1]

    # Exact final alignment
    ball[-1] = wheel[-1] + target

    wheel_angles = np.mod(wheel, TWO_PI)
    ball_angles = np.mod(ball, TWO_PI)

    return SpinPlan(
        winning_number=winning_number,
        layout=layout,
        fps=fps,
        wheel_angles=_readonly(wheel_angles),
        ball_angles=_readonly(ball_angles),
        ball_radii=_readonly(radii),
        drop_frame=drop_frame,
        total_frames=total,
        winning_pocket_index=pocket_index,
        pocket_angular_width=width,
        landing_angle=normalize_angle(target),
        extra_ball_laps=params.extra_ball_laps,
        metadata={"settle_turns": settle_turns, "wheel_phase": wheel_phase, "offset": offset},
    )


def resolve_pocket(plan: SpinPlan) -> Pocket:
    """Pocket under the ball at the last frame, after undoing wheel rotation."""
    return plan.layout.pocket_at_angle(plan.final_relative_angle)


def verify_plan(plan: SpinPlan) -> bool:
    """Check that the plan's final frame resolves to its winning number.

    Also checks that the round trip lands within 1/100 of a pocket of the
    planned landing angle.
    """
    relative = plan.final_relative_angle
    error = angular_difference(relative, plan.landing_angle)
    tolerance = plan.pocket_angular_width / 100

    if error >= tolerance:
        logger.warning(
            f"Spin plan for {plan.winning_number} drifted {error:.6f} rad "
            f"(tolerance {tolerance:.6f})"
        )
        return False

    return resolve_pocket(plan).number == plan.winning_number
