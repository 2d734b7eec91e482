"""Spin animation: walks a SpinPlan and renders one surface per frame."""

from typing import Callable, Iterator, Optional
import logging
import random

from PIL import Image

from spinreel.animation.easing import ease_in_out_sine
from spinreel.animation.particles import ParticlePresets, ParticleSystem
from spinreel.graphics.effects import EffectFlags
from spinreel.graphics.renderer import WheelRenderer
from spinreel.physics.planner import SpinPlan

logger = logging.getLogger(__name__)

Checkpoint = Callable[[int, int], None]


class SpinAnimation:
    """Frame generator for one planned spin.

    The plan's frames come first, then ``hold_frames`` copies of the resting
    position with the result revealed (banner, glow, confetti).

    ``checkpoint(frame_index, frame_count)`` runs before every frame; it is
    where progress is reported and where a cancelled job stops by raising.
    """

    def __init__(
        self,
        plan: SpinPlan,
        renderer: WheelRenderer,
        effects: EffectFlags,
        rng: Optional[random.Random] = None,
        hold_frames: int = 0,
        checkpoint: Optional[Checkpoint] = None,
    ):
        self.plan = plan
        self.renderer = renderer
        self.effects = effects
        self.rng = rng or random.Random(plan.winning_number)
        self.hold_frames = max(0, hold_frames)
        self.checkpoint = checkpoint
        self.particles = ParticleSystem(self.rng)

    @property
    def frame_count(self) -> int:
        return self.plan.total_frames + self.hold_frames

    @property
    def duration_ms(self) -> float:
        return self.frame_count * 1000 / self.plan.fps

    def frames(self) -> Iterator[Image.Image]:
        """Yield each frame as a fresh RGB image, in order."""
        plan = self.plan
        renderer = self.renderer
        geometry = renderer.geometry
        surface = renderer.new_surface()
        renderer.preflight(surface)

        speeds = plan.ball_speeds()
        total = self.frame_count
        last = plan.total_frames - 1
        delta_ms = 1000 / plan.fps
        revealed = False
        reveal_effects = self.effects.revealing()

        for index in range(total):
            if self.checkpoint is not None:
                self.checkpoint(index, total)

            plan_index = min(index, last)
            holding = index > last
            effects = reveal_effects if holding else self.effects

            wheel_angle = float(plan.wheel_angles[plan_index])
            ball_angle = float(plan.ball_angles[plan_index])
            radius = geometry.ball_track_radius(float(plan.ball_radii[plan_index]))

            if holding and not revealed:
                revealed = True
                self._celebrate(ball_angle, radius)

            pulse = 0.0
            if holding:
                held = index - last
                # 8-frame breathe cycle
                pulse = ease_in_out_sine(1.0 - abs((held % 8) / 4 - 1.0))
                self.particles.update(delta_ms)

            renderer.render_frame(
                surface,
                wheel_angle,
                ball_angle,
                radius,
                effects,
                plan.winning_number,
                ball_speed=0.0 if holding else float(speeds[plan_index]),
                phase=index / max(1, total - 1),
                pulse=pulse,
                particles=self.particles if holding else None,
            )
            yield surface.copy()

        logger.debug(f"Rendered {total} frames for {plan.winning_number} ({self.hold_frames} held)")

    def _celebrate(self, ball_angle: float, radius: float) -> None:
        if not self.effects.confetti:
            return
        size = self.renderer.size
        confetti = self.particles.add_emitter("confetti", ParticlePresets.confetti(size))
        confetti.burst()
        x, y = self.renderer.geometry.point(ball_angle, radius)
        sparkle = self.particles.add_emitter("sparkle", ParticlePresets.sparkle(x, y, size))
        sparkle.burst()
