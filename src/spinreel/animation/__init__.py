"""Animation module for spinreel.

``SpinAnimation`` lives in :mod:`spinreel.animation.spin` and is imported from
there directly; it depends on the planner, which itself uses the easing curves.
"""

from spinreel.animation.easing import ease_in_out_sine, ease_out_bounce, interpolate_color, lerp_colors
from spinreel.animation.particles import (
    ParticleEmitter,
    ParticleSystem,
    EmitterConfig,
    ParticlePresets,
)

__all__ = [
    # Easing
    "ease_in_out_sine",
    "ease_out_bounce",
    "interpolate_color",
    "lerp_colors",
    # Particles
    "ParticleEmitter",
    "ParticleSystem",
    "EmitterConfig",
    "ParticlePresets",
]
