"""Graphics module for the spinreel rendering pipeline."""

from spinreel.graphics.renderer import WheelRenderer, WheelGeometry, REQUIRED_DRAW_METHODS
from spinreel.graphics.effects import EffectFlags, QualityProfile, effects_for, step_down
from spinreel.graphics.sprites import SpriteCache, CacheStats
from spinreel.graphics.primitives import radial_gradient

__all__ = [
    # Renderer
    "WheelRenderer",
    "WheelGeometry",
    "REQUIRED_DRAW_METHODS",
    # Effects
    "EffectFlags",
    "QualityProfile",
    "effects_for",
    "step_down",
    # Sprites
    "SpriteCache",
    "CacheStats",
    # Primitives
    "radial_gradient",
]
