"""Wheel colors."""

from typing import Tuple

from spinreel.wheel.layouts import PocketColor

Color = Tuple[int, int, int]


def hex_to_rgb(value: str) -> Color:
    value = value.lstrip("#")
    return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))


BACKGROUND = hex_to_rgb("#111827")
BACKGROUND_EDGE = hex_to_rgb("#030712")
SHADOW = hex_to_rgb("#05070c")

WOOD = hex_to_rgb("#4e342e")
WOOD_DARK = hex_to_rgb("#3e2723")
WOOD_LIGHT = hex_to_rgb("#6d4c41")
GOLD = hex_to_rgb("#c9a227")
GOLD_LIGHT = hex_to_rgb("#f1d67a")

POCKET_GREEN = hex_to_rgb("#047857")
POCKET_RED = hex_to_rgb("#b91c1c")
POCKET_BLACK = hex_to_rgb("#1f2937")

HUB = hex_to_rgb("#808080")
HUB_CAP = hex_to_rgb("#b0b0b0")

BALL = hex_to_rgb("#f0f0f0")
BALL_OUTLINE = hex_to_rgb("#707070")

TEXT = (255, 255, 255)
BANNER = (0, 0, 0)
BULB_OFF = hex_to_rgb("#6b5a1e")

POCKET_COLORS: dict[PocketColor, Color] = {
    PocketColor.GREEN: POCKET_GREEN,
    PocketColor.RED: POCKET_RED,
    PocketColor.BLACK: POCKET_BLACK,
}


def pocket_color(color: PocketColor) -> Color:
    return POCKET_COLORS[color]


def shade(color: Color, factor: float) -> Color:
    """Darken (factor < 1) or lighten (factor > 1) a color."""
    return tuple(max(0, min(255, int(c * factor))) for c in color)  # type: ignore[return-value]
