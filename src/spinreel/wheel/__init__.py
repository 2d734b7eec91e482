"""Wheel layout registry."""

from spinreel.wheel.layouts import (
    DOUBLE_ZERO,
    TWO_PI,
    Pocket,
    PocketColor,
    WheelLayout,
    LayoutRegistry,
    build_default_registry,
    color_of,
    number_label,
    normalize_angle,
    angular_difference,
    parse_number,
)

__all__ = [
    "DOUBLE_ZERO",
    "TWO_PI",
    "Pocket",
    "PocketColor",
    "WheelLayout",
    "LayoutRegistry",
    "build_default_registry",
    "color_of",
    "number_label",
    "normalize_angle",
    "angular_difference",
    "parse_number",
]
