"""Easing curves used by the planner and the overlays.

Everything here works on numpy arrays as well as plain floats, since the
planner evaluates whole timelines at once.
"""

from typing import Sequence, Union
import numpy as np
from numpy.typing import ArrayLike, NDArray

Number = Union[float, NDArray[np.float64]]

# Bounce segments: (end of segment, center, height offset)
_BOUNCES = (
    (1 / 2.75, 0.0, 0.0),
    (2 / 2.75, 1.5 / 2.75, 0.75),
    (2.5 / 2.75, 2.25 / 2.75, 0.9375),
    (1.0, 2.625 / 2.75, 0.984375),
)
_BOUNCE_K = 7.5625


def ease_out_bounce(t: ArrayLike) -> Number:
    """Decaying hops that finish at 1.0, for the ball crossing the frets.

    Input is clamped to [0, 1]. A scalar in gives a float back.
    """
    x = np.clip(np.asarray(t, dtype=np.float64), 0.0, 1.0)
    out = np.empty_like(x)
    lower = -np.inf
    for upper, center, offset in _BOUNCES:
        mask = (x >= lower) & (x < upper) if upper < 1.0 else x >= lower
        d = x[mask] - center
        out[mask] = _BOUNCE_K * d * d + offset
        lower = upper
    return float(out) if out.ndim == 0 else out


def ease_in_out_sine(t: ArrayLike) -> Number:
    """Smooth 0 to 1 and back to rest, for pulsing highlights."""
    x = np.clip(np.asarray(t, dtype=np.float64), 0.0, 1.0)
    out = -(np.cos(np.pi * x) - 1.0) / 2.0
    return float(out) if out.ndim == 0 else out


def lerp_colors(start: ArrayLike, end: Sequence[int], t: ArrayLike) -> NDArray[np.float64]:
    """Blend rows of RGB ``start`` toward one ``end`` color by per-row ``t``."""
    a = np.atleast_2d(np.asarray(start, dtype=np.float64))
    b = np.asarray(end, dtype=np.float64)
    w = np.clip(np.asarray(t, dtype=np.float64), 0.0, 1.0).reshape(-1, 1)
    return a + (b - a) * w


def interpolate_color(start: Sequence[int], end: Sequence[int], t: float) -> tuple[int, int, int]:
    """One blended color, rounded to ints."""
    r, g, b = lerp_colors(start, end, t)[0]
    return int(round(r)), int(round(g)), int(round(b))
