"""Numpy raster helpers used for gradients and overlays."""

from typing import Tuple
import numpy as np
from numpy.typing import NDArray
from PIL import Image

# Type aliases
Color = Tuple[int, int, int]
Buffer = NDArray[np.uint8]


def radial_gradient(
    width: int,
    height: int,
    inner: Color,
    outer: Color,
    center: Tuple[float, float] | None = None,
    radius: float | None = None,
) -> Buffer:
    """Build an RGB buffer fading from ``inner`` at the center to ``outer``.

    Args:
        width: Buffer width
        height: Buffer height
        inner: Color at the center
        outer: Color at ``radius`` and beyond
        center: Gradient center (defaults to the buffer center)
        radius: Distance at which ``outer`` is reached (defaults to half the diagonal)
    """
    cx, cy = center if center is not None else (width / 2, height / 2)
    if radius is None:
        radius = float(np.hypot(width, height)) / 2

    y_indices, x_indices = np.ogrid[:height, :width]
    dist = np.sqrt((x_indices - cx) ** 2 + (y_indices - cy) ** 2)
    t = np.clip(dist / max(radius, 1e-6), 0.0, 1.0)[..., None]

    inner_arr = np.array(inner, dtype=np.float32)
    outer_arr = np.array(outer, dtype=np.float32)
    return (inner_arr + (outer_arr - inner_arr) * t).astype(np.uint8)


def to_image(buffer: Buffer) -> Image.Image:
    """Wrap an RGB buffer as a Pillow image (copies)."""
    return Image.fromarray(np.ascontiguousarray(buffer))


def to_buffer(image: Image.Image) -> Buffer:
    """Writable RGB buffer from a Pillow image."""
    return np.array(image.convert("RGB"), dtype=np.uint8)
