"""Palette quantization strategies for GIF frames.

GIF frames carry at most 256 colors, so every RGB frame is quantized before
it is written. The strategies trade CPU time for palette quality:

    fast_octree: cheapest, per-frame palette; default when close to the budget
    median_cut: better per-frame palette, slower
    global_palette: palette built from the first frame and reused, which keeps
        colors stable between frames and helps frame-difference compression
"""

from enum import Enum
from typing import Optional

from PIL import Image


class QuantizeMode(str, Enum):
    """Available quantization strategies."""
    FAST_OCTREE = "fast_octree"
    MEDIAN_CUT = "median_cut"
    GLOBAL_PALETTE = "global_palette"


class Quantizer:
    """Converts RGB frames to palette frames with one strategy.

    Stateful for ``global_palette``: use one instance per animation.
    """

    def __init__(self, mode: QuantizeMode | str = QuantizeMode.FAST_OCTREE, colors: int = 256,
                 dither: bool = False) -> None:
        self.mode = QuantizeMode(mode)
        self.colors = max(2, min(256, colors))
        self.dither = Image.Dither.FLOYDSTEINBERG if dither else Image.Dither.NONE
        self._palette: Optional[Image.Image] = None

    def quantize(self, frame: Image.Image) -> Image.Image:
        """Quantize one frame to mode ``P``."""
        rgb = frame.convert("RGB") if frame.mode != "RGB" else frame

        if self.mode is QuantizeMode.FAST_OCTREE:
            return rgb.quantize(colors=self.colors, method=Image.Quantize.FASTOCTREE, dither=self.dither)

        if self.mode is QuantizeMode.MEDIAN_CUT:
            return rgb.quantize(colors=self.colors, method=Image.Quantize.MEDIANCUT, dither=self.dither)

        if self._palette is None:
            self._palette = rgb.quantize(colors=self.colors, method=Image.Quantize.MEDIANCUT)
        return rgb.quantize(palette=self._palette, dither=self.dither)

    def reset(self) -> None:
        """Forget the global palette."""
        self._palette = None
