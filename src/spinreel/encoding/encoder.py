"""Size-checked GIF/PNG encoding.

Frames are quantized as they arrive, in order, and written with Pillow's
multi-frame GIF writer when the stream ends. The finished buffer is measured
against the byte budget; anything over it raises ``OutputTooLarge`` with the
actual size so the caller can retry with cheaper parameters. Output is never
truncated to fit.
"""

from dataclasses import dataclass
from io import BytesIO
from typing import Iterable, List, Optional, Tuple
import logging
import time

from PIL import Image

from spinreel.core.errors import InternalRenderFailure, OutputTooLarge, Stage
from spinreel.encoding.quantize import QuantizeMode, Quantizer

logger = logging.getLogger(__name__)

MIN_FRAME_DURATION_MS = 20


@dataclass(frozen=True)
class EncodeSettings:
    """Encoder inputs, fixed before the first frame."""

    fps: int
    colors: int = 256
    quantizer: QuantizeMode = QuantizeMode.FAST_OCTREE
    dither: bool = False
    loop: int = 0
    optimize: bool = True

    @property
    def frame_duration_ms(self) -> int:
        return max(MIN_FRAME_DURATION_MS, round(1000 / max(1, self.fps)))


@dataclass(frozen=True)
class EncodedAnimation:
    """Encoded bytes plus the measured cost of producing them."""

    buffer: bytes
    format: str
    size_bytes: int
    frame_count: int
    fps: int
    resolution: Tuple[int, int]
    encode_time_ms: float
    colors: int
    quantizer: QuantizeMode


class AnimatedEncoder:
    """Incremental GIF encoder with a hard byte budget."""

    def __init__(self, settings: EncodeSettings, byte_budget: int) -> None:
        if byte_budget <= 0:
            raise InternalRenderFailure(f"byte budget must be positive, got {byte_budget}", stage=Stage.ENCODE)
        self.settings = settings
        self.byte_budget = byte_budget
        self._quantizer = Quantizer(settings.quantizer, settings.colors, settings.dither)
        self._frames: List[Image.Image] = []
        self._resolution: Optional[Tuple[int, int]] = None
        self._started = time.perf_counter()
        self._quantize_seconds = 0.0

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def resolution(self) -> Optional[Tuple[int, int]]:
        return self._resolution

    def add_frame(self, frame: Image.Image) -> None:
        """Quantize and append the next frame."""
        if self._resolution is None:
            self._resolution = frame.size
        elif frame.size != self._resolution:
            raise InternalRenderFailure(
                f"Frame {len(self._frames)} is {frame.size}, expected {self._resolution}",
                stage=Stage.ENCODE,
            )

        started = time.perf_counter()
        self._frames.append(self._quantizer.quantize(frame))
        self._quantize_seconds += time.perf_counter() - started

    def finish(self) -> EncodedAnimation:
        """Write the GIF and check it against the budget.

        ``frame_count`` is read back from the written file, so it counts the
        frames the GIF actually holds.

        Raises:
            OutputTooLarge: Encoded size exceeds the byte budget
            InternalRenderFailure: No frames were added
        """
        if not self._frames:
            raise InternalRenderFailure("No frames provided for encoding", stage=Stage.ENCODE)

        settings = self.settings
        output = BytesIO()
        first, rest = self._frames[0], self._frames[1:]
        save_kwargs = dict(
            format="GIF",
            duration=settings.frame_duration_ms,
            loop=settings.loop,
            optimize=settings.optimize,
        )
        if rest:
            first.save(output, save_all=True, append_images=rest, **save_kwargs)
        else:
            first.save(output, **save_kwargs)

        buffer = output.getvalue()
        size = len(buffer)
        encode_ms = (time.perf_counter() - self._started) * 1000
        added = len(self._frames)
        self._frames = []
        # The GIF writer folds identical consecutive frames into one longer frame
        with Image.open(BytesIO(buffer)) as written:
            frame_count = written.n_frames

        logger.debug(
            f"Encoded {added} frames ({frame_count} after merging) at {self._resolution} in {encode_ms:.0f}ms "
            f"(quantize {self._quantize_seconds * 1000:.0f}ms): {size} bytes"
        )

        if size > self.byte_budget:
            raise OutputTooLarge(
                f"Encoded {size} bytes, budget is {self.byte_budget}",
                size_bytes=size,
                budget_bytes=self.byte_budget,
                encode_time_ms=round(encode_ms, 1),
                frame_count=frame_count,
            )

        return EncodedAnimation(
            buffer=buffer,
            format="gif",
            size_bytes=size,
            frame_count=frame_count,
            fps=settings.fps,
            resolution=self._resolution,  # type: ignore[arg-type]
            encode_time_ms=round(encode_ms, 1),
            colors=settings.colors,
            quantizer=settings.quantizer,
        )


def encode(frames: Iterable[Image.Image], settings: EncodeSettings, byte_budget: int) -> EncodedAnimation:
    """Encode a frame stream in order. See ``AnimatedEncoder``."""
    encoder = AnimatedEncoder(settings, byte_budget)
    for frame in frames:
        encoder.add_frame(frame)
    return encoder.finish()


@dataclass(frozen=True)
class EncodedImage:
    """A single encoded still."""

    buffer: bytes
    format: str
    size_bytes: int
    resolution: Tuple[int, int]
    encode_time_ms: float


def encode_still(image: Image.Image, byte_budget: int, colors: Optional[int] = None) -> EncodedImage:
    """Encode one image as PNG, optionally palette-reduced first.

    Raises:
        OutputTooLarge: PNG exceeds the byte budget
    """
    started = time.perf_counter()
    source = image.convert("RGB")
    if colors is not None:
        source = Quantizer(QuantizeMode.MEDIAN_CUT, colors).quantize(source)

    output = BytesIO()
    source.save(output, format="PNG", optimize=True)
    buffer = output.getvalue()
    encode_ms = round((time.perf_counter() - started) * 1000, 1)

    if len(buffer) > byte_budget:
        raise OutputTooLarge(
            f"Still image is {len(buffer)} bytes, budget is {byte_budget}",
            stage=Stage.STATIC,
            size_bytes=len(buffer),
            budget_bytes=byte_budget,
            encode_time_ms=encode_ms,
        )

    return EncodedImage(
        buffer=buffer,
        format="png",
        size_bytes=len(buffer),
        resolution=image.size,
        encode_time_ms=encode_ms,
    )
