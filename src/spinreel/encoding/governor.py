"""Size governor: picks encode parameters and steps them down on overflow.

The encoder never renegotiates mid-stream. The governor decides everything up
front from a rough size estimate and, when an encode comes back
``OutputTooLarge``, proposes the next, cheaper attempt:

    1. fewer palette colors
    2. lower frame rate
    3. smaller canvas (and the compressed profile)

Small overshoots try the cheap steps first; big overshoots go straight to
resolution, since color and fps steps cannot close a large gap.
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional
import logging
import math

from spinreel.config.settings import MIB, EncoderSettings
from spinreel.core.errors import OutputTooLarge
from spinreel.encoding.encoder import EncodeSettings
from spinreel.encoding.quantize import QuantizeMode
from spinreel.graphics.effects import QualityProfile

logger = logging.getLogger(__name__)

# Rough GIF cost per pixel per frame, measured on wheel animations
BYTES_PER_PIXEL: dict[QualityProfile, float] = {
    QualityProfile.COMPRESSED: 0.035,
    QualityProfile.BALANCED: 0.05,
    QualityProfile.HIGH_FIDELITY: 0.11,
}

# Overshoot ratios above which the cheaper steps are skipped
PALETTE_STEP_LIMIT = 1.25
FPS_STEP_LIMIT = 1.5

# Headroom kept when shrinking the canvas
RESIZE_MARGIN = 0.92


@dataclass(frozen=True)
class EncodeAttempt:
    """One set of render + encode parameters."""

    size: int
    fps: int
    base_fps: int
    colors: int
    quantizer: QuantizeMode
    profile: QualityProfile
    number: int = 1
    frame_reduction: float = 0.0
    reason: str = "initial"

    def encode_settings(self) -> EncodeSettings:
        return EncodeSettings(fps=self.fps, colors=self.colors, quantizer=self.quantizer)

    @property
    def degraded(self) -> bool:
        return self.number > 1


class SizeGovernor:
    """Chooses encode parameters for a byte budget."""

    def __init__(self, settings: Optional[EncoderSettings] = None, min_size: int = 240, min_fps: int = 10):
        self.settings = settings or EncoderSettings()
        self.min_size = min_size
        self.min_fps = min_fps

    def estimate_size(self, size: int, frame_count: int, profile: QualityProfile | str) -> int:
        """Predicted GIF size in bytes."""
        per_pixel = BYTES_PER_PIXEL[QualityProfile(profile)]
        return int(size * size * frame_count * per_pixel)

    def choose_quantizer(self, predicted_bytes: int, byte_budget: int) -> QuantizeMode:
        """Cheap octree near the budget, median cut when there is headroom."""
        if predicted_bytes >= byte_budget * self.settings.near_budget_ratio:
            return QuantizeMode.FAST_OCTREE
        return QuantizeMode.MEDIAN_CUT

    def initial_attempt(
        self,
        size: int,
        fps: int,
        frame_count: int,
        profile: QualityProfile | str,
        byte_budget: int,
    ) -> EncodeAttempt:
        profile = QualityProfile(profile)
        predicted = self.estimate_size(size, frame_count, profile)
        quantizer = self.choose_quantizer(predicted, byte_budget)
        logger.debug(
            f"Initial attempt {size}px @ {fps}fps ({profile.value}): "
            f"~{predicted / MIB:.2f}MB of {byte_budget / MIB:.2f}MB, {quantizer.value}"
        )
        return EncodeAttempt(
            size=size,
            fps=fps,
            base_fps=fps,
            colors=self.settings.max_colors,
            quantizer=quantizer,
            profile=profile,
        )

    def next_attempt(self, previous: EncodeAttempt, failure: OutputTooLarge) -> Optional[EncodeAttempt]:
        """Cheaper parameters after ``failure``, or None when out of options."""
        if previous.number >= self.settings.max_attempts:
            return None

        overshoot = failure.overshoot
        colors = self._next_colors(previous)
        reduction = self._next_reduction(previous)
        number = previous.number + 1

        if colors is not None and overshoot <= PALETTE_STEP_LIMIT:
            return replace(previous, colors=colors, quantizer=QuantizeMode.FAST_OCTREE,
                           number=number, reason=f"palette {colors}")

        if reduction is not None and overshoot <= FPS_STEP_LIMIT:
            return self._with_reduction(previous, reduction, number)

        size = self._next_size(previous, overshoot)
        if size is not None:
            return replace(
                previous,
                size=size,
                colors=colors or previous.colors,
                quantizer=QuantizeMode.FAST_OCTREE,
                profile=QualityProfile.COMPRESSED,
                number=number,
                reason=f"resolution {size}px",
            )

        # At the resolution floor: take whatever cheap step is left
        if colors is not None:
            return replace(previous, colors=colors, quantizer=QuantizeMode.FAST_OCTREE,
                           number=number, reason=f"palette {colors}")
        if reduction is not None:
            return self._with_reduction(previous, reduction, number)
        return None

    def _next_colors(self, previous: EncodeAttempt) -> Optional[int]:
        for colors in self.settings.palette_steps:
            if colors < previous.colors:
                return colors
        return None

    def _next_reduction(self, previous: EncodeAttempt) -> Optional[float]:
        for reduction in self.settings.frame_reduction_steps:
            if reduction > previous.frame_reduction:
                fps = self._reduced_fps(previous.base_fps, reduction)
                if fps < previous.fps:
                    return reduction
        return None

    def _reduced_fps(self, base_fps: int, reduction: float) -> int:
        return max(self.min_fps, round(base_fps * (1.0 - reduction)))

    def _with_reduction(self, previous: EncodeAttempt, reduction: float, number: int) -> EncodeAttempt:
        fps = self._reduced_fps(previous.base_fps, reduction)
        return replace(previous, fps=fps, frame_reduction=reduction, number=number,
                       reason=f"frame rate {fps}fps")

    def _next_size(self, previous: EncodeAttempt, overshoot: float) -> Optional[int]:
        if not math.isfinite(overshoot) or overshoot <= 0:
            return None
        # Size scales with area
        scaled = int(previous.size * math.sqrt(1.0 / overshoot) * RESIZE_MARGIN)
        size = max(self.min_size, scaled - scaled % 2)
        return size if size < previous.size else None


@dataclass
class SizeAnalysis:
    """How an encoded size sits against the budgets."""

    size_bytes: int
    size_mb: float
    within_target: bool
    within_budget: bool
    within_hard_cap: bool
    recommendations: List[str] = field(default_factory=list)


def analyze_size(
    size_bytes: int,
    frame_count: int,
    fps: int,
    resolution: int,
    settings: Optional[EncoderSettings] = None,
) -> SizeAnalysis:
    """Compare a size with the target, budget and hard cap, with advice."""
    settings = settings or EncoderSettings()
    analysis = SizeAnalysis(
        size_bytes=size_bytes,
        size_mb=round(size_bytes / MIB, 2),
        within_target=size_bytes <= settings.target_bytes,
        within_budget=size_bytes <= settings.byte_budget,
        within_hard_cap=size_bytes <= settings.hard_cap_bytes,
    )

    if analysis.within_target:
        return analysis

    tips = analysis.recommendations
    if fps > 16:
        tips.append(f"Reduce frame rate from {fps} to 16 fps")
    if resolution > 360:
        tips.append(f"Reduce resolution from {resolution}px to 360px")
    if frame_count > 160:
        tips.append(f"Shorten the animation ({frame_count} frames)")
    tips.append("Use the compressed quality profile")
    if not analysis.within_hard_cap:
        tips.append("Output exceeds the attachment limit; use a static image")
    return analysis


def calculate_optimal_fps(duration_ms: float) -> int:
    """Short clips can afford a higher frame rate."""
    if duration_ms < 1500:
        return 24
    if duration_ms < 3000:
        return 20
    return 16
