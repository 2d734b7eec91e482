"""Visual-effect toggles and quality profiles.

Flat colors compress far better under palette-based encoding, so the
size-constrained profiles keep every fill flat. Profiles are plain
configuration; the renderer has one code path.
"""

from dataclasses import dataclass, replace
from enum import Enum


class QualityProfile(str, Enum):
    """Named effect presets."""
    COMPRESSED = "compressed"
    BALANCED = "balanced"
    HIGH_FIDELITY = "high_fidelity"


@dataclass(frozen=True)
class EffectFlags:
    """Per-frame drawing toggles."""

    flat_colors: bool = True
    drop_shadow: bool = True
    motion_trail: bool = True
    lighting_sweep: bool = False
    branding_ring: bool = True
    confetti: bool = True
    winner_glow: bool = True
    winner_pulse: bool = True
    result_banner: bool = True
    show_result: bool = False

    def revealing(self) -> "EffectFlags":
        """Same flags with the result shown."""
        return replace(self, show_result=True)

    def still(self) -> "EffectFlags":
        """Flags for a single static frame: no motion-only effects."""
        return replace(
            self,
            motion_trail=False,
            lighting_sweep=False,
            confetti=False,
            winner_pulse=False,
            show_result=True,
        )


PROFILES: dict[QualityProfile, EffectFlags] = {
    QualityProfile.COMPRESSED: EffectFlags(
        flat_colors=True,
        drop_shadow=False,
        lighting_sweep=False,
        branding_ring=False,
        confetti=False,
        winner_pulse=False,
    ),
    QualityProfile.BALANCED: EffectFlags(
        flat_colors=True,
        lighting_sweep=False,
    ),
    QualityProfile.HIGH_FIDELITY: EffectFlags(
        flat_colors=False,
        lighting_sweep=True,
    ),
}


def effects_for(profile: QualityProfile | str) -> EffectFlags:
    """Effect flags for a profile name."""
    return PROFILES[QualityProfile(profile)]


def step_down(profile: QualityProfile | str) -> QualityProfile:
    """Next cheaper profile (compressed stays compressed)."""
    order = list(QualityProfile)
    index = order.index(QualityProfile(profile))
    return order[max(0, index - 1)]
