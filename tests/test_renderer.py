import math
from dataclasses import replace
import random

import numpy as np
import pytest
from PIL import Image

from spinreel.animation.spin import SpinAnimation
from spinreel.core.errors import InvalidInput, JobCancelled, SurfaceUnsupported
from spinreel.graphics.effects import EffectFlags, QualityProfile, effects_for, step_down
from spinreel.graphics.renderer import WheelGeometry, WheelRenderer
from spinreel.graphics.sprites import SpriteCache
from spinreel.physics.planner import SpinParameters, plan_spin


class _Blank:
    """Not an image at all."""
    size = (128, 128)
    mode = "RGB"


def test_preflight_accepts_new_surface(small_renderer) -> None:
    small_renderer.preflight(small_renderer.new_surface())
    small_renderer.preflight(Image.new("RGBA", (128, 128)))


@pytest.mark.parametrize("surface", [
    Image.new("L", (128, 128)),
    Image.new("RGB", (64, 64)),
    _Blank(),
    None,
])
def test_preflight_rejects_unsupported_surfaces(small_renderer, surface) -> None:
    with pytest.raises(SurfaceUnsupported):
        small_renderer.preflight(surface)


def test_canvas_below_minimum_is_rejected(european) -> None:
    with pytest.raises(InvalidInput):
        WheelRenderer(european, 32)


def test_render_frame_draws_something(small_renderer) -> None:
    surface = small_renderer.new_surface()
    small_renderer.render_frame(surface, 0.3, 1.2, small_renderer.geometry.ball_track_radius(1.0), EffectFlags())
    pixels = np.asarray(surface)
    assert pixels.shape == (128, 128, 3)
    assert len(np.unique(pixels.reshape(-1, 3), axis=0)) > 5


def test_render_frame_handles_any_finite_angles(small_renderer) -> None:
    surface = small_renderer.new_surface()
    effects = effects_for(QualityProfile.HIGH_FIDELITY).revealing()
    radius = small_renderer.geometry.ball_track_radius(0.5)
    for wheel_angle, ball_angle in [(0.0, 0.0), (-7.5, 100.0), (2 * math.pi, -2 * math.pi), (1e6, -1e6)]:
        small_renderer.render_frame(surface, wheel_angle, ball_angle, radius, effects, 17, ball_speed=-0.4, pulse=1.0)

    with pytest.raises(InvalidInput):
        small_renderer.render_frame(surface, float("nan"), 0.0, radius, effects)


def test_render_still_shows_result_banner(european) -> None:
    renderer = WheelRenderer(european, 200)
    with_banner = np.asarray(renderer.render_still(17, effects_for("balanced")))
    plain = np.asarray(renderer.render_still(17, replace(effects_for("balanced"), result_banner=False)))
    strip = slice(200 - renderer.geometry.banner_height // 2, 200)
    assert with_banner.shape == (200, 200, 3)
    assert not np.array_equal(with_banner[strip], plain[strip])
    # banner background is black
    assert np.median(with_banner[strip]) < np.median(plain[strip])


def test_winner_glow_only_when_revealed(small_renderer) -> None:
    radius = small_renderer.geometry.ball_track_radius(0.0)
    effects = EffectFlags(result_banner=False, branding_ring=False, motion_trail=False)
    hidden = small_renderer.new_surface()
    small_renderer.render_frame(hidden, 0.0, 0.0, radius, effects, 17)
    shown = small_renderer.new_surface()
    small_renderer.render_frame(shown, 0.0, 0.0, radius, effects.revealing(), 17)
    assert not np.array_equal(np.asarray(hidden), np.asarray(shown))


def test_geometry_radii_are_ordered() -> None:
    geo = WheelGeometry(720)
    assert geo.radius > geo.gold_ring_radius > geo.rim_track_radius > geo.face_radius
    assert geo.face_radius > geo.label_radius > geo.pocket_track_radius > geo.hub_radius
    assert geo.ball_track_radius(1.0) == pytest.approx(geo.rim_track_radius)
    assert geo.ball_track_radius(0.0) == geo.pocket_track_radius
    assert geo.banner_height == 80
    x, y = geo.point(0.0, 100)
    assert (x, y) == pytest.approx((360, 260))
    x, y = geo.point(math.pi / 2, 100)
    assert (x, y) == pytest.approx((460, 360))


def test_profiles() -> None:
    assert effects_for("compressed").flat_colors
    assert not effects_for(QualityProfile.HIGH_FIDELITY).flat_colors
    assert step_down(QualityProfile.HIGH_FIDELITY) is QualityProfile.BALANCED
    assert step_down("compressed") is QualityProfile.COMPRESSED
    still = effects_for("high_fidelity").still()
    assert still.show_result and not still.motion_trail and not still.confetti


def test_sprite_cache_tiers() -> None:
    cache = SpriteCache(volatile_limit=2)
    built = []

    def factory(name):
        def build():
            built.append(name)
            return Image.new("RGB", (4, 4))
        return build

    cache.get("face", factory("face"), essential=True)
    cache.freeze()
    cache.get("face", factory("face"), essential=True)
    for key in ("a", "b", "c"):
        cache.get(key, factory(key))
    # frozen essential tier spills into volatile
    cache.get("late", factory("late"), essential=True)

    stats = cache.stats()
    assert built == ["face", "a", "b", "c", "late"]
    assert stats.essential_count == 1
    assert stats.volatile_count == 2
    assert stats.hits == 1
    assert cache.clear_volatile() == 2
    assert cache.stats().essential_count == 1


def test_renderer_preload_fills_essential_tier(european) -> None:
    sprites = SpriteCache()
    WheelRenderer(european, 128, sprites).preload(flat_colors=True)
    assert sprites.stats().essential_count >= 4


def test_animation_yields_plan_plus_hold_frames(european) -> None:
    plan = plan_spin(17, european, SpinParameters(fps=10, duration=1.0), rng=random.Random(3))
    renderer = WheelRenderer(european, 96)
    seen = []
    animation = SpinAnimation(
        plan, renderer, effects_for("high_fidelity"), random.Random(3), hold_frames=4,
        checkpoint=lambda frame, total: seen.append((frame, total)),
    )
    frames = list(animation.frames())
    assert len(frames) == animation.frame_count == 14
    assert seen[0] == (0, 14) and seen[-1] == (13, 14)
    assert all(frame.size == (96, 96) for frame in frames)
    # each frame is an independent copy
    assert frames[0] is not frames[1]
    assert animation.particles.total_particles > 0


def test_animation_checkpoint_can_stop_rendering(european) -> None:
    plan = plan_spin(4, european, SpinParameters(fps=10, duration=2.0))

    def stop_at_five(frame, total):
        if frame == 5:
            raise JobCancelled("stop")

    animation = SpinAnimation(plan, WheelRenderer(european, 96), EffectFlags(), checkpoint=stop_at_five)
    rendered = []
    with pytest.raises(JobCancelled):
        for frame in animation.frames():
            rendered.append(frame)
    assert len(rendered) == 5


def test_rotated_face_reuses_last_rotation_outside_the_cache(european) -> None:
    sprites = SpriteCache()
    renderer = WheelRenderer(european, 96, sprites)
    first = renderer._rotated_face(True, 1.0)
    before = sprites.stats().volatile_count
    assert renderer._rotated_face(True, 1.0 + 1e-6) is first
    assert renderer._rotated_face(True, 2.0) is not first
    assert sprites.stats().volatile_count == before
