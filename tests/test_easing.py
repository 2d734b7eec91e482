import random

import numpy as np
import pytest

from spinreel.animation.easing import ease_in_out_sine, ease_out_bounce, interpolate_color, lerp_colors
from spinreel.animation.particles import ParticlePresets, ParticleSystem


def test_bounce_endpoints_and_clamping() -> None:
    assert ease_out_bounce(0.0) == 0.0
    assert ease_out_bounce(1.0) == pytest.approx(1.0)
    assert ease_out_bounce(2.0) == pytest.approx(1.0)
    assert ease_out_bounce(-1.0) == 0.0
    assert isinstance(ease_out_bounce(0.5), float)


def test_bounce_matches_scalar_on_arrays() -> None:
    u = np.linspace(0.0, 1.0, 41)
    curve = ease_out_bounce(u)
    assert curve.shape == u.shape
    assert np.allclose(curve, [ease_out_bounce(float(x)) for x in u])
    assert np.all((curve >= 0.0) & (curve <= 1.0 + 1e-12))


def test_sine_is_symmetric() -> None:
    assert ease_in_out_sine(0.5) == pytest.approx(0.5)
    assert ease_in_out_sine(0.25) == pytest.approx(1.0 - ease_in_out_sine(0.75))


def test_color_blending() -> None:
    assert interpolate_color((0, 0, 0), (200, 100, 50), 0.5) == (100, 50, 25)
    assert interpolate_color((0, 0, 0), (200, 100, 50), 3.0) == (200, 100, 50)
    rows = lerp_colors([[0, 0, 0], [100, 100, 100]], (200, 200, 200), [0.0, 1.0])
    assert rows.tolist() == [[0, 0, 0], [200, 200, 200]]


def test_particles_are_reproducible() -> None:
    def frame(seed: int) -> np.ndarray:
        system = ParticleSystem(random.Random(seed))
        system.add_emitter("confetti", ParticlePresets.confetti(64)).burst()
        system.update(100)
        buffer = np.zeros((64, 64, 3), dtype=np.uint8)
        system.render(buffer)
        return buffer

    assert np.array_equal(frame(3), frame(3))
    assert frame(3).any()


def test_particles_expire() -> None:
    system = ParticleSystem(random.Random(1))
    emitter = system.add_emitter("sparkle", ParticlePresets.sparkle(32, 32, 64))
    emitter.burst()
    assert system.total_particles == 18
    system.update(1000)
    assert system.total_particles == 0
    system.clear_all()
    assert len(emitter.age) == 0
