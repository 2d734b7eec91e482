from io import BytesIO
import random

import numpy as np
import pytest
from PIL import Image

from spinreel.animation.spin import SpinAnimation
from spinreel.config.settings import MIB, EncoderSettings
from spinreel.core.errors import InternalRenderFailure, OutputTooLarge, Stage
from spinreel.encoding.encoder import AnimatedEncoder, EncodeSettings, encode, encode_still
from spinreel.encoding.quantize import QuantizeMode, Quantizer
from spinreel.graphics.effects import effects_for
from spinreel.graphics.renderer import WheelRenderer
from spinreel.physics.planner import SpinParameters, plan_spin


@pytest.fixture()
def wheel_frames(european) -> list[Image.Image]:
    plan = plan_spin(17, european, SpinParameters(fps=10, duration=1.2), rng=random.Random(5))
    animation = SpinAnimation(plan, WheelRenderer(european, 120), effects_for("balanced"), random.Random(5), hold_frames=3)
    return list(animation.frames())


def _noise_frames(count: int, size: int) -> list[Image.Image]:
    rng = np.random.default_rng(0)
    return [
        Image.fromarray(rng.integers(0, 256, (size, size, 3), dtype=np.uint8))
        for _ in range(count)
    ]


def test_encode_within_budget(wheel_frames) -> None:
    budget = 2 * MIB
    encoded = encode(wheel_frames, EncodeSettings(fps=10), budget)
    assert encoded.size_bytes == len(encoded.buffer) <= budget
    assert encoded.format == "gif"
    assert encoded.resolution == (120, 120)

    gif = Image.open(BytesIO(encoded.buffer))
    assert encoded.frame_count == gif.n_frames <= len(wheel_frames)
    assert gif.format == "GIF"
    assert gif.is_animated
    assert gif.info["loop"] == 0
    assert gif.info["duration"] == 100


def test_budget_is_a_hard_ceiling(wheel_frames) -> None:
    settings = EncodeSettings(fps=10, quantizer=QuantizeMode.FAST_OCTREE)
    exact = encode(wheel_frames, settings, 2 * MIB).size_bytes

    assert encode(wheel_frames, settings, exact).size_bytes == exact
    with pytest.raises(OutputTooLarge) as info:
        encode(wheel_frames, settings, exact - 1)
    assert info.value.size_bytes == exact
    assert info.value.budget_bytes == exact - 1
    assert info.value.overshoot > 1.0
    assert 1 < info.value.details["frame_count"] <= len(wheel_frames)


def test_oversized_request_fails_instead_of_truncating() -> None:
    frames = _noise_frames(3, 1080)
    with pytest.raises(OutputTooLarge) as info:
        encode(frames, EncodeSettings(fps=30), 500_000)
    assert info.value.size_bytes > 500_000
    assert info.value.stage is Stage.ENCODE


def test_encoder_requires_frames_of_one_size() -> None:
    encoder = AnimatedEncoder(EncodeSettings(fps=10), MIB)
    with pytest.raises(InternalRenderFailure):
        encoder.finish()

    encoder.add_frame(Image.new("RGB", (32, 32)))
    with pytest.raises(InternalRenderFailure):
        encoder.add_frame(Image.new("RGB", (16, 16)))


def test_single_frame_encodes(european) -> None:
    still = WheelRenderer(european, 100).render_still(0, effects_for("compressed"))
    encoded = encode([still], EncodeSettings(fps=16), MIB)
    assert encoded.frame_count == 1
    assert Image.open(BytesIO(encoded.buffer)).size == (100, 100)


@pytest.mark.parametrize("mode", list(QuantizeMode))
def test_quantizers_produce_palette_frames(wheel_frames, mode) -> None:
    frame = Quantizer(mode, colors=64).quantize(wheel_frames[0])
    assert frame.mode == "P"
    assert frame.size == wheel_frames[0].size


def test_octree_respects_color_count(wheel_frames) -> None:
    frame = Quantizer(QuantizeMode.FAST_OCTREE, colors=16).quantize(wheel_frames[0])
    assert len(frame.getcolors(256)) <= 16


def test_global_palette_is_shared(wheel_frames) -> None:
    quantizer = Quantizer(QuantizeMode.GLOBAL_PALETTE, colors=32)
    first = quantizer.quantize(wheel_frames[0])
    later = quantizer.quantize(wheel_frames[-1])
    assert first.getpalette() == later.getpalette()

    quantizer.reset()
    assert quantizer.quantize(wheel_frames[-1]).getpalette() is not None


def test_encode_still_png(european) -> None:
    image = WheelRenderer(european, 150).render_still(36, effects_for("balanced"))
    encoded = encode_still(image, MIB)
    assert encoded.format == "png"
    assert encoded.buffer.startswith(b"\x89PNG\r\n\x1a\n")
    assert encoded.resolution == (150, 150)

    with pytest.raises(OutputTooLarge) as info:
        encode_still(image, 100)
    assert info.value.stage is Stage.STATIC


def test_encoder_settings_defaults() -> None:
    settings = EncoderSettings()
    assert settings.byte_budget == int(2.9 * MIB)
    assert settings.target_bytes < settings.byte_budget < settings.hard_cap_bytes
