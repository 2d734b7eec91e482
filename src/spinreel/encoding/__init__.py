"""Encoding module for spinreel."""

from spinreel.encoding.quantize import QuantizeMode, Quantizer
from spinreel.encoding.encoder import (
    AnimatedEncoder,
    EncodeSettings,
    EncodedAnimation,
    EncodedImage,
    encode,
    encode_still,
)
from spinreel.encoding.governor import (
    SizeGovernor,
    EncodeAttempt,
    SizeAnalysis,
    analyze_size,
    calculate_optimal_fps,
)

__all__ = [
    # Quantization
    "QuantizeMode",
    "Quantizer",
    # Encoder
    "AnimatedEncoder",
    "EncodeSettings",
    "EncodedAnimation",
    "EncodedImage",
    "encode",
    "encode_still",
    # Governor
    "SizeGovernor",
    "EncodeAttempt",
    "SizeAnalysis",
    "analyze_size",
    "calculate_optimal_fps",
]
