"""Configuration for spinreel."""

from spinreel.config.settings import (
    Settings,
    RenderSettings,
    PhysicsSettings,
    EncoderSettings,
    PoolSettings,
    get_settings,
    default_worker_count,
)

__all__ = [
    "Settings",
    "RenderSettings",
    "PhysicsSettings",
    "EncoderSettings",
    "PoolSettings",
    "get_settings",
    "default_worker_count",
]
