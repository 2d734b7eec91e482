"""
Application settings using Pydantic.

Settings are loaded from environment variables with .env file support.
Nested sections use a double underscore, e.g. ``SPINREEL_POOL__JOB_TIMEOUT=45``.
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024


def default_worker_count() -> int:
    """One worker per spare CPU, capped at four."""
    cpus = os.cpu_count() or 2
    return max(1, min(4, cpus - 1))


class RenderSettings(BaseSettings):
    """Canvas and timing defaults for a spin animation."""

    model_config = SettingsConfigDict(env_prefix="SPINREEL_RENDER__", extra="ignore")

    layout: Literal["european", "american"] = "european"
    profile: Literal["compressed", "balanced", "high_fidelity"] = "balanced"

    # Canvas (square)
    size: int = Field(default=360, ge=64, le=2048)
    min_size: int = Field(default=240, ge=64)
    max_size: int = Field(default=1080, le=2048)
    static_size: int = 600

    # Timing
    fps: int = 16
    min_fps: int = 10
    max_fps: int = 30
    duration: float = Field(default=8.5, gt=0.0, le=30.0)
    result_hold: float = Field(default=1.0, ge=0.0, le=5.0)


class PhysicsSettings(BaseSettings):
    """Kinematic defaults for the spin planner."""

    model_config = SettingsConfigDict(env_prefix="SPINREEL_PHYSICS__", extra="ignore")

    wheel_rpm: float = 30.0
    ball_rpm: float = 180.0
    wheel_friction: float = Field(default=0.8, ge=0.0)
    ball_friction: float = Field(default=0.6, ge=0.0)
    extra_ball_laps: int = Field(default=2, ge=0)
    drop_threshold_rpm: float = 20.0

    # Cosmetic variance
    velocity_jitter: float = Field(default=0.15, ge=0.0, lt=1.0)
    lap_jitter: int = Field(default=1, ge=0)
    landing_spread: float = Field(default=0.35, ge=0.0, lt=1.0)
    settle_steepness: float = Field(default=4.0, gt=0.0)


class EncoderSettings(BaseSettings):
    """Byte budgets and the degradation ladder."""

    model_config = SettingsConfigDict(env_prefix="SPINREEL_ENCODER__", extra="ignore")

    # Discord attachment limit is 3 MiB; stay under it with margin
    byte_budget: int = int(2.9 * MIB)
    target_bytes: int = int(2.5 * MIB)
    hard_cap_bytes: int = 3 * MIB

    max_colors: int = Field(default=256, ge=2, le=256)
    near_budget_ratio: float = Field(default=0.6, gt=0.0, le=1.0)
    palette_steps: list[int] = Field(default=[128, 64, 32])
    frame_reduction_steps: list[float] = Field(default=[0.1, 0.2, 0.3])
    max_attempts: int = Field(default=4, ge=1)


class PoolSettings(BaseSettings):
    """Worker pool sizing, timeouts and housekeeping intervals."""

    model_config = SettingsConfigDict(env_prefix="SPINREEL_POOL__", extra="ignore")

    max_workers: int = Field(default_factory=default_worker_count, ge=1)
    job_timeout: float = Field(default=30.0, gt=0.0)
    abandon_grace: float = Field(default=5.0, ge=0.0)

    # Intervals (seconds)
    health_interval: float = 5.0
    cleanup_interval: float = 10.0
    progress_interval: float = 0.1
    poll_interval: float = 0.02

    # Housekeeping
    archive_ttl: float = 60.0
    # Per process: compared with the largest worker or coordinator RSS
    busy_memory_mb: int = 300
    degraded_memory_mb: int = 400
    volatile_sprite_limit: int = 256


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="SPINREEL_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Nested settings
    render: RenderSettings = Field(default_factory=RenderSettings)
    physics: PhysicsSettings = Field(default_factory=PhysicsSettings)
    encoder: EncoderSettings = Field(default_factory=EncoderSettings)
    pool: PoolSettings = Field(default_factory=PoolSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
