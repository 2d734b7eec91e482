"""Shared fixtures.

- Fixed random sources
- Layout registry and small renderers
- Fast pool settings for the process tests
"""

from __future__ import annotations

import random
from typing import Iterator

import pytest

from spinreel.config.settings import PoolSettings, get_settings
from spinreel.graphics.renderer import WheelRenderer
from spinreel.wheel.layouts import LayoutRegistry, WheelLayout, build_default_registry


@pytest.fixture(scope="session")
def registry() -> LayoutRegistry:
    return build_default_registry()


@pytest.fixture(scope="session")
def european(registry: LayoutRegistry) -> WheelLayout:
    return registry.get("european")


@pytest.fixture(scope="session")
def american(registry: LayoutRegistry) -> WheelLayout:
    return registry.get("american")


@pytest.fixture()
def rng() -> random.Random:
    return random.Random(12345)


@pytest.fixture()
def small_renderer(european: WheelLayout) -> WheelRenderer:
    return WheelRenderer(european, 128)


@pytest.fixture()
def fast_pool_settings() -> PoolSettings:
    """Short intervals so housekeeping runs within a test."""
    return PoolSettings(
        max_workers=2,
        job_timeout=10.0,
        abandon_grace=0.5,
        health_interval=0.2,
        cleanup_interval=0.1,
        progress_interval=0.0,
        poll_interval=0.01,
        archive_ttl=60.0,
    )


@pytest.fixture()
def fresh_settings() -> Iterator[None]:
    """Drop the cached settings before and after a test that edits the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
