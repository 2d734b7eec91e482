"""Confetti and sparkle overlays.

Each emitter keeps its particles as parallel numpy arrays and advances them
together. Randomness comes from an injected ``random.Random`` (it seeds the
numpy generator), so a seeded job renders the same confetti every time.
"""

from typing import Optional, Tuple
from dataclasses import dataclass
import random
import numpy as np
from numpy.typing import NDArray

from spinreel.animation.easing import lerp_colors

Color = Tuple[int, int, int]


@dataclass(frozen=True)
class EmitterConfig:
    """How an emitter spawns particles. Speeds in px/s, times in ms."""

    # Spawn area centered on (x, y)
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    burst: int = 10
    max_particles: int = 100

    speed_min: float = 50.0
    speed_max: float = 100.0
    angle_min: float = 0.0  # degrees, 90 = straight down
    angle_max: float = 360.0

    gravity: float = 0.0
    friction: float = 0.0  # fraction of velocity lost per second

    size_min: float = 2.0
    size_max: float = 4.0
    size_end_ratio: float = 1.0
    colors: Tuple[Color, ...] = ((255, 255, 255),)
    color_end: Optional[Color] = None
    alpha_start: float = 1.0
    alpha_end: float = 0.0

    lifetime_min: float = 500.0
    lifetime_max: float = 1000.0
    spin_max: float = 0.0  # degrees per second, either direction


class ParticleEmitter:
    """A batch of particles sharing one config."""

    def __init__(self, config: EmitterConfig, rng: Optional[random.Random] = None):
        self.config = config
        seed = (rng or random.Random()).getrandbits(32)
        self._gen = np.random.default_rng(seed)
        self._clear_arrays()

    def _clear_arrays(self) -> None:
        empty = np.empty(0, dtype=np.float64)
        self.pos = np.empty((0, 2), dtype=np.float64)
        self.vel = np.empty((0, 2), dtype=np.float64)
        self.age = empty.copy()
        self.lifetime = empty.copy()
        self.size = empty.copy()
        self.rotation = empty.copy()
        self.spin = empty.copy()
        self.color = np.empty((0, 3), dtype=np.float64)

    @property
    def alive(self) -> NDArray[np.bool_]:
        return self.age < self.lifetime

    @property
    def count(self) -> int:
        return int(np.count_nonzero(self.alive))

    def burst(self, count: Optional[int] = None) -> None:
        """Spawn up to ``count`` particles (config.burst by default)."""
        cfg = self.config
        self._drop_dead()
        n = max(0, min(count or cfg.burst, cfg.max_particles - len(self.age)))
        if n == 0:
            return
        gen = self._gen

        spawn = np.column_stack([
            cfg.x + gen.uniform(-cfg.width / 2, cfg.width / 2, n),
            cfg.y + gen.uniform(-cfg.height / 2, cfg.height / 2, n),
        ])
        angle = np.radians(gen.uniform(cfg.angle_min, cfg.angle_max, n))
        speed = gen.uniform(cfg.speed_min, cfg.speed_max, n)
        palette = np.asarray(cfg.colors, dtype=np.float64)

        self.pos = np.vstack([self.pos, spawn])
        self.vel = np.vstack([self.vel, np.column_stack([np.cos(angle), np.sin(angle)]) * speed[:, None]])
        self.age = np.concatenate([self.age, np.zeros(n)])
        self.lifetime = np.concatenate([self.lifetime, gen.uniform(cfg.lifetime_min, cfg.lifetime_max, n)])
        self.size = np.concatenate([self.size, gen.uniform(cfg.size_min, cfg.size_max, n)])
        self.rotation = np.concatenate([self.rotation, gen.uniform(0.0, 360.0, n)])
        self.spin = np.concatenate([self.spin, gen.uniform(-cfg.spin_max, cfg.spin_max, n)])
        self.color = np.vstack([self.color, palette[gen.integers(0, len(palette), n)]])

    def _drop_dead(self) -> None:
        keep = self.alive
        if keep.all():
            return
        self.pos, self.vel = self.pos[keep], self.vel[keep]
        self.age, self.lifetime = self.age[keep], self.lifetime[keep]
        self.size, self.rotation, self.spin = self.size[keep], self.rotation[keep], self.spin[keep]
        self.color = self.color[keep]

    def update(self, delta_ms: float) -> None:
        dt = delta_ms / 1000
        cfg = self.config
        self.vel[:, 1] += cfg.gravity * dt
        if cfg.friction > 0:
            self.vel *= max(0.0, 1.0 - cfg.friction * dt)
        self.pos += self.vel * dt
        self.rotation += self.spin * dt
        self.age += delta_ms

    def render(self, buffer: NDArray[np.uint8]) -> None:
        """Alpha-blend live particles onto an RGB buffer as small rectangles.

        Rotation squashes each rectangle's width so confetti appears to tumble.
        """
        cfg = self.config
        h, w = buffer.shape[:2]
        progress = np.clip(self.age / np.maximum(self.lifetime, 1e-9), 0.0, 1.0)
        alpha = cfg.alpha_start + (cfg.alpha_end - cfg.alpha_start) * progress
        size = self.size * (1.0 + (cfg.size_end_ratio - 1.0) * progress)
        colors = self.color if cfg.color_end is None else lerp_colors(self.color, cfg.color_end, progress)

        half_h = np.maximum(1, (size / 2).astype(int))
        half_w = np.maximum(1, (size / 2 * np.abs(np.cos(np.radians(self.rotation)))).astype(int))
        xs, ys = self.pos[:, 0].astype(int), self.pos[:, 1].astype(int)

        for i in np.flatnonzero(self.alive & (alpha > 0)):
            x1, x2 = max(0, xs[i] - half_w[i]), min(w, xs[i] + half_w[i])
            y1, y2 = max(0, ys[i] - half_h[i]), min(h, ys[i] + half_h[i])
            if x1 >= x2 or y1 >= y2:
                continue
            region = buffer[y1:y2, x1:x2].astype(np.float32)
            buffer[y1:y2, x1:x2] = (region * (1 - alpha[i]) + colors[i] * alpha[i]).astype(np.uint8)

    def clear(self) -> None:
        self._clear_arrays()


class ParticleSystem:
    """Named emitters drawing from one random source."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self.emitters: dict[str, ParticleEmitter] = {}

    def add_emitter(self, name: str, config: EmitterConfig) -> ParticleEmitter:
        emitter = ParticleEmitter(config, rng=self.rng)
        self.emitters[name] = emitter
        return emitter

    def update(self, delta_ms: float) -> None:
        for emitter in self.emitters.values():
            emitter.update(delta_ms)

    def render(self, buffer: NDArray[np.uint8]) -> None:
        for emitter in self.emitters.values():
            emitter.render(buffer)

    def clear_all(self) -> None:
        for emitter in self.emitters.values():
            emitter.clear()

    @property
    def total_particles(self) -> int:
        return sum(e.count for e in self.emitters.values())


CONFETTI_COLORS = (
    (201, 162, 39),   # gold
    (185, 28, 28),    # red
    (4, 120, 87),     # green
    (240, 240, 240),  # white
    (59, 130, 246),   # blue
    (236, 72, 153),   # pink
)


class ParticlePresets:
    """Overlay configs scaled to the canvas size."""

    @staticmethod
    def confetti(size: int) -> EmitterConfig:
        """Falls from the top edge across the whole canvas."""
        scale = size / 128
        return EmitterConfig(
            x=size / 2, y=0,
            width=size, height=8 * scale,
            burst=int(40 + size / 12),
            max_particles=160,
            speed_min=30 * scale, speed_max=80 * scale,
            angle_min=60, angle_max=120,
            gravity=90 * scale,
            friction=0.15,
            size_min=3 * scale, size_max=5 * scale,
            colors=CONFETTI_COLORS,
            alpha_start=1.0, alpha_end=0.7,
            lifetime_min=1500, lifetime_max=3000,
            spin_max=240,
        )

    @staticmethod
    def sparkle(x: float, y: float, size: int) -> EmitterConfig:
        """Short golden burst around the winning pocket."""
        scale = size / 128
        return EmitterConfig(
            x=x, y=y,
            burst=18,
            max_particles=40,
            speed_min=20 * scale, speed_max=60 * scale,
            gravity=20 * scale,
            friction=0.05,
            size_min=1.5 * scale, size_max=3 * scale,
            size_end_ratio=0.0,
            colors=((255, 255, 255), (255, 230, 140)),
            color_end=(201, 162, 39),
            alpha_start=1.0, alpha_end=0.0,
            lifetime_min=400, lifetime_max=800,
        )
