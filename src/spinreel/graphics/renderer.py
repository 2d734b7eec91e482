"""Layered wheel renderer.

Draw order, back to front:

    background -> drop shadow -> rim -> rotated segments -> winner glow
    -> hub -> ball (+ trail) -> lighting sweep / branding ring / confetti /
    winner pulse -> result banner

The static back layers (background, shadow, rim) and the unrotated wheel
face are pre-rendered sprites; per frame the renderer pastes them, rotates
the face and draws the moving parts with Pillow.
"""

from dataclasses import dataclass
from typing import Optional, Tuple
import logging
import math

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from spinreel.animation.particles import ParticleSystem
from spinreel.core.errors import InvalidInput, SurfaceUnsupported, Stage
from spinreel.graphics import palette
from spinreel.graphics.effects import EffectFlags
from spinreel.graphics.primitives import radial_gradient, to_image, to_buffer
from spinreel.graphics.sprites import SpriteCache
from spinreel.wheel.layouts import WheelLayout, color_of, number_label, normalize_angle

logger = logging.getLogger(__name__)

MIN_SURFACE_SIZE = 64

REQUIRED_DRAW_METHODS = ("pieslice", "ellipse", "line", "polygon", "rectangle", "text", "textbbox")

# Banner is 80px on a 720px canvas
BANNER_RATIO = 80 / 720

Point = Tuple[float, float]


@dataclass(frozen=True)
class WheelGeometry:
    """Radii and anchor points for one canvas size."""

    size: int

    @property
    def center(self) -> Point:
        return (self.size / 2, self.size / 2)

    @property
    def radius(self) -> float:
        """Outer rim radius (R)."""
        return self.size * 0.46

    @property
    def gold_ring_radius(self) -> float:
        return self.radius * 0.93

    @property
    def rim_track_radius(self) -> float:
        """Where the ball circles before dropping."""
        return self.radius * 0.855

    @property
    def face_radius(self) -> float:
        return self.radius * 0.78

    @property
    def label_radius(self) -> float:
        return self.radius * 0.72

    @property
    def pocket_track_radius(self) -> float:
        """Where the ball comes to rest."""
        return self.radius * 0.6

    @property
    def hub_radius(self) -> float:
        return self.radius * 0.25

    @property
    def ball_size(self) -> float:
        return max(2.0, self.radius * 0.04)

    @property
    def banner_height(self) -> int:
        return max(16, round(self.size * BANNER_RATIO))

    @property
    def line_width(self) -> int:
        return max(1, round(self.size / 360))

    def ball_track_radius(self, fraction: float) -> float:
        """Ball radius for a rim fraction (1.0 rim track, 0.0 pocket track)."""
        fraction = min(1.0, max(0.0, fraction))
        return self.pocket_track_radius + (self.rim_track_radius - self.pocket_track_radius) * fraction

    def point(self, angle: float, radius: float) -> Point:
        """Canvas point for a screen angle (clockwise from 12 o'clock)."""
        cx, cy = self.center
        return (cx + radius * math.sin(angle), cy - radius * math.cos(angle))

    def bbox(self, radius: float, center: Optional[Point] = None) -> Tuple[float, float, float, float]:
        cx, cy = center if center is not None else self.center
        return (cx - radius, cy - radius, cx + radius, cy + radius)


def pillow_degrees(angle: float) -> float:
    """Screen angle (radians from 12 o'clock) -> Pillow degrees (from 3 o'clock)."""
    return math.degrees(angle) - 90.0


def load_font(size: int) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    """Pillow's bundled font at a pixel size."""
    return ImageFont.load_default(size=max(8, size))


def text_size(draw: ImageDraw.ImageDraw, text: str, font) -> Tuple[int, int, int, int]:
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    return left, top, right - left, bottom - top


def draw_centered_text(draw: ImageDraw.ImageDraw, center: Point, text: str, font, fill) -> None:
    left, top, width, height = text_size(draw, text, font)
    x = center[0] - width / 2 - left
    y = center[1] - height / 2 - top
    draw.text((x, y), text, font=font, fill=fill)


class WheelRenderer:
    """Draws wheel frames onto caller-owned Pillow surfaces.

    One renderer serves one (layout, size) pair. Sprites come from a
    ``SpriteCache`` that can be shared by renderers in the same process.
    """

    def __init__(
        self,
        layout: WheelLayout,
        size: int,
        sprites: Optional[SpriteCache] = None,
    ) -> None:
        if size < MIN_SURFACE_SIZE:
            raise InvalidInput(f"Canvas size must be at least {MIN_SURFACE_SIZE}px, got {size}", stage=Stage.RENDER)
        self.layout = layout
        self.size = size
        self.geometry = WheelGeometry(size)
        self.sprites = sprites or SpriteCache()
        self._last_rotation: Optional[tuple] = None

    # ------------------------------------------------------------------
    # Surfaces
    # ------------------------------------------------------------------

    def new_surface(self) -> Image.Image:
        """Blank RGB surface matching this renderer."""
        return Image.new("RGB", (self.size, self.size), palette.BACKGROUND)

    def preflight(self, surface: object) -> None:
        """Fail fast if ``surface`` cannot take the draw calls we need.

        Raises:
            SurfaceUnsupported: Missing capability, wrong mode or size
        """
        mode = getattr(surface, "mode", None)
        size = getattr(surface, "size", None)

        if not callable(getattr(surface, "paste", None)) or size is None:
            raise SurfaceUnsupported(f"Surface {type(surface).__name__} cannot be composited onto")
        if mode not in ("RGB", "RGBA"):
            raise SurfaceUnsupported(f"Surface mode {mode!r} is not RGB/RGBA")
        if tuple(size) != (self.size, self.size):
            raise SurfaceUnsupported(f"Surface is {size}, renderer expects {self.size}x{self.size}")

        try:
            draw = ImageDraw.Draw(surface, "RGBA")  # type: ignore[arg-type]
        except Exception as e:
            raise SurfaceUnsupported(f"Cannot draw on surface: {e}") from e

        missing = [name for name in REQUIRED_DRAW_METHODS if not callable(getattr(draw, name, None))]
        if missing:
            raise SurfaceUnsupported(f"Surface lacks drawing methods: {', '.join(missing)}")

    def preload(self, flat_colors: bool = True) -> None:
        """Build the static sprites for this layout and size."""
        self._base(flat_colors, drop_shadow=True)
        self._base(flat_colors, drop_shadow=False)
        self._face(flat_colors)
        self._font(self._label_font_size())
        self._font(self._banner_font_size())

    # ------------------------------------------------------------------
    # Frame
    # ------------------------------------------------------------------

    def render_frame(
        self,
        surface: Image.Image,
        wheel_angle: float,
        ball_angle: float,
        ball_track_radius: float,
        effects: EffectFlags,
        winning_number: Optional[int] = None,
        *,
        ball_speed: float = 0.0,
        phase: float = 0.0,
        pulse: float = 0.0,
        particles: Optional[ParticleSystem] = None,
    ) -> None:
        """Draw one frame into ``surface``.

        Args:
            surface: Target from ``new_surface()`` (checked by ``preflight``)
            wheel_angle: Wheel rotation (radians, clockwise)
            ball_angle: Ball screen angle (radians, clockwise from 12 o'clock)
            ball_track_radius: Ball distance from the center in pixels
            effects: Drawing toggles
            winning_number: Number to highlight when ``effects.show_result`` is set
            ball_speed: Signed ball speed in radians per frame (trail length)
            phase: Animation progress 0..1 (sweep and bulbs)
            pulse: Winner pulse intensity 0..1
            particles: Confetti to composite, if any
        """
        if not (math.isfinite(wheel_angle) and math.isfinite(ball_angle) and math.isfinite(ball_track_radius)):
            raise InvalidInput("Frame angles must be finite", stage=Stage.RENDER)

        wheel_angle = normalize_angle(wheel_angle)
        ball_angle = normalize_angle(ball_angle)
        flat = effects.flat_colors
        showing = effects.show_result and winning_number is not None

        # Background, drop shadow, rim
        surface.paste(self._base(flat, effects.drop_shadow), (0, 0))

        # Segments
        face = self._rotated_face(flat, wheel_angle)
        surface.paste(face, (0, 0), face)

        draw = ImageDraw.Draw(surface, "RGBA")

        if showing and effects.winner_glow:
            self._draw_winner_glow(draw, wheel_angle, winning_number)

        self._draw_hub(draw, wheel_angle, flat)

        if effects.motion_trail and abs(ball_speed) > 1e-3:
            self._draw_trail(draw, ball_angle, ball_track_radius, ball_speed)
        self._draw_ball(draw, ball_angle, ball_track_radius, flat)

        if effects.lighting_sweep:
            self._draw_sweep(draw, phase)
        if effects.branding_ring:
            self._draw_bulbs(draw, phase)
        if effects.confetti and particles is not None and particles.total_particles:
            buffer = to_buffer(surface)
            particles.render(buffer)
            surface.paste(to_image(buffer), (0, 0))
            draw = ImageDraw.Draw(surface, "RGBA")
        if showing and effects.winner_pulse and pulse > 0:
            self._draw_pulse(draw, ball_angle, ball_track_radius, pulse)

        if showing and effects.result_banner:
            banner = self._banner(winning_number, flat)
            surface.paste(banner, (0, self.size - banner.height))

    def render_still(
        self,
        winning_number: int,
        effects: EffectFlags,
        wheel_angle: float = 0.0,
        surface: Optional[Image.Image] = None,
    ) -> Image.Image:
        """Resolved wheel with the ball seated in the winning pocket."""
        surface = surface or self.new_surface()
        self.preflight(surface)
        ball_angle = wheel_angle + self.layout.pocket_center(winning_number)
        self.render_frame(
            surface,
            wheel_angle,
            ball_angle,
            self.geometry.ball_track_radius(0.0),
            effects.still(),
            winning_number,
        )
        return surface

    # ------------------------------------------------------------------
    # Sprites
    # ------------------------------------------------------------------

    def _font(self, size: int):
        return self.sprites.get(("font", size), lambda: load_font(size), essential=True)

    def _label_font_size(self) -> int:
        return round(self.geometry.radius * 0.075)

    def _banner_font_size(self) -> int:
        return round(self.geometry.banner_height * 0.5)

    def _base(self, flat: bool, drop_shadow: bool) -> Image.Image:
        key = ("base", self.size, flat, drop_shadow)
        return self.sprites.get(key, lambda: self._build_base(flat, drop_shadow), essential=True)

    def _build_base(self, flat: bool, drop_shadow: bool) -> Image.Image:
        geo = self.geometry
        if flat:
            image = Image.new("RGB", (self.size, self.size), palette.BACKGROUND)
        else:
            image = to_image(radial_gradient(self.size, self.size, palette.BACKGROUND, palette.BACKGROUND_EDGE))

        if drop_shadow:
            offset = geo.radius * 0.03
            shadow_center = (geo.center[0] + offset, geo.center[1] + offset)
            if flat:
                ImageDraw.Draw(image).ellipse(geo.bbox(geo.radius, shadow_center), fill=palette.SHADOW)
            else:
                mask = Image.new("L", image.size, 0)
                ImageDraw.Draw(mask).ellipse(geo.bbox(geo.radius, shadow_center), fill=200)
                mask = mask.filter(ImageFilter.GaussianBlur(geo.radius * 0.04))
                image.paste(Image.new("RGB", image.size, palette.SHADOW), (0, 0), mask)

        draw = ImageDraw.Draw(image)
        if flat:
            draw.ellipse(geo.bbox(geo.radius), fill=palette.WOOD)
        else:
            # stepped shading, lighter toward the gold ring
            steps = 6
            for i in range(steps):
                t = i / (steps - 1)
                radius = geo.radius - (geo.radius - geo.gold_ring_radius) * t
                draw.ellipse(geo.bbox(radius), fill=palette.shade(palette.WOOD, 0.8 + 0.4 * t))

        ring_width = max(1, round(geo.radius * 0.02))
        draw.ellipse(geo.bbox(geo.gold_ring_radius), fill=palette.GOLD)
        draw.ellipse(geo.bbox(geo.gold_ring_radius - ring_width), fill=palette.WOOD_DARK)
        draw.ellipse(geo.bbox(geo.face_radius + geo.line_width), fill=palette.GOLD)
        return image

    def _face(self, flat: bool) -> Image.Image:
        key = ("face", self.layout.name, self.size, flat)
        return self.sprites.get(key, lambda: self._build_face(flat), essential=True)

    def _build_face(self, flat: bool) -> Image.Image:
        geo = self.geometry
        face = Image.new("RGBA", (self.size, self.size), (0, 0, 0, 0))
        draw = ImageDraw.Draw(face)
        width = self.layout.pocket_width
        box = geo.bbox(geo.face_radius)

        for pocket in self.layout.pockets:
            start = pocket.wheel_index * width
            fill = palette.pocket_color(pocket.color)
            draw.pieslice(box, pillow_degrees(start), pillow_degrees(start + width), fill=fill)
            if not flat:
                # darker inner band gives the pockets some depth
                inner = geo.bbox(geo.pocket_track_radius + geo.ball_size)
                draw.pieslice(inner, pillow_degrees(start), pillow_degrees(start + width),
                              fill=palette.shade(fill, 0.8))

        # Separators
        for index in range(self.layout.pocket_count):
            angle = index * width
            draw.line(
                [geo.point(angle, geo.hub_radius), geo.point(angle, geo.face_radius)],
                fill=palette.GOLD,
                width=geo.line_width,
            )

        # Inner cone behind the hub
        draw.ellipse(geo.bbox(geo.pocket_track_radius - geo.ball_size * 1.5),
                     fill=palette.WOOD if flat else palette.WOOD_LIGHT)
        draw.ellipse(geo.bbox(geo.pocket_track_radius - geo.ball_size * 1.5),
                     outline=palette.GOLD, width=geo.line_width)

        # Numerals, reading outward
        font = self._font(self._label_font_size())
        resample = Image.Resampling.NEAREST if flat else Image.Resampling.BICUBIC
        for pocket in self.layout.pockets:
            center = (pocket.wheel_index + 0.5) * width
            label = self._label_sprite(pocket.label, font).rotate(
                -math.degrees(center), expand=True, resample=resample
            )
            x, y = geo.point(center, geo.label_radius)
            face.alpha_composite(label, (round(x - label.width / 2), round(y - label.height / 2)))

        return face

    def _label_sprite(self, text: str, font) -> Image.Image:
        scratch = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
        left, top, width, height = text_size(scratch, text, font)
        label = Image.new("RGBA", (width + 4, height + 4), (0, 0, 0, 0))
        ImageDraw.Draw(label).text((2 - left, 2 - top), text, font=font, fill=palette.TEXT)
        return label

    def _rotated_face(self, flat: bool, wheel_angle: float) -> Image.Image:
        # Quarter-degree steps; repeated angles (result hold) reuse the last image
        step = round(math.degrees(wheel_angle) * 4)
        key = (self.layout.name, self.size, flat, step)
        if self._last_rotation is not None and self._last_rotation[0] == key:
            return self._last_rotation[1]

        resample = Image.Resampling.NEAREST if flat else Image.Resampling.BILINEAR
        rotated = self._face(flat).rotate(-step / 4, resample=resample, center=self.geometry.center)
        self._last_rotation = (key, rotated)
        return rotated

    def _banner(self, winning_number: int, flat: bool) -> Image.Image:
        key = ("banner", self.size, winning_number, flat)
        return self.sprites.get(key, lambda: self._build_banner(winning_number, flat))

    def _build_banner(self, winning_number: int, flat: bool) -> Image.Image:
        geo = self.geometry
        height = geo.banner_height
        banner = Image.new("RGB", (self.size, height), palette.BANNER)
        draw = ImageDraw.Draw(banner)

        accent = max(2, round(height * 0.05))
        draw.rectangle((0, 0, self.size, accent - 1), fill=palette.GOLD)
        if not flat:
            draw.rectangle((0, accent, self.size, accent * 2 - 1), fill=palette.shade(palette.GOLD, 0.5))

        color = color_of(winning_number)
        text = f"{number_label(winning_number)}  {color.label.upper()}"
        font = self._font(self._banner_font_size())
        _, _, text_width, _ = text_size(draw, text, font)

        swatch = height * 0.22
        gap = swatch
        total = swatch * 2 + gap + text_width
        start_x = (self.size - total) / 2
        middle = accent + (height - accent) / 2

        draw.ellipse(
            (start_x, middle - swatch, start_x + swatch * 2, middle + swatch),
            fill=palette.pocket_color(color),
            outline=palette.GOLD,
            width=geo.line_width,
        )
        draw_centered_text(draw, (start_x + swatch * 2 + gap + text_width / 2, middle), text, font, palette.TEXT)
        return banner

    # ------------------------------------------------------------------
    # Per-frame layers
    # ------------------------------------------------------------------

    def _draw_winner_glow(self, draw: ImageDraw.ImageDraw, wheel_angle: float, winning_number: int) -> None:
        geo = self.geometry
        if winning_number not in self.layout:
            return
        start = wheel_angle + self.layout.pocket_start(winning_number)
        end = start + self.layout.pocket_width
        draw.pieslice(
            geo.bbox(geo.face_radius),
            pillow_degrees(start),
            pillow_degrees(end),
            fill=(*palette.GOLD_LIGHT, 110),
            outline=(*palette.GOLD, 255),
            width=geo.line_width * 2,
        )

    def _draw_hub(self, draw: ImageDraw.ImageDraw, wheel_angle: float, flat: bool) -> None:
        geo = self.geometry
        draw.ellipse(geo.bbox(geo.hub_radius), fill=palette.HUB, outline=palette.GOLD, width=geo.line_width)

        # Turret spokes turn with the wheel
        spoke_width = max(1, round(geo.hub_radius * 0.12))
        for i in range(4):
            angle = wheel_angle + i * math.pi / 2
            draw.line(
                [geo.point(angle, geo.hub_radius * 0.3), geo.point(angle, geo.hub_radius * 0.95)],
                fill=palette.HUB_CAP,
                width=spoke_width,
            )

        cap = geo.hub_radius * 0.3
        draw.ellipse(geo.bbox(cap), fill=palette.HUB_CAP if flat else palette.GOLD_LIGHT, outline=palette.GOLD)

    def _draw_trail(self, draw: ImageDraw.ImageDraw, ball_angle: float, radius: float, speed: float) -> None:
        geo = self.geometry
        ghosts = min(6, 1 + int(abs(speed) / 0.08))
        span = speed * 1.5
        for i in range(ghosts, 0, -1):
            t = i / (ghosts + 1)
            x, y = geo.point(ball_angle - span * t, radius)
            r = geo.ball_size * (1.0 - 0.4 * t)
            alpha = int(150 * (1.0 - t))
            draw.ellipse((x - r, y - r, x + r, y + r), fill=(*palette.BALL, alpha))

    def _draw_ball(self, draw: ImageDraw.ImageDraw, ball_angle: float, radius: float, flat: bool) -> None:
        geo = self.geometry
        x, y = geo.point(ball_angle, radius)
        r = geo.ball_size
        draw.ellipse((x - r, y - r, x + r, y + r), fill=palette.BALL, outline=palette.BALL_OUTLINE,
                     width=max(1, round(r * 0.2)))
        if not flat:
            hr = r * 0.35
            hx, hy = x - r * 0.3, y - r * 0.3
            draw.ellipse((hx - hr, hy - hr, hx + hr, hy + hr), fill=(255, 255, 255, 220))

    def _draw_sweep(self, draw: ImageDraw.ImageDraw, phase: float) -> None:
        geo = self.geometry
        angle = phase * math.pi * 3
        draw.pieslice(
            geo.bbox(geo.face_radius),
            pillow_degrees(angle),
            pillow_degrees(angle + math.radians(30)),
            fill=(255, 255, 255, 28),
        )

    def _draw_bulbs(self, draw: ImageDraw.ImageDraw, phase: float) -> None:
        geo = self.geometry
        count = 24
        chase = int(phase * count * 2)
        bulb = max(1.5, geo.radius * 0.014)
        ring = (geo.radius + geo.gold_ring_radius) / 2
        for i in range(count):
            x, y = geo.point(i * 2 * math.pi / count, ring)
            lit = (i + chase) % 3 == 0
            draw.ellipse((x - bulb, y - bulb, x + bulb, y + bulb),
                         fill=palette.GOLD_LIGHT if lit else palette.BULB_OFF)

    def _draw_pulse(self, draw: ImageDraw.ImageDraw, ball_angle: float, radius: float, pulse: float) -> None:
        geo = self.geometry
        x, y = geo.point(ball_angle, radius)
        r = geo.ball_size * (2.0 + 1.5 * pulse)
        alpha = int(60 + 160 * pulse)
        draw.ellipse((x - r, y - r, x + r, y + r), outline=(*palette.GOLD_LIGHT, alpha),
                     width=geo.line_width * 2)

