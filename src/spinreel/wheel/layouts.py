"""Wheel layouts: physical pocket order, colors and angle geometry.

Pocket ``i`` of a layout spans ``[i * w, (i + 1) * w)`` of the wheel frame,
``w = 2*pi / n``, measured clockwise from 12 o'clock. Everything here is
immutable and safe to share between worker processes.
"""

from dataclasses import dataclass, field
from enum import Enum
import math

from spinreel.core.errors import InvalidInput

TWO_PI = 2 * math.pi

# 00 on american wheels
DOUBLE_ZERO = 37

RED_NUMBERS = frozenset({1, 3, 5, 7, 9, 12, 14, 16, 18, 19, 21, 23, 25, 27, 30, 32, 34, 36})

EUROPEAN_ORDER = (
    0, 32, 15, 19, 4, 21, 2, 25, 17, 34, 6, 27, 13, 36, 11, 30, 8, 23, 10,
    5, 24, 16, 33, 1, 20, 14, 31, 9, 22, 18, 29, 7, 28, 12, 35, 3, 26,
)

AMERICAN_ORDER = (
    0, 28, 9, 26, 30, 11, 7, 20, 32, 17, 5, 22, 34, 15, 3, 24, 36, 13, 1,
    DOUBLE_ZERO, 27, 10, 25, 29, 12, 8, 19, 31, 18, 6, 21, 33, 16, 4, 23, 35, 14, 2,
)


class PocketColor(str, Enum):
    """Pocket colors."""
    RED = "red"
    BLACK = "black"
    GREEN = "green"

    @property
    def label(self) -> str:
        return self.value.capitalize()


def color_of(number: int) -> PocketColor:
    """Color of a roulette number (0 and 00 are green)."""
    if number in (0, DOUBLE_ZERO):
        return PocketColor.GREEN
    if number in RED_NUMBERS:
        return PocketColor.RED
    return PocketColor.BLACK


def number_label(number: int) -> str:
    """Display label for a number ("00" for the double zero)."""
    return "00" if number == DOUBLE_ZERO else str(number)


def normalize_angle(angle: float) -> float:
    """Wrap an angle into [0, 2*pi)."""
    wrapped = math.fmod(angle, TWO_PI)
    if wrapped < 0:
        wrapped += TWO_PI
    # fmod of a value just below 0 can round up to exactly 2*pi
    return 0.0 if wrapped >= TWO_PI else wrapped


def angular_difference(a: float, b: float) -> float:
    """Smallest absolute difference between two angles, in [0, pi]."""
    diff = abs(a - b) % TWO_PI
    return TWO_PI - diff if diff > math.pi else diff


@dataclass(frozen=True)
class Pocket:
    """A single pocket on the wheel."""

    number: int
    color: PocketColor
    wheel_index: int

    @property
    def label(self) -> str:
        return number_label(self.number)


@dataclass(frozen=True)
class WheelLayout:
    """Ordered pockets of one wheel in physical order."""

    name: str
    pockets: tuple[Pocket, ...]
    _index: dict[int, int] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._index.update({p.number: p.wheel_index for p in self.pockets})

    @classmethod
    def from_order(cls, name: str, order: tuple[int, ...]) -> "WheelLayout":
        pockets = tuple(
            Pocket(number=number, color=color_of(number), wheel_index=index)
            for index, number in enumerate(order)
        )
        return cls(name=name, pockets=pockets)

    @property
    def pocket_count(self) -> int:
        return len(self.pockets)

    @property
    def pocket_width(self) -> float:
        """Angular width of one pocket (radians)."""
        return TWO_PI / len(self.pockets)

    @property
    def numbers(self) -> tuple[int, ...]:
        return tuple(p.number for p in self.pockets)

    def __contains__(self, number: object) -> bool:
        return number in self._index

    def index_of(self, number: int) -> int:
        """Physical index of a number. Raises InvalidInput if absent."""
        try:
            return self._index[number]
        except (KeyError, TypeError):
            raise InvalidInput(f"Number {number!r} is not on the {self.name} wheel") from None

    def pocket_for(self, number: int) -> Pocket:
        return self.pockets[self.index_of(number)]

    def pocket_at(self, index: int) -> Pocket:
        return self.pockets[index % len(self.pockets)]

    def pocket_start(self, number: int) -> float:
        """Wheel-frame angle where the number's pocket begins."""
        return self.index_of(number) * self.pocket_width

    def pocket_center(self, number: int) -> float:
        """Wheel-frame angle of the number's pocket center."""
        return (self.index_of(number) + 0.5) * self.pocket_width

    def pocket_at_angle(self, angle: float) -> Pocket:
        """Pocket under a wheel-frame angle."""
        index = int(normalize_angle(angle) // self.pocket_width)
        return self.pocket_at(min(index, len(self.pockets) - 1))


class LayoutRegistry:
    """Name -> layout lookup, built once and handed to every worker.

    Plain attributes only so the registry pickles cleanly into spawned
    worker processes.
    """

    def __init__(self, layouts: tuple[WheelLayout, ...]) -> None:
        self._layouts = {layout.name: layout for layout in layouts}

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._layouts

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._layouts)

    def get(self, name: str) -> WheelLayout:
        """Look up a layout by case-insensitive name. Raises InvalidInput."""
        key = name.strip().lower() if isinstance(name, str) else name
        layout = self._layouts.get(key)
        if layout is None:
            raise InvalidInput(
                f"Invalid layout {name!r}. Must be one of: {', '.join(self._layouts)}"
            )
        return layout

    def validate(self, number: int, layout_name: str) -> Pocket:
        """Check that a number exists on a layout and return its pocket."""
        if isinstance(number, bool) or not isinstance(number, int):
            raise InvalidInput(f"Winning number must be an integer, got {number!r}")
        return self.get(layout_name).pocket_for(number)


def build_default_registry() -> LayoutRegistry:
    """Registry with the single-zero and double-zero wheels."""
    return LayoutRegistry((
        WheelLayout.from_order("european", EUROPEAN_ORDER),
        WheelLayout.from_order("american", AMERICAN_ORDER),
    ))


def parse_number(text: str) -> int:
    """Parse user text into a wheel number ("00" -> the double zero)."""
    cleaned = text.strip()
    if cleaned == "00":
        return DOUBLE_ZERO
    try:
        return int(cleaned)
    except ValueError:
        raise InvalidInput(f"Not a roulette number: {text!r}") from None
