import math
import pickle

import pytest

from spinreel.core.errors import InvalidInput
from spinreel.wheel.layouts import (
    DOUBLE_ZERO,
    PocketColor,
    angular_difference,
    color_of,
    normalize_angle,
    number_label,
    parse_number,
)


def test_layout_sizes_and_numbers(european, american) -> None:
    assert european.pocket_count == 37
    assert american.pocket_count == 38
    assert sorted(european.numbers) == list(range(37))
    assert sorted(american.numbers) == list(range(38))


def test_physical_order_starts_at_zero(european, american) -> None:
    assert european.numbers[:4] == (0, 32, 15, 19)
    assert american.numbers[:4] == (0, 28, 9, 26)
    assert american.index_of(DOUBLE_ZERO) == 19


def test_colors() -> None:
    assert color_of(0) is PocketColor.GREEN
    assert color_of(DOUBLE_ZERO) is PocketColor.GREEN
    assert color_of(36) is PocketColor.RED
    assert color_of(2) is PocketColor.BLACK
    reds = [n for n in range(1, 37) if color_of(n) is PocketColor.RED]
    assert len(reds) == 18
    assert PocketColor.RED.label == "Red"


def test_double_zero_label() -> None:
    assert number_label(DOUBLE_ZERO) == "00"
    assert number_label(7) == "7"
    assert parse_number(" 00 ") == DOUBLE_ZERO
    assert parse_number("17") == 17
    with pytest.raises(InvalidInput):
        parse_number("red")


def test_pocket_centers_resolve_to_their_numbers(european, american) -> None:
    for layout in (european, american):
        for number in layout.numbers:
            assert layout.pocket_at_angle(layout.pocket_center(number)).number == number


def test_pocket_edges(european) -> None:
    width = european.pocket_width
    assert european.pocket_at_angle(0.0).number == 0
    assert european.pocket_at_angle(width - 1e-9).number == 0
    assert european.pocket_at_angle(width + 1e-9).number == 32
    # wraps around a full turn
    assert european.pocket_at_angle(-1e-9).number == 26


def test_registry_lookup_is_case_insensitive(registry) -> None:
    assert registry.get("European").name == "european"
    assert "AMERICAN" in registry
    with pytest.raises(InvalidInput):
        registry.get("french")


def test_registry_validate(registry) -> None:
    assert registry.validate(36, "european").color is PocketColor.RED
    assert registry.validate(DOUBLE_ZERO, "american").label == "00"
    with pytest.raises(InvalidInput):
        registry.validate(DOUBLE_ZERO, "european")
    with pytest.raises(InvalidInput):
        registry.validate(38, "american")
    with pytest.raises(InvalidInput):
        registry.validate(-1, "european")
    with pytest.raises(InvalidInput):
        registry.validate(True, "european")
    with pytest.raises(InvalidInput):
        registry.validate("17", "european")  # type: ignore[arg-type]


def test_registry_pickles(registry) -> None:
    restored = pickle.loads(pickle.dumps(registry))
    assert restored.get("american").numbers == registry.get("american").numbers
    assert 37 in restored.get("american")


def test_angle_helpers() -> None:
    assert normalize_angle(-math.pi / 2) == pytest.approx(3 * math.pi / 2)
    assert normalize_angle(5 * math.pi) == pytest.approx(math.pi)
    assert 0.0 <= normalize_angle(-1e-18) < 2 * math.pi
    assert angular_difference(0.1, 2 * math.pi - 0.1) == pytest.approx(0.2)
    assert angular_difference(1.0, 1.0) == 0.0
