"""Tests for progress percentage rounding."""

import pytest

from learntrack.utils.percent import calculate_percent


@pytest.mark.parametrize(
    ("completed", "total", "expected"),
    [
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),  # 12.5 rounds half up
        (1, 10, 10),
        (3, 3, 100),
        (0, 5, 0),
    ],
)
def test_rounds_half_up(completed: int, total: int, expected: int) -> None:
    assert calculate_percent(completed, total) == expected


@pytest.mark.parametrize("total", [0, -1])
def test_empty_denominator_is_zero(total: int) -> None:
    assert calculate_percent(4, total) == 0


def test_clamped_to_range() -> None:
    assert calculate_percent(7, 5) == 100
    assert calculate_percent(-2, 5) == 0
