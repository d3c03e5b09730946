"""Progress percentage arithmetic."""

from decimal import ROUND_HALF_UP, Decimal


def calculate_percent(completed: int, total: int) -> int:
    """Whole-number completion percentage, rounded half up and clamped to 0-100.

    A zero (or negative) denominator yields 0 instead of raising.

    >>> calculate_percent(1, 3)
    33
    >>> calculate_percent(2, 3)
    67
    >>> calculate_percent(1, 8)
    13
    >>> calculate_percent(5, 0)
    0
    """
    if total <= 0:
        return 0
    percent = (Decimal(completed) * 100 / Decimal(total)).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    return max(0, min(100, int(percent)))
