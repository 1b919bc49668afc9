"""Numeric helpers shared by grading and mastery evaluation."""
import math


def clamp(n, low, high):
    """Clamp ``n`` into ``[low, high]``."""
    return max(low, min(high, n))


def round_half_up(x: float) -> int:
    """Round to the nearest integer, with .5 always rounding up (12.5 -> 13, -5.5 -> -5)."""
    return int(math.floor(x + 0.5))
