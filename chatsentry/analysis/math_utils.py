"""
chatsentry/analysis/math_utils.py
Rounding and clamping shared by every score calculation.
"""

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 always upward (round() would go to even)."""
    return int(math.floor(value + 0.5))


def clamp(value: float, low: int = 0, high: int = 100) -> int:
    return int(max(low, min(high, round_half_up(value))))
