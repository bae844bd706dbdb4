"""Rounding helpers shared by progress stats and quiz scoring."""

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negatives."""
    return int(math.floor(value + 0.5))


def percent_of(part: int, whole: int) -> int:
    """Integer percentage of ``part`` in ``whole``, rounded half-up.

    Uses integer arithmetic so exact halves never suffer float error.
    Returns 0 when ``whole`` is 0.
    """
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)
