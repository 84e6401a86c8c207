"""Time-window helpers shared by the store queries and the booking services."""

from datetime import datetime


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """
    Check overlap between [a_start, a_end] and [b_start, b_end].
    Boundaries are inclusive: a window ending exactly when another starts
    still counts as a conflict (checkout day == next pickup day is blocked).
    Overlap rule: a_start <= b_end and a_end >= b_start
    """
    return a_start <= b_end and a_end >= b_start
