# backend/booking_core/services/slots/calculator.py
"""
Slot generation: wall-clock windows + duration -> candidate local start times.

For each window, starting at its start, step by the grid step while
start + duration <= window end. Overlapping windows are collapsed, so the
output never contains the same time twice.

Contains:
✓ window arithmetic on "HH:MM"
✓ grid step (config.slot_step_minutes)

Does NOT contain:
✗ Bookings, events, lead time (ConflictDetector)
✗ Timezone conversion (TimezoneConverter)
"""

from typing import Iterable

from .config import minutes_to_time_str
from .domain import TimeWindow


def generate_start_minutes(
    windows: Iterable[TimeWindow],
    duration_minutes: int,
    step: int = 15,
) -> list[int]:
    """Ascending, de-duplicated start offsets (minutes since local midnight)."""
    if duration_minutes <= 0:
        raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")

    starts: set[int] = set()
    for window in windows:
        t = window.start_minutes
        while t + duration_minutes <= window.end_minutes:
            starts.add(t)
            t += step
    return sorted(starts)


def generate_start_times(
    windows: Iterable[TimeWindow],
    duration_minutes: int,
    step: int = 15,
) -> list[str]:
    """
    Candidate local start times as "HH:MM".

    Returns:
        Ascending list without duplicates. Empty when no window admits the duration.
    """
    return [minutes_to_time_str(m) for m in generate_start_minutes(windows, duration_minutes, step)]
