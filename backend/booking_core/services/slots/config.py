# backend/booking_core/services/slots/config.py
"""
Booking configuration for availability resolution.
"""

import re
from dataclasses import dataclass
from functools import lru_cache

from ...config import settings


TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
END_OF_DAY = "24:00"


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for the availability engine.

    Attributes:
        slot_step_minutes: Grid step between candidate start times
        lead_time_minutes: Minimum gap between now and the earliest bookable start
        default_buffer_minutes: Padding around existing bookings when the provider has none
        default_allowed_durations: Durations offered when the provider has none configured
        default_advance_booking_days: Booking horizon when the provider has none configured
        fallback_timezone: Zone used when neither location nor template carries one
        max_workers: Upper bound of the batch fan-out pool
        lock_timeout_seconds: Lease of the Redis reservation lock
    """
    slot_step_minutes: int = 15
    lead_time_minutes: int = 15
    default_buffer_minutes: int = 15
    default_allowed_durations: tuple[int, ...] = (15, 30, 45, 60, 90)
    default_advance_booking_days: int = 30
    fallback_timezone: str = "America/New_York"
    max_workers: int = 8
    lock_timeout_seconds: int = 10

    def __post_init__(self):
        """Validate configuration."""
        if self.slot_step_minutes not in (5, 10, 15, 20, 30, 60):
            raise ValueError(
                f"slot_step_minutes must be one of 5/10/15/20/30/60, got {self.slot_step_minutes}"
            )
        if self.lead_time_minutes < 0:
            raise ValueError(f"lead_time_minutes must be >= 0, got {self.lead_time_minutes}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")


@lru_cache
def get_booking_config() -> BookingConfig:
    """Get booking configuration (singleton)."""
    return BookingConfig(fallback_timezone=settings.fallback_timezone)


def time_str_to_minutes(time_str: str) -> int:
    """
    Convert "HH:MM" to minutes since midnight.

    "24:00" is accepted as an end-of-day marker.
    Raises ValueError for anything else that is not a valid wall-clock time.
    """
    if time_str == END_OF_DAY:
        return 24 * 60
    match = TIME_RE.match(time_str or "")
    if not match:
        raise ValueError(f"Invalid time string: {time_str!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time_str(minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
