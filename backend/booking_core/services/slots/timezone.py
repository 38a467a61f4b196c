# backend/booking_core/services/slots/timezone.py
"""
Wall-clock <-> UTC instant conversion.

Every day-of-week / "HH:MM" comparison against availability windows goes
through a TimezoneConverter built from the provider's (or location's) IANA
zone. The zone rules valid on the specific date are applied, so DST
transitions are handled; a fixed offset is never assumed.
"""

from datetime import date, datetime, time, timedelta
from typing import NamedTuple

import pytz

from .config import time_str_to_minutes
from .errors import TimezoneResolutionError


class LocalTime(NamedTuple):
    date: date
    time_str: str
    day_of_week: int


def day_of_week(target_date: date) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday."""
    return (target_date.weekday() + 1) % 7


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC (storage convention)."""
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value.astimezone(pytz.utc)


class TimezoneConverter:
    """Converts between provider-local wall clock and UTC instants."""

    def __init__(self, zone_name: str | None):
        if not zone_name:
            raise TimezoneResolutionError(zone_name)
        try:
            self.tz = pytz.timezone(zone_name)
        except pytz.UnknownTimeZoneError as e:
            raise TimezoneResolutionError(zone_name) from e
        self.zone_name = zone_name

    def to_instant(self, target_date: date, time_str: str) -> datetime:
        """
        Local date + "HH:MM" -> aware UTC datetime.

        Wall times inside a spring-forward gap are shifted forward by the gap
        length; ambiguous fall-back times resolve to the standard-time
        (second) occurrence.
        """
        minutes = time_str_to_minutes(time_str)
        naive = datetime.combine(target_date, time.min) + timedelta(minutes=minutes)
        local = self.tz.normalize(self.tz.localize(naive, is_dst=False))
        return local.astimezone(pytz.utc)

    def to_local(self, instant: datetime) -> LocalTime:
        local = ensure_utc(instant).astimezone(self.tz)
        return LocalTime(local.date(), local.strftime("%H:%M"), day_of_week(local.date()))

    def day_bounds(self, target_date: date) -> tuple[datetime, datetime]:
        """UTC instants of local midnight and the following local midnight."""
        return (
            self.to_instant(target_date, "00:00"),
            self.to_instant(target_date + timedelta(days=1), "00:00"),
        )

    def today(self, now: datetime) -> date:
        return self.to_local(now).date

    def __repr__(self) -> str:
        return f"TimezoneConverter({self.zone_name!r})"
