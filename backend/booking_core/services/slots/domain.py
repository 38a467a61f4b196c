# backend/booking_core/services/slots/domain.py
"""
Immutable read models used by the availability engine.

Rows fetched from the database are converted into these frozen dataclasses
once per request; every computation afterwards works on this snapshot only.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum

from .config import minutes_to_time_str, time_str_to_minutes


class RecurrenceType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"

    @classmethod
    def parse(cls, value: str | None) -> "RecurrenceType | None":
        """Unknown or empty values map to None (schedule will not match)."""
        if not value:
            return None
        try:
            return cls(value.upper())
        except ValueError:
            return None


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


ACTIVE_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


@dataclass(frozen=True)
class TimeSlotDefinition:
    day_of_week: int  # 0 = Sunday
    start_time: str
    end_time: str
    is_enabled: bool = True
    week_number: int | None = None

    @property
    def start_minutes(self) -> int:
        return time_str_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_str_to_minutes(self.end_time)


@dataclass(frozen=True)
class AvailabilityTemplate:
    id: int
    provider_id: int
    timezone: str | None
    is_default: bool
    time_slots: tuple[TimeSlotDefinition, ...] = ()
    name: str = ""
    created_at: datetime | None = None


@dataclass(frozen=True)
class AdvancedSchedule:
    id: int
    template_id: int
    start_date: date
    end_date: date | None = None
    is_recurring: bool = False
    recurrence_type: RecurrenceType | None = None
    recurrence_interval: int | None = None
    days_of_week: frozenset[int] = frozenset()
    week_of_month: int | None = None
    month_of_year: int | None = None
    priority: int = 0
    is_active: bool = True
    time_slots: tuple[TimeSlotDefinition, ...] = ()
    name: str = ""
    created_at: datetime | None = None

    @property
    def interval(self) -> int:
        return self.recurrence_interval if self.recurrence_interval and self.recurrence_interval > 0 else 1


@dataclass(frozen=True)
class TemplateAssignment:
    template_id: int
    start_date: date
    end_date: date | None = None

    def covers(self, target_date: date) -> bool:
        return self.start_date <= target_date and (self.end_date is None or target_date <= self.end_date)


@dataclass(frozen=True)
class ProviderLocation:
    id: int
    start_date: date
    end_date: date
    timezone: str | None = None
    is_default: bool = False
    is_active: bool = True
    city: str | None = None
    state_province: str | None = None
    country: str | None = None
    description: str | None = None

    def covers(self, target_date: date) -> bool:
        return self.start_date <= target_date <= self.end_date

    @property
    def display(self) -> str:
        parts = [p for p in (self.city, self.state_province, self.country) if p]
        text = ", ".join(parts)
        if self.description:
            text = f"{text} - {self.description}" if text else self.description
        return text or "Contact provider for location details"


@dataclass(frozen=True)
class ProviderProfile:
    id: int
    name: str
    allowed_durations: tuple[int, ...]
    buffer_minutes: int
    advance_booking_days: int


@dataclass(frozen=True)
class BookingRecord:
    id: int
    scheduled_at: datetime  # aware UTC
    duration: int
    status: str
    calendar_event_id: int | None = None

    @property
    def end_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration)


@dataclass(frozen=True)
class CalendarEventRecord:
    id: int
    start_time: datetime  # aware UTC
    end_time: datetime
    max_bookings: int = 1
    allow_bookings: bool = False
    source: str = "manual"
    title: str | None = None

    @property
    def is_manual(self) -> bool:
        return self.source == "manual"


@dataclass(frozen=True, order=True)
class TimeWindow:
    start_minutes: int
    end_minutes: int

    @property
    def start(self) -> str:
        return minutes_to_time_str(self.start_minutes)

    @property
    def end(self) -> str:
        return minutes_to_time_str(self.end_minutes)

    def as_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class BookableSlot:
    date: date
    local_start_time: str
    start: datetime
    end: datetime
    duration: int
    remaining_capacity: int = 1
    calendar_event_id: int | None = None

    def as_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "local_time": self.local_start_time,
            "duration": self.duration,
            "remaining_capacity": self.remaining_capacity,
            "calendar_event_id": self.calendar_event_id,
        }


@dataclass(frozen=True)
class AvailabilityCheck:
    available: bool
    reason: str | None = None


@dataclass(frozen=True)
class EffectiveAvailability:
    """Result of recurrence resolution for one template and date."""
    source_schedule_id: int | None
    slots: tuple[TimeSlotDefinition, ...]
    applied_schedules: tuple[dict, ...] = field(default_factory=tuple)
