# backend/booking_core/schemas/slots.py
"""
Pydantic schemas for slots API.
"""

from datetime import date, datetime
from pydantic import BaseModel, Field


class TimeWindowRead(BaseModel):
    start: str  # "HH:MM"
    end: str    # "HH:MM", "24:00" = end of day


class AppliedSchedule(BaseModel):
    id: int
    name: str
    priority: int


class PreviewDay(BaseModel):
    """Coarse availability of one provider-local date."""
    has_availability: bool
    available_durations: list[int]
    windows: list[TimeWindowRead]
    timezone: str | None = None
    location: str
    using_advanced_schedule: bool
    schedule_id: int | None = None
    schedules_applied: list[AppliedSchedule] = []


class AvailabilityPreviewResponse(BaseModel):
    provider_id: int
    start_date: date
    end_date: date
    durations: list[int]
    dates: dict[date, PreviewDay]


class BatchCountsRequest(BaseModel):
    provider_id: int
    dates: list[date] = Field(min_length=1)
    durations: list[int] = Field(min_length=1)


class BatchCountsResponse(BaseModel):
    provider_id: int
    counts: dict[date, dict[int, int]] = Field(description="date → duration (minutes) → bookable slot count")


class SlotRead(BaseModel):
    start: datetime
    end: datetime
    local_time: str
    duration: int
    remaining_capacity: int
    calendar_event_id: int | None = None


class SlotsOnDemandResponse(BaseModel):
    provider_id: int
    date: date
    duration: int
    timezone: str | None = None
    location: str
    using_advanced_schedule: bool
    schedule_id: int | None = None
    slots: list[SlotRead]
