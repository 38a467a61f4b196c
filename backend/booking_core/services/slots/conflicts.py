# backend/booking_core/services/slots/conflicts.py
"""
Conflict detection for a candidate [start, end) instant range.

Checks, in order (first failing one is reported):
  1. No active booking whose [scheduled_at - buffer, end + buffer) intersects.
  2. No calendar event (manual or synced) intersecting the candidate.
     The event being booked into is exempt.
  3. Manual event bookings: event accepts bookings, the candidate lies
     inside the event window, and capacity remains.
  4. start >= now + lead time.

Works on an in-memory snapshot only. The reservation path re-runs the same
checks on data read inside its transaction.
"""

from datetime import datetime, timedelta
from typing import Iterable

from .domain import ACTIVE_STATUSES, AvailabilityCheck, BookingRecord, CalendarEventRecord
from .timezone import ensure_utc

REASON_BOOKING = "Time slot conflicts with an existing booking"
REASON_EVENT = "Time slot conflicts with a calendar event"
REASON_EVENT_CLOSED = "This event does not accept bookings"
REASON_OUTSIDE_EVENT = "Requested time is outside the event window"
REASON_EVENT_FULL = "This event is fully booked"
REASON_TOO_SOON = "Requested time is in the past or too soon to book"


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Half-open interval intersection."""
    return start < other_end and other_start < end


class ConflictDetector:
    def __init__(
        self,
        bookings: Iterable[BookingRecord],
        events: Iterable[CalendarEventRecord],
        now: datetime,
        lead_time_minutes: int = 15,
    ):
        self.bookings = tuple(b for b in bookings if b.status in ACTIVE_STATUSES)
        self.events = tuple(events)
        self.now = ensure_utc(now)
        self.lead_time = timedelta(minutes=lead_time_minutes)

    @property
    def earliest_start(self) -> datetime:
        return self.now + self.lead_time

    def remaining_capacity(
        self,
        event: CalendarEventRecord,
        exclude_booking_id: int | None = None,
    ) -> int:
        taken = sum(
            1 for b in self.bookings
            if b.calendar_event_id == event.id and b.id != exclude_booking_id
        )
        return max(0, event.max_bookings - taken)

    def check(
        self,
        start: datetime,
        end: datetime,
        buffer_minutes: int,
        target_event: CalendarEventRecord | None = None,
        exclude_booking_id: int | None = None,
    ) -> AvailabilityCheck:
        start, end = ensure_utc(start), ensure_utc(end)
        buffer = timedelta(minutes=buffer_minutes)

        for booking in self.bookings:
            if booking.id == exclude_booking_id:
                continue
            # Bookings sharing the target event are governed by its capacity
            if target_event is not None and booking.calendar_event_id == target_event.id:
                continue
            if overlaps(start, end, booking.scheduled_at - buffer, booking.end_at + buffer):
                return AvailabilityCheck(False, REASON_BOOKING)

        for event in self.events:
            if target_event is not None and event.id == target_event.id:
                continue
            if overlaps(start, end, event.start_time, event.end_time):
                return AvailabilityCheck(False, REASON_EVENT)

        if target_event is not None:
            if not target_event.allow_bookings:
                return AvailabilityCheck(False, REASON_EVENT_CLOSED)
            if start < target_event.start_time or end > target_event.end_time:
                return AvailabilityCheck(False, REASON_OUTSIDE_EVENT)
            if self.remaining_capacity(target_event, exclude_booking_id) <= 0:
                return AvailabilityCheck(False, REASON_EVENT_FULL)

        if start < self.earliest_start:
            return AvailabilityCheck(False, REASON_TOO_SOON)

        return AvailabilityCheck(True)

    def busy_blocks(self, buffer_minutes: int) -> list[tuple[datetime, datetime]]:
        """Buffered bookings and events as (start, end) pairs, ascending by start."""
        buffer = timedelta(minutes=buffer_minutes)
        blocks = [(b.scheduled_at - buffer, b.end_at + buffer) for b in self.bookings]
        blocks.extend((e.start_time, e.end_time) for e in self.events)
        return sorted(blocks)
