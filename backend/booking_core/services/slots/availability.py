# backend/booking_core/services/slots/availability.py
"""
Exact (slot-level) availability for one provider-local date.

Pipeline:
  snapshot → DayPlan (effective windows + timezone)
           → candidate local starts (calculator)
           → UTC instants (TimezoneConverter)
           → ConflictDetector
           → bookable slots

Bookable manual calendar events contribute their own slots, with the
event's remaining capacity.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable

import pytz
from sqlalchemy.orm import Session

from .calculator import generate_start_minutes
from .config import BookingConfig, get_booking_config, minutes_to_time_str, time_str_to_minutes
from .conflicts import ConflictDetector
from .domain import BookableSlot, CalendarEventRecord, ProviderProfile, TimeWindow
from .errors import AvailabilityValidationError
from .snapshot import AvailabilitySnapshot, DayPlan
from .store import AvailabilityStore
from .timezone import ensure_utc

logger = logging.getLogger(__name__)


def get_slots_on_demand(
    db: Session,
    provider_id: int,
    target_date: date,
    duration: int,
    now: datetime | None = None,
    config: BookingConfig | None = None,
) -> dict:
    """
    Bookable slots of a provider for target_date and duration.

    Raises:
        AvailabilityValidationError: non-positive or disallowed duration,
            date in the past or beyond the provider's booking horizon.
        ProviderNotFoundError: unknown provider.

    Returns:
        Dict for SlotsOnDemandResponse. A date without template or with an
        unresolvable timezone yields an empty slot list.
    """
    config = config or get_booking_config()
    now = ensure_utc(now or datetime.now(pytz.utc))

    if duration <= 0:
        raise AvailabilityValidationError(f"Duration must be positive, got {duration}")

    store = AvailabilityStore(db, config)
    validate_duration(store.fetch_provider(provider_id), duration)
    snapshot = store.load_snapshot(provider_id, target_date, target_date)

    plan = snapshot.resolve_day(target_date)
    if plan.converter is not None:
        validate_horizon(snapshot.provider, target_date, plan.converter.today(now))

    detector = snapshot.detector(now, config.lead_time_minutes)
    slots = enumerate_day_slots(
        snapshot, plan, duration, detector, snapshot.provider.buffer_minutes,
        step=config.slot_step_minutes,
    )

    logger.debug(f"Provider {provider_id}, {target_date}, {duration}min: {len(slots)} slot(s)")

    return {
        "provider_id": provider_id,
        "date": target_date.isoformat(),
        "duration": duration,
        "timezone": plan.timezone,
        "location": plan.location_display,
        "using_advanced_schedule": plan.source_schedule_id is not None,
        "schedule_id": plan.source_schedule_id,
        "slots": [s.as_dict() for s in slots],
    }


def enumerate_day_slots(
    snapshot: AvailabilitySnapshot,
    plan: DayPlan,
    duration: int,
    detector: ConflictDetector,
    buffer: int,
    step: int = 15,
) -> list[BookableSlot]:
    """Every bookable slot of the plan's date, ascending by start instant."""
    if plan.converter is None:
        return []

    slots: dict[datetime, BookableSlot] = {}

    for minutes in generate_start_minutes(plan.windows, duration, step):
        start = plan.converter.to_instant(plan.date, minutes_to_time_str(minutes))
        # Two wall times in a DST gap can normalize to the same instant
        if start in slots:
            continue
        end = start + timedelta(minutes=duration)
        if detector.check(start, end, buffer).available:
            local = plan.converter.to_local(start)
            # Gap-shifted starts must still fit the window at their real local time
            if local.date != plan.date or not within_windows(
                plan.windows, time_str_to_minutes(local.time_str), duration
            ):
                continue
            slots[start] = BookableSlot(plan.date, local.time_str, start, end, duration)

    for event in _bookable_events(snapshot, plan):
        for slot in _event_slots(plan, event, duration, detector, buffer, step):
            slots.setdefault(slot.start, slot)

    return sorted(slots.values(), key=lambda s: s.start)


# ── Validation ──────────────────────────────────────────────────────────


def within_windows(windows: Iterable[TimeWindow], start_minutes: int, duration: int) -> bool:
    """Local [start, start + duration) lies inside one of the windows."""
    return any(
        w.start_minutes <= start_minutes and start_minutes + duration <= w.end_minutes
        for w in windows
    )


def validate_duration(provider: ProviderProfile, duration: int) -> None:
    if duration <= 0:
        raise AvailabilityValidationError(f"Duration must be positive, got {duration}")
    if duration not in provider.allowed_durations:
        raise AvailabilityValidationError(
            f"Duration {duration} is not offered; allowed: {list(provider.allowed_durations)}"
        )


def validate_horizon(provider: ProviderProfile, target_date: date, today: date) -> None:
    if target_date < today:
        raise AvailabilityValidationError(f"Date {target_date} is in the past")
    horizon = today + timedelta(days=provider.advance_booking_days)
    if target_date > horizon:
        raise AvailabilityValidationError(
            f"Date {target_date} is beyond the booking horizon ({horizon})"
        )


# ── Helpers ──────────────────────────────────────────────────────────────


def _bookable_events(snapshot: AvailabilitySnapshot, plan: DayPlan) -> list[CalendarEventRecord]:
    """Manual events accepting bookings that start on the plan's local date."""
    return [
        e for e in snapshot.events
        if e.is_manual and e.allow_bookings
        and plan.converter.to_local(e.start_time).date == plan.date
    ]


def _event_slots(
    plan: DayPlan,
    event: CalendarEventRecord,
    duration: int,
    detector: ConflictDetector,
    buffer: int,
    step: int,
) -> list[BookableSlot]:
    capacity = detector.remaining_capacity(event)
    if capacity <= 0:
        return []

    result = []
    start = event.start_time
    delta = timedelta(minutes=duration)
    while start + delta <= event.end_time:
        end = start + delta
        if detector.check(start, end, buffer, target_event=event).available:
            result.append(BookableSlot(
                date=plan.date,
                local_start_time=plan.converter.to_local(start).time_str,
                start=start,
                end=end,
                duration=duration,
                remaining_capacity=capacity,
                calendar_event_id=event.id,
            ))
        start += timedelta(minutes=step)
    return result
