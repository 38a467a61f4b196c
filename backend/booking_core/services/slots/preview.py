# backend/booking_core/services/slots/preview.py
"""
Multi-date availability: coarse preview and exact batch counts.

Both load one AvailabilitySnapshot per request and resolve each date once.

Preview (coarse):
  per date and duration, a fit test over the effective windows with
  buffered bookings and calendar events as busy blocks. Never reports
  "unavailable" for a date that has a bookable slot; may be optimistic
  (grid alignment inside a free gap is not checked).

Batch counts (exact):
  full slot enumeration per (date, duration), fanned out over a bounded
  thread pool. A failing unit is logged and counts as 0; siblings continue.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime, timedelta
from typing import Iterable

import pytz
from sqlalchemy.orm import Session

from .availability import enumerate_day_slots, validate_duration
from .config import BookingConfig, get_booking_config
from .conflicts import ConflictDetector
from .domain import ProviderProfile
from .errors import AvailabilityValidationError, TimezoneResolutionError
from .snapshot import AvailabilitySnapshot, DayPlan
from .store import AvailabilityStore
from .timezone import TimezoneConverter, ensure_utc

logger = logging.getLogger(__name__)

Interval = tuple[datetime, datetime]


def fits_duration(
    windows: Iterable[Interval],
    duration: int,
    busy_blocks: list[Interval],
    floor: datetime,
    step: int | None = None,
) -> bool:
    """
    Coarse fit test: does any window hold a free gap of `duration` minutes
    starting at or after `floor`?

    busy_blocks must be sorted by start. With `step`, gap starts are snapped
    up to the window's grid.
    """
    need = timedelta(minutes=duration)
    for window_start, window_end in windows:
        cursor = _snap(max(window_start, floor), window_start, step)
        for block_start, block_end in busy_blocks:
            if block_end <= cursor:
                continue
            if block_start >= window_end:
                break
            if block_start - cursor >= need:
                return True
            cursor = _snap(max(cursor, block_end), window_start, step)
        if window_end - cursor >= need:
            return True
    return False


def get_availability_preview(
    db: Session,
    provider_id: int,
    start_date: date,
    end_date: date,
    durations: list[int] | None = None,
    now: datetime | None = None,
    config: BookingConfig | None = None,
) -> dict:
    """
    Per-date availability summary for [start_date, end_date].

    The range is clamped to [today, today + advance_booking_days] in the
    provider's timezone.

    Returns:
        Dict for AvailabilityPreviewResponse.
    """
    config = config or get_booking_config()
    now = ensure_utc(now or datetime.now(pytz.utc))

    if start_date > end_date:
        raise AvailabilityValidationError(f"start_date {start_date} is after end_date {end_date}")

    store = AvailabilityStore(db, config)
    provider = store.fetch_provider(provider_id)
    durations = _validated_durations(provider, durations)

    # Load only what the horizon can reach; the exact clamp needs the local today.
    utc_today = now.date()
    load_start = max(start_date, utc_today - timedelta(days=1))
    load_end = min(end_date, utc_today + timedelta(days=provider.advance_booking_days + 1))
    result = {
        "provider_id": provider_id,
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "durations": durations,
        "dates": {},
    }
    if load_start > load_end:
        return result

    snapshot = store.load_snapshot(provider_id, load_start, load_end)
    today = _local_today(snapshot, load_start, now)
    range_start = max(start_date, today)
    range_end = min(end_date, today + timedelta(days=provider.advance_booking_days))
    result["start_date"] = range_start.isoformat()
    result["end_date"] = range_end.isoformat()

    detector = snapshot.detector(now, config.lead_time_minutes)
    busy = detector.busy_blocks(provider.buffer_minutes)

    for target_date in _date_range(range_start, range_end):
        plan = snapshot.resolve_day(target_date)
        available = [
            d for d in durations
            if _plan_fits(snapshot, plan, d, detector, busy, config.slot_step_minutes)
        ]
        result["dates"][target_date.isoformat()] = {
            "has_availability": bool(available),
            "available_durations": available,
            "windows": [w.as_dict() for w in plan.windows],
            "timezone": plan.timezone,
            "location": plan.location_display,
            "using_advanced_schedule": plan.source_schedule_id is not None,
            "schedule_id": plan.source_schedule_id,
            "schedules_applied": list(plan.applied_schedules),
        }

    logger.info(
        f"Preview for provider {provider_id}: {range_start}..{range_end}, "
        f"{sum(1 for d in result['dates'].values() if d['has_availability'])} day(s) available"
    )
    return result


def get_batch_slot_counts(
    db: Session,
    provider_id: int,
    dates: list[date],
    durations: list[int],
    now: datetime | None = None,
    config: BookingConfig | None = None,
) -> dict:
    """
    Exact number of bookable slots per date and duration.

    Dates in the past or beyond the booking horizon count as 0.

    Returns:
        {"provider_id": ..., "counts": {"YYYY-MM-DD": {"30": 12, ...}}}
    """
    config = config or get_booking_config()
    now = ensure_utc(now or datetime.now(pytz.utc))

    if not dates:
        raise AvailabilityValidationError("At least one date is required")
    if not durations:
        raise AvailabilityValidationError("At least one duration is required")

    store = AvailabilityStore(db, config)
    provider = store.fetch_provider(provider_id)
    durations = _validated_durations(provider, durations)
    dates = sorted(set(dates))

    snapshot = store.load_snapshot(provider_id, dates[0], dates[-1])
    detector = snapshot.detector(now, config.lead_time_minutes)

    counts: dict[str, dict[str, int]] = {d.isoformat(): {str(m): 0 for m in durations} for d in dates}
    plans = {d: snapshot.resolve_day(d) for d in dates}
    units = [
        (d, m) for d in dates for m in durations
        if _within_horizon(provider, plans[d], now)
    ]

    logger.info(f"Batch counts for provider {provider_id}: {len(dates)} date(s) × {len(durations)} duration(s)")
    if not units:
        return {"provider_id": provider_id, "counts": counts}

    max_workers = min(len(units), config.max_workers)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_unit = {
            executor.submit(
                _count_unit, snapshot, plans[d], m, detector, config.slot_step_minutes
            ): (d, m)
            for d, m in units
        }
        for future in as_completed(future_to_unit):
            target_date, duration = future_to_unit[future]
            try:
                counts[target_date.isoformat()][str(duration)] = future.result()
            except Exception as e:
                logger.exception(f"Slot count for {target_date} / {duration}min failed: {e}")

    return {"provider_id": provider_id, "counts": counts}


# ── Helpers ──────────────────────────────────────────────────────────────


def _count_unit(
    snapshot: AvailabilitySnapshot,
    plan: DayPlan,
    duration: int,
    detector: ConflictDetector,
    step: int,
) -> int:
    return len(enumerate_day_slots(
        snapshot, plan, duration, detector, snapshot.provider.buffer_minutes, step=step,
    ))


def _validated_durations(provider: ProviderProfile, durations: list[int] | None) -> list[int]:
    if not durations:
        return list(provider.allowed_durations)
    for duration in durations:
        validate_duration(provider, duration)
    return sorted(set(durations))


def _local_today(snapshot: AvailabilitySnapshot, target_date: date, now: datetime) -> date:
    try:
        return TimezoneConverter(snapshot.timezone_for(target_date)).today(now)
    except TimezoneResolutionError as e:
        logger.error(f"Provider {snapshot.provider.id}: {e}; using the UTC date as today")
        return now.date()


def _within_horizon(provider: ProviderProfile, plan: DayPlan, now: datetime) -> bool:
    if plan.converter is None:
        return False
    today = plan.converter.today(now)
    return today <= plan.date <= today + timedelta(days=provider.advance_booking_days)


def _date_range(start: date, end: date) -> list[date]:
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def _snap(cursor: datetime, origin: datetime, step: int | None) -> datetime:
    """Smallest grid point origin + k*step that is >= cursor."""
    if not step or cursor <= origin:
        return cursor
    grid = timedelta(minutes=step)
    steps = -((origin - cursor) // grid)  # ceil division
    return origin + steps * grid


def _plan_windows(plan: DayPlan) -> list[Interval]:
    """Effective windows of the plan as UTC instants."""
    intervals = []
    for window in plan.windows:
        start = plan.converter.to_instant(plan.date, window.start)
        end = plan.converter.to_instant(plan.date, window.end)
        wall = timedelta(minutes=window.end_minutes - window.start_minutes)
        # On DST transition days wall-clock and elapsed lengths differ;
        # widen by the difference so no enumerated slot falls outside.
        drift = abs((end - start) - wall)
        intervals.append((start - drift, max(end, start + wall) + drift))
    return intervals


def _plan_fits(
    snapshot: AvailabilitySnapshot,
    plan: DayPlan,
    duration: int,
    detector: ConflictDetector,
    busy: list[Interval],
    step: int,
) -> bool:
    if plan.converter is None:
        return False
    if fits_duration(_plan_windows(plan), duration, busy, detector.earliest_start, step):
        return True

    # Manual events accepting bookings are offered even outside the windows
    buffer = timedelta(minutes=snapshot.provider.buffer_minutes)
    for event in snapshot.events:
        if not (event.is_manual and event.allow_bookings):
            continue
        if plan.converter.to_local(event.start_time).date != plan.date:
            continue
        if detector.remaining_capacity(event) <= 0:
            continue
        event_busy = sorted(
            [(b.scheduled_at - buffer, b.end_at + buffer)
             for b in detector.bookings if b.calendar_event_id != event.id]
            + [(e.start_time, e.end_time) for e in detector.events if e.id != event.id]
        )
        if fits_duration([(event.start_time, event.end_time)], duration, event_busy,
                         detector.earliest_start, step):
            return True
    return False
