# backend/booking_core/services/slots/reservation.py
"""
Reservation: conflict re-check and booking write in one transaction.

Flow (validate_and_reserve_slot / reschedule_booking):
  1. Optional Redis lock "reserve:{provider_id}" (cross-process fast path).
  2. lock_provider(): row write lock on the provider, held until commit.
  3. Re-read bookings/events inside the transaction and re-run every
     conflict check; availability computed earlier is never trusted.
  4. Insert/update the booking, commit.
  5. Emit booking_created / booking_rescheduled (best effort).

The loser of a race gets SlotConflictError and must re-query availability.
"""

import logging
from contextlib import nullcontext
from datetime import date, datetime, timedelta

import pytz
from redis import Redis
from redis.exceptions import LockError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.generated import Bookings
from ...redis_client import redis_client
from ..events import emit_event
from .availability import validate_duration, within_windows
from .config import BookingConfig, get_booking_config
from .domain import ACTIVE_STATUSES
from .errors import (
    AvailabilityValidationError,
    BookingNotFoundError,
    SlotConflictError,
)
from .store import AvailabilityStore, to_naive_utc
from .timezone import ensure_utc

logger = logging.getLogger(__name__)

REASON_OUTSIDE_AVAILABILITY = "Requested time is outside the provider's availability"
REASON_CONCURRENT = "The slot was just taken by another reservation"
REASON_LOCKED = "Another reservation for this provider is in progress"


def validate_and_reserve_slot(
    db: Session,
    provider_id: int,
    start: datetime,
    duration: int,
    event_id: int | None = None,
    customer: dict | None = None,
    now: datetime | None = None,
    config: BookingConfig | None = None,
    redis: Redis | None = None,
) -> Bookings:
    """
    Create a PENDING booking if [start, start + duration) is still bookable.

    Raises:
        AvailabilityValidationError: bad duration, unknown event, beyond horizon.
        ProviderNotFoundError: unknown provider.
        SlotConflictError: any conflict check fails or a concurrent
            reservation won the race.
    """
    config = config or get_booking_config()
    now = ensure_utc(now or datetime.now(pytz.utc))
    start = ensure_utc(start)
    redis = redis if redis is not None else redis_client

    if duration <= 0:
        raise AvailabilityValidationError(f"Duration must be positive, got {duration}")

    with _provider_lock(redis, provider_id, config):
        try:
            store = AvailabilityStore(db, config)
            store.lock_provider(provider_id)
            _recheck(store, provider_id, start, duration, event_id, now, config)
            booking = store.insert_booking(provider_id, start, duration, event_id, customer)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise SlotConflictError(REASON_CONCURRENT) from e
        except Exception:
            db.rollback()
            raise

    db.refresh(booking)
    logger.info(
        f"Booking {booking.id} reserved: provider {provider_id}, "
        f"{start.isoformat()} ({duration}min), event {event_id}"
    )
    emit_event("booking_created", _event_payload(booking), redis=redis)
    return booking


def reschedule_booking(
    db: Session,
    booking_id: int,
    new_start: datetime,
    event_id: int | None = None,
    now: datetime | None = None,
    config: BookingConfig | None = None,
    redis: Redis | None = None,
) -> Bookings:
    """
    Move an active booking to new_start (same duration); status returns to PENDING.

    The booking itself is excluded from the conflict checks.
    """
    config = config or get_booking_config()
    now = ensure_utc(now or datetime.now(pytz.utc))
    new_start = ensure_utc(new_start)
    redis = redis if redis is not None else redis_client

    booking = db.query(Bookings).filter(Bookings.id == booking_id).first()
    if booking is None:
        raise BookingNotFoundError(booking_id)
    if booking.status not in ACTIVE_STATUSES:
        raise AvailabilityValidationError(
            f"Booking {booking_id} is {booking.status} and cannot be rescheduled"
        )

    provider_id = booking.provider_id
    previous_start = ensure_utc(booking.scheduled_at)

    with _provider_lock(redis, provider_id, config):
        try:
            store = AvailabilityStore(db, config)
            store.lock_provider(provider_id)
            _recheck(
                store, provider_id, new_start, booking.duration, event_id, now, config,
                exclude_booking_id=booking.id,
            )
            booking.scheduled_at = to_naive_utc(new_start)
            booking.calendar_event_id = event_id
            booking.status = "PENDING"
            booking.updated_at = to_naive_utc(now)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise SlotConflictError(REASON_CONCURRENT) from e
        except Exception:
            db.rollback()
            raise

    db.refresh(booking)
    logger.info(f"Booking {booking.id} rescheduled: {previous_start.isoformat()} → {new_start.isoformat()}")
    emit_event(
        "booking_rescheduled",
        {**_event_payload(booking), "previous_scheduled_at": previous_start.isoformat()},
        redis=redis,
    )
    return booking


# ── Helpers ──────────────────────────────────────────────────────────────


def _provider_lock(redis: Redis | None, provider_id: int, config: BookingConfig):
    if redis is None:
        return nullcontext()
    return _RedisReservationLock(redis, provider_id, config.lock_timeout_seconds)


class _RedisReservationLock:
    """redis-py Lock whose acquisition failure surfaces as SlotConflictError."""

    def __init__(self, redis: Redis, provider_id: int, timeout: int):
        self.lock = redis.lock(f"reserve:{provider_id}", timeout=timeout, blocking_timeout=timeout)

    def __enter__(self):
        try:
            acquired = self.lock.acquire()
        except LockError as e:
            raise SlotConflictError(REASON_LOCKED) from e
        if not acquired:
            raise SlotConflictError(REASON_LOCKED)
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            self.lock.release()
        except LockError as e:
            # lease expired while the transaction ran
            logger.warning(f"Reservation lock release failed: {e}")
        return False


def _recheck(
    store: AvailabilityStore,
    provider_id: int,
    start: datetime,
    duration: int,
    event_id: int | None,
    now: datetime,
    config: BookingConfig,
    exclude_booking_id: int | None = None,
) -> None:
    """All conflict checks on data read inside the current transaction."""
    provider = store.fetch_provider(provider_id)
    validate_duration(provider, duration)
    end = start + timedelta(minutes=duration)

    utc_date = start.date()
    snapshot = store.load_snapshot(provider_id, utc_date - timedelta(days=1), utc_date + timedelta(days=1))
    detector = snapshot.detector(now, config.lead_time_minutes)

    target_event = None
    if event_id is not None:
        target_event = store.fetch_event(provider_id, event_id)
        if target_event is None:
            raise AvailabilityValidationError(f"Calendar event {event_id} not found")
    else:
        plan, local_minutes = snapshot.plan_for_instant(start)
        if plan is None or not plan.is_open:
            raise SlotConflictError(REASON_OUTSIDE_AVAILABILITY)
        _check_horizon(plan.date, plan.converter.today(now), provider.advance_booking_days)
        if not within_windows(plan.windows, local_minutes, duration):
            raise SlotConflictError(REASON_OUTSIDE_AVAILABILITY)

    check = detector.check(
        start, end, provider.buffer_minutes,
        target_event=target_event,
        exclude_booking_id=exclude_booking_id,
    )
    if not check.available:
        logger.info(f"Reservation rejected for provider {provider_id} at {start.isoformat()}: {check.reason}")
        raise SlotConflictError(check.reason)


def _check_horizon(local_date: date, today: date, advance_booking_days: int) -> None:
    if local_date > today + timedelta(days=advance_booking_days):
        raise AvailabilityValidationError(
            f"Date {local_date} is beyond the booking horizon ({advance_booking_days} days)"
        )


def _event_payload(booking: Bookings) -> dict:
    return {
        "booking_id": booking.id,
        "provider_id": booking.provider_id,
        "scheduled_at": ensure_utc(booking.scheduled_at).isoformat(),
        "duration": booking.duration,
        "calendar_event_id": booking.calendar_event_id,
        "customer_name": booking.customer_name,
        "customer_email": booking.customer_email,
    }
