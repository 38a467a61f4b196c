# backend/booking_core/services/slots/store.py
"""
Read models and booking writes over SQLAlchemy.

ORM rows are converted into the frozen domain records right here; nothing
outside this module touches the availability tables directly except the
reservation path, which writes Bookings rows through insert_booking().

Database errors are never caught here: a failing read must not look like
"available".
"""

import json
import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable

import pytz
from sqlalchemy.orm import Session, selectinload

from ...models.generated import (
    AvailabilitySchedules,
    AvailabilityTemplates,
    Bookings,
    CalendarEvents,
    Providers,
    ProviderLocations,
    TemplateAssignments,
)
from .config import BookingConfig, get_booking_config
from .domain import (
    ACTIVE_STATUSES,
    AdvancedSchedule,
    AvailabilityTemplate,
    BookingRecord,
    CalendarEventRecord,
    ProviderLocation,
    ProviderProfile,
    RecurrenceType,
    TemplateAssignment,
    TimeSlotDefinition,
)
from .errors import AvailabilityValidationError, ProviderNotFoundError
from .recurrence import RecurrenceResolver
from .snapshot import AvailabilitySnapshot, select_location
from .timezone import ensure_utc

logger = logging.getLogger(__name__)

# Bookings/events are fetched with this margin around the requested local
# dates: any zone offset, and any booking that started the day before.
FETCH_PADDING = timedelta(days=2)


def to_naive_utc(value: datetime) -> datetime:
    """Storage convention: instants are persisted as naive UTC."""
    return ensure_utc(value).replace(tzinfo=None)


def _parse_int_list(raw: str | None, what: str, owner_id: int) -> list[int]:
    if not raw:
        return []
    try:
        values = json.loads(raw)
        return [int(v) for v in values]
    except (json.JSONDecodeError, TypeError, ValueError):
        logger.warning(f"{what} of {owner_id} is not a JSON list of integers: {raw!r}")
        return []


# ── ORM -> domain ───────────────────────────────────────────────────────


def _slot_from_row(row) -> TimeSlotDefinition:
    return TimeSlotDefinition(
        day_of_week=row.day_of_week,
        start_time=row.start_time,
        end_time=row.end_time,
        is_enabled=bool(row.is_enabled),
        week_number=getattr(row, "week_number", None),
    )


def _template_from_row(row: AvailabilityTemplates) -> AvailabilityTemplate:
    return AvailabilityTemplate(
        id=row.id,
        provider_id=row.provider_id,
        timezone=row.timezone,
        is_default=bool(row.is_default),
        time_slots=tuple(_slot_from_row(s) for s in row.time_slots),
        name=row.name,
        created_at=row.created_at,
    )


def _schedule_from_row(row: AvailabilitySchedules) -> AdvancedSchedule:
    recurrence_type = RecurrenceType.parse(row.recurrence_type)
    if row.is_recurring and recurrence_type is None:
        logger.warning(
            f"Schedule {row.id} is recurring with recurrence_type={row.recurrence_type!r}"
        )
    return AdvancedSchedule(
        id=row.id,
        template_id=row.template_id,
        start_date=row.start_date,
        end_date=row.end_date,
        is_recurring=bool(row.is_recurring),
        recurrence_type=recurrence_type,
        recurrence_interval=row.recurrence_interval,
        days_of_week=frozenset(_parse_int_list(row.days_of_week, "days_of_week of schedule", row.id)),
        week_of_month=row.week_of_month,
        month_of_year=row.month_of_year,
        priority=row.priority or 0,
        is_active=bool(row.is_active),
        time_slots=tuple(_slot_from_row(s) for s in row.time_slots),
        name=row.name,
        created_at=row.created_at,
    )


def _location_from_row(row: ProviderLocations) -> ProviderLocation:
    return ProviderLocation(
        id=row.id,
        start_date=row.start_date,
        end_date=row.end_date,
        timezone=row.timezone,
        is_default=bool(row.is_default),
        is_active=bool(row.is_active),
        city=row.city,
        state_province=row.state_province,
        country=row.country,
        description=row.description,
    )


def booking_from_row(row: Bookings) -> BookingRecord:
    return BookingRecord(
        id=row.id,
        scheduled_at=ensure_utc(row.scheduled_at),
        duration=row.duration,
        status=row.status,
        calendar_event_id=row.calendar_event_id,
    )


def event_from_row(row: CalendarEvents) -> CalendarEventRecord:
    return CalendarEventRecord(
        id=row.id,
        start_time=ensure_utc(row.start_time),
        end_time=ensure_utc(row.end_time),
        max_bookings=row.max_bookings,
        allow_bookings=bool(row.allow_bookings),
        source=row.source,
        title=row.title,
    )


class AvailabilityStore:
    """Data access for the availability engine, bound to one Session."""

    def __init__(self, db: Session, config: BookingConfig | None = None):
        self.db = db
        self.config = config or get_booking_config()

    # ── Provider ────────────────────────────────────────────────────────

    def fetch_provider(self, provider_id: int) -> ProviderProfile:
        row = self.db.query(Providers).filter(Providers.id == provider_id).first()
        if row is None:
            raise ProviderNotFoundError(provider_id)

        durations = _parse_int_list(row.allowed_durations, "allowed_durations of provider", row.id)
        durations = [d for d in durations if d > 0]
        return ProviderProfile(
            id=row.id,
            name=row.name,
            allowed_durations=tuple(sorted(set(durations))) or self.config.default_allowed_durations,
            buffer_minutes=row.buffer_time if row.buffer_time is not None else self.config.default_buffer_minutes,
            advance_booking_days=row.advance_booking_days or self.config.default_advance_booking_days,
        )

    def lock_provider(self, provider_id: int) -> None:
        """
        Serialize reservations of one provider for the current transaction.

        Bumping booking_seq takes the provider row's write lock (whole-database
        write lock on SQLite); concurrent reservations wait until commit/rollback.
        """
        updated = (
            self.db.query(Providers)
            .filter(Providers.id == provider_id)
            .update({Providers.booking_seq: Providers.booking_seq + 1}, synchronize_session=False)
        )
        if not updated:
            raise ProviderNotFoundError(provider_id)

    # ── Templates / schedules / assignments ─────────────────────────────

    def fetch_templates(self, provider_id: int) -> list[AvailabilityTemplate]:
        rows = (
            self.db.query(AvailabilityTemplates)
            .options(selectinload(AvailabilityTemplates.time_slots))
            .filter(
                AvailabilityTemplates.provider_id == provider_id,
                AvailabilityTemplates.is_active == 1,
            )
            .order_by(AvailabilityTemplates.id)
            .all()
        )
        return [_template_from_row(r) for r in rows]

    def fetch_advanced_schedules(self, template_ids: Iterable[int]) -> list[AdvancedSchedule]:
        template_ids = list(template_ids)
        if not template_ids:
            return []
        rows = (
            self.db.query(AvailabilitySchedules)
            .options(selectinload(AvailabilitySchedules.time_slots))
            .filter(
                AvailabilitySchedules.template_id.in_(template_ids),
                AvailabilitySchedules.is_active == 1,
            )
            .order_by(AvailabilitySchedules.id)
            .all()
        )
        return [_schedule_from_row(r) for r in rows]

    def fetch_assignments(self, provider_id: int) -> list[TemplateAssignment]:
        rows = (
            self.db.query(TemplateAssignments)
            .join(AvailabilityTemplates, TemplateAssignments.template_id == AvailabilityTemplates.id)
            .filter(AvailabilityTemplates.provider_id == provider_id)
            .order_by(TemplateAssignments.start_date)
            .all()
        )
        return [TemplateAssignment(r.template_id, r.start_date, r.end_date) for r in rows]

    def set_default_template(self, template_id: int) -> AvailabilityTemplates:
        """Make template_id the provider's only default template."""
        template = (
            self.db.query(AvailabilityTemplates)
            .filter(AvailabilityTemplates.id == template_id)
            .first()
        )
        if template is None:
            raise AvailabilityValidationError(f"Template {template_id} not found")

        try:
            (
                self.db.query(AvailabilityTemplates)
                .filter(
                    AvailabilityTemplates.provider_id == template.provider_id,
                    AvailabilityTemplates.id != template_id,
                    AvailabilityTemplates.is_default == 1,
                )
                .update({AvailabilityTemplates.is_default: 0}, synchronize_session=False)
            )
            template.is_default = 1
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(template)
        logger.info(f"Template {template_id} is now the default of provider {template.provider_id}")
        return template

    def fix_multiple_defaults(self, provider_id: int) -> int:
        """Keep the oldest default template, unset the rest. Returns how many were unset."""
        defaults = (
            self.db.query(AvailabilityTemplates)
            .filter(
                AvailabilityTemplates.provider_id == provider_id,
                AvailabilityTemplates.is_default == 1,
            )
            .order_by(AvailabilityTemplates.created_at, AvailabilityTemplates.id)
            .all()
        )
        if len(defaults) <= 1:
            return 0

        logger.warning(
            f"Provider {provider_id} has {len(defaults)} default templates, keeping {defaults[0].id}"
        )
        for template in defaults[1:]:
            template.is_default = 0
        self.db.commit()
        return len(defaults) - 1

    # ── Locations ───────────────────────────────────────────────────────

    def fetch_locations(self, provider_id: int) -> list[ProviderLocation]:
        rows = (
            self.db.query(ProviderLocations)
            .filter(
                ProviderLocations.provider_id == provider_id,
                ProviderLocations.is_active == 1,
            )
            .order_by(ProviderLocations.id)
            .all()
        )
        return [_location_from_row(r) for r in rows]

    def fetch_active_location(self, provider_id: int, target_date: date) -> ProviderLocation | None:
        return select_location(self.fetch_locations(provider_id), target_date)

    # ── Bookings / events ───────────────────────────────────────────────

    def fetch_bookings(
        self,
        provider_id: int,
        range_start: datetime,
        range_end: datetime,
        statuses: Iterable[str] = ACTIVE_STATUSES,
    ) -> list[BookingRecord]:
        """Bookings starting in [range_start - 1 day, range_end)."""
        rows = (
            self.db.query(Bookings)
            .filter(
                Bookings.provider_id == provider_id,
                Bookings.status.in_(list(statuses)),
                Bookings.scheduled_at >= to_naive_utc(range_start) - timedelta(days=1),
                Bookings.scheduled_at < to_naive_utc(range_end),
            )
            .order_by(Bookings.scheduled_at)
            .all()
        )
        return [booking_from_row(r) for r in rows]

    def fetch_calendar_events(
        self,
        provider_id: int,
        range_start: datetime,
        range_end: datetime,
    ) -> list[CalendarEventRecord]:
        """Events intersecting [range_start, range_end)."""
        rows = (
            self.db.query(CalendarEvents)
            .filter(
                CalendarEvents.provider_id == provider_id,
                CalendarEvents.start_time < to_naive_utc(range_end),
                CalendarEvents.end_time > to_naive_utc(range_start),
            )
            .order_by(CalendarEvents.start_time)
            .all()
        )
        return [event_from_row(r) for r in rows]

    def fetch_event(self, provider_id: int, event_id: int) -> CalendarEventRecord | None:
        row = (
            self.db.query(CalendarEvents)
            .filter(CalendarEvents.id == event_id, CalendarEvents.provider_id == provider_id)
            .first()
        )
        return event_from_row(row) if row else None

    def insert_booking(
        self,
        provider_id: int,
        start: datetime,
        duration: int,
        calendar_event_id: int | None = None,
        customer: dict | None = None,
    ) -> Bookings:
        """Add a PENDING booking to the current transaction (flushed, not committed)."""
        customer = customer or {}
        booking = Bookings(
            provider_id=provider_id,
            scheduled_at=to_naive_utc(start),
            duration=duration,
            status="PENDING",
            calendar_event_id=calendar_event_id,
            customer_name=customer.get("name"),
            customer_email=customer.get("email"),
            service_type=customer.get("service_type"),
            notes=customer.get("notes"),
        )
        self.db.add(booking)
        self.db.flush()
        return booking

    # ── Snapshot ────────────────────────────────────────────────────────

    def load_snapshot(self, provider_id: int, start_date: date, end_date: date) -> AvailabilitySnapshot:
        """Fetch everything needed for provider-local dates [start_date, end_date] at once."""
        provider = self.fetch_provider(provider_id)
        templates = self.fetch_templates(provider_id)
        schedules = self.fetch_advanced_schedules(t.id for t in templates)

        range_start = pytz.utc.localize(datetime.combine(start_date, time.min)) - FETCH_PADDING
        range_end = pytz.utc.localize(datetime.combine(end_date, time.min)) + FETCH_PADDING

        return AvailabilitySnapshot(
            provider=provider,
            templates=tuple(templates),
            resolver=RecurrenceResolver(schedules),
            assignments=tuple(self.fetch_assignments(provider_id)),
            locations=tuple(self.fetch_locations(provider_id)),
            bookings=tuple(self.fetch_bookings(provider_id, range_start, range_end)),
            events=tuple(self.fetch_calendar_events(provider_id, range_start, range_end)),
            fallback_timezone=self.config.fallback_timezone,
        )
