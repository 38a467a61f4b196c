# backend/booking_core/services/slots/snapshot.py
"""
Per-request snapshot of everything availability needs for one provider.

Fetched once (AvailabilityStore.load_snapshot), never mutated afterwards.
Preview, batch and on-demand computations read only from it, so the
batch fan-out can share one snapshot between worker threads.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable

from .conflicts import ConflictDetector
from .domain import (
    AvailabilityTemplate,
    BookingRecord,
    CalendarEventRecord,
    EffectiveAvailability,
    ProviderLocation,
    ProviderProfile,
    TemplateAssignment,
    TimeWindow,
)
from .errors import TimezoneResolutionError
from .recurrence import RecurrenceResolver, windows_for_day
from .timezone import TimezoneConverter, ensure_utc

logger = logging.getLogger(__name__)

NO_LOCATION_DISPLAY = "Contact provider for location details"


def select_location(locations: Iterable[ProviderLocation], target_date: date) -> ProviderLocation | None:
    """
    Location in effect on target_date.

    Covering non-default locations win (most recent start_date first), then a
    covering default, then the default location regardless of its window.
    """
    active = [loc for loc in locations if loc.is_active]
    covering = sorted(
        (loc for loc in active if loc.covers(target_date)),
        key=lambda loc: (loc.is_default, -loc.start_date.toordinal(), -loc.id),
    )
    if covering:
        return covering[0]
    defaults = [loc for loc in active if loc.is_default]
    return defaults[0] if defaults else None


@dataclass(frozen=True)
class DayPlan:
    """Resolved availability of one provider-local date."""
    date: date
    template_id: int | None
    converter: TimezoneConverter | None
    windows: tuple[TimeWindow, ...] = ()
    source_schedule_id: int | None = None
    applied_schedules: tuple[dict, ...] = ()
    location: ProviderLocation | None = None

    @property
    def is_open(self) -> bool:
        return self.converter is not None and bool(self.windows)

    @property
    def timezone(self) -> str | None:
        return self.converter.zone_name if self.converter else None

    @property
    def location_display(self) -> str:
        return self.location.display if self.location else NO_LOCATION_DISPLAY


@dataclass(frozen=True)
class AvailabilitySnapshot:
    provider: ProviderProfile
    templates: tuple[AvailabilityTemplate, ...]
    resolver: RecurrenceResolver
    assignments: tuple[TemplateAssignment, ...] = ()
    locations: tuple[ProviderLocation, ...] = ()
    bookings: tuple[BookingRecord, ...] = ()
    events: tuple[CalendarEventRecord, ...] = ()
    fallback_timezone: str = "America/New_York"
    _templates_by_id: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        # frozen: populate the lookup through object.__setattr__
        object.__setattr__(self, "_templates_by_id", {t.id: t for t in self.templates})

    # ── Template / location / timezone per date ─────────────────────────

    def default_template(self) -> AvailabilityTemplate | None:
        defaults = [t for t in self.templates if t.is_default]
        if not defaults:
            return None
        defaults.sort(key=lambda t: (t.created_at is None, t.created_at or datetime.min, t.id))
        return defaults[0]

    def template_for(self, target_date: date) -> AvailabilityTemplate | None:
        covering = sorted(
            (a for a in self.assignments if a.covers(target_date)),
            key=lambda a: a.start_date,
            reverse=True,
        )
        for assignment in covering:
            template = self._templates_by_id.get(assignment.template_id)
            if template is not None:
                return template
        return self.default_template()

    def location_for(self, target_date: date) -> ProviderLocation | None:
        return select_location(self.locations, target_date)

    def timezone_for(self, target_date: date) -> str:
        location = self.location_for(target_date)
        if location and location.timezone:
            return location.timezone
        template = self.template_for(target_date)
        if template and template.timezone:
            return template.timezone
        return self.fallback_timezone

    # ── Resolution ──────────────────────────────────────────────────────

    def effective(self, target_date: date) -> tuple[AvailabilityTemplate | None, EffectiveAvailability | None]:
        template = self.template_for(target_date)
        if template is None:
            return None, None
        return template, self.resolver.effective_windows(template, target_date)

    def resolve_day(self, target_date: date) -> DayPlan:
        """
        Effective windows + timezone of a provider-local date.

        An unresolvable timezone closes the date (empty windows, no converter).
        """
        location = self.location_for(target_date)
        template, effective = self.effective(target_date)
        if template is None:
            logger.debug(f"Provider {self.provider.id}: no template for {target_date}")
            return DayPlan(target_date, None, None, location=location)

        zone_name = self.timezone_for(target_date)
        try:
            converter = TimezoneConverter(zone_name)
        except TimezoneResolutionError as e:
            logger.error(f"Provider {self.provider.id}, {target_date}: {e}; date treated as unavailable")
            return DayPlan(target_date, template.id, None, location=location)

        windows = tuple(windows_for_day(effective.slots))
        logger.debug(
            f"Provider {self.provider.id}, {target_date}: template {template.id}, "
            f"schedule {effective.source_schedule_id}, "
            f"windows {[w.as_dict() for w in windows]} ({zone_name})"
        )
        return DayPlan(
            date=target_date,
            template_id=template.id,
            converter=converter,
            windows=windows,
            source_schedule_id=effective.source_schedule_id,
            applied_schedules=effective.applied_schedules,
            location=location,
        )

    def plan_for_instant(self, instant: datetime) -> tuple[DayPlan | None, int | None]:
        """
        DayPlan of the provider-local date containing instant, plus the
        instant's local offset in minutes since midnight.

        The local date depends on the zone in effect, so the UTC date and
        its neighbours are tried until one agrees with itself.
        """
        instant = ensure_utc(instant)
        utc_date = instant.date()
        for candidate in (utc_date, utc_date - timedelta(days=1), utc_date + timedelta(days=1)):
            plan = self.resolve_day(candidate)
            if plan.converter is None:
                continue
            local = plan.converter.to_local(instant)
            if local.date == candidate:
                hours, minutes = local.time_str.split(":")
                return plan, int(hours) * 60 + int(minutes)
        return None, None

    def detector(self, now: datetime, lead_time_minutes: int) -> ConflictDetector:
        return ConflictDetector(self.bookings, self.events, now, lead_time_minutes)
