# backend/booking_core/services/slots/recurrence.py
"""
Recurrence resolution: which advanced schedule (if any) is effective on a date.

Resolution order:
  1. Schedule must be active and the date inside [start_date, end_date].
  2. Non-recurring schedules match every date in range; recurring ones are
     matched by the matcher registered for their recurrence type.
  3. Any schedule with interval > 1 is a multi-week cycle: only the time
     slots tagged with the current week of the cycle are kept. Untagged
     slots are eligible in every week.
  4. Among schedules with at least one eligible enabled slot for the weekday,
     the highest priority wins; ties go to the earliest created schedule.
  5. No match → the template's own time slots for that weekday.

Malformed schedule data never raises here; the schedule simply does not match.
"""

import logging
from collections import defaultdict
from datetime import date, datetime
from math import ceil
from typing import Callable, Iterable

from .domain import (
    AdvancedSchedule,
    AvailabilityTemplate,
    EffectiveAvailability,
    RecurrenceType,
    TimeSlotDefinition,
    TimeWindow,
)
from .timezone import day_of_week

logger = logging.getLogger(__name__)

Matcher = Callable[[AdvancedSchedule, date], bool]


def days_since_start(schedule: AdvancedSchedule, target_date: date) -> int:
    return (target_date - schedule.start_date).days


# ── Matchers (one per recurrence type) ──────────────────────────────────


def _match_daily(schedule: AdvancedSchedule, target_date: date) -> bool:
    return days_since_start(schedule, target_date) % schedule.interval == 0


def _match_weekly(schedule: AdvancedSchedule, target_date: date) -> bool:
    # Multi-week cycles only check membership; the week itself is
    # resolved through week_number tagging in eligible_slots().
    return day_of_week(target_date) in schedule.days_of_week


def _match_biweekly(schedule: AdvancedSchedule, target_date: date) -> bool:
    return day_of_week(target_date) in schedule.days_of_week


def _match_monthly(schedule: AdvancedSchedule, target_date: date) -> bool:
    if schedule.month_of_year and target_date.month != schedule.month_of_year:
        return False
    dow_matches = day_of_week(target_date) in schedule.days_of_week
    if schedule.week_of_month:
        return ceil(target_date.day / 7) == schedule.week_of_month and dow_matches
    return dow_matches


MATCHERS: dict[RecurrenceType, Matcher] = {
    RecurrenceType.DAILY: _match_daily,
    RecurrenceType.WEEKLY: _match_weekly,
    RecurrenceType.BIWEEKLY: _match_biweekly,
    RecurrenceType.MONTHLY: _match_monthly,
}


def is_schedule_active_on_date(schedule: AdvancedSchedule, target_date: date) -> bool:
    """Date range + recurrence pattern check."""
    if not schedule.is_active:
        return False
    if target_date < schedule.start_date:
        return False
    if schedule.end_date and target_date > schedule.end_date:
        return False

    if not schedule.is_recurring:
        return True

    matcher = MATCHERS.get(schedule.recurrence_type)
    if matcher is None:
        logger.warning(
            f"Schedule {schedule.id} is recurring without a usable recurrence type, ignoring it"
        )
        return False
    return matcher(schedule, target_date)


def week_in_cycle(schedule: AdvancedSchedule, target_date: date) -> int | None:
    """0-indexed week of the cycle for target_date, or None without cycling."""
    if schedule.interval <= 1:
        return None
    return (days_since_start(schedule, target_date) // 7) % schedule.interval


def is_well_formed(slot: TimeSlotDefinition) -> bool:
    try:
        return slot.start_minutes < slot.end_minutes
    except ValueError:
        return False


def eligible_slots(schedule: AdvancedSchedule, target_date: date) -> list[TimeSlotDefinition]:
    """Enabled, well-formed slots of the schedule for the date's weekday and cycle week."""
    dow = day_of_week(target_date)
    week = week_in_cycle(schedule, target_date)

    result = []
    for slot in schedule.time_slots:
        if not slot.is_enabled or slot.day_of_week != dow:
            continue
        if week is not None and slot.week_number is not None and slot.week_number != week:
            continue
        if not is_well_formed(slot):
            logger.warning(
                f"Schedule {schedule.id}: malformed slot {slot.start_time}-{slot.end_time} skipped"
            )
            continue
        result.append(slot)
    return result


def _priority_key(schedule: AdvancedSchedule) -> tuple:
    created = schedule.created_at
    # unknown creation time sorts after every known one
    return (-schedule.priority, created is None, created or datetime.min, schedule.id)


class RecurrenceResolver:
    """Resolves the effective time slots of a template on a given date."""

    def __init__(self, schedules: Iterable[AdvancedSchedule]):
        by_template: dict[int, list[AdvancedSchedule]] = defaultdict(list)
        for schedule in schedules:
            by_template[schedule.template_id].append(schedule)
        for template_schedules in by_template.values():
            template_schedules.sort(key=_priority_key)
        self._by_template = dict(by_template)

    def schedules_for(self, template_id: int) -> list[AdvancedSchedule]:
        return list(self._by_template.get(template_id, ()))

    def effective_windows(
        self,
        template: AvailabilityTemplate,
        target_date: date,
    ) -> EffectiveAvailability:
        matches: list[tuple[AdvancedSchedule, list[TimeSlotDefinition]]] = []
        for schedule in self._by_template.get(template.id, ()):
            if not is_schedule_active_on_date(schedule, target_date):
                continue
            slots = eligible_slots(schedule, target_date)
            if slots:
                matches.append((schedule, slots))

        if matches:
            winner, slots = matches[0]
            logger.debug(
                f"{target_date}: schedule {winner.id} (priority {winner.priority}) "
                f"wins over {len(matches) - 1} other match(es)"
            )
            return EffectiveAvailability(
                source_schedule_id=winner.id,
                slots=tuple(slots),
                applied_schedules=tuple(
                    {"id": s.id, "name": s.name, "priority": s.priority}
                    for s, _ in matches
                ),
            )

        dow = day_of_week(target_date)
        base = tuple(
            slot for slot in template.time_slots
            if slot.is_enabled and slot.day_of_week == dow and is_well_formed(slot)
        )
        return EffectiveAvailability(source_schedule_id=None, slots=base)


def windows_for_day(
    slots: Iterable[TimeSlotDefinition],
    dow: int | None = None,
) -> list[TimeWindow]:
    """Distinct (start, end) windows, ascending; optionally limited to one weekday."""
    windows = {
        TimeWindow(slot.start_minutes, slot.end_minutes)
        for slot in slots
        if (dow is None or slot.day_of_week == dow) and slot.is_enabled and is_well_formed(slot)
    }
    return sorted(windows)
