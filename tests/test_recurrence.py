from datetime import date, datetime

import pytest

from booking_core.services.slots.domain import (
    AdvancedSchedule,
    AvailabilityTemplate,
    RecurrenceType,
    TimeSlotDefinition,
    TimeWindow,
)
from booking_core.services.slots.recurrence import (
    MATCHERS,
    RecurrenceResolver,
    eligible_slots,
    is_schedule_active_on_date,
    week_in_cycle,
    windows_for_day,
)

from conftest import NY


def slot(dow, start, end, week=None, enabled=True):
    return TimeSlotDefinition(dow, start, end, is_enabled=enabled, week_number=week)


def make_template(slots=None, template_id=1):
    if slots is None:
        slots = [slot(d, "09:00", "17:00") for d in (1, 2, 3, 4, 5)]
    return AvailabilityTemplate(id=template_id, provider_id=1, timezone=NY, is_default=True,
                                time_slots=tuple(slots))


def make_schedule(schedule_id=10, start=date(2030, 1, 1), slots=(), **kwargs):
    return AdvancedSchedule(id=schedule_id, template_id=1, start_date=start,
                            time_slots=tuple(slots), **kwargs)


def windows(effective):
    return [(w.start, w.end) for w in windows_for_day(effective.slots)]


# ── Matchers ────────────────────────────────────────────────────────────


def test_every_recurrence_type_has_a_matcher():
    assert set(MATCHERS) == set(RecurrenceType)


def test_recurrence_type_parse():
    assert RecurrenceType.parse("weekly") is RecurrenceType.WEEKLY
    assert RecurrenceType.parse("YEARLY") is None
    assert RecurrenceType.parse(None) is None


def test_non_recurring_matches_whole_range_inclusive():
    schedule = make_schedule(start=date(2030, 1, 7), end_date=date(2030, 1, 13))
    assert is_schedule_active_on_date(schedule, date(2030, 1, 7))
    assert is_schedule_active_on_date(schedule, date(2030, 1, 13))
    assert not is_schedule_active_on_date(schedule, date(2030, 1, 6))
    assert not is_schedule_active_on_date(schedule, date(2030, 1, 14))


def test_inactive_schedule_never_matches():
    schedule = make_schedule(is_active=False)
    assert not is_schedule_active_on_date(schedule, date(2030, 1, 2))


def test_daily_interval():
    schedule = make_schedule(is_recurring=True, recurrence_type=RecurrenceType.DAILY,
                             recurrence_interval=3)
    assert is_schedule_active_on_date(schedule, date(2030, 1, 1))
    assert not is_schedule_active_on_date(schedule, date(2030, 1, 2))
    assert is_schedule_active_on_date(schedule, date(2030, 1, 4))


def test_weekly_day_membership():
    schedule = make_schedule(is_recurring=True, recurrence_type=RecurrenceType.WEEKLY,
                             days_of_week=frozenset({2, 4}))
    assert is_schedule_active_on_date(schedule, date(2030, 1, 8))  # Tuesday
    assert not is_schedule_active_on_date(schedule, date(2030, 1, 9))  # Wednesday


def test_weekly_empty_days_never_match():
    schedule = make_schedule(is_recurring=True, recurrence_type=RecurrenceType.WEEKLY)
    assert not is_schedule_active_on_date(schedule, date(2030, 1, 8))


def test_monthly_week_of_month():
    schedule = make_schedule(is_recurring=True, recurrence_type=RecurrenceType.MONTHLY,
                             days_of_week=frozenset({2}), week_of_month=2)
    assert is_schedule_active_on_date(schedule, date(2030, 1, 8))  # 2nd Tuesday
    assert not is_schedule_active_on_date(schedule, date(2030, 1, 1))
    assert not is_schedule_active_on_date(schedule, date(2030, 1, 15))


def test_monthly_month_of_year_gate():
    schedule = make_schedule(is_recurring=True, recurrence_type=RecurrenceType.MONTHLY,
                             days_of_week=frozenset({2}), month_of_year=2)
    assert not is_schedule_active_on_date(schedule, date(2030, 1, 8))
    assert is_schedule_active_on_date(schedule, date(2030, 2, 5))


def test_recurring_without_type_does_not_match():
    schedule = make_schedule(is_recurring=True, recurrence_type=None,
                             days_of_week=frozenset({2}))
    assert not is_schedule_active_on_date(schedule, date(2030, 1, 8))


# ── Week cycling ────────────────────────────────────────────────────────


def test_week_in_cycle():
    schedule = make_schedule(start=date(2030, 1, 7), is_recurring=True,
                             recurrence_type=RecurrenceType.WEEKLY, recurrence_interval=2)
    assert week_in_cycle(schedule, date(2030, 1, 7)) == 0
    assert week_in_cycle(schedule, date(2030, 1, 20)) == 1
    assert week_in_cycle(schedule, date(2030, 1, 21)) == 0


def test_no_cycle_for_single_week_interval():
    weekly = make_schedule(is_recurring=True, recurrence_type=RecurrenceType.WEEKLY)
    biweekly = make_schedule(is_recurring=True, recurrence_type=RecurrenceType.BIWEEKLY)
    assert week_in_cycle(weekly, date(2030, 1, 20)) is None
    assert week_in_cycle(biweekly, date(2030, 1, 20)) is None


def test_cycle_follows_interval_for_every_recurrence_type():
    daily = make_schedule(is_recurring=True, recurrence_type=RecurrenceType.DAILY,
                          recurrence_interval=2)
    monthly = make_schedule(is_recurring=True, recurrence_type=RecurrenceType.MONTHLY,
                            recurrence_interval=3)
    one_off = make_schedule(recurrence_interval=2)
    assert week_in_cycle(daily, date(2030, 1, 1)) == 0
    assert week_in_cycle(daily, date(2030, 1, 8)) == 1
    assert week_in_cycle(monthly, date(2030, 1, 15)) == 2
    assert week_in_cycle(one_off, date(2030, 1, 22)) == 1


def test_daily_schedule_keeps_only_current_week_slots():
    schedule = make_schedule(is_recurring=True, recurrence_type=RecurrenceType.DAILY,
                             recurrence_interval=2, slots=[slot(2, "09:00", "12:00", week=1)])
    assert eligible_slots(schedule, date(2030, 1, 1)) == []
    assert [s.start_time for s in eligible_slots(schedule, date(2030, 1, 8))] == ["09:00"]


def test_monthly_schedule_keeps_only_current_week_slots():
    schedule = make_schedule(is_recurring=True, recurrence_type=RecurrenceType.MONTHLY,
                             recurrence_interval=2, days_of_week=frozenset({2}),
                             slots=[slot(2, "09:00", "12:00", week=0)])
    assert eligible_slots(schedule, date(2030, 1, 8)) == []
    assert [s.start_time for s in eligible_slots(schedule, date(2030, 1, 15))] == ["09:00"]


def test_non_recurring_schedule_keeps_only_current_week_slots():
    schedule = make_schedule(start=date(2030, 1, 7), recurrence_interval=3,
                             slots=[slot(1, "09:00", "12:00", week=2)])
    assert eligible_slots(schedule, date(2030, 1, 7)) == []
    assert eligible_slots(schedule, date(2030, 1, 14)) == []
    assert [s.start_time for s in eligible_slots(schedule, date(2030, 1, 21))] == ["09:00"]


def test_biweekly_with_single_week_interval_ignores_week_tags():
    schedule = make_schedule(is_recurring=True, recurrence_type=RecurrenceType.BIWEEKLY,
                             days_of_week=frozenset({1}), slots=[slot(1, "09:00", "12:00", week=0)])
    assert [s.start_time for s in eligible_slots(schedule, date(2030, 1, 14))] == ["09:00"]


def test_schedule_without_current_week_slots_does_not_win():
    schedule = make_schedule(is_recurring=True, recurrence_type=RecurrenceType.DAILY,
                             recurrence_interval=2, priority=50,
                             slots=[slot(2, "12:00", "13:00", week=1)])
    effective = RecurrenceResolver([schedule]).effective_windows(make_template(), date(2030, 1, 15))
    assert effective.source_schedule_id is None
    assert windows(effective) == [("09:00", "17:00")]


def test_untagged_slots_are_eligible_every_week():
    schedule = make_schedule(
        start=date(2030, 1, 7), is_recurring=True, recurrence_type=RecurrenceType.WEEKLY,
        recurrence_interval=2, days_of_week=frozenset({1}),
        slots=[slot(1, "09:00", "12:00", week=0), slot(1, "13:00", "15:00")],
    )
    assert len(eligible_slots(schedule, date(2030, 1, 7))) == 2
    assert [s.start_time for s in eligible_slots(schedule, date(2030, 1, 14))] == ["13:00"]


def test_malformed_slot_is_skipped():
    schedule = make_schedule(slots=[slot(2, "25:00", "26:00"), slot(2, "12:00", "10:00")])
    assert eligible_slots(schedule, date(2030, 1, 8)) == []


@pytest.mark.parametrize("target,expected", [
    (date(2030, 1, 7), [("09:00", "12:00")]),   # Mon, week 0
    (date(2030, 1, 9), []),                     # Wed, week 0
    (date(2030, 1, 14), []),                    # Mon, week 1
    (date(2030, 1, 16), [("09:00", "12:00")]),  # Wed, week 1
    (date(2030, 1, 21), [("09:00", "12:00")]),  # Mon, week 0 again
])
def test_two_week_pattern_alternates_monday_and_wednesday(target, expected):
    schedule = make_schedule(
        start=date(2030, 1, 7), is_recurring=True, recurrence_type=RecurrenceType.WEEKLY,
        recurrence_interval=2, days_of_week=frozenset({1, 3}),
        slots=[slot(1, "09:00", "12:00", week=0), slot(3, "09:00", "12:00", week=1)],
    )
    resolver = RecurrenceResolver([schedule])
    assert windows(resolver.effective_windows(make_template(slots=[]), target)) == expected


# ── Priority resolution ─────────────────────────────────────────────────


def test_base_template_when_nothing_matches():
    effective = RecurrenceResolver([]).effective_windows(make_template(), date(2030, 1, 8))
    assert effective.source_schedule_id is None
    assert windows(effective) == [("09:00", "17:00")]


def test_override_suppresses_base_windows_only_in_its_range():
    schedule = make_schedule(
        schedule_id=10, start=date(2030, 1, 7), end_date=date(2030, 1, 13), priority=10,
        slots=[slot(2, "12:00", "14:00")],
    )
    resolver = RecurrenceResolver([schedule])

    inside = resolver.effective_windows(make_template(), date(2030, 1, 8))
    assert inside.source_schedule_id == 10
    assert windows(inside) == [("12:00", "14:00")]

    after = resolver.effective_windows(make_template(), date(2030, 1, 15))
    assert after.source_schedule_id is None
    assert windows(after) == [("09:00", "17:00")]


def test_highest_priority_wins_and_all_matches_are_reported():
    low = make_schedule(schedule_id=10, priority=5, slots=[slot(2, "08:00", "10:00")])
    high = make_schedule(schedule_id=11, priority=10, slots=[slot(2, "14:00", "16:00")])
    effective = RecurrenceResolver([low, high]).effective_windows(make_template(), date(2030, 1, 8))

    assert effective.source_schedule_id == 11
    assert windows(effective) == [("14:00", "16:00")]
    assert [s["id"] for s in effective.applied_schedules] == [11, 10]


def test_priority_tie_goes_to_earliest_created():
    older = make_schedule(schedule_id=20, priority=5, created_at=datetime(2029, 1, 1),
                          slots=[slot(2, "08:00", "10:00")])
    newer = make_schedule(schedule_id=10, priority=5, created_at=datetime(2029, 6, 1),
                          slots=[slot(2, "14:00", "16:00")])
    effective = RecurrenceResolver([newer, older]).effective_windows(make_template(), date(2030, 1, 8))
    assert effective.source_schedule_id == 20


def test_schedule_without_slots_for_weekday_does_not_win():
    schedule = make_schedule(priority=10, slots=[slot(3, "12:00", "14:00")])  # Wednesday only
    effective = RecurrenceResolver([schedule]).effective_windows(make_template(), date(2030, 1, 8))
    assert effective.source_schedule_id is None
    assert windows(effective) == [("09:00", "17:00")]


def test_disabled_slots_are_ignored():
    schedule = make_schedule(priority=10, slots=[slot(2, "12:00", "14:00", enabled=False)])
    effective = RecurrenceResolver([schedule]).effective_windows(make_template(), date(2030, 1, 8))
    assert effective.source_schedule_id is None


def test_windows_for_day_dedupes_and_sorts():
    slots = [slot(2, "13:00", "15:00"), slot(2, "09:00", "12:00"), slot(2, "09:00", "12:00"),
             slot(3, "07:00", "08:00")]
    assert windows_for_day(slots, 2) == [TimeWindow(540, 720), TimeWindow(780, 900)]
