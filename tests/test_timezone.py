from datetime import date, datetime

import pytest
import pytz

from booking_core.services.slots.errors import TimezoneResolutionError
from booking_core.services.slots.timezone import TimezoneConverter, day_of_week, ensure_utc

from conftest import NY, utc


def test_day_of_week_sunday_is_zero():
    assert day_of_week(date(2030, 1, 6)) == 0  # Sunday
    assert day_of_week(date(2030, 1, 7)) == 1  # Monday
    assert day_of_week(date(2030, 1, 12)) == 6  # Saturday


def test_to_instant_applies_standard_and_daylight_offsets():
    tz = TimezoneConverter(NY)
    assert tz.to_instant(date(2030, 1, 8), "09:00") == utc(2030, 1, 8, 14, 0)
    assert tz.to_instant(date(2030, 7, 9), "09:00") == utc(2030, 7, 9, 13, 0)


def test_to_instant_end_of_day_marker():
    tz = TimezoneConverter(NY)
    assert tz.to_instant(date(2030, 1, 8), "24:00") == utc(2030, 1, 9, 5, 0)


def test_spring_forward_gap_is_shifted_forward():
    tz = TimezoneConverter(NY)
    # 2030-03-10 02:30 does not exist in New York
    instant = tz.to_instant(date(2030, 3, 10), "02:30")
    assert instant == utc(2030, 3, 10, 7, 30)
    assert tz.to_local(instant).time_str == "03:30"


def test_fall_back_ambiguous_time_uses_standard_time():
    tz = TimezoneConverter(NY)
    # 2030-11-03 01:30 happens twice; the EST occurrence is 06:30 UTC
    assert tz.to_instant(date(2030, 11, 3), "01:30") == utc(2030, 11, 3, 6, 30)


def test_to_local_crosses_date_boundary():
    tz = TimezoneConverter(NY)
    local = tz.to_local(utc(2030, 1, 8, 3, 0))
    assert local.date == date(2030, 1, 7)
    assert local.time_str == "22:00"
    assert local.day_of_week == 1


def test_day_bounds():
    tz = TimezoneConverter(NY)
    assert tz.day_bounds(date(2030, 1, 8)) == (utc(2030, 1, 8, 5, 0), utc(2030, 1, 9, 5, 0))


def test_today_uses_zone_not_utc():
    tz = TimezoneConverter(NY)
    assert tz.today(utc(2030, 1, 2, 3, 0)) == date(2030, 1, 1)


@pytest.mark.parametrize("zone", ["Mars/Olympus_Mons", "", None])
def test_unknown_zone_raises(zone):
    with pytest.raises(TimezoneResolutionError):
        TimezoneConverter(zone)


def test_ensure_utc_treats_naive_as_utc():
    assert ensure_utc(datetime(2030, 1, 1, 12, 0)) == utc(2030, 1, 1, 12, 0)
    berlin = pytz.timezone("Europe/Berlin").localize(datetime(2030, 1, 1, 13, 0))
    assert ensure_utc(berlin) == utc(2030, 1, 1, 12, 0)
