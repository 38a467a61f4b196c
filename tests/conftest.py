"""Shared test fixtures: in-memory database, session, and row factories."""

import json
from datetime import date, datetime
from typing import Generator

import pytest
import pytz
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from booking_core.models import Base
from booking_core.models.generated import (
    AvailabilitySchedules,
    AvailabilityTemplates,
    AvailabilityTimeSlots,
    Bookings,
    CalendarEvents,
    Providers,
    ProviderLocations,
    ScheduleTimeSlots,
    TemplateAssignments,
)
from booking_core.services.slots.config import BookingConfig

NY = "America/New_York"

# Tuesday, 2030-01-01 12:00 UTC (07:00 in New York)
NOW = datetime(2030, 1, 1, 12, 0, tzinfo=pytz.utc)

WEEKDAYS = (1, 2, 3, 4, 5)  # Mon–Fri, 0 = Sunday


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=pytz.utc)


class Factory:
    """Inserts committed rows; every helper returns the ORM object."""

    def __init__(self, db: Session):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def provider(self, name="Dr. Test", allowed_durations=None, buffer_time=15, advance_booking_days=30):
        return self._save(Providers(
            name=name,
            allowed_durations=json.dumps(allowed_durations or []),
            buffer_time=buffer_time,
            advance_booking_days=advance_booking_days,
        ))

    def template(self, provider, slots=None, timezone=NY, is_default=True, name="Default",
                 created_at=None):
        """slots: iterable of (day_of_week, start, end); default Mon–Fri 09:00–17:00."""
        if slots is None:
            slots = [(d, "09:00", "17:00") for d in WEEKDAYS]
        template = self._save(AvailabilityTemplates(
            provider_id=provider.id,
            name=name,
            timezone=timezone,
            is_default=int(is_default),
            **({"created_at": created_at} if created_at else {}),
        ))
        for dow, start, end in slots:
            self.db.add(AvailabilityTimeSlots(
                template_id=template.id, day_of_week=dow, start_time=start, end_time=end,
            ))
        self.db.commit()
        return template

    def schedule(self, template, start_date, slots, end_date=None, priority=0, is_recurring=False,
                 recurrence_type=None, recurrence_interval=None, days_of_week=(), name="Override",
                 week_of_month=None, month_of_year=None, created_at=None):
        """slots: iterable of (day_of_week, start, end) or (day_of_week, start, end, week_number)."""
        schedule = self._save(AvailabilitySchedules(
            template_id=template.id,
            name=name,
            start_date=start_date,
            end_date=end_date,
            priority=priority,
            is_recurring=int(is_recurring),
            recurrence_type=recurrence_type,
            recurrence_interval=recurrence_interval,
            days_of_week=json.dumps(list(days_of_week)),
            week_of_month=week_of_month,
            month_of_year=month_of_year,
            **({"created_at": created_at} if created_at else {}),
        ))
        for slot in slots:
            dow, start, end = slot[:3]
            week_number = slot[3] if len(slot) > 3 else None
            self.db.add(ScheduleTimeSlots(
                schedule_id=schedule.id, day_of_week=dow, start_time=start, end_time=end,
                week_number=week_number,
            ))
        self.db.commit()
        return schedule

    def assignment(self, template, start_date, end_date=None):
        return self._save(TemplateAssignments(
            template_id=template.id, start_date=start_date, end_date=end_date,
        ))

    def location(self, provider, start_date=date(2029, 1, 1), end_date=date(2031, 12, 31),
                 timezone=NY, is_default=False, city=None, state_province=None, country=None,
                 description=None, is_active=True):
        return self._save(ProviderLocations(
            provider_id=provider.id,
            start_date=start_date,
            end_date=end_date,
            timezone=timezone,
            is_default=int(is_default),
            is_active=int(is_active),
            city=city,
            state_province=state_province,
            country=country,
            description=description,
        ))

    def booking(self, provider, scheduled_at, duration=60, status="CONFIRMED", event=None):
        return self._save(Bookings(
            provider_id=provider.id,
            scheduled_at=scheduled_at.astimezone(pytz.utc).replace(tzinfo=None),
            duration=duration,
            status=status,
            calendar_event_id=event.id if event else None,
        ))

    def event(self, provider, start, end, source="manual", max_bookings=1, allow_bookings=False,
              title="Event"):
        return self._save(CalendarEvents(
            provider_id=provider.id,
            start_time=start.astimezone(pytz.utc).replace(tzinfo=None),
            end_time=end.astimezone(pytz.utc).replace(tzinfo=None),
            source=source,
            max_bookings=max_bookings,
            allow_bookings=int(allow_bookings),
            title=title,
        ))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def factory(db) -> Factory:
    return Factory(db)


@pytest.fixture
def config() -> BookingConfig:
    return BookingConfig(fallback_timezone=NY)


@pytest.fixture
def provider(factory):
    """Provider with the default Mon–Fri 09:00–17:00 New York template."""
    provider = factory.provider()
    factory.template(provider)
    return provider
