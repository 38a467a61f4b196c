from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, Text, text

from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata

# Instants (scheduled_at, start_time, end_time) are stored as naive UTC.
# Wall-clock values ("HH:MM") are stored as text and interpreted in the
# provider/location timezone.


class Providers(Base):
    __tablename__ = 'providers'

    name = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    email = Column(Text)
    allowed_durations = Column(Text, nullable=False, server_default=text("'[]'"))
    buffer_time = Column(Integer)
    advance_booking_days = Column(Integer)
    booking_seq = Column(Integer, nullable=False, server_default=text('0'))
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    templates = relationship('AvailabilityTemplates', back_populates='provider')
    locations = relationship('ProviderLocations', back_populates='provider')
    calendar_events = relationship('CalendarEvents', back_populates='provider')
    bookings = relationship('Bookings', back_populates='provider')


class AvailabilityTemplates(Base):
    __tablename__ = 'availability_templates'

    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    timezone = Column(Text)
    is_default = Column(Integer, nullable=False, server_default=text('0'))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    provider = relationship('Providers', back_populates='templates')
    time_slots = relationship('AvailabilityTimeSlots', back_populates='template')
    schedules = relationship('AvailabilitySchedules', back_populates='template')
    assignments = relationship('TemplateAssignments', back_populates='template')


class AvailabilityTimeSlots(Base):
    __tablename__ = 'availability_time_slots'

    template_id = Column(ForeignKey('availability_templates.id', ondelete='CASCADE'), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(Text, nullable=False)
    end_time = Column(Text, nullable=False)
    is_enabled = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)

    template = relationship('AvailabilityTemplates', back_populates='time_slots')


class AvailabilitySchedules(Base):
    __tablename__ = 'availability_schedules'

    template_id = Column(ForeignKey('availability_templates.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    start_date = Column(Date, nullable=False)
    is_recurring = Column(Integer, nullable=False, server_default=text('0'))
    priority = Column(Integer, nullable=False, server_default=text('0'))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    days_of_week = Column(Text, nullable=False, server_default=text("'[]'"))
    id = Column(Integer, primary_key=True)
    end_date = Column(Date)
    recurrence_type = Column(Text)  # DAILY / WEEKLY / BIWEEKLY / MONTHLY
    recurrence_interval = Column(Integer)
    week_of_month = Column(Integer)
    month_of_year = Column(Integer)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    template = relationship('AvailabilityTemplates', back_populates='schedules')
    time_slots = relationship('ScheduleTimeSlots', back_populates='schedule')


class ScheduleTimeSlots(Base):
    __tablename__ = 'schedule_time_slots'

    schedule_id = Column(ForeignKey('availability_schedules.id', ondelete='CASCADE'), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Text, nullable=False)
    end_time = Column(Text, nullable=False)
    is_enabled = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    week_number = Column(Integer)  # 0-indexed week inside a multi-week cycle

    schedule = relationship('AvailabilitySchedules', back_populates='time_slots')


class TemplateAssignments(Base):
    __tablename__ = 'template_assignments'

    template_id = Column(ForeignKey('availability_templates.id', ondelete='CASCADE'), nullable=False)
    start_date = Column(Date, nullable=False)
    id = Column(Integer, primary_key=True)
    end_date = Column(Date)  # NULL = open-ended

    template = relationship('AvailabilityTemplates', back_populates='assignments')


class ProviderLocations(Base):
    __tablename__ = 'provider_locations'

    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_default = Column(Integer, nullable=False, server_default=text('0'))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    timezone = Column(Text)
    city = Column(Text)
    state_province = Column(Text)
    country = Column(Text)
    description = Column(Text)

    provider = relationship('Providers', back_populates='locations')


class CalendarEvents(Base):
    __tablename__ = 'calendar_events'
    __table_args__ = (
        Index('ix_calendar_events_provider_time', 'provider_id', 'start_time', 'end_time'),
    )

    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    source = Column(Text, nullable=False, server_default=text("'manual'"))  # manual / google / outlook / ...
    max_bookings = Column(Integer, nullable=False, server_default=text('1'))
    allow_bookings = Column(Integer, nullable=False, server_default=text('0'))
    id = Column(Integer, primary_key=True)
    title = Column(Text)

    provider = relationship('Providers', back_populates='calendar_events')
    bookings = relationship('Bookings', back_populates='calendar_event')


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        Index('ix_bookings_provider_scheduled', 'provider_id', 'scheduled_at'),
    )

    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    scheduled_at = Column(DateTime, nullable=False)
    duration = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'PENDING'"))
    id = Column(Integer, primary_key=True)
    calendar_event_id = Column(ForeignKey('calendar_events.id', ondelete='SET NULL'))
    customer_name = Column(Text)
    customer_email = Column(Text)
    service_type = Column(Text)
    notes = Column(Text)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    provider = relationship('Providers', back_populates='bookings')
    calendar_event = relationship('CalendarEvents', back_populates='bookings')
