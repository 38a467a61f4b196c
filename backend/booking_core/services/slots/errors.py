# backend/booking_core/services/slots/errors.py
"""
Errors raised by the availability engine.

Read paths never turn an error into "available": store failures propagate,
unknown timezones close the affected date.
"""


class AvailabilityError(Exception):
    """Base class for availability engine errors."""


class AvailabilityValidationError(AvailabilityError, ValueError):
    """Invalid request input; raised before any computation."""


class ProviderNotFoundError(AvailabilityValidationError):
    def __init__(self, provider_id: int):
        super().__init__(f"Provider {provider_id} not found")
        self.provider_id = provider_id


class BookingNotFoundError(AvailabilityError):
    def __init__(self, booking_id: int):
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


class TimezoneResolutionError(AvailabilityError):
    def __init__(self, zone_name: str | None):
        super().__init__(f"Unknown timezone: {zone_name!r}")
        self.zone_name = zone_name


class SlotConflictError(AvailabilityError):
    """The requested slot can no longer be booked; the client must re-query availability."""

    def __init__(self, reason: str):
        super().__init__(f"{reason}. Please refresh availability and pick another slot.")
        self.reason = reason
