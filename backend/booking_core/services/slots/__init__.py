# backend/booking_core/services/slots/__init__.py
"""
Availability resolution and conflict detection.

Read paths (snapshot-based, no writes):
  get_slots_on_demand        exact slots for one date
  get_availability_preview   coarse per-date summary
  get_batch_slot_counts      exact counts per date × duration

Write path:
  validate_and_reserve_slot / reschedule_booking
"""

from .config import BookingConfig, get_booking_config
from .errors import (
    AvailabilityError,
    AvailabilityValidationError,
    BookingNotFoundError,
    ProviderNotFoundError,
    SlotConflictError,
    TimezoneResolutionError,
)
from .calculator import generate_start_times
from .recurrence import RecurrenceResolver
from .conflicts import ConflictDetector
from .timezone import TimezoneConverter
from .store import AvailabilityStore
from .availability import get_slots_on_demand
from .preview import get_availability_preview, get_batch_slot_counts
from .reservation import reschedule_booking, validate_and_reserve_slot

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "AvailabilityError",
    "AvailabilityValidationError",
    "BookingNotFoundError",
    "ProviderNotFoundError",
    "SlotConflictError",
    "TimezoneResolutionError",
    "generate_start_times",
    "RecurrenceResolver",
    "ConflictDetector",
    "TimezoneConverter",
    "AvailabilityStore",
    "get_slots_on_demand",
    "get_availability_preview",
    "get_batch_slot_counts",
    "reschedule_booking",
    "validate_and_reserve_slot",
]
