# backend/booking_core/routers/bookings.py
# Bookings are created only through /reserve and moved through /reschedule (both conflict-checked)

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.generated import Bookings as DBBookings
from ..schemas.bookings import (
    BookingRead,
    BookingReschedule,
    BookingReserve,
)
from ..services.slots import (
    AvailabilityValidationError,
    BookingNotFoundError,
    SlotConflictError,
    get_booking_config,
    reschedule_booking,
    validate_and_reserve_slot,
)
from .slots import raise_http_error

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("/{id}", response_model=BookingRead)
def get_booking(id: int, db: Session = Depends(get_db)):
    obj = db.get(DBBookings, id)
    if not obj:
        raise HTTPException(status_code=404, detail="Not found")
    return obj


@router.post("/reserve", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def reserve_booking(
    data: BookingReserve,
    db: Session = Depends(get_db),
):
    try:
        return validate_and_reserve_slot(
            db,
            provider_id=data.provider_id,
            start=data.scheduled_at,
            duration=data.duration,
            event_id=data.calendar_event_id,
            customer=data.customer(),
            config=get_booking_config(),
        )
    except SlotConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except AvailabilityValidationError as e:
        raise_http_error(e)


@router.post("/{id}/reschedule", response_model=BookingRead)
def reschedule(
    id: int,
    data: BookingReschedule,
    db: Session = Depends(get_db),
):
    try:
        return reschedule_booking(
            db,
            booking_id=id,
            new_start=data.scheduled_at,
            event_id=data.calendar_event_id,
            config=get_booking_config(),
        )
    except BookingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except SlotConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except AvailabilityValidationError as e:
        raise_http_error(e)

