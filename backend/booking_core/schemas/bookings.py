# backend/booking_core/schemas/bookings.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class BookingReserve(BaseModel):
    provider_id: int
    scheduled_at: datetime  # naive values are read as UTC
    duration: int = Field(gt=0)
    calendar_event_id: Optional[int] = None

    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    service_type: Optional[str] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}

    def customer(self) -> dict:
        return {
            "name": self.customer_name,
            "email": self.customer_email,
            "service_type": self.service_type,
            "notes": self.notes,
        }


class BookingReschedule(BaseModel):
    scheduled_at: datetime
    calendar_event_id: Optional[int] = None


class BookingRead(BaseModel):
    id: int

    provider_id: int
    scheduled_at: datetime
    duration: int
    status: str
    calendar_event_id: Optional[int] = None

    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    service_type: Optional[str] = None
    notes: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
