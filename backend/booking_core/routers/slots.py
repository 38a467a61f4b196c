# backend/booking_core/routers/slots.py
"""
Slots API endpoints.

GET  /slots/preview      - Coarse per-date availability for a provider
POST /slots/batch-counts - Exact slot counts per date × duration
GET  /slots/on-demand    - Bookable slots for one date and duration
"""

from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.slots import (
    AvailabilityPreviewResponse,
    BatchCountsRequest,
    BatchCountsResponse,
    SlotsOnDemandResponse,
)
from ..services.slots import (
    AvailabilityValidationError,
    ProviderNotFoundError,
    get_availability_preview,
    get_batch_slot_counts,
    get_booking_config,
    get_slots_on_demand,
)


router = APIRouter(prefix="/slots", tags=["slots"])


def raise_http_error(exc: Exception):
    if isinstance(exc, ProviderNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, AvailabilityValidationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc


@router.get("/preview", response_model=AvailabilityPreviewResponse)
def get_preview(
    provider_id: int,
    start_date: date,
    end_date: date,
    durations: list[int] | None = Query(None),
    db: Session = Depends(get_db),
):
    """Coarse availability per date; the range is clamped to the booking horizon."""
    try:
        return get_availability_preview(
            db, provider_id, start_date, end_date,
            durations=durations,
            config=get_booking_config(),
        )
    except AvailabilityValidationError as e:
        raise_http_error(e)


@router.post("/batch-counts", response_model=BatchCountsResponse)
def post_batch_counts(
    data: BatchCountsRequest,
    db: Session = Depends(get_db),
):
    try:
        return get_batch_slot_counts(
            db, data.provider_id, data.dates, data.durations,
            config=get_booking_config(),
        )
    except AvailabilityValidationError as e:
        raise_http_error(e)


@router.get("/on-demand", response_model=SlotsOnDemandResponse)
def get_on_demand(
    provider_id: int,
    duration: int,
    target_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
):
    """Exact bookable slots for one provider-local date."""
    try:
        return get_slots_on_demand(
            db, provider_id, target_date, duration,
            config=get_booking_config(),
        )
    except AvailabilityValidationError as e:
        raise_http_error(e)
