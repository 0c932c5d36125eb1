# backend/salon_booking/routers/availability.py
"""
Availability API endpoint.

GET /availability - bookable start times for a service on a day,
for one staff member or "any" (union across eligible staff).
"""

from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.availability import AvailabilityResponse
from ..services.slots import calculate_service_availability


router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("", response_model=AvailabilityResponse)
def get_availability(
    business_id: int,
    service_id: int,
    target_date: date = Query(..., alias="date"),
    staff: str = Query("any", description='"any" or a staff id'),
    db: Session = Depends(get_db),
):
    """
    Slots are recalculated on every request; nothing is reserved.

    Unknown services, staff who don't provide the service and dates outside
    the booking horizon all give an empty slot map.
    """
    return calculate_service_availability(
        db,
        business_id=business_id,
        service_id=service_id,
        target_date=target_date,
        staff=staff,
    )
