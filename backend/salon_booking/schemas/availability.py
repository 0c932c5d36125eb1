# backend/salon_booking/schemas/availability.py
"""
Pydantic schemas for availability API.
"""

from datetime import date
from pydantic import BaseModel, Field


class AvailabilityResponse(BaseModel):
    """Bookable start times for one service on one day."""
    business_id: int
    service_id: int
    staff: str = Field(description='"any" or a staff id')
    date: date
    service_duration_min: int
    slot_step_minutes: int = Field(description="Grid step in minutes (15/30/60)")

    # {"HH:MM": [staff_id, ...]} in chronological order
    slots: dict[str, list[int]]

    model_config = {"from_attributes": True}
