# backend/salon_booking/schemas/waitlist.py

from datetime import date, datetime
from typing import Literal, Optional
from pydantic import BaseModel

from .customers import CustomerIn


class WaitlistCreate(BaseModel):
    business_id: int
    service_id: int
    date: date
    preferred_time_range: Literal["any", "morning", "afternoon", "evening"] = "any"
    customer: CustomerIn


class WaitlistRead(BaseModel):
    id: int
    business_id: int
    service_id: int
    date: date
    preferred_time_range: str
    customer_name: str
    customer_email: str
    notified_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
