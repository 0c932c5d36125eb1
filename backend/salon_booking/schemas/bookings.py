# backend/salon_booking/schemas/bookings.py

import json
from datetime import datetime
from typing import Literal, Optional, Union
from pydantic import BaseModel, Field, field_validator

from .customers import CustomerIn


class BookingCreate(BaseModel):
    business_id: int
    service_id: int
    staff_id: Union[int, Literal["any"]] = "any"
    start_at: datetime

    customer: CustomerIn

    # Returned by POST /payment-intents when a deposit is required
    payment_authorization_id: Optional[str] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class BookingRead(BaseModel):
    id: int

    business_id: int
    service_id: int
    staff_id: int
    customer_id: int

    start_at: datetime
    end_at: datetime
    duration_minutes: int

    status: str
    payment_status: str
    captured_amount: float = 0.0

    risk_score: Optional[int] = None
    risk_factors: list[str] = []
    deposit_reason: Optional[str] = None
    cancel_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("risk_factors", mode="before")
    @classmethod
    def parse_risk_factors(cls, v):
        if isinstance(v, str):
            return json.loads(v or "[]")
        return v or []
