# backend/salon_booking/schemas/payments.py
"""
Pydantic schemas for payment-intents API.
"""

from datetime import datetime
from typing import Literal, Optional, Union
from pydantic import BaseModel

from .customers import CustomerIn


class PaymentIntentCreate(BaseModel):
    business_id: int
    service_id: int
    staff_id: Union[int, Literal["any"]] = "any"
    start_at: datetime

    # Without customer details the risk check treats the request as first-time
    customer: Optional[CustomerIn] = None


class PaymentIntentResponse(BaseModel):
    """
    Deposit decision for a chosen slot.

    authorization_id is None when no deposit is required; the client then
    books directly without a payment step.
    """
    authorization_id: Optional[str] = None
    deposit_required: bool
    deposit_amount: float
    deposit_reason: Optional[str] = None
    currency: str
    risk_score: int
    staff_id: int
    start_at: datetime
    expires_at: Optional[datetime] = None
