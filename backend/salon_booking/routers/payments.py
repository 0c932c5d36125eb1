# backend/salon_booking/routers/payments.py
"""
Payment intents.

POST /payment-intents runs the risk check for a chosen slot and, when a
deposit is needed, places a hold that must be captured via POST /bookings
before it expires.
"""

from fastapi import APIRouter, Depends

from ..config import settings
from ..schemas.payments import PaymentIntentCreate, PaymentIntentResponse
from ..services.booking_coordinator import BookingCoordinator, BookingRequest, CustomerInfo
from .bookings import get_coordinator

router = APIRouter(prefix="/payment-intents", tags=["payments"])


@router.post("", response_model=PaymentIntentResponse)
def create_payment_intent(
    data: PaymentIntentCreate,
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    request = BookingRequest(
        business_id=data.business_id,
        service_id=data.service_id,
        staff=data.staff_id,
        start_at=data.start_at,
        customer=CustomerInfo(**data.customer.model_dump()) if data.customer else None,
    )
    quote = coordinator.quote(request)
    assessment = quote.assessment

    response = PaymentIntentResponse(
        deposit_required=assessment.deposit_required,
        deposit_amount=assessment.deposit_amount,
        deposit_reason=assessment.deposit_reason or None,
        currency=quote.business.currency or settings.payment_currency,
        risk_score=assessment.score,
        staff_id=quote.slot.staff_id,
        start_at=quote.slot.start_at,
    )
    if not assessment.deposit_required:
        return response

    attempt = coordinator.open_payment(quote)
    response.authorization_id = attempt.authorization_id
    response.expires_at = attempt.expires_at
    return response
