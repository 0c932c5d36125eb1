# backend/salon_booking/routers/bookings.py

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.generated import Bookings as DBBookings
from ..schemas.bookings import (
    BookingCancel,
    BookingCreate,
    BookingRead,
)
from ..services.booking_coordinator import BookingCoordinator, BookingRequest, CustomerInfo
from ..services.payment_gateway import PaymentGateway, get_payment_gateway

router = APIRouter(prefix="/bookings", tags=["bookings"])


def get_coordinator(
    db: Session = Depends(get_db),
    gateway: PaymentGateway | None = Depends(get_payment_gateway),
) -> BookingCoordinator:
    return BookingCoordinator(db, gateway)


@router.get("/{id}", response_model=BookingRead)
def get_booking(id: int, db: Session = Depends(get_db)):
    obj = db.get(DBBookings, id)
    if not obj:
        raise HTTPException(status_code=404, detail="Not found")
    return obj


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    """
    Commit a booking.

    With payment_authorization_id the deposit hold is captured first;
    without it the request must not need a deposit (402 otherwise).
    Losing the slot at commit time answers 409 with retryable=true.
    """
    request = BookingRequest(
        business_id=data.business_id,
        service_id=data.service_id,
        staff=data.staff_id,
        start_at=data.start_at,
        customer=CustomerInfo(**data.customer.model_dump()),
    )

    if data.payment_authorization_id:
        return coordinator.confirm_payment(data.payment_authorization_id, request)

    quote = coordinator.quote(request)
    return coordinator.book_without_deposit(quote)


@router.patch("/{id}/cancel", response_model=BookingRead)
def cancel_booking(
    id: int,
    data: BookingCancel | None = None,
    coordinator: BookingCoordinator = Depends(get_coordinator),
):
    return coordinator.cancel_booking(id, data.reason if data else None)


@router.delete("/{id}")
def delete_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )
