# backend/salon_booking/routers/waitlist.py

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.waitlist import WaitlistCreate, WaitlistRead
from ..services.waitlist import join_waitlist

router = APIRouter(prefix="/waitlist", tags=["waitlist"])


@router.post("", response_model=WaitlistRead, status_code=status.HTTP_201_CREATED)
def create_waitlist_entry(
    data: WaitlistCreate,
    response: Response,
    db: Session = Depends(get_db),
):
    """Join the waitlist; resubmitting for the same day updates the entry (200)."""
    entry, created = join_waitlist(
        db,
        business_id=data.business_id,
        service_id=data.service_id,
        target_date=data.date,
        preferred_time_range=data.preferred_time_range,
        customer_name=data.customer.full_name,
        customer_email=data.customer.email,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return entry
