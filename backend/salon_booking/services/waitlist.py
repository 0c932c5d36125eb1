# backend/salon_booking/services/waitlist.py
"""
Waitlist Fallback.

join_waitlist() is called by the client when availability for a day is
empty. Entries are unique per (business, service, customer email, date):
resubmitting updates the preferred time range instead of duplicating.

notify_waitlist_matches() runs when a booking is cancelled and emits a
waitlist_slot_opened event for the first matching entries. Delivery of the
notification itself happens in a downstream consumer.
"""

import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..exceptions import WaitlistValidationError
from ..models.generated import Services as DBService, WaitlistEntries as DBWaitlistEntry
from .events import BookingEvent, booking_payload, emit_event

logger = logging.getLogger(__name__)

NOTIFY_LIMIT = 3

# Hour predicates, [from, to)
TIME_RANGES = {
    "any": (0, 24),
    "morning": (8, 12),
    "afternoon": (12, 17),
    "evening": (17, 22),
}


def matches_time_range(preferred_time_range: str, hour: int) -> bool:
    start, end = TIME_RANGES.get(preferred_time_range, TIME_RANGES["any"])
    return start <= hour < end


def join_waitlist(
    db: Session,
    business_id: int,
    service_id: int,
    target_date: date,
    preferred_time_range: str,
    customer_name: str,
    customer_email: str,
    today: date | None = None,
) -> tuple[DBWaitlistEntry, bool]:
    """
    Create or update a waitlist entry.

    Returns:
        (entry, created); created is False when an existing entry was updated.

    Raises:
        WaitlistValidationError: unknown service, past date, bad range
    """
    today = today or date.today()

    if target_date < today:
        raise WaitlistValidationError("Date cannot be in the past")
    if preferred_time_range not in TIME_RANGES:
        raise WaitlistValidationError(f"Unknown preferred time range: {preferred_time_range}")

    service = db.get(DBService, service_id)
    if not service or not service.is_active or service.business_id != business_id:
        raise WaitlistValidationError("Service not found for this business")

    email = customer_email.strip().lower()
    date_str = target_date.isoformat()

    entry = _find_entry(db, business_id, service_id, email, date_str)
    if entry:
        _update_entry(entry, preferred_time_range, customer_name)
        db.commit()
        db.refresh(entry)
        logger.info(f"Waitlist entry {entry.id} updated ({preferred_time_range})")
        return entry, False

    entry = DBWaitlistEntry(
        business_id=business_id,
        service_id=service_id,
        date=date_str,
        preferred_time_range=preferred_time_range,
        customer_name=customer_name,
        customer_email=email,
    )
    db.add(entry)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent submission won the insert; fall back to updating it
        db.rollback()
        entry = _find_entry(db, business_id, service_id, email, date_str)
        if entry is None:
            raise
        _update_entry(entry, preferred_time_range, customer_name)
        db.commit()
        db.refresh(entry)
        return entry, False

    db.refresh(entry)
    logger.info(
        f"Waitlist entry {entry.id} created: business={business_id}, "
        f"service={service_id}, date={date_str}"
    )
    return entry, True


def notify_waitlist_matches(db: Session, booking, limit: int = NOTIFY_LIMIT) -> list[int]:
    """
    Emit waitlist_slot_opened for entries matching a freed booking slot.

    Returns:
        IDs of notified entries.
    """
    date_str = booking.start_at.date().isoformat()
    hour = booking.start_at.hour

    candidates = (
        db.query(DBWaitlistEntry)
        .filter(
            DBWaitlistEntry.business_id == booking.business_id,
            DBWaitlistEntry.service_id == booking.service_id,
            DBWaitlistEntry.date == date_str,
            DBWaitlistEntry.notified_at.is_(None),
        )
        .order_by(DBWaitlistEntry.created_at, DBWaitlistEntry.id)
        .all()
    )
    matches = [e for e in candidates if matches_time_range(e.preferred_time_range, hour)][:limit]

    if not matches:
        return []

    now = datetime.now()
    for entry in matches:
        entry.notified_at = now
    db.commit()

    for entry in matches:
        emit_event(BookingEvent.WAITLIST_SLOT_OPENED, booking_payload(
            booking,
            waitlist_entry_id=entry.id,
            customer_email=entry.customer_email,
        ))

    logger.info(f"Found {len(matches)} waitlist matches for cancelled booking {booking.id}")
    return [e.id for e in matches]


def _find_entry(db: Session, business_id: int, service_id: int, email: str, date_str: str):
    return (
        db.query(DBWaitlistEntry)
        .filter(
            DBWaitlistEntry.business_id == business_id,
            DBWaitlistEntry.service_id == service_id,
            DBWaitlistEntry.customer_email == email,
            DBWaitlistEntry.date == date_str,
        )
        .first()
    )


def _update_entry(entry: DBWaitlistEntry, preferred_time_range: str, customer_name: str) -> None:
    entry.preferred_time_range = preferred_time_range
    entry.customer_name = customer_name
    entry.notified_at = None
