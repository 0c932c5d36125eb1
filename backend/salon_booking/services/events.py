"""
backend/salon_booking/services/events.py

Booking events for out-of-process consumers (notifications, calendar sync,
support alerts). Each event is one JSON message on the Redis list
`events:p2p`:

    {"type": "<BookingEvent>", ...payload, "ts": <unix seconds>}

Events about a booking share the fields built by booking_payload();
payment_incident carries the money that moved without a booking.
"""

import json
import time
import logging
from enum import Enum

from ..redis_client import redis_client

logger = logging.getLogger(__name__)

EVENTS_QUEUE = "events:p2p"


class BookingEvent(str, Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_CANCELLED = "booking_cancelled"
    # One per matched waitlist entry
    WAITLIST_SLOT_OPENED = "waitlist_slot_opened"
    # Deposit captured but not backed by a booking; needs a human
    PAYMENT_INCIDENT = "payment_incident"


def booking_payload(booking, **extra) -> dict:
    """Slot identity of a booking, plus event-specific fields."""
    return {
        "booking_id": booking.id,
        "business_id": booking.business_id,
        "service_id": booking.service_id,
        "staff_id": booking.staff_id,
        "start_at": booking.start_at.isoformat(),
        **extra,
    }


def payment_incident_payload(attempt_id: int, authorization_id: str, amount: float | None, error: str) -> dict:
    return {
        "attempt_id": attempt_id,
        "authorization_id": authorization_id,
        "amount": amount,
        "error": error,
    }


def emit_event(event: BookingEvent, payload: dict) -> None:
    """
    Push an event onto the queue.

    Called after the related write is committed, so a Redis failure is
    logged and swallowed instead of failing the booking.
    """
    message = {"type": event.value, **payload, "ts": int(time.time())}
    try:
        redis_client.rpush(EVENTS_QUEUE, json.dumps(message, default=str))
        logger.info(f"Event emitted: {event.value} → {EVENTS_QUEUE}")
    except Exception as e:
        logger.error(f"Failed to emit event {event.value}: {e}")
