"""
Payment hold expiry sweep.

Periodically aborts booking attempts stuck in AWAITING_PAYMENT past their
expires_at and voids their deposit holds, so an abandoned checkout never
leaves money authorized.

Runs as an asyncio task in backend lifespan.
Uses synchronous DB and gateway calls (via asyncio.to_thread).
"""

import asyncio
import logging
from datetime import datetime

from ..config import settings
from ..database import SessionLocal
from .booking_coordinator import BookingCoordinator
from .payment_gateway import get_payment_gateway

logger = logging.getLogger(__name__)


async def hold_expiry_loop() -> None:
    """Periodic loop that aborts expired payment holds."""
    logger.info("hold_expiry_loop started")

    try:
        while True:
            try:
                await asyncio.to_thread(_abort_expired_holds)
            except asyncio.CancelledError:
                logger.info("hold_expiry_loop cancelled")
                raise
            except Exception:
                logger.exception("hold_expiry_loop error")

            await asyncio.sleep(settings.hold_sweep_interval_seconds)
    except asyncio.CancelledError:
        pass


def _abort_expired_holds() -> None:
    db = SessionLocal()
    try:
        coordinator = BookingCoordinator(db, get_payment_gateway())
        aborted = coordinator.abort_expired(datetime.now())
        if aborted:
            logger.info(f"Expired payment holds aborted: {aborted}")
    finally:
        db.close()
