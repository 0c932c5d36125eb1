"""Tests for the payment hold expiry sweep."""

from datetime import datetime, timedelta

from salon_booking.models.generated import BookingAttempts
from salon_booking.services import hold_expiry
from tests.conftest import add_business, add_service, add_staff


def test_sweep_voids_expired_hold(db, session_factory, gateway, monkeypatch):
    business = add_business(db)
    service = add_service(db, business, [add_staff(db, business)])
    attempt = BookingAttempts(
        business_id=business.id,
        service_id=service.id,
        staff_id=service.business.staff[0].id,
        start_at=datetime(2026, 10, 19, 10),
        end_at=datetime(2026, 10, 19, 11),
        state="AWAITING_PAYMENT",
        authorization_id="pi_stale",
        deposit_amount=20.0,
        expires_at=datetime.now() - timedelta(minutes=1),
    )
    db.add(attempt)
    db.commit()

    monkeypatch.setattr(hold_expiry, "SessionLocal", session_factory)
    monkeypatch.setattr(hold_expiry, "get_payment_gateway", lambda: gateway)

    hold_expiry._abort_expired_holds()

    db.refresh(attempt)
    assert attempt.state == "ABORTED"
    assert gateway.calls == [("void", "pi_stale")]
