"""Shared test fixtures and helpers."""

import json
from datetime import date, datetime, timedelta
from itertools import count
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from salon_booking.exceptions import PaymentGatewayError
from salon_booking.models import Base
from salon_booking.models.generated import (
    Bookings,
    Businesses,
    Customers,
    Services,
    Staff,
    TimeOff,
    t_staff_services,
)
from salon_booking.services.payment_gateway import PaymentGateway
from salon_booking.services.slots import BookingConfig

# Monday
DAY = date(2026, 10, 19)
NOW = datetime(2026, 10, 18, 12, 0)


def week(start: str = "09:00", end: str = "17:00", breaks: list | None = None) -> str:
    """Same working hours every day of the week, as stored in Staff.work_schedule."""
    day = {"start": start, "end": end, "breaks": breaks or []}
    return json.dumps({name: day for name in ("mon", "tue", "wed", "thu", "fri", "sat", "sun")})


def at(hhmm: str, day: date = DAY) -> datetime:
    hour, minute = hhmm.split(":")
    return datetime.combine(day, datetime.min.time()).replace(hour=int(hour), minute=int(minute))


class FakeGateway(PaymentGateway):
    """Records every call; individual operations can be set to fail."""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.amounts: dict[str, float] = {}
        self.fail_on: set[str] = set()
        self.on_capture = None
        self._ids = count(1)

    def authorize(self, amount, currency, metadata):
        if "authorize" in self.fail_on:
            raise PaymentGatewayError("card declined")
        authorization_id = f"pi_test_{next(self._ids)}"
        self.amounts[authorization_id] = amount
        self.calls.append(("authorize", authorization_id))
        return authorization_id

    def capture(self, authorization_id):
        if "capture" in self.fail_on:
            raise PaymentGatewayError("insufficient funds")
        self.calls.append(("capture", authorization_id))
        if self.on_capture:
            self.on_capture()
        return self.amounts[authorization_id]

    def void(self, authorization_id):
        self.calls.append(("void", authorization_id))

    def refund(self, authorization_id):
        if "refund" in self.fail_on:
            raise PaymentGatewayError("refund rejected")
        self.calls.append(("refund", authorization_id))

    def ops(self) -> list[str]:
        return [op for op, _ in self.calls]


def _enable_foreign_keys(engine):
    @event.listens_for(engine, "connect")
    def _fk(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def two_sessions(tmp_path):
    """Two sessions on their own connections to one SQLite file, interleaved like concurrent requests."""
    engine = create_engine(f"sqlite:///{tmp_path / 'salon.db'}", connect_args={"check_same_thread": False})
    _enable_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    first, second = factory(), factory()
    yield first, second
    first.close()
    second.close()
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def redis_mock(monkeypatch):
    mock = MagicMock()
    monkeypatch.setattr("salon_booking.services.events.redis_client", mock)
    return mock


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def config():
    return BookingConfig(horizon_days=60, min_advance_minutes=60, slot_step_minutes=15, payment_hold_minutes=15)


def emitted(redis_mock) -> list[dict]:
    """Events pushed to the queue, decoded."""
    return [json.loads(c.args[1]) for c in redis_mock.rpush.call_args_list]


# ── Seed helpers ─────────────────────────────────────────────────────────


def add_business(db, **kwargs) -> Businesses:
    values = {
        "name": "Studio Nine",
        "deposit_type": "none",
        "deposit_value": 0,
        "require_deposit_always": 0,
        "no_show_prevention_enabled": 1,
        "risk_threshold": 70,
    }
    values.update(kwargs)
    business = Businesses(**values)
    db.add(business)
    db.commit()
    return business


def add_staff(db, business, schedule: str | None = None, buffer_minutes: int = 0, **kwargs) -> Staff:
    staff = Staff(
        business_id=business.id,
        full_name=kwargs.pop("full_name", "Alex"),
        work_schedule=schedule if schedule is not None else week(),
        buffer_minutes=buffer_minutes,
        **kwargs,
    )
    db.add(staff)
    db.commit()
    return staff


def add_service(db, business, staff: list, duration_min: int = 60, price: float = 50.0) -> Services:
    service = Services(business_id=business.id, name="Haircut", duration_min=duration_min, price=price)
    db.add(service)
    db.commit()
    for member in staff:
        db.execute(t_staff_services.insert().values(service_id=service.id, staff_id=member.id))
    db.commit()
    return service


def add_customer(db, business, email: str = "kim@example.com", created_at: datetime | None = None) -> Customers:
    customer = Customers(
        business_id=business.id,
        full_name="Kim",
        email=email,
        created_at=created_at or NOW - timedelta(days=365),
    )
    db.add(customer)
    db.commit()
    return customer


def add_booking(db, service, staff, customer, start: datetime, status: str = "confirmed") -> Bookings:
    booking = Bookings(
        business_id=service.business_id,
        service_id=service.id,
        staff_id=staff.id,
        customer_id=customer.id,
        start_at=start,
        end_at=start + timedelta(minutes=service.duration_min),
        duration_minutes=service.duration_min,
        status=status,
    )
    db.add(booking)
    db.commit()
    return booking


def add_time_off(db, business, start: datetime, end: datetime, staff=None) -> TimeOff:
    off = TimeOff(
        business_id=business.id,
        staff_id=staff.id if staff else None,
        start_at=start,
        end_at=end,
    )
    db.add(off)
    db.commit()
    return off
