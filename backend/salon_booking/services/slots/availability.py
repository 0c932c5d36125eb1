# backend/salon_booking/services/slots/availability.py
"""
Availability Aggregator.

Runs Schedule Resolver + Conflict Detector per eligible staff member and
merges the results into {"HH:MM": [staff_id, ...]} (chronological keys,
staff ids in eligibility order).

Nothing is cached: every call recomputes from current bookings, so a
freshly created or cancelled booking is reflected immediately.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from ...exceptions import InvalidServiceConfiguration
from .config import BookingConfig, get_booking_config
from .conflicts import OCCUPYING_STATUSES, ExistingBooking, find_open_starts
from .schedule import TimeRange, build_profile, resolve_open_ranges

logger = logging.getLogger(__name__)

ANY_STAFF = "any"


@dataclass(frozen=True)
class ServiceSpec:
    service_id: int
    business_id: int
    duration_minutes: int
    price: float
    eligible_staff_ids: tuple[int, ...]


@dataclass(frozen=True)
class Slot:
    start_at: datetime
    end_at: datetime
    staff_id: int


def parse_staff_selector(value) -> str | int | None:
    """
    Normalize a staff selector: "any"/None → "any", numeric → int.

    Returns None for unparsable input (treated as "no such staff").
    """
    if value is None:
        return ANY_STAFF
    if isinstance(value, int):
        return value
    value = str(value).strip().lower()
    if value in ("", ANY_STAFF):
        return ANY_STAFF
    try:
        return int(value)
    except ValueError:
        return None


def load_service_spec(db: Session, service_id: int, business_id: int | None = None) -> ServiceSpec | None:
    """
    Build a ServiceSpec.

    Returns None for unknown/inactive services (or another business's).

    Raises:
        InvalidServiceConfiguration: service exists but has no eligible staff
    """
    service = _get_service(db, service_id)
    if not service:
        return None
    if business_id is not None and service.business_id != business_id:
        return None

    staff_ids = _get_eligible_staff_ids(db, service_id)
    if not staff_ids:
        raise InvalidServiceConfiguration(f"Service {service_id} has no eligible staff configured")

    return ServiceSpec(
        service_id=service.id,
        business_id=service.business_id,
        duration_minutes=service.duration_min,
        price=service.price,
        eligible_staff_ids=tuple(staff_ids),
    )


def resolve_staff_ids(service: ServiceSpec, staff) -> list[int]:
    """Staff members to evaluate for a request: all eligible for "any", else the named one if eligible."""
    selector = parse_staff_selector(staff)
    if selector == ANY_STAFF:
        return list(service.eligible_staff_ids)
    if selector in service.eligible_staff_ids:
        return [selector]
    return []


def staff_open_starts(
    db: Session,
    staff_id: int,
    service: ServiceSpec,
    target_date: date,
    config: BookingConfig,
    not_before: datetime | None,
) -> list[datetime]:
    """Bookable start times for one staff member on target_date."""
    staff = _get_staff(db, staff_id)
    if not staff or not staff.is_active or staff.business_id != service.business_id:
        return []

    profile = build_profile(staff)
    time_off = _get_time_off(db, staff.business_id, staff.id, target_date)
    open_ranges = resolve_open_ranges(profile, target_date, time_off)
    if not open_ranges:
        return []

    bookings = _get_staff_bookings(db, staff.id, target_date, profile.buffer_minutes)

    return find_open_starts(
        open_ranges,
        duration_minutes=service.duration_minutes,
        buffer_minutes=profile.buffer_minutes,
        bookings=bookings,
        step_minutes=config.slot_step_minutes,
        not_before=not_before,
        max_bookings_per_day=profile.max_bookings_per_day,
    )


def aggregate_slots(
    per_staff: dict[int, list[datetime]],
    staff_order: list[int],
) -> dict[str, list[int]]:
    """Merge per-staff start times into {"HH:MM": [staff_id, ...]}."""
    by_start: dict[datetime, list[int]] = {}
    for staff_id in staff_order:
        for start in per_staff.get(staff_id, []):
            by_start.setdefault(start, []).append(staff_id)

    return {
        start.strftime("%H:%M"): staff_ids
        for start, staff_ids in sorted(by_start.items())
    }


def pick_staff_for_time(slots: dict[str, list[int]], time_str: str) -> int | None:
    """First listed staff member wins for "any" requests."""
    staff_ids = slots.get(time_str) or []
    return staff_ids[0] if staff_ids else None


def calculate_service_availability(
    db: Session,
    business_id: int,
    service_id: int,
    target_date: date,
    staff="any",
    config: BookingConfig | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Calculate available start times for a service on a day.

    Bad input (unknown service, ineligible staff, past date) yields an
    empty slot map, never an error.

    Returns:
        Dict for AvailabilityResponse.
    """
    config = config or get_booking_config()
    now = now or datetime.now()

    result = {
        "business_id": business_id,
        "service_id": service_id,
        "staff": str(staff if staff is not None else ANY_STAFF),
        "date": target_date.isoformat(),
        "service_duration_min": 0,
        "slot_step_minutes": config.slot_step_minutes,
        "slots": {},
    }

    if not config.is_within_horizon(target_date, now.date()):
        return result

    service = load_service_spec(db, service_id, business_id)
    if service is None:
        return result
    result["service_duration_min"] = service.duration_minutes

    staff_ids = resolve_staff_ids(service, staff)
    not_before = config.earliest_start(now)
    per_staff = {
        staff_id: staff_open_starts(db, staff_id, service, target_date, config, not_before)
        for staff_id in staff_ids
    }

    result["slots"] = aggregate_slots(per_staff, staff_ids)
    return result


def find_slot(
    db: Session,
    service: ServiceSpec,
    staff,
    start_at: datetime,
    config: BookingConfig | None = None,
    not_before: datetime | None = None,
) -> Slot | None:
    """
    Re-validate one start time for one staff member (or the first free one for "any").

    Returns:
        The Slot when bookable, otherwise None.
    """
    config = config or get_booking_config()
    staff_ids = resolve_staff_ids(service, staff)
    end_at = start_at + timedelta(minutes=service.duration_minutes)

    for staff_id in staff_ids:
        starts = staff_open_starts(db, staff_id, service, start_at.date(), config, not_before)
        if start_at in starts:
            return Slot(start_at=start_at, end_at=end_at, staff_id=staff_id)

    return None


def is_slot_available(
    db: Session,
    service: ServiceSpec,
    staff_id: int,
    start_at: datetime,
    config: BookingConfig | None = None,
    not_before: datetime | None = None,
) -> bool:
    """Check if a specific staff member can take start_at."""
    return find_slot(db, service, staff_id, start_at, config, not_before) is not None


# ── Database helpers ─────────────────────────────────────────────────────


def _get_service(db: Session, service_id: int):
    """Get active service by ID."""
    from ...models.generated import Services
    return db.query(Services).filter(
        Services.id == service_id,
        Services.is_active == 1
    ).first()


def _get_staff(db: Session, staff_id: int):
    from ...models.generated import Staff
    return db.get(Staff, staff_id)


def _get_eligible_staff_ids(db: Session, service_id: int) -> list[int]:
    """Active staff who provide this service, ordered by id."""
    from ...models.generated import Staff, t_staff_services

    rows = (
        db.query(Staff.id)
        .join(t_staff_services, Staff.id == t_staff_services.c.staff_id)
        .filter(
            t_staff_services.c.service_id == service_id,
            t_staff_services.c.is_active == 1,
            Staff.is_active == 1,
        )
        .order_by(Staff.id)
        .all()
    )
    return [row[0] for row in rows]


def _day_window(target_date: date, pad_minutes: int = 0) -> tuple[datetime, datetime]:
    start = datetime.combine(target_date, time.min)
    pad = timedelta(minutes=pad_minutes)
    return start - pad, start + timedelta(days=1) + pad


def _get_time_off(db: Session, business_id: int, staff_id: int, target_date: date) -> list[TimeRange]:
    """Time off for the staff member or the whole business intersecting target_date."""
    from ...models.generated import TimeOff

    day_start, day_end = _day_window(target_date)
    rows = (
        db.query(TimeOff)
        .filter(
            TimeOff.business_id == business_id,
            (TimeOff.staff_id == staff_id) | (TimeOff.staff_id.is_(None)),
            TimeOff.start_at < day_end,
            TimeOff.end_at > day_start,
        )
        .all()
    )
    return [TimeRange(row.start_at, row.end_at) for row in rows if row.start_at < row.end_at]


def _get_staff_bookings(
    db: Session,
    staff_id: int,
    target_date: date,
    buffer_minutes: int,
) -> list[ExistingBooking]:
    """Occupying bookings whose buffered span touches target_date."""
    from ...models.generated import Bookings

    window_start, window_end = _day_window(target_date, buffer_minutes)
    rows = (
        db.query(Bookings)
        .filter(
            Bookings.staff_id == staff_id,
            Bookings.status.in_(sorted(OCCUPYING_STATUSES)),
            Bookings.start_at < window_end,
            Bookings.end_at > window_start,
        )
        .order_by(Bookings.start_at)
        .all()
    )
    return [
        ExistingBooking(
            staff_id=row.staff_id,
            start_at=row.start_at,
            end_at=row.end_at,
            status=row.status,
        )
        for row in rows
    ]
