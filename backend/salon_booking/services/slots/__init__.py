# backend/salon_booking/services/slots/__init__.py
"""
Slots calculation module.

schedule.py      Schedule Resolver (working hours, breaks, time off → open ranges)
conflicts.py     Conflict Detector (open ranges − buffered bookings → start times)
availability.py  Availability Aggregator (per staff or unioned for "any")
"""

from .config import BookingConfig, get_booking_config
from .schedule import (
    StaffAvailabilityProfile,
    TimeRange,
    WorkingDay,
    build_profile,
    parse_work_schedule,
    resolve_open_ranges,
)
from .conflicts import OCCUPYING_STATUSES, ExistingBooking, find_open_starts
from .availability import (
    ANY_STAFF,
    ServiceSpec,
    Slot,
    aggregate_slots,
    calculate_service_availability,
    find_slot,
    is_slot_available,
    load_service_spec,
    pick_staff_for_time,
)

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "StaffAvailabilityProfile",
    "TimeRange",
    "WorkingDay",
    "build_profile",
    "parse_work_schedule",
    "resolve_open_ranges",
    "OCCUPYING_STATUSES",
    "ExistingBooking",
    "find_open_starts",
    "ANY_STAFF",
    "ServiceSpec",
    "Slot",
    "aggregate_slots",
    "calculate_service_availability",
    "find_slot",
    "is_slot_available",
    "load_service_spec",
    "pick_staff_for_time",
]
