# backend/salon_booking/services/slots/schedule.py
"""
Schedule Resolver: staff weekly working hours → open time ranges for a date.

work_schedule JSON (Staff.work_schedule):
{
  "mon": {"start": "09:00", "end": "17:00",
          "breaks": [{"start": "12:00", "end": "13:00"}]},
  "tue": {"is_working": false},
  "sun": null,            // day off
  ...
}
Numeric keys "0".."6" (0 = Monday) are accepted as well.
Breaks may also be given as ["12:00", "13:00"] pairs.

Malformed days are never surfaced to the caller: they are logged and
treated as non-working.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from ...exceptions import InvalidScheduleInput
from .config import at_minutes, time_str_to_minutes

logger = logging.getLogger(__name__)

DAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


@dataclass(frozen=True)
class TimeRange:
    """Half-open interval [start, end)."""
    start: datetime
    end: datetime

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end


@dataclass(frozen=True)
class WorkingDay:
    """One weekday of a staff schedule, times in minutes since midnight."""
    is_working: bool = False
    start_min: int = 0
    end_min: int = 0
    breaks: tuple[tuple[int, int], ...] = ()


NON_WORKING = WorkingDay()


@dataclass(frozen=True)
class StaffAvailabilityProfile:
    """Seven working days plus booking limits. Read-only to the engine."""
    staff_id: int
    days: dict[int, WorkingDay] = field(default_factory=dict)
    buffer_minutes: int = 0
    max_bookings_per_day: int | None = None

    def day(self, target_date: date) -> WorkingDay:
        return self.days.get(target_date.weekday(), NON_WORKING)


# ── Parsing ──────────────────────────────────────────────────────────────


def parse_working_day(value) -> WorkingDay:
    """
    Parse a single day entry.

    Raises:
        InvalidScheduleInput: unparsable times or wrong shape
    """
    if value is None:
        return NON_WORKING
    if not isinstance(value, dict):
        raise InvalidScheduleInput(f"Day entry must be an object or null, got {value!r}")

    if not value.get("is_working", True):
        return NON_WORKING

    start = value.get("start") or value.get("start_time")
    end = value.get("end") or value.get("end_time")
    if not start or not end:
        raise InvalidScheduleInput("Working day requires start and end")

    breaks = []
    for item in value.get("breaks") or []:
        if isinstance(item, dict):
            b_start = item.get("start") or item.get("start_time")
            b_end = item.get("end") or item.get("end_time")
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            b_start, b_end = item
        else:
            raise InvalidScheduleInput(f"Invalid break entry: {item!r}")
        if not b_start or not b_end:
            raise InvalidScheduleInput(f"Invalid break entry: {item!r}")
        breaks.append(_parse_pair(b_start, b_end))

    start_min, end_min = _parse_pair(start, end)
    return WorkingDay(
        is_working=True,
        start_min=start_min,
        end_min=end_min,
        breaks=tuple(sorted(breaks)),
    )


def parse_work_schedule(raw: str | dict | None, staff_id: int | None = None) -> dict[int, WorkingDay]:
    """
    Parse a weekly schedule into {weekday: WorkingDay}.

    A day that cannot be parsed becomes non-working (logged).
    """
    if isinstance(raw, str):
        try:
            schedule = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            logger.warning(f"Staff {staff_id}: work_schedule is not valid JSON, treating as non-working")
            schedule = {}
    else:
        schedule = raw or {}

    if not isinstance(schedule, dict):
        logger.warning(f"Staff {staff_id}: work_schedule must be an object, treating as non-working")
        return {}

    days: dict[int, WorkingDay] = {}
    for weekday, day_name in enumerate(DAY_NAMES):
        # Numeric keys first, then named keys
        if str(weekday) in schedule:
            value = schedule[str(weekday)]
        elif day_name in schedule:
            value = schedule[day_name]
        else:
            continue

        try:
            days[weekday] = parse_working_day(value)
        except InvalidScheduleInput as e:
            logger.warning(f"Staff {staff_id}: invalid schedule for {day_name} ({e}), treating as non-working")
            days[weekday] = NON_WORKING

    return days


def build_profile(staff) -> StaffAvailabilityProfile:
    """Build an availability profile from a Staff row."""
    return StaffAvailabilityProfile(
        staff_id=staff.id,
        days=parse_work_schedule(staff.work_schedule, staff.id),
        buffer_minutes=max(staff.buffer_minutes or 0, 0),
        max_bookings_per_day=staff.max_bookings_per_day,
    )


# ── Resolution ───────────────────────────────────────────────────────────


def resolve_open_ranges(
    profile: StaffAvailabilityProfile,
    target_date: date,
    time_off: list[TimeRange] | tuple[TimeRange, ...] = (),
) -> list[TimeRange]:
    """
    Open ranges for a staff member on target_date.

    Returns:
        Sorted, non-overlapping ranges inside [start, end]. Empty when
        the day is non-working or its definition is malformed.
    """
    day = profile.day(target_date)
    if not day.is_working:
        return []

    try:
        _validate_day(day)
    except InvalidScheduleInput as e:
        logger.warning(
            f"Staff {profile.staff_id}: {e} on {target_date.isoformat()}, treating as non-working"
        )
        return []

    ranges = [TimeRange(at_minutes(target_date, day.start_min), at_minutes(target_date, day.end_min))]

    for b_start, b_end in day.breaks:
        ranges = subtract_range(
            ranges,
            TimeRange(at_minutes(target_date, b_start), at_minutes(target_date, b_end)),
        )

    for off in sorted(time_off, key=lambda r: r.start):
        ranges = subtract_range(ranges, off)

    return ranges


def subtract_range(ranges: list[TimeRange], cut: TimeRange) -> list[TimeRange]:
    """Remove `cut` from every range, splitting into up to two parts; zero-length parts are dropped."""
    result: list[TimeRange] = []
    for r in ranges:
        if cut.end <= r.start or cut.start >= r.end:
            result.append(r)
            continue
        if cut.start > r.start:
            result.append(TimeRange(r.start, cut.start))
        if cut.end < r.end:
            result.append(TimeRange(cut.end, r.end))
    return result


# ── Helpers ──────────────────────────────────────────────────────────────


def _parse_pair(start: str, end: str) -> tuple[int, int]:
    try:
        return time_str_to_minutes(start), time_str_to_minutes(end)
    except (ValueError, AttributeError):
        raise InvalidScheduleInput(f"Invalid time range: {start!r}-{end!r}") from None


def _validate_day(day: WorkingDay) -> None:
    if day.start_min >= day.end_min:
        raise InvalidScheduleInput("working hours start must be before end")

    previous_end = day.start_min
    for b_start, b_end in day.breaks:
        if b_start >= b_end:
            raise InvalidScheduleInput("break start must be before end")
        if b_start < day.start_min or b_end > day.end_min:
            raise InvalidScheduleInput("break lies outside working hours")
        if b_start < previous_end:
            raise InvalidScheduleInput("breaks overlap")
        previous_end = b_end
