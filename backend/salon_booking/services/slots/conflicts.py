# backend/salon_booking/services/slots/conflicts.py
"""
Conflict Detector: open ranges minus existing bookings → bookable start times.

A candidate start S is bookable when:
  - S lies on the slot grid (multiples of slot_step_minutes from midnight)
  - [S, S + duration) fits entirely inside one open range
  - [S, S + duration) does not intersect [b.start - buffer, b.end + buffer)
    for any occupying booking b
  - S >= not_before (advance-notice rule)
  - the staff member has fewer than max_bookings_per_day occupying bookings
    starting on that day
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from .schedule import TimeRange

OCCUPYING_STATUSES = frozenset({"pending", "confirmed", "in_progress"})


@dataclass(frozen=True)
class ExistingBooking:
    staff_id: int
    start_at: datetime
    end_at: datetime
    status: str

    @property
    def is_occupying(self) -> bool:
        return self.status in OCCUPYING_STATUSES


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval intersection."""
    return a_start < b_end and b_start < a_end


def find_open_starts(
    open_ranges: list[TimeRange],
    duration_minutes: int,
    buffer_minutes: int,
    bookings: list[ExistingBooking],
    step_minutes: int,
    not_before: datetime | None = None,
    max_bookings_per_day: int | None = None,
) -> list[datetime]:
    """
    Candidate start times, ascending.

    Args:
        open_ranges: Output of the Schedule Resolver for one staff/day
        duration_minutes: Service duration
        buffer_minutes: Gap enforced before and after every booking
        bookings: The staff member's bookings around that day (any status); the
            buffer-widened window can include the previous or next day
        step_minutes: Grid step
        not_before: Earliest allowed start (None = no restriction)
        max_bookings_per_day: Daily cap (None = unlimited)
    """
    if duration_minutes <= 0 or not open_ranges:
        return []

    occupying = [b for b in bookings if b.is_occupying]
    if max_bookings_per_day is not None:
        day = open_ranges[0].start.date()
        if sum(1 for b in occupying if b.start_at.date() == day) >= max_bookings_per_day:
            return []

    buffer = timedelta(minutes=max(buffer_minutes, 0))
    blocked = sorted(
        (b.start_at - buffer, b.end_at + buffer) for b in occupying
    )
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)

    starts: list[datetime] = []
    for open_range in open_ranges:
        t = _align_to_grid(open_range.start, step_minutes)
        while t + duration <= open_range.end:
            if not_before is not None and t < not_before:
                t += step
                continue
            if not any(overlaps(t, t + duration, b_start, b_end) for b_start, b_end in blocked):
                starts.append(t)
            t += step

    return sorted(starts)


def _align_to_grid(moment: datetime, step_minutes: int) -> datetime:
    """Round up to the next grid point (grid anchored at midnight)."""
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = (moment - midnight).total_seconds() / 60
    return midnight + timedelta(minutes=math.ceil(elapsed / step_minutes) * step_minutes)
