"""Tests for the Conflict Detector."""

from datetime import timedelta

from salon_booking.services.slots.conflicts import ExistingBooking, find_open_starts
from salon_booking.services.slots.schedule import TimeRange
from tests.conftest import at


def booking(start: str, end: str, status: str = "confirmed") -> ExistingBooking:
    return ExistingBooking(staff_id=1, start_at=at(start), end_at=at(end), status=status)


def starts(open_ranges, duration=60, buffer=0, bookings=(), step=15, **kwargs) -> list[str]:
    result = find_open_starts(open_ranges, duration, buffer, list(bookings), step, **kwargs)
    return [s.strftime("%H:%M") for s in result]


DAY_RANGE = [TimeRange(at("09:00"), at("12:00"))]


class TestGrid:
    def test_every_step_that_fits(self):
        assert starts(DAY_RANGE, duration=60, step=60) == ["09:00", "10:00", "11:00"]

    def test_last_start_fits_exactly(self):
        assert starts(DAY_RANGE, duration=60, step=15)[-1] == "11:00"

    def test_grid_is_anchored_at_midnight(self):
        ranges = [TimeRange(at("09:10"), at("11:00"))]
        assert starts(ranges, duration=30, step=30) == ["09:30", "10:00", "10:30"]

    def test_duration_longer_than_range(self):
        assert starts(DAY_RANGE, duration=240) == []

    def test_duration_never_spans_a_break(self):
        ranges = [TimeRange(at("09:00"), at("10:30")), TimeRange(at("11:00"), at("12:00"))]
        assert starts(ranges, duration=60, step=30) == ["09:00", "09:30", "11:00"]


class TestBookings:
    def test_overlapping_booking_blocks_starts(self):
        result = starts(DAY_RANGE, duration=60, step=30, bookings=[booking("10:00", "11:00")])
        assert result == ["09:00", "11:00"]

    def test_adjacent_booking_does_not_block_without_buffer(self):
        assert "10:00" in starts(DAY_RANGE, duration=60, bookings=[booking("09:00", "10:00")])

    def test_buffer_is_applied_both_sides(self):
        result = starts(DAY_RANGE, duration=60, buffer=15, bookings=[booking("10:00", "11:00")])
        assert "09:00" not in result
        assert "11:00" not in result

    def test_cancelled_booking_does_not_block(self):
        result = starts(DAY_RANGE, duration=60, step=60, bookings=[booking("10:00", "11:00", "cancelled")])
        assert result == ["09:00", "10:00", "11:00"]

    def test_no_start_collides_with_buffered_booking(self):
        existing = [booking("09:30", "10:15")]
        for s in find_open_starts(DAY_RANGE, 45, 10, existing, 15):
            end = s + timedelta(minutes=45)
            assert not (s < at("10:25") and at("09:20") < end)


class TestLimits:
    def test_not_before_skips_early_starts(self):
        assert starts(DAY_RANGE, duration=60, step=60, not_before=at("09:45")) == ["10:00", "11:00"]

    def test_daily_cap_reached(self):
        result = starts(DAY_RANGE, bookings=[booking("09:00", "09:30")], duration=30, max_bookings_per_day=1)
        assert result == []

    def test_cancelled_bookings_do_not_count_towards_cap(self):
        result = starts(
            DAY_RANGE, duration=60, step=60,
            bookings=[booking("09:00", "10:00", "cancelled")],
            max_bookings_per_day=1,
        )
        assert result == ["09:00", "10:00", "11:00"]

    def test_previous_day_booking_does_not_count_towards_cap(self):
        late_night = ExistingBooking(
            staff_id=1, start_at=at("23:30") - timedelta(days=1), end_at=at("00:15"), status="confirmed"
        )
        result = starts(DAY_RANGE, duration=60, step=60, buffer=15, bookings=[late_night], max_bookings_per_day=1)
        assert result == ["09:00", "10:00", "11:00"]

    def test_results_sorted(self):
        ranges = [TimeRange(at("13:00"), at("14:00")), TimeRange(at("09:00"), at("10:00"))]
        assert starts(ranges, duration=60) == ["09:00", "13:00"]
