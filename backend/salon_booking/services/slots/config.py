# backend/salon_booking/services/slots/config.py
"""
Booking configuration for slots calculation.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from functools import lru_cache


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for booking/slots system.

    Attributes:
        horizon_days: How many days ahead availability is offered
        min_advance_minutes: Minimum minutes between now and a bookable start
        slot_step_minutes: Candidate start-time grid step (15/30/60)
        payment_hold_minutes: Lifetime of an AWAITING_PAYMENT attempt
    """
    horizon_days: int = 60
    min_advance_minutes: int = 60
    slot_step_minutes: int = 15  # 15 / 30 / 60
    payment_hold_minutes: int = 15

    def __post_init__(self):
        """Validate configuration."""
        if self.slot_step_minutes not in (15, 30, 60):
            raise ValueError(f"slot_step_minutes must be 15, 30, or 60, got {self.slot_step_minutes}")
        if self.payment_hold_minutes <= 0:
            raise ValueError(f"payment_hold_minutes must be > 0, got {self.payment_hold_minutes}")

    def earliest_start(self, now: datetime) -> datetime:
        """First moment a slot may start, given the advance-notice rule."""
        return now + timedelta(minutes=self.min_advance_minutes)

    def is_within_horizon(self, target_date: date, today: date) -> bool:
        return today <= target_date <= today + timedelta(days=self.horizon_days)


def time_str_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight."""
    hour, minute = value.strip().split(":")
    hour, minute = int(hour), int(minute)
    if not (0 <= hour <= 24 and 0 <= minute <= 59) or (hour == 24 and minute):
        raise ValueError(f"Invalid time: {value!r}")
    return hour * 60 + minute


def at_minutes(target_date: date, minutes: int) -> datetime:
    """Datetime on target_date at the given minute offset (24:00 allowed)."""
    return datetime.combine(target_date, time.min) + timedelta(minutes=minutes)


@lru_cache
def get_booking_config() -> BookingConfig:
    """Get booking configuration (singleton) derived from settings."""
    from ...config import settings

    return BookingConfig(
        horizon_days=settings.horizon_days,
        min_advance_minutes=settings.min_advance_minutes,
        slot_step_minutes=settings.slot_step_minutes,
        payment_hold_minutes=settings.payment_hold_minutes,
    )
