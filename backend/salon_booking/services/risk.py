# backend/salon_booking/services/risk.py
"""
No-show risk evaluation and deposit decision.

assess_risk() is a pure function of its inputs: no DB, no clock, no side
effects. It runs speculatively (payment-intents) and again right before a
no-deposit booking is persisted; both runs must agree.

Score (0-100) rises with:
  short lead time, first-time customer, young account,
  high service price, prior no-shows
and falls with:
  completed bookings, long lead time.

Deposit rules (first match wins):
  1. no_show_prevention_enabled and score >= risk_threshold
     → high_risk_deposit_amount, or the standard amount if unset
  2. require_deposit_always
     → standard amount (fixed or percentage of price)
  Amounts below min_deposit_amount mean "no deposit".
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

HIGH_RISK_REASON = (
    "To help our small businesses reduce no-shows, "
    "a deposit is required for this appointment time."
)
STANDARD_REASON = "A deposit is required to secure your appointment."


@dataclass(frozen=True)
class CustomerHistory:
    booking_count: int = 0
    completed_count: int = 0
    no_show_count: int = 0
    account_age_days: int = 0

    @property
    def is_first_time(self) -> bool:
        return self.booking_count == 0


@dataclass(frozen=True)
class RiskPolicy:
    base_score: int = 20
    short_lead_hours: int = 24
    short_lead_points: int = 15
    very_short_lead_hours: int = 3
    very_short_lead_points: int = 25
    long_lead_days: int = 14
    long_lead_points: int = 10
    first_time_points: int = 25
    new_account_days: int = 7
    new_account_points: int = 10
    high_price_threshold: float = 100.0
    high_price_points: int = 15
    no_show_points: int = 20
    no_show_cap: int = 60
    history_points: int = 3
    history_cap: int = 30

    @classmethod
    def from_settings(cls, settings) -> "RiskPolicy":
        return cls(
            base_score=settings.risk_base_score,
            short_lead_hours=settings.risk_short_lead_hours,
            short_lead_points=settings.risk_short_lead_points,
            very_short_lead_hours=settings.risk_very_short_lead_hours,
            very_short_lead_points=settings.risk_very_short_lead_points,
            long_lead_days=settings.risk_long_lead_days,
            long_lead_points=settings.risk_long_lead_points,
            first_time_points=settings.risk_first_time_points,
            new_account_days=settings.risk_new_account_days,
            new_account_points=settings.risk_new_account_points,
            high_price_threshold=settings.risk_high_price_threshold,
            high_price_points=settings.risk_high_price_points,
            no_show_points=settings.risk_no_show_points,
            no_show_cap=settings.risk_no_show_cap,
            history_points=settings.risk_history_points,
            history_cap=settings.risk_history_cap,
        )


@dataclass(frozen=True)
class DepositSettings:
    """Business-level deposit configuration."""
    deposit_type: str = "none"  # none / fixed / percentage
    deposit_value: float = 0.0
    require_deposit_always: bool = False
    no_show_prevention_enabled: bool = True
    risk_threshold: int = 70
    high_risk_deposit_amount: float | None = None
    min_deposit_amount: float = 0.50

    @classmethod
    def from_business(cls, business, min_deposit_amount: float = 0.50) -> "DepositSettings":
        return cls(
            deposit_type=business.deposit_type or "none",
            deposit_value=business.deposit_value or 0.0,
            require_deposit_always=bool(business.require_deposit_always),
            no_show_prevention_enabled=bool(business.no_show_prevention_enabled),
            risk_threshold=business.risk_threshold,
            high_risk_deposit_amount=business.high_risk_deposit_amount,
            min_deposit_amount=min_deposit_amount,
        )

    def standard_amount(self, service_price: float) -> float:
        if self.deposit_type == "fixed":
            return self.deposit_value
        if self.deposit_type == "percentage":
            return service_price * self.deposit_value / 100
        return 0.0


@dataclass(frozen=True)
class RiskAssessment:
    score: int
    factors: tuple[str, ...]
    deposit_required: bool
    deposit_amount: float
    deposit_reason: str


def score_risk(
    history: CustomerHistory,
    service_price: float,
    lead_time: timedelta,
    policy: RiskPolicy,
) -> tuple[int, list[str]]:
    """Compute (score, factors)."""
    score = policy.base_score
    factors: list[str] = []

    lead_hours = lead_time.total_seconds() / 3600
    if lead_hours < policy.very_short_lead_hours:
        score += policy.very_short_lead_points
        factors.append(f"Booked less than {policy.very_short_lead_hours}h in advance")
    elif lead_hours < policy.short_lead_hours:
        score += policy.short_lead_points
        factors.append(f"Booked less than {policy.short_lead_hours}h in advance")
    elif lead_hours >= policy.long_lead_days * 24:
        score -= policy.long_lead_points
        factors.append(f"Booked at least {policy.long_lead_days} days in advance")

    if history.is_first_time:
        score += policy.first_time_points
        factors.append("First-time customer")
    elif history.account_age_days < policy.new_account_days:
        score += policy.new_account_points
        factors.append("Recently created customer account")

    if service_price >= policy.high_price_threshold:
        score += policy.high_price_points
        factors.append("High-value service")

    if history.no_show_count:
        score += min(history.no_show_count * policy.no_show_points, policy.no_show_cap)
        factors.append(f"{history.no_show_count} previous no-show(s)")

    if history.completed_count:
        score -= min(history.completed_count * policy.history_points, policy.history_cap)
        factors.append(f"{history.completed_count} completed booking(s)")

    return max(0, min(100, score)), factors


def assess_risk(
    history: CustomerHistory,
    service_price: float,
    lead_time: timedelta,
    deposit: DepositSettings,
    policy: RiskPolicy | None = None,
) -> RiskAssessment:
    """Score a prospective booking and decide whether a deposit is mandatory."""
    policy = policy or RiskPolicy()
    score, factors = score_risk(history, service_price, lead_time, policy)

    amount = 0.0
    reason = ""
    if deposit.no_show_prevention_enabled and score >= deposit.risk_threshold:
        amount = deposit.high_risk_deposit_amount or deposit.standard_amount(service_price)
        reason = HIGH_RISK_REASON
    elif deposit.require_deposit_always:
        amount = deposit.standard_amount(service_price)
        reason = STANDARD_REASON

    amount = round(min(max(amount, 0.0), service_price), 2)
    if amount < deposit.min_deposit_amount or amount <= 0:
        return RiskAssessment(score, tuple(factors), False, 0.0, "")

    return RiskAssessment(score, tuple(factors), True, amount, reason)


def load_customer_history(
    db: Session,
    business_id: int,
    email: str | None,
    now: datetime,
) -> CustomerHistory:
    """Read a customer's booking history at this business (empty for unknown/guest customers)."""
    from ..models.generated import Bookings, Customers

    if not email:
        return CustomerHistory()

    customer = (
        db.query(Customers)
        .filter(Customers.business_id == business_id, Customers.email == email.strip().lower())
        .first()
    )
    if not customer:
        return CustomerHistory()

    counts = dict(
        db.query(Bookings.status, func.count(Bookings.id))
        .filter(Bookings.customer_id == customer.id)
        .group_by(Bookings.status)
        .all()
    )

    return CustomerHistory(
        booking_count=sum(counts.values()),
        completed_count=counts.get("completed", 0),
        no_show_count=counts.get("no_show", 0),
        account_age_days=max((now - customer.created_at).days, 0),
    )
