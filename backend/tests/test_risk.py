"""Tests for the no-show risk evaluator."""

from datetime import timedelta

import pytest

from salon_booking.services.risk import (
    HIGH_RISK_REASON,
    STANDARD_REASON,
    CustomerHistory,
    DepositSettings,
    RiskPolicy,
    assess_risk,
    load_customer_history,
    score_risk,
)
from tests.conftest import NOW, add_booking, add_business, add_customer, add_service, add_staff, at

POLICY = RiskPolicy()
REGULAR = CustomerHistory(booking_count=10, completed_count=10, account_age_days=400)
NEWCOMER = CustomerHistory()


class TestScore:
    def test_regular_customer_books_ahead(self):
        score, factors = score_risk(REGULAR, 40.0, timedelta(days=3), POLICY)
        assert score == 0
        assert "10 completed booking(s)" in factors

    def test_first_time_last_minute_high_price(self):
        score, factors = score_risk(NEWCOMER, 150.0, timedelta(hours=2), POLICY)
        assert score == 20 + 25 + 25 + 15
        assert "First-time customer" in factors
        assert "High-value service" in factors

    def test_no_shows_are_capped(self):
        history = CustomerHistory(booking_count=5, no_show_count=5, account_age_days=100)
        score, _ = score_risk(history, 40.0, timedelta(days=3), POLICY)
        assert score == 20 + 60

    def test_long_lead_lowers_score(self):
        short, _ = score_risk(NEWCOMER, 40.0, timedelta(days=3), POLICY)
        long, _ = score_risk(NEWCOMER, 40.0, timedelta(days=20), POLICY)
        assert long == short - 10

    def test_score_is_clamped(self):
        history = CustomerHistory(booking_count=8, no_show_count=8, account_age_days=1)
        score, _ = score_risk(history, 500.0, timedelta(minutes=30), POLICY)
        assert score == 100

    def test_new_account_with_history(self):
        history = CustomerHistory(booking_count=1, account_age_days=2)
        score, factors = score_risk(history, 40.0, timedelta(days=3), POLICY)
        assert score == 30
        assert "Recently created customer account" in factors


class TestDepositDecision:
    def test_low_risk_no_deposit(self):
        result = assess_risk(REGULAR, 40.0, timedelta(days=3), DepositSettings())
        assert not result.deposit_required
        assert result.deposit_amount == 0.0

    def test_high_risk_uses_configured_amount(self):
        settings = DepositSettings(high_risk_deposit_amount=25.0)
        result = assess_risk(NEWCOMER, 150.0, timedelta(hours=2), settings)
        assert result.deposit_required
        assert result.deposit_amount == 25.0
        assert result.deposit_reason == HIGH_RISK_REASON

    def test_high_risk_falls_back_to_standard_amount(self):
        settings = DepositSettings(deposit_type="percentage", deposit_value=20)
        result = assess_risk(NEWCOMER, 150.0, timedelta(hours=2), settings)
        assert result.deposit_amount == 30.0

    def test_prevention_disabled(self):
        settings = DepositSettings(no_show_prevention_enabled=False, high_risk_deposit_amount=25.0)
        assert not assess_risk(NEWCOMER, 150.0, timedelta(hours=2), settings).deposit_required

    def test_always_require_deposit(self):
        settings = DepositSettings(deposit_type="fixed", deposit_value=10, require_deposit_always=True)
        result = assess_risk(REGULAR, 40.0, timedelta(days=3), settings)
        assert result.deposit_required
        assert result.deposit_amount == 10.0
        assert result.deposit_reason == STANDARD_REASON

    def test_deposit_capped_at_price(self):
        settings = DepositSettings(deposit_type="fixed", deposit_value=80, require_deposit_always=True)
        assert assess_risk(REGULAR, 40.0, timedelta(days=3), settings).deposit_amount == 40.0

    def test_amount_below_minimum_means_no_deposit(self):
        settings = DepositSettings(deposit_type="fixed", deposit_value=0.25, require_deposit_always=True)
        assert not assess_risk(REGULAR, 40.0, timedelta(days=3), settings).deposit_required

    @pytest.mark.parametrize("price", [10.0, 99.99, 250.0])
    def test_deterministic(self, price):
        settings = DepositSettings(high_risk_deposit_amount=20.0)
        first = assess_risk(NEWCOMER, price, timedelta(hours=5), settings)
        second = assess_risk(NEWCOMER, price, timedelta(hours=5), settings)
        assert first == second


class TestCustomerHistory:
    def test_unknown_email(self, db):
        business = add_business(db)
        assert load_customer_history(db, business.id, "nobody@example.com", NOW).is_first_time

    def test_counts_by_status(self, db):
        business = add_business(db)
        alex = add_staff(db, business)
        service = add_service(db, business, [alex])
        customer = add_customer(db, business)
        add_booking(db, service, alex, customer, at("09:00"), status="completed")
        add_booking(db, service, alex, customer, at("11:00"), status="no_show")
        add_booking(db, service, alex, customer, at("13:00"))

        history = load_customer_history(db, business.id, "KIM@example.com ", NOW)

        assert history.booking_count == 3
        assert history.completed_count == 1
        assert history.no_show_count == 1
        assert history.account_age_days == 365
