"""Tests for the booking attempt state machine."""

import pytest

from salon_booking.services.booking_coordinator import (
    AttemptState,
    AttemptStateMachine,
    AttemptTrigger,
    InvalidTransitionError,
)


@pytest.fixture
def machine():
    return AttemptStateMachine()


class TestInitialState:
    def test_starts_quoted(self, machine):
        assert machine.current_state == AttemptState.QUOTED

    def test_initial_history_has_one_entry(self, machine):
        assert machine.history == [(AttemptState.QUOTED, None)]

    def test_not_terminal_at_start(self, machine):
        assert not machine.is_terminal()


class TestHappyPaths:
    def test_no_deposit_books_directly(self, machine):
        assert machine.transition(AttemptTrigger.BOOKED_WITHOUT_DEPOSIT) == AttemptState.BOOKED

    def test_deposit_path(self, machine):
        machine.transition(AttemptTrigger.PAYMENT_AUTHORIZED)
        assert machine.current_state == AttemptState.AWAITING_PAYMENT
        assert machine.transition(AttemptTrigger.CAPTURE_STARTED) == AttemptState.CAPTURING
        assert machine.transition(AttemptTrigger.CAPTURE_CONFIRMED) == AttemptState.BOOKED

    def test_booked_can_be_cancelled(self, machine):
        machine.transition(AttemptTrigger.BOOKED_WITHOUT_DEPOSIT)
        assert machine.transition(AttemptTrigger.CANCELLED) == AttemptState.CANCELLED
        assert machine.is_terminal()

    def test_history_records_triggers(self, machine):
        machine.transition(AttemptTrigger.PAYMENT_AUTHORIZED)
        machine.transition(AttemptTrigger.CAPTURE_STARTED)
        machine.transition(AttemptTrigger.CAPTURE_CONFIRMED)
        assert [state for state, _ in machine.history] == [
            AttemptState.QUOTED,
            AttemptState.AWAITING_PAYMENT,
            AttemptState.CAPTURING,
            AttemptState.BOOKED,
        ]


class TestAborts:
    @pytest.mark.parametrize("trigger", [AttemptTrigger.HOLD_EXPIRED, AttemptTrigger.SLOT_LOST])
    def test_awaiting_payment_aborts(self, machine, trigger):
        machine.transition(AttemptTrigger.PAYMENT_AUTHORIZED)
        assert machine.transition(trigger) == AttemptState.ABORTED
        assert machine.is_terminal()

    @pytest.mark.parametrize("trigger", [
        AttemptTrigger.CAPTURE_FAILED,
        AttemptTrigger.SLOT_LOST,
        AttemptTrigger.PERSISTENCE_FAILED,
    ])
    def test_capturing_aborts(self, machine, trigger):
        machine.transition(AttemptTrigger.PAYMENT_AUTHORIZED)
        machine.transition(AttemptTrigger.CAPTURE_STARTED)
        assert machine.transition(trigger) == AttemptState.ABORTED

    def test_slot_lost_while_quoted(self, machine):
        assert machine.transition(AttemptTrigger.SLOT_LOST) == AttemptState.ABORTED


class TestInvalidTransitions:
    def test_cannot_capture_without_authorization(self, machine):
        with pytest.raises(InvalidTransitionError):
            machine.transition(AttemptTrigger.CAPTURE_CONFIRMED)

    def test_confirm_requires_claim(self, machine):
        machine.transition(AttemptTrigger.PAYMENT_AUTHORIZED)
        with pytest.raises(InvalidTransitionError):
            machine.transition(AttemptTrigger.CAPTURE_CONFIRMED)

    def test_capturing_cannot_expire(self, machine):
        machine.transition(AttemptTrigger.PAYMENT_AUTHORIZED)
        machine.transition(AttemptTrigger.CAPTURE_STARTED)
        assert not machine.can(AttemptTrigger.HOLD_EXPIRED)

    def test_aborted_cannot_be_cancelled(self, machine):
        machine.transition(AttemptTrigger.SLOT_LOST)
        assert not machine.can(AttemptTrigger.CANCELLED)

    def test_aborted_is_final(self, machine):
        machine.transition(AttemptTrigger.SLOT_LOST)
        assert machine.allowed_triggers() == []
        with pytest.raises(InvalidTransitionError):
            machine.transition(AttemptTrigger.BOOKED_WITHOUT_DEPOSIT)

    def test_cannot_cancel_twice(self, machine):
        machine.transition(AttemptTrigger.BOOKED_WITHOUT_DEPOSIT)
        machine.transition(AttemptTrigger.CANCELLED)
        assert not machine.can(AttemptTrigger.CANCELLED)

    def test_booked_cannot_expire(self, machine):
        machine.transition(AttemptTrigger.BOOKED_WITHOUT_DEPOSIT)
        with pytest.raises(InvalidTransitionError):
            machine.transition(AttemptTrigger.HOLD_EXPIRED)

    def test_resume_from_persisted_state(self):
        machine = AttemptStateMachine(AttemptState("AWAITING_PAYMENT"))
        assert machine.can(AttemptTrigger.HOLD_EXPIRED)
        assert not machine.can(AttemptTrigger.PAYMENT_AUTHORIZED)
