# backend/salon_booking/services/booking_coordinator.py
"""
Booking Transaction Coordinator.

One state machine per booking attempt:

    QUOTED ──(no deposit)──────────────────────────────────────► BOOKED ──(cancel)──► CANCELLED
    QUOTED ──(authorized)──► AWAITING_PAYMENT ──(claim)──► CAPTURING ──(captured)──► BOOKED
                                   │                         │
                                   └─(expired / slot lost)───┴─(capture failed / slot lost)─► ABORTED

Each move out of AWAITING_PAYMENT is a conditional update on the stored
state, so the expiry sweep and concurrent confirms of one authorization
cannot both act on the same attempt.

Slots are never locked while a customer browses or pays. The commit into
BOOKED re-validates the slot and then inserts the booking; the insert is
guarded by the bookings_no_overlap_per_staff trigger, which makes it the
real serialization point. A rejected insert is reported as
SlotNoLongerAvailable.

Payment and persistence do not share a transaction. Money rules:
  - a hold that never reaches BOOKED is voided
  - a capture that does not end in a persisted booking is refunded
  - a booking never exists without a captured deposit when one was required
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import (
    BookingNotCancellable,
    BookingNotFound,
    DepositRequired,
    PaymentAuthorizationExpired,
    PaymentAuthorizationFailed,
    PaymentAuthorizationMismatch,
    PaymentCaptureFailed,
    PaymentGatewayError,
    PaymentInProgress,
    PostCapturePersistenceFailure,
    ServiceNotFound,
    SlotNoLongerAvailable,
)
from ..models.generated import (
    BookingAttempts as DBAttempt,
    Bookings as DBBooking,
    Businesses as DBBusiness,
    Customers as DBCustomer,
)
from .events import BookingEvent, booking_payload, emit_event, payment_incident_payload
from .payment_gateway import PaymentGateway
from .risk import DepositSettings, RiskAssessment, RiskPolicy, assess_risk, load_customer_history
from .slots import (
    ANY_STAFF,
    OCCUPYING_STATUSES,
    BookingConfig,
    ServiceSpec,
    Slot,
    find_slot,
    get_booking_config,
    load_service_spec,
)
from .slots.availability import parse_staff_selector
from .waitlist import notify_waitlist_matches

logger = logging.getLogger(__name__)

OVERLAP_CONSTRAINT = "bookings_no_overlap_per_staff"


# ── State machine ────────────────────────────────────────────────────────


class AttemptState(str, Enum):
    QUOTED = "QUOTED"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    CAPTURING = "CAPTURING"
    BOOKED = "BOOKED"
    ABORTED = "ABORTED"
    CANCELLED = "CANCELLED"


class AttemptTrigger(str, Enum):
    BOOKED_WITHOUT_DEPOSIT = "booked_without_deposit"
    PAYMENT_AUTHORIZED = "payment_authorized"
    CAPTURE_STARTED = "capture_started"
    CAPTURE_CONFIRMED = "capture_confirmed"
    CAPTURE_FAILED = "capture_failed"
    HOLD_EXPIRED = "hold_expired"
    SLOT_LOST = "slot_lost"
    PERSISTENCE_FAILED = "persistence_failed"
    CANCELLED = "cancelled"


@dataclass
class Transition:
    from_state: AttemptState
    to_state: AttemptState
    trigger: AttemptTrigger


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current state."""


class AttemptStateMachine:
    """Legal moves of a booking attempt, independent of storage and UI."""

    TRANSITIONS: list[Transition] = [
        Transition(AttemptState.QUOTED, AttemptState.BOOKED, AttemptTrigger.BOOKED_WITHOUT_DEPOSIT),
        Transition(AttemptState.QUOTED, AttemptState.AWAITING_PAYMENT, AttemptTrigger.PAYMENT_AUTHORIZED),
        Transition(AttemptState.QUOTED, AttemptState.ABORTED, AttemptTrigger.SLOT_LOST),

        Transition(AttemptState.AWAITING_PAYMENT, AttemptState.CAPTURING, AttemptTrigger.CAPTURE_STARTED),
        Transition(AttemptState.AWAITING_PAYMENT, AttemptState.ABORTED, AttemptTrigger.HOLD_EXPIRED),
        Transition(AttemptState.AWAITING_PAYMENT, AttemptState.ABORTED, AttemptTrigger.SLOT_LOST),

        Transition(AttemptState.CAPTURING, AttemptState.BOOKED, AttemptTrigger.CAPTURE_CONFIRMED),
        Transition(AttemptState.CAPTURING, AttemptState.ABORTED, AttemptTrigger.CAPTURE_FAILED),
        Transition(AttemptState.CAPTURING, AttemptState.ABORTED, AttemptTrigger.SLOT_LOST),
        Transition(AttemptState.CAPTURING, AttemptState.ABORTED, AttemptTrigger.PERSISTENCE_FAILED),

        Transition(AttemptState.BOOKED, AttemptState.CANCELLED, AttemptTrigger.CANCELLED),
    ]

    TERMINAL = frozenset({AttemptState.ABORTED, AttemptState.CANCELLED})

    def __init__(self, state: AttemptState = AttemptState.QUOTED) -> None:
        self._state = AttemptState(state)
        self._history: list[tuple[AttemptState, AttemptTrigger | None]] = [(self._state, None)]

    @property
    def current_state(self) -> AttemptState:
        return self._state

    @property
    def history(self) -> list[tuple[AttemptState, AttemptTrigger | None]]:
        return list(self._history)

    def allowed_triggers(self) -> list[AttemptTrigger]:
        return [t.trigger for t in self.TRANSITIONS if t.from_state == self._state]

    def can(self, trigger: AttemptTrigger) -> bool:
        return trigger in self.allowed_triggers()

    def is_terminal(self) -> bool:
        return self._state in self.TERMINAL

    def transition(self, trigger: AttemptTrigger) -> AttemptState:
        """
        Move to the next state.

        Raises:
            InvalidTransitionError: trigger not allowed from the current state
        """
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.trigger == trigger:
                logger.debug(f"Attempt {self._state.value} --{trigger.value}--> {t.to_state.value}")
                self._state = t.to_state
                self._history.append((self._state, trigger))
                return self._state

        allowed = ", ".join(t.value for t in self.allowed_triggers()) or "none"
        raise InvalidTransitionError(
            f"Cannot apply '{trigger.value}' in state {self._state.value} (allowed: {allowed})"
        )


# ── Requests / quotes ────────────────────────────────────────────────────


@dataclass(frozen=True)
class CustomerInfo:
    full_name: str
    email: str
    phone: str | None = None


@dataclass(frozen=True)
class BookingRequest:
    business_id: int
    service_id: int
    start_at: datetime
    staff: int | str = ANY_STAFF
    customer: CustomerInfo | None = None


@dataclass
class Quote:
    request: BookingRequest
    business: DBBusiness
    service: ServiceSpec
    slot: Slot
    assessment: RiskAssessment
    customer_id: int | None = None
    machine: AttemptStateMachine = field(default_factory=AttemptStateMachine)


# ── Coordinator ──────────────────────────────────────────────────────────


class BookingCoordinator:
    """Drives booking attempts through the state machine against DB + gateway."""

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway | None,
        config: BookingConfig | None = None,
        policy: RiskPolicy | None = None,
        min_deposit_amount: float | None = None,
        now: datetime | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.config = config or get_booking_config()
        self.policy = policy or RiskPolicy.from_settings(settings)
        self.min_deposit_amount = (
            settings.min_deposit_amount if min_deposit_amount is None else min_deposit_amount
        )
        self._now = now

    def now(self) -> datetime:
        return self._now or datetime.now()

    # ── QUOTED ───────────────────────────────────────────────────────────

    def quote(self, request: BookingRequest) -> Quote:
        """
        Select a slot and price its risk. Nothing is reserved.

        Raises:
            ServiceNotFound: unknown business/service
            SlotNoLongerAvailable: the time is not bookable (any more)
        """
        now = self.now()
        business = self.db.get(DBBusiness, request.business_id)
        if not business:
            raise ServiceNotFound()
        service = load_service_spec(self.db, request.service_id, request.business_id)
        if service is None:
            raise ServiceNotFound()

        slot = find_slot(
            self.db, service, request.staff, request.start_at,
            self.config, not_before=self.config.earliest_start(now),
        )
        if slot is None:
            raise SlotNoLongerAvailable()

        customer_id = None
        if request.customer is not None:
            customer_id = self._find_or_create_customer(business.id, request.customer).id

        assessment = self._assess(business, service, request.customer, slot.start_at, now)
        return Quote(
            request=request,
            business=business,
            service=service,
            slot=slot,
            assessment=assessment,
            customer_id=customer_id,
        )

    # ── QUOTED → AWAITING_PAYMENT ────────────────────────────────────────

    def open_payment(self, quote: Quote) -> DBAttempt:
        """
        Authorize the deposit and persist the attempt with a bounded lifetime.

        Raises:
            PaymentAuthorizationFailed: the gateway refused the hold
        """
        if not quote.assessment.deposit_required:
            raise InvalidTransitionError("No deposit required for this quote")

        if self.gateway is None:
            raise PaymentAuthorizationFailed("Deposit payments are not configured")

        now = self.now()
        slot = quote.slot
        try:
            authorization_id = self.gateway.authorize(
                quote.assessment.deposit_amount,
                quote.business.currency or settings.payment_currency,
                {
                    "business_id": quote.business.id,
                    "service_id": quote.service.service_id,
                    "staff_id": slot.staff_id,
                    "start_at": slot.start_at.isoformat(),
                    "risk_score": quote.assessment.score,
                },
            )
        except PaymentGatewayError as e:
            logger.warning(f"Deposit authorization failed: {e}")
            raise PaymentAuthorizationFailed() from e

        quote.machine.transition(AttemptTrigger.PAYMENT_AUTHORIZED)
        attempt = DBAttempt(
            business_id=quote.business.id,
            service_id=quote.service.service_id,
            staff_id=slot.staff_id,
            customer_id=quote.customer_id,
            start_at=slot.start_at,
            end_at=slot.end_at,
            state=quote.machine.current_state.value,
            authorization_id=authorization_id,
            deposit_amount=quote.assessment.deposit_amount,
            deposit_reason=quote.assessment.deposit_reason,
            risk_score=quote.assessment.score,
            risk_factors=json.dumps(list(quote.assessment.factors)),
            expires_at=now + timedelta(minutes=self.config.payment_hold_minutes),
        )
        self.db.add(attempt)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            self._void(authorization_id)
            raise
        self.db.refresh(attempt)

        logger.info(
            f"Attempt {attempt.id} awaiting payment: auth={authorization_id}, "
            f"deposit={attempt.deposit_amount:.2f}, expires_at={attempt.expires_at.isoformat()}"
        )
        return attempt

    # ── QUOTED → BOOKED ──────────────────────────────────────────────────

    def book_without_deposit(self, quote: Quote) -> DBBooking:
        """
        Persist a booking on the no-deposit path.

        Raises:
            DepositRequired: the risk check demands a deposit
            SlotNoLongerAvailable: another booking landed first
        """
        if quote.customer_id is None:
            raise PaymentAuthorizationMismatch("Customer details are required to book")

        # The quote may be stale; the deposit decision must hold at commit time
        quote.assessment = self._assess(
            quote.business, quote.service, quote.request.customer, quote.slot.start_at, self.now()
        )
        if quote.assessment.deposit_required:
            raise DepositRequired()

        try:
            booking = self._insert_booking(
                business_id=quote.business.id,
                service=quote.service,
                staff_id=quote.slot.staff_id,
                customer_id=quote.customer_id,
                start_at=quote.slot.start_at,
                assessment=quote.assessment,
            )
            self.db.commit()
        except SlotNoLongerAvailable:
            quote.machine.transition(AttemptTrigger.SLOT_LOST)
            raise

        quote.machine.transition(AttemptTrigger.BOOKED_WITHOUT_DEPOSIT)
        self.db.refresh(booking)
        self._booked(booking)
        return booking

    # ── AWAITING_PAYMENT → BOOKED | ABORTED ──────────────────────────────

    def confirm_payment(self, authorization_id: str, request: BookingRequest) -> DBBooking:
        """
        Capture the deposit and commit the booking.

        The attempt is claimed (AWAITING_PAYMENT → CAPTURING) before the
        capture, so only one request ever captures a given authorization.
        A request that loses the claim gets the winner's booking back.

        Raises:
            PaymentAuthorizationMismatch: unknown authorization or different slot
            PaymentAuthorizationExpired: hold lifetime exceeded (hold voided)
            PaymentInProgress: another request is capturing this authorization
            PaymentCaptureFailed: capture refused (hold voided)
            SlotNoLongerAvailable: slot taken (hold voided or capture refunded)
            PostCapturePersistenceFailure: captured but not persisted (refunded)
        """
        attempt = (
            self.db.query(DBAttempt)
            .filter(DBAttempt.authorization_id == authorization_id)
            .first()
        )
        if attempt is None:
            raise PaymentAuthorizationMismatch("Unknown payment authorization")
        self._check_matches(attempt, request)

        machine = AttemptStateMachine(AttemptState(attempt.state))
        if machine.current_state != AttemptState.AWAITING_PAYMENT:
            return self._settled_booking(attempt)

        now = self.now()
        if attempt.expires_at is not None and attempt.expires_at <= now:
            if not self._abort(attempt, machine, AttemptTrigger.HOLD_EXPIRED, "payment hold expired", void=True):
                return self._settled_booking(attempt)
            raise PaymentAuthorizationExpired()

        service = load_service_spec(self.db, attempt.service_id, attempt.business_id)
        if service is None:
            if not self._abort(attempt, machine, AttemptTrigger.SLOT_LOST, "service unavailable", void=True):
                return self._settled_booking(attempt)
            raise ServiceNotFound()

        # Cheap pre-check: losing the slot now only costs a void, not a refund
        if find_slot(self.db, service, attempt.staff_id, attempt.start_at, self.config, not_before=now) is None:
            if not self._abort(attempt, machine, AttemptTrigger.SLOT_LOST, "slot taken before capture", void=True):
                return self._settled_booking(attempt)
            raise SlotNoLongerAvailable()

        customer_id = attempt.customer_id
        if request.customer is not None:
            customer_id = self._find_or_create_customer(attempt.business_id, request.customer).id
        if customer_id is None:
            raise PaymentAuthorizationMismatch("Customer details are required to book")

        if self.gateway is None:
            raise PaymentCaptureFailed("Deposit payments are not configured")

        attempt_id = attempt.id
        if not self._claim(attempt_id, machine, AttemptTrigger.CAPTURE_STARTED, customer_id=customer_id):
            logger.info(f"Attempt {attempt_id} already claimed by another request")
            return self._settled_booking(attempt)

        try:
            captured = self.gateway.capture(authorization_id)
        except PaymentGatewayError as e:
            logger.warning(f"Capture failed for attempt {attempt_id}: {e}")
            self._abort(attempt, machine, AttemptTrigger.CAPTURE_FAILED, f"capture failed: {e}", void=True)
            raise PaymentCaptureFailed() from e

        # Money has moved: every failure past this point is compensated
        attempt = self.db.get(DBAttempt, attempt_id)
        try:
            booking = self._insert_booking(
                business_id=attempt.business_id,
                service=service,
                staff_id=attempt.staff_id,
                customer_id=customer_id,
                start_at=attempt.start_at,
                assessment=RiskAssessment(
                    score=attempt.risk_score,
                    factors=tuple(json.loads(attempt.risk_factors or "[]")),
                    deposit_required=True,
                    deposit_amount=attempt.deposit_amount,
                    deposit_reason=attempt.deposit_reason or "",
                ),
                payment_status="deposit_paid",
                authorization_id=authorization_id,
                captured_amount=captured,
                not_before=now,
            )
            attempt.state = AttemptStateMachine(AttemptState.CAPTURING).transition(
                AttemptTrigger.CAPTURE_CONFIRMED
            ).value
            attempt.booking_id = booking.id
            self.db.commit()
        except SlotNoLongerAvailable:
            attempt = self.db.get(DBAttempt, attempt_id)
            self._refund(attempt, authorization_id)
            self._abort(attempt, machine, AttemptTrigger.SLOT_LOST, "slot taken after capture; refunded")
            raise
        except Exception as e:
            self.db.rollback()
            logger.critical(
                f"PRIORITY INCIDENT: deposit captured for attempt {attempt_id} "
                f"(auth={authorization_id}) but booking was not persisted: {e!r}"
            )
            emit_event(BookingEvent.PAYMENT_INCIDENT, payment_incident_payload(
                attempt_id, authorization_id, captured, repr(e)
            ))
            attempt = self.db.get(DBAttempt, attempt_id)
            self._refund(attempt, authorization_id)
            self._abort(attempt, machine, AttemptTrigger.PERSISTENCE_FAILED, f"persistence failed: {e!r}")
            raise PostCapturePersistenceFailure() from e

        self.db.refresh(booking)
        self._booked(booking)
        return booking

    def abort_expired(self, now: datetime | None = None) -> int:
        """Void and abort every AWAITING_PAYMENT attempt past its lifetime. Returns the count."""
        now = now or self.now()
        expired = (
            self.db.query(DBAttempt)
            .filter(
                DBAttempt.state == AttemptState.AWAITING_PAYMENT.value,
                DBAttempt.expires_at <= now,
            )
            .all()
        )
        aborted = 0
        for attempt in expired:
            machine = AttemptStateMachine(AttemptState.AWAITING_PAYMENT)
            if self._abort(attempt, machine, AttemptTrigger.HOLD_EXPIRED, "payment hold expired", void=True):
                aborted += 1
        return aborted

    # ── BOOKED → CANCELLED ───────────────────────────────────────────────

    def cancel_booking(self, booking_id: int, reason: str | None = None) -> DBBooking:
        """
        Cancel an occupying booking; the slot becomes available again.

        Raises:
            BookingNotFound
            BookingNotCancellable: booking is not in an occupying status
        """
        booking = self.db.get(DBBooking, booking_id)
        if not booking:
            raise BookingNotFound()
        if booking.status not in OCCUPYING_STATUSES:
            raise BookingNotCancellable(f"Booking is already {booking.status}")

        booking.status = "cancelled"
        booking.cancel_reason = reason

        attempt = self.db.query(DBAttempt).filter(DBAttempt.booking_id == booking.id).first()
        if attempt is not None:
            machine = AttemptStateMachine(AttemptState(attempt.state))
            if machine.can(AttemptTrigger.CANCELLED):
                attempt.state = machine.transition(AttemptTrigger.CANCELLED).value
            else:
                logger.warning(f"Attempt {attempt.id} for booking {booking.id} is {attempt.state}; left as is")

        self.db.commit()
        self.db.refresh(booking)

        logger.info(f"Booking {booking.id} cancelled (staff={booking.staff_id}, start={booking.start_at})")
        emit_event(BookingEvent.BOOKING_CANCELLED, booking_payload(booking, reason=reason))
        notify_waitlist_matches(self.db, booking)
        return booking

    # ── Internals ────────────────────────────────────────────────────────

    def _assess(self, business, service: ServiceSpec, customer: CustomerInfo | None, start_at, now) -> RiskAssessment:
        history = load_customer_history(self.db, business.id, customer.email if customer else None, now)
        return assess_risk(
            history,
            service.price,
            start_at - now,
            DepositSettings.from_business(business, self.min_deposit_amount),
            self.policy,
        )

    def _insert_booking(
        self,
        business_id: int,
        service: ServiceSpec,
        staff_id: int,
        customer_id: int,
        start_at: datetime,
        assessment: RiskAssessment,
        payment_status: str = "unpaid",
        authorization_id: str | None = None,
        captured_amount: float = 0.0,
        not_before: datetime | None = None,
    ) -> DBBooking:
        """
        Re-validate then insert (flushed, not committed).

        Raises:
            SlotNoLongerAvailable: re-validation failed or the overlap trigger fired
        """
        if not_before is None:
            not_before = self.now()
        slot = find_slot(self.db, service, staff_id, start_at, self.config, not_before=not_before)
        if slot is None:
            raise SlotNoLongerAvailable()

        booking = DBBooking(
            business_id=business_id,
            service_id=service.service_id,
            staff_id=staff_id,
            customer_id=customer_id,
            start_at=slot.start_at,
            end_at=slot.end_at,
            duration_minutes=service.duration_minutes,
            status="confirmed",
            payment_status=payment_status,
            payment_authorization_id=authorization_id,
            captured_amount=captured_amount,
            risk_score=assessment.score,
            risk_factors=json.dumps(list(assessment.factors)),
            deposit_reason=assessment.deposit_reason or None,
        )
        self.db.add(booking)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            if OVERLAP_CONSTRAINT in str(e.orig):
                logger.info(f"Overlap rejected by store for staff {staff_id} at {start_at}")
                raise SlotNoLongerAvailable() from e
            raise
        return booking

    def _booked(self, booking: DBBooking) -> None:
        logger.info(
            f"Booking created: booking_id={booking.id}, customer_id={booking.customer_id}, "
            f"service_id={booking.service_id}, staff_id={booking.staff_id}, "
            f"time={booking.start_at.isoformat()}, payment={booking.payment_status}"
        )
        emit_event(BookingEvent.BOOKING_CREATED, booking_payload(
            booking,
            initiated_by={
                "customer_id": booking.customer_id,
                "role": "client",
                "channel": "web",
            },
        ))

    def _claim(self, attempt_id: int, machine: AttemptStateMachine, trigger: AttemptTrigger, **values) -> bool:
        """
        Apply `trigger` to the stored attempt only if it is still in the
        machine's current state. Returns False when another request moved it first.
        """
        from_state = machine.current_state
        to_state = machine.transition(trigger)
        claimed = (
            self.db.query(DBAttempt)
            .filter(DBAttempt.id == attempt_id, DBAttempt.state == from_state.value)
            .update({"state": to_state.value, **values}, synchronize_session=False)
        )
        self.db.commit()
        return claimed == 1

    def _abort(
        self,
        attempt: DBAttempt,
        machine: AttemptStateMachine,
        trigger: AttemptTrigger,
        reason: str,
        void: bool = False,
    ) -> bool:
        attempt_id, authorization_id = attempt.id, attempt.authorization_id
        if not self._claim(attempt_id, machine, trigger, failure_reason=reason):
            logger.info(f"Attempt {attempt_id} not aborted ({reason}): already moved on")
            return False
        if void:
            self._void(authorization_id)
        logger.warning(f"Attempt {attempt_id} aborted: {reason}")
        return True

    def _settled_booking(self, attempt: DBAttempt) -> DBBooking:
        """Outcome of an attempt that has left AWAITING_PAYMENT."""
        self.db.refresh(attempt)
        state = AttemptState(attempt.state)
        if state == AttemptState.BOOKED and attempt.booking is not None:
            return attempt.booking
        if state == AttemptState.CAPTURING:
            raise PaymentInProgress()
        raise PaymentAuthorizationExpired("This payment authorization is no longer valid")

    def _void(self, authorization_id: str | None) -> None:
        if not authorization_id or self.gateway is None:
            return
        try:
            self.gateway.void(authorization_id)
        except PaymentGatewayError as e:
            # Uncaptured holds lapse at the provider; nothing was taken
            logger.error(f"Void failed for authorization {authorization_id}: {e}")

    def _refund(self, attempt: DBAttempt, authorization_id: str) -> None:
        try:
            self.gateway.refund(authorization_id)
            logger.warning(f"Attempt {attempt.id}: captured deposit refunded (auth={authorization_id})")
        except PaymentGatewayError as e:
            logger.critical(
                f"PRIORITY INCIDENT: refund failed for attempt {attempt.id} "
                f"(auth={authorization_id}): {e}. Manual refund required."
            )
            emit_event(BookingEvent.PAYMENT_INCIDENT, payment_incident_payload(
                attempt.id, authorization_id, attempt.deposit_amount, str(e)
            ))

    def _check_matches(self, attempt: DBAttempt, request: BookingRequest) -> None:
        staff = parse_staff_selector(request.staff)
        if (
            attempt.business_id != request.business_id
            or attempt.service_id != request.service_id
            or attempt.start_at != request.start_at
            or (staff != ANY_STAFF and staff != attempt.staff_id)
        ):
            raise PaymentAuthorizationMismatch()

    def _find_or_create_customer(self, business_id: int, info: CustomerInfo) -> DBCustomer:
        """Find customer by email or create a new one."""
        email = info.email.strip().lower()
        customer = (
            self.db.query(DBCustomer)
            .filter(DBCustomer.business_id == business_id, DBCustomer.email == email)
            .first()
        )
        if customer:
            if info.phone and not customer.phone:
                customer.phone = info.phone
                self.db.commit()
            return customer

        customer = DBCustomer(
            business_id=business_id,
            full_name=info.full_name,
            email=email,
            phone=info.phone,
        )
        self.db.add(customer)
        try:
            self.db.commit()
        except IntegrityError:
            # Same email created concurrently
            self.db.rollback()
            return (
                self.db.query(DBCustomer)
                .filter(DBCustomer.business_id == business_id, DBCustomer.email == email)
                .one()
            )
        self.db.refresh(customer)
        logger.info(f"Created new customer: customer_id={customer.id}, business_id={business_id}")
        return customer
