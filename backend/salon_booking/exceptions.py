# backend/salon_booking/exceptions.py
"""
Booking engine error taxonomy.

Raised in services/ and rendered by the handler registered in main.py,
so routers can branch on a precise reason (slot taken vs. payment failed).
"""


class BookingEngineError(Exception):
    """Base exception for all booking engine errors."""

    code = "booking_error"
    http_status = 400
    retryable = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__doc__.strip())
        self.message = message or self.__doc__.strip()


class InvalidScheduleInput(BookingEngineError):
    """Malformed working hours or breaks; the day is treated as non-working."""

    code = "invalid_schedule"
    http_status = 422


class InvalidServiceConfiguration(BookingEngineError):
    """Service has no eligible staff configured."""

    code = "invalid_service_configuration"
    http_status = 422


class SlotNoLongerAvailable(BookingEngineError):
    """The selected time is no longer available. Please choose another time."""

    code = "slot_conflict"
    http_status = 409
    retryable = True


class DepositRequired(BookingEngineError):
    """A deposit is required for this appointment. Create a payment intent first."""

    code = "deposit_required"
    http_status = 402


class PaymentAuthorizationExpired(BookingEngineError):
    """The payment hold for this appointment expired. Please start again."""

    code = "payment_authorization_expired"
    http_status = 410


class PaymentInProgress(BookingEngineError):
    """This payment is already being processed. Please retry in a moment."""

    code = "payment_in_progress"
    http_status = 409
    retryable = True


class PaymentAuthorizationFailed(BookingEngineError):
    """The deposit payment could not be authorized."""

    code = "payment_authorization_failed"
    http_status = 402


class PaymentCaptureFailed(BookingEngineError):
    """The deposit payment could not be captured."""

    code = "payment_capture_failed"
    http_status = 402


class PaymentAuthorizationMismatch(BookingEngineError):
    """The payment authorization does not match this booking request."""

    code = "payment_authorization_mismatch"
    http_status = 422


class PostCapturePersistenceFailure(BookingEngineError):
    """We could not complete your booking. Please contact support; any deposit taken will be returned."""

    code = "booking_failed"
    http_status = 500


class ServiceNotFound(BookingEngineError):
    """Business or service not found."""

    code = "not_found"
    http_status = 404


class BookingNotFound(BookingEngineError):
    """Booking not found."""

    code = "not_found"
    http_status = 404


class BookingNotCancellable(BookingEngineError):
    """Booking is not in a cancellable state."""

    code = "not_cancellable"
    http_status = 409


class WaitlistValidationError(BookingEngineError):
    """Waitlist request is invalid."""

    code = "invalid_waitlist_request"
    http_status = 422


class PaymentGatewayError(Exception):
    """Raised by PaymentGateway implementations when the provider call fails."""
