# backend/salon_booking/services/payment_gateway.py
"""
Payment gateway capability: authorize / capture / void / refund.

The booking engine treats the provider as opaque. StripeGateway maps the
four operations onto manual-capture PaymentIntents.
"""

import logging
from abc import ABC, abstractmethod
from functools import lru_cache

import stripe

from ..config import settings
from ..exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)


class PaymentGateway(ABC):
    """Authorize funds now, capture or release them later."""

    @abstractmethod
    def authorize(self, amount: float, currency: str, metadata: dict) -> str:
        """Place a hold for `amount`. Returns the authorization id."""

    @abstractmethod
    def capture(self, authorization_id: str) -> float:
        """Capture a hold. Returns the captured amount."""

    @abstractmethod
    def void(self, authorization_id: str) -> None:
        """Release an uncaptured hold."""

    @abstractmethod
    def refund(self, authorization_id: str) -> None:
        """Refund a captured payment in full."""


def to_minor_units(amount: float) -> int:
    """Dollars → cents."""
    return int(round(amount * 100))


class StripeGateway(PaymentGateway):
    """PaymentIntents with capture_method=manual."""

    def __init__(self, api_key: str):
        self.client = stripe.StripeClient(api_key)

    def authorize(self, amount: float, currency: str, metadata: dict) -> str:
        try:
            intent = self.client.payment_intents.create(params={
                "amount": to_minor_units(amount),
                "currency": currency,
                "capture_method": "manual",
                "automatic_payment_methods": {"enabled": True},
                "metadata": {k: str(v) for k, v in metadata.items()},
            })
        except stripe.StripeError as e:
            raise PaymentGatewayError(f"authorize failed: {e}") from e
        logger.info(f"Stripe authorization created: {intent.id} ({amount:.2f} {currency})")
        return intent.id

    def capture(self, authorization_id: str) -> float:
        try:
            intent = self.client.payment_intents.capture(authorization_id)
        except stripe.StripeError as e:
            raise PaymentGatewayError(f"capture failed: {e}") from e
        if intent.status != "succeeded":
            raise PaymentGatewayError(f"capture returned status {intent.status}")
        return intent.amount_received / 100

    def void(self, authorization_id: str) -> None:
        try:
            self.client.payment_intents.cancel(authorization_id)
        except stripe.StripeError as e:
            raise PaymentGatewayError(f"void failed: {e}") from e

    def refund(self, authorization_id: str) -> None:
        try:
            self.client.refunds.create(params={"payment_intent": authorization_id})
        except stripe.StripeError as e:
            raise PaymentGatewayError(f"refund failed: {e}") from e


@lru_cache
def get_payment_gateway() -> PaymentGateway | None:
    """FastAPI dependency: the configured gateway (singleton), None without STRIPE_API_KEY."""
    if not settings.stripe_api_key:
        logger.warning("STRIPE_API_KEY not set in .env; deposits cannot be taken")
        return None
    return StripeGateway(settings.stripe_api_key)
