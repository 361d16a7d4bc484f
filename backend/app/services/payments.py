"""
Payment capture adapter. The booking core only sees PaymentGateway.create_charge; any
provider failure (including timeouts) surfaces as PaymentError.

Stripe: PaymentIntent in minor units (paise for INR) with booking/user ids as metadata.
STRIPE_SECRET_KEY in .env; without it every charge fails with PaymentError.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

import stripe

from app.config import settings
from app.core.errors import PaymentError
from app.services.pricing import round_half_away

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeResult:
    reference: str
    client_secret: str | None = None


class PaymentGateway(Protocol):
    """Interface for payment providers. Same contract; only the provider call differs."""

    def create_charge(self, amount: Decimal, currency: str, booking_id: str, user_id: str) -> ChargeResult:
        """Charge amount (major units). Raises PaymentError on any failure."""
        ...


def to_minor_units(amount: Decimal) -> int:
    return int(round_half_away(Decimal(amount) * 100, Decimal("1")))


class StripePaymentGateway:
    """Stripe PaymentIntents with a bounded HTTP timeout and no automatic retries."""

    def __init__(self, secret_key: str | None = None, timeout_seconds: float | None = None) -> None:
        self._secret_key = (secret_key if secret_key is not None else settings.stripe_secret_key).strip()
        self._timeout = timeout_seconds or settings.payment_timeout_seconds
        self._client: stripe.StripeClient | None = None

    def is_configured(self) -> bool:
        return bool(self._secret_key)

    def _get_client(self) -> stripe.StripeClient:
        if self._client is None:
            self._client = stripe.StripeClient(
                self._secret_key,
                http_client=stripe.RequestsClient(timeout=self._timeout),
                max_network_retries=0,
            )
        return self._client

    def create_charge(self, amount: Decimal, currency: str, booking_id: str, user_id: str) -> ChargeResult:
        if not self.is_configured():
            raise PaymentError("Payment provider not configured")
        try:
            intent = self._get_client().payment_intents.create(
                params={
                    "amount": to_minor_units(amount),
                    "currency": currency,
                    "metadata": {"booking_id": booking_id, "user_id": user_id},
                },
                options={"idempotency_key": f"booking-{booking_id}"},
            )
        except stripe.StripeError as e:
            logger.warning("Stripe charge failed for booking %s: %s", booking_id, e)
            raise PaymentError("Payment provider rejected or timed out the charge") from e
        return ChargeResult(reference=intent.id, client_secret=intent.client_secret)


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency; tests override it with a fake gateway."""
    return StripePaymentGateway()
