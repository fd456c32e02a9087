"""
Payment provider adapter (Stripe Checkout).

The workflow needs four things from the provider: start a hosted checkout
for a PENDING booking, look a session up again, verify that a webhook really
came from the provider, and refund a payment that arrived after its hold
was given up. ``PaymentGateway`` is that seam; ``StripeGateway`` is the
production implementation.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Protocol

import stripe
import structlog

from rental_reservations.config import (
    APP_URL,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
    WEBHOOK_TOLERANCE_SECONDS,
)
from rental_reservations.domain.pricing import to_minor_units
from rental_reservations.domain.records import BookingRecord
from rental_reservations.errors import (
    PaymentProviderError,
    PaymentVerificationError,
    ValidationError,
)
from rental_reservations.metrics import payment_api_latency
from rental_reservations.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

CHECKOUT_COMPLETED_EVENT = "checkout.session.completed"
PAID = "paid"

# Stripe rejects checkout sessions that expire sooner than this
MIN_SESSION_LIFETIME = timedelta(minutes=30)
SESSION_EXPIRY_MARGIN = timedelta(minutes=1)


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: Optional[str] = None
    payment_status: Optional[str] = None
    payment_intent_id: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PAID

    @classmethod
    def from_provider(cls, session: Mapping[str, Any]) -> "CheckoutSession":
        """Build from a provider session object or a webhook ``data.object`` dict."""
        intent = session.get("payment_intent")
        if isinstance(intent, Mapping):
            intent = intent.get("id")
        return cls(
            id=session["id"],
            url=session.get("url"),
            payment_status=session.get("payment_status"),
            payment_intent_id=intent,
            metadata=dict(session.get("metadata") or {}),
        )


class PaymentGateway(Protocol):
    def create_checkout_session(
        self, booking: BookingRecord, property_title: str
    ) -> CheckoutSession: ...

    def retrieve_session(self, session_id: str) -> CheckoutSession: ...

    def verify_webhook_event(
        self, payload: bytes, signature: Optional[str]
    ) -> Mapping[str, Any]: ...

    def refund_payment(self, payment_intent_id: str, booking_number: str) -> str: ...


def checkout_expires_at(
    hold_expires_at: Optional[datetime], now: Optional[datetime] = None
) -> int:
    """
    Unix time at which a checkout session should stop accepting payment.

    The session ends with the booking's hold, but never earlier than the
    provider allows, so a hold shorter than ``MIN_SESSION_LIFETIME`` leaves
    a short window where a payment can outlive it.

    Example:
        >>> now = datetime(2030, 6, 1, 12, 0, tzinfo=timezone.utc)
        >>> checkout_expires_at(now + timedelta(minutes=45), now) == int(
        ...     (now + timedelta(minutes=45)).timestamp())
        True
    """
    now = now or utc_now()
    earliest = now + MIN_SESSION_LIFETIME + SESSION_EXPIRY_MARGIN
    if hold_expires_at is None:
        return int(earliest.timestamp())
    if hold_expires_at.tzinfo is None:
        hold_expires_at = hold_expires_at.replace(tzinfo=timezone.utc)
    return int(max(hold_expires_at, earliest).timestamp())


class StripeGateway:
    """
    Stripe Checkout implementation of ``PaymentGateway``.

    Example:
        >>> gateway = StripeGateway(api_key="sk_test_...", webhook_secret="whsec_...")
        >>> session = gateway.create_checkout_session(booking, "Lakeside Cabin")
        >>> session.url
        'https://checkout.stripe.com/c/pay/cs_test_...'
    """

    def __init__(
        self,
        api_key: str = STRIPE_SECRET_KEY,
        webhook_secret: str = STRIPE_WEBHOOK_SECRET,
        app_url: str = APP_URL,
        tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.app_url = app_url
        self.tolerance = tolerance

    def create_checkout_session(
        self, booking: BookingRecord, property_title: str
    ) -> CheckoutSession:
        """
        Start a hosted checkout for a PENDING booking.

        The booking number and id travel in the session metadata so support
        can match a payment to a booking from the provider dashboard.

        Raises:
            PaymentProviderError: If the provider rejects or fails the request
        """
        nights = booking.dates.nights
        start = time.monotonic()
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": booking.currency.lower(),
                            "product_data": {
                                "name": f"Booking: {property_title}",
                                "description": (
                                    f"{nights} night{'s' if nights != 1 else ''} "
                                    f"({booking.check_in_date:%b %d, %Y} - "
                                    f"{booking.check_out_date:%b %d, %Y})"
                                ),
                            },
                            "unit_amount": to_minor_units(booking.total_amount, booking.currency),
                        },
                        "quantity": 1,
                    }
                ],
                success_url=f"{self.app_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self.app_url}/cancel",
                expires_at=checkout_expires_at(booking.expires_at),
                client_reference_id=str(booking.id),
                metadata={
                    "booking_id": str(booking.id),
                    "booking_number": booking.booking_number,
                    "property_id": str(booking.property_id),
                    "guest_id": str(booking.guest_id),
                },
            )
        except stripe.StripeError as e:
            logger.error(
                "checkout_session_create_failed",
                booking_id=str(booking.id),
                error=str(e),
            )
            raise PaymentProviderError("Failed to create checkout session") from e
        finally:
            payment_api_latency.labels(operation="create_checkout_session").observe(
                time.monotonic() - start
            )

        logger.info(
            "checkout_session_created",
            booking_id=str(booking.id),
            session_id=session["id"],
        )
        return CheckoutSession.from_provider(session)

    def retrieve_session(self, session_id: str) -> CheckoutSession:
        """
        Raises:
            PaymentProviderError: If the session cannot be fetched
        """
        start = time.monotonic()
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error("checkout_session_retrieve_failed", session_id=session_id, error=str(e))
            raise PaymentProviderError("Failed to retrieve checkout session") from e
        finally:
            payment_api_latency.labels(operation="retrieve_session").observe(
                time.monotonic() - start
            )
        return CheckoutSession.from_provider(session)

    def verify_webhook_event(
        self, payload: bytes, signature: Optional[str]
    ) -> Mapping[str, Any]:
        """
        Verify a webhook body against its ``Stripe-Signature`` header.

        Args:
            payload: Raw request body, exactly as received
            signature: Value of the Stripe-Signature header

        Returns:
            Mapping: The verified event

        Raises:
            PaymentVerificationError: If the signature is missing, stale or wrong
            ValidationError: If the signature is valid but the body is not JSON
        """
        if not self.webhook_secret:
            raise PaymentVerificationError("Webhook secret is not configured")
        if not signature:
            raise PaymentVerificationError("Missing Stripe-Signature header")

        try:
            return stripe.Webhook.construct_event(
                payload, signature, self.webhook_secret, tolerance=self.tolerance
            )
        except stripe.SignatureVerificationError as e:
            raise PaymentVerificationError("Invalid signature") from e
        except ValueError as e:
            raise ValidationError("Invalid payload") from e

    def refund_payment(self, payment_intent_id: str, booking_number: str) -> str:
        """
        Refund the full amount of a payment.

        The idempotency key is derived from the payment intent, so a webhook
        redelivery never refunds the same payment twice.

        Returns:
            str: Provider refund id

        Raises:
            PaymentProviderError: If the provider rejects or fails the refund
        """
        start = time.monotonic()
        try:
            refund = stripe.Refund.create(
                api_key=self.api_key,
                payment_intent=payment_intent_id,
                idempotency_key=f"refund-{payment_intent_id}",
                metadata={"booking_number": booking_number},
            )
        except stripe.StripeError as e:
            logger.error(
                "refund_failed",
                payment_intent_id=payment_intent_id,
                booking_number=booking_number,
                error=str(e),
            )
            raise PaymentProviderError("Failed to refund payment") from e
        finally:
            payment_api_latency.labels(operation="refund_payment").observe(
                time.monotonic() - start
            )

        logger.info(
            "payment_refunded",
            payment_intent_id=payment_intent_id,
            booking_number=booking_number,
            refund_id=refund["id"],
        )
        return refund["id"]
