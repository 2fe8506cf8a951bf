"""
Payment gateway capability.

The booking core treats a gateway as an opaque create / confirm / refund
capability. StripeGateway is the only concrete implementation; it charges
through Checkout Sessions and refunds through the Refunds API.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

import stripe
from stripe import SignatureVerificationError

from shared.config import get_settings

logger = logging.getLogger(__name__)


class UnsupportedGatewayError(Exception):
    """Raised when PAYMENT_GATEWAY names a gateway we don't implement."""

    pass


# ============================================================================
# Results
# ============================================================================


@dataclass(frozen=True)
class PaymentIntent:
    """A created payment the client still has to complete."""

    id: str
    redirect_url: str
    amount_cents: int
    currency: str
    status: str
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of a payment confirmation lookup."""

    id: str
    status: str
    amount_cents: int
    currency: str
    transaction_id: str | None = None
    authorization_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return self.status in ("succeeded", "paid")

    @property
    def is_failed(self) -> bool:
        return self.status in ("failed", "declined")

    @property
    def is_pending(self) -> bool:
        return self.status in ("pending", "processing")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RefundResult:
    """Outcome of a refund request."""

    id: str
    status: str
    amount_cents: int
    currency: str
    refund_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return self.status in ("succeeded", "refunded")

    @property
    def is_failed(self) -> bool:
        return self.status == "failed"

    @property
    def is_pending(self) -> bool:
        return self.status in ("pending", "processing")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PaymentGateway(Protocol):
    """Opaque payment capability used by the payment service."""

    name: str

    async def create_payment(self, booking: Any, description: str) -> PaymentIntent: ...

    async def confirm_payment(self, payment_ref: str) -> PaymentResult: ...

    async def refund(self, payment_ref: str, amount_cents: int | None = None) -> RefundResult: ...


# ============================================================================
# Stripe
# ============================================================================


class StripeGateway:
    """Stripe Checkout implementation of the payment capability."""

    name = "stripe"

    def __init__(
        self,
        secret_key: str | None = None,
        webhook_secret: str | None = None,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET
        self.success_url = success_url or settings.PAYMENT_SUCCESS_URL
        self.cancel_url = cancel_url or settings.PAYMENT_CANCEL_URL
        stripe.api_key = self.secret_key

    async def create_payment(self, booking: Any, description: str) -> PaymentIntent:
        """
        Create a Checkout Session for the booking's snapshotted amount.

        Args:
            booking: Booking with id, amount_cents, currency and client_email
            description: Line item description shown on the checkout page

        Returns:
            PaymentIntent whose id is the Checkout Session id

        Raises:
            stripe.StripeError: If the Stripe API call fails
        """
        metadata = {"booking_id": str(booking.id)}
        params: dict[str, Any] = {
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": booking.currency.lower(),
                        "unit_amount": booking.amount_cents,
                        "product_data": {"name": description},
                    },
                    "quantity": 1,
                }
            ],
            "metadata": metadata,
            "client_reference_id": str(booking.id),
            "success_url": self.success_url.format(booking_id=booking.id),
            "cancel_url": self.cancel_url.format(booking_id=booking.id),
        }
        if booking.client_email:
            params["customer_email"] = booking.client_email

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating checkout for booking {booking.id}: {e}")
            raise

        logger.info(f"Checkout session created: {session.id} for booking {booking.id}")

        return PaymentIntent(
            id=session.id,
            redirect_url=session.url,
            amount_cents=booking.amount_cents,
            currency=booking.currency,
            status="pending",
            metadata=metadata,
        )

    async def confirm_payment(self, payment_ref: str) -> PaymentResult:
        """Look up a Checkout Session and map it onto a PaymentResult."""
        try:
            session = stripe.checkout.Session.retrieve(payment_ref)
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving checkout {payment_ref}: {e}")
            raise

        if session.payment_status in ("paid", "no_payment_required"):
            status = "paid"
        elif session.status == "expired":
            status = "failed"
        else:
            status = "pending"

        return PaymentResult(
            id=session.id,
            status=status,
            amount_cents=session.amount_total or 0,
            currency=(session.currency or "").upper(),
            transaction_id=session.payment_intent,
            metadata=dict(session.metadata or {}),
        )

    async def refund(self, payment_ref: str, amount_cents: int | None = None) -> RefundResult:
        """
        Refund a completed Checkout Session, fully or partially.

        Args:
            payment_ref: Checkout Session id stored on the booking
            amount_cents: Partial amount, or None for the full charge
        """
        try:
            session = stripe.checkout.Session.retrieve(payment_ref)
            params: dict[str, Any] = {"payment_intent": session.payment_intent}
            if amount_cents is not None:
                params["amount"] = amount_cents
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe error refunding {payment_ref}: {e}")
            raise

        logger.info(f"Refund {refund.id} for {payment_ref}: status={refund.status}")

        return RefundResult(
            id=payment_ref,
            status=refund.status,
            amount_cents=refund.amount,
            currency=(refund.currency or "").upper(),
            refund_id=refund.id,
        )

    def parse_webhook(self, payload: bytes, signature_header: str) -> dict[str, Any]:
        """
        Verify a webhook signature and return the parsed event.

        Raises:
            SignatureVerificationError: If the signature does not match
        """
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=signature_header,
            secret=self.webhook_secret,
        )
        return dict(event)


_GATEWAYS = {
    "stripe": StripeGateway,
}


def get_payment_gateway(name: str | None = None) -> PaymentGateway:
    """
    Build the configured payment gateway.

    Raises:
        UnsupportedGatewayError: If the name is not a known gateway
    """
    gateway_name = (name or get_settings().PAYMENT_GATEWAY).lower()
    gateway_cls = _GATEWAYS.get(gateway_name)
    if gateway_cls is None:
        raise UnsupportedGatewayError(f"Unsupported payment gateway: {gateway_name}")
    return gateway_cls()


__all__ = [
    "PaymentGateway",
    "PaymentIntent",
    "PaymentResult",
    "RefundResult",
    "SignatureVerificationError",
    "StripeGateway",
    "UnsupportedGatewayError",
    "get_payment_gateway",
]
