"""Middleware for payment webhook signature validation."""

import logging
from typing import Any

from fastapi import Depends, HTTPException, Request

from api.dependencies import get_stripe_gateway
from shared.payment_gateway import SignatureVerificationError, StripeGateway

logger = logging.getLogger(__name__)


async def validate_stripe_signature(
    request: Request,
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> dict[str, Any]:
    """
    Verify the Stripe-Signature header against the raw body.

    Returns:
        Parsed Stripe event

    Raises:
        HTTPException: 401 if the header is missing or doesn't verify
    """
    body = await request.body()
    signature_header: str | None = request.headers.get("Stripe-Signature")

    if not signature_header:
        logger.warning("Payment webhook received without Stripe-Signature header")
        raise HTTPException(status_code=401, detail="Invalid Stripe signature")

    try:
        event = gateway.parse_webhook(body, signature_header)
    except SignatureVerificationError as e:
        logger.warning(f"Stripe signature verification failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid Stripe signature") from e
    except ValueError as e:
        logger.warning(f"Malformed Stripe webhook payload: {e}")
        raise HTTPException(status_code=400, detail="Malformed payload") from e

    logger.debug(f"Stripe signature validated: event_type={event.get('type')}")
    return event
