"""Payment webhook route handler."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from api.dependencies import get_payment_service
from api.middleware.signature_validation import validate_stripe_signature
from booking.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter()

# Stripe event types we process
PROCESSED_EVENT_TYPES = {"checkout.session.completed", "checkout.session.expired"}


@router.post("/payments/stripe")
async def receive_stripe_webhook(
    event: dict[str, Any] = Depends(validate_stripe_signature),
    payments: PaymentService = Depends(get_payment_service),
) -> JSONResponse:
    """
    Receive Stripe checkout events and settle the matching booking.

    Completed sessions confirm the booking; expired sessions mark the
    payment failed. The settled state is read back from Stripe rather than
    trusted from the event body.

    Raises:
        HTTPException: 400 if the session id is missing
    """
    event_type = event.get("type")

    if event_type not in PROCESSED_EVENT_TYPES:
        logger.debug(f"Ignoring Stripe event type: {event_type}")
        return JSONResponse(status_code=200, content={"status": "ignored"})

    session_data = event.get("data", {}).get("object", {})
    session_id = session_data.get("id")
    if not session_id:
        logger.error(f"Missing session id in Stripe event {event.get('id')}")
        raise HTTPException(status_code=400, detail="Missing session id")

    booking_id = (session_data.get("metadata") or {}).get("booking_id")

    result = await payments.process_payment_confirmation(session_id, booking_id=booking_id)

    logger.info(
        f"Stripe event processed: type={event_type}, session={session_id}, "
        f"booking_id={result.get('booking_id')}, success={result['success']}"
    )

    # Stripe only needs an acknowledgement; failures are in the body and logs
    return JSONResponse(
        status_code=200,
        content={
            "status": "processed",
            "success": result["success"],
            "booking_id": result.get("booking_id"),
            "error_code": result.get("error_code"),
        },
    )
