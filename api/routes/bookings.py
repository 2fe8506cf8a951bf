"""
Booking routes.

Creation goes through BookingTransaction; every status change goes through
BookingStateMachine. A transition the state machine refuses (wrong status or
lost race) is reported as 409 INVALID_TRANSITION.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from api.dependencies import get_booking_transaction, get_payment_service, get_state_machine
from api.models.booking_schemas import (
    BookingCreateRequest,
    BookingResponse,
    CancelRequest,
    CheckoutResponse,
    CompleteRequest,
    RefundRequest,
    RescheduleRequest,
    StartRequest,
)
from booking.lifecycle.state_machine import BookingStateMachine
from booking.services.booking_query_service import find_bookings, get_booking, soft_delete_booking
from booking.services.payment_service import PaymentService
from booking.transactions.booking_transaction import (
    SERVICE_NOT_FOUND,
    SLOT_UNAVAILABLE,
    BookingTransaction,
)
from database.models import Booking, BookingStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])

# Error code -> HTTP status for creation failures; anything else is a 400
CREATE_ERROR_STATUS = {
    SERVICE_NOT_FOUND: 404,
    SLOT_UNAVAILABLE: 409,
}

PAYMENT_ERROR_STATUS = {
    "BOOKING_NOT_FOUND": 404,
    "PAYMENT_NOT_ALLOWED": 409,
    "REFUND_NOT_ALLOWED": 409,
    "GATEWAY_ERROR": 502,
}


def _error(status_code: int, error_code: str, error_message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error_code": error_code, "error_message": error_message},
    )


async def _require_booking(booking_id: str) -> Booking:
    booking = await get_booking(booking_id)
    if booking is None:
        raise _error(404, "BOOKING_NOT_FOUND", f"Booking {booking_id} not found")
    return booking


async def _transition_response(booking: Booking, applied: bool, action: str) -> BookingResponse:
    if not applied:
        raise _error(
            409,
            "INVALID_TRANSITION",
            f"Cannot {action} booking {booking.id} in status {booking.status}",
        )
    refreshed = await _require_booking(booking.id)
    return BookingResponse.from_booking(refreshed)


# =============================================================================
# Creation and queries
# =============================================================================


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    request: BookingCreateRequest,
    transaction: BookingTransaction = Depends(get_booking_transaction),
) -> BookingResponse:
    result = await transaction.execute(
        service_id=request.service_id,
        scheduled_at=request.scheduled_at,
        client_name=request.client_name,
        client_email=request.client_email,
        client_phone=request.client_phone,
        client_notes=request.client_notes,
        source=request.source,
    )
    if not result.success:
        status_code = CREATE_ERROR_STATUS.get(result.error_code, 400)
        raise _error(status_code, result.error_code, result.error_message)

    return BookingResponse.from_booking(result.booking)


@router.get("", response_model=list[BookingResponse])
async def list_bookings(
    status: Optional[list[BookingStatus]] = Query(default=None),
    service_id: Optional[str] = None,
    scheduled_from: Optional[datetime] = None,
    scheduled_to: Optional[datetime] = None,
    limit: int = Query(default=100, ge=1, le=500),
) -> list[BookingResponse]:
    for bound in (scheduled_from, scheduled_to):
        if bound is not None and bound.tzinfo is None:
            raise _error(400, "INVALID_DATETIME", "Range bounds must include a timezone offset")

    bookings = await find_bookings(
        statuses=status,
        scheduled_from=scheduled_from,
        scheduled_to=scheduled_to,
        service_id=service_id,
        limit=limit,
    )
    return [BookingResponse.from_booking(b) for b in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(booking_id: str) -> BookingResponse:
    return BookingResponse.from_booking(await _require_booking(booking_id))


@router.delete("/{booking_id}", status_code=204)
async def delete_booking(booking_id: str) -> Response:
    if not await soft_delete_booking(booking_id):
        raise _error(404, "BOOKING_NOT_FOUND", f"Booking {booking_id} not found")
    return Response(status_code=204)


# =============================================================================
# Lifecycle transitions
# =============================================================================


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: str,
    machine: BookingStateMachine = Depends(get_state_machine),
) -> BookingResponse:
    booking = await _require_booking(booking_id)
    return await _transition_response(booking, await machine.confirm(booking), "confirm")


@router.post("/{booking_id}/start", response_model=BookingResponse)
async def start_booking(
    booking_id: str,
    request: StartRequest | None = None,
    machine: BookingStateMachine = Depends(get_state_machine),
) -> BookingResponse:
    booking = await _require_booking(booking_id)
    staff_id = request.staff_id if request else None
    return await _transition_response(booking, await machine.start(booking, staff_id), "start")


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: str,
    request: CompleteRequest | None = None,
    machine: BookingStateMachine = Depends(get_state_machine),
) -> BookingResponse:
    booking = await _require_booking(booking_id)
    duration = request.actual_duration_minutes if request else None
    return await _transition_response(booking, await machine.complete(booking, duration), "complete")


@router.post("/{booking_id}/no-show", response_model=BookingResponse)
async def mark_booking_no_show(
    booking_id: str,
    machine: BookingStateMachine = Depends(get_state_machine),
) -> BookingResponse:
    booking = await _require_booking(booking_id)
    return await _transition_response(booking, await machine.mark_no_show(booking), "mark no-show")


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    request: CancelRequest,
    machine: BookingStateMachine = Depends(get_state_machine),
) -> BookingResponse:
    booking = await _require_booking(booking_id)
    applied = await machine.cancel(booking, request.reason, request.actor_id)
    return await _transition_response(booking, applied, "cancel")


@router.post("/{booking_id}/reschedule", response_model=BookingResponse, status_code=201)
async def reschedule_booking(
    booking_id: str,
    request: RescheduleRequest,
    machine: BookingStateMachine = Depends(get_state_machine),
) -> BookingResponse:
    """Move a booking; returns the replacement booking."""
    booking = await _require_booking(booking_id)
    replacement = await machine.reschedule(booking, request.new_scheduled_at)
    if replacement is None:
        raise _error(
            409,
            "RESCHEDULE_REJECTED",
            f"Booking {booking_id} cannot be moved to {request.new_scheduled_at.isoformat()}",
        )
    return BookingResponse.from_booking(replacement)


# =============================================================================
# Payments
# =============================================================================


def _payment_failure(result: dict[str, Any]) -> HTTPException:
    status_code = PAYMENT_ERROR_STATUS.get(result["error_code"], 400)
    return _error(status_code, result["error_code"], result["error_message"])


@router.post("/{booking_id}/checkout", response_model=CheckoutResponse)
async def checkout_booking(
    booking_id: str,
    payments: PaymentService = Depends(get_payment_service),
) -> CheckoutResponse:
    result = await payments.start_checkout(booking_id)
    if not result["success"]:
        raise _payment_failure(result)
    return CheckoutResponse(
        booking_id=result["booking_id"],
        payment_id=result["payment_id"],
        redirect_url=result["redirect_url"],
    )


@router.post("/{booking_id}/refund")
async def refund_booking(
    booking_id: str,
    request: RefundRequest | None = None,
    payments: PaymentService = Depends(get_payment_service),
) -> dict[str, Any]:
    amount_cents = request.amount_cents if request else None
    result = await payments.refund_booking(booking_id, amount_cents)
    if not result["success"]:
        raise _payment_failure(result)
    return result
