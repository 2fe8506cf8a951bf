"""
Payment service - Connects the payment gateway to the booking lifecycle.

Flow:
1. start_checkout(): create a payment with the gateway for a CREATED booking
   and remember its reference on the booking
2. process_payment_confirmation(): on a succeeded payment, record it and
   confirm the booking through the state machine
3. refund_booking(): refund a paid booking and record the refund

A gateway failure never changes the booking's lifecycle status.
Payment outcomes are reported to the hub as payment events.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Optional

from sqlalchemy import or_, select, update

from booking.lifecycle.state_machine import BookingStateMachine
from database.connection import get_async_session
from database.models import Booking, BookingStatus, PaymentStatus
from shared.hub_reporter import HubEventReporter, get_hub_reporter
from shared.payment_gateway import PaymentGateway, get_payment_gateway

logger = logging.getLogger(__name__)


class PaymentService:
    """Payment use cases for bookings."""

    def __init__(
        self,
        gateway: Optional[PaymentGateway] = None,
        state_machine: Optional[BookingStateMachine] = None,
        reporter: Optional[HubEventReporter] = None,
    ):
        self.gateway = gateway or get_payment_gateway()
        self.reporter = reporter or get_hub_reporter()
        self.state_machine = state_machine or BookingStateMachine(event_sink=self.reporter)

    async def _load_booking(self, booking_id: str) -> Optional[Booking]:
        async with get_async_session() as session:
            result = await session.execute(
                select(Booking).where(Booking.id == booking_id, Booking.deleted_at.is_(None))
            )
            return result.scalar_one_or_none()

    async def _find_by_payment_ref(self, payment_ref: str, booking_id: str | None) -> Optional[Booking]:
        conditions = [Booking.payment_intent_id == payment_ref]
        if booking_id:
            conditions.append(Booking.id == booking_id)
        async with get_async_session() as session:
            result = await session.execute(
                select(Booking)
                .where(or_(*conditions), Booking.deleted_at.is_(None))
                .order_by(Booking.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def _update_payment(self, booking_id: str, **values: Any) -> None:
        async with get_async_session() as session:
            await session.execute(
                update(Booking)
                .where(Booking.id == booking_id)
                .values(updated_at=datetime.now(UTC), **values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    async def start_checkout(self, booking_id: str) -> dict[str, Any]:
        """
        Create a payment for a booking awaiting payment.

        Returns:
            Success:
                {"success": True, "booking_id": str, "payment_id": str, "redirect_url": str}
            Failure:
                {"success": False, "error_code": str, "error_message": str}
        """
        booking = await self._load_booking(booking_id)
        if booking is None:
            return {
                "success": False,
                "error_code": "BOOKING_NOT_FOUND",
                "error_message": f"Booking {booking_id} not found",
            }

        if booking.status != BookingStatus.CREATED or booking.is_paid:
            logger.warning(
                f"Checkout refused for booking {booking_id} in status {booking.status}",
                extra={"booking_id": booking_id},
            )
            return {
                "success": False,
                "error_code": "PAYMENT_NOT_ALLOWED",
                "error_message": f"Booking in status {booking.status} cannot be paid",
            }

        description = booking.service.name if booking.service else f"Booking {booking.id}"

        try:
            intent = await self.gateway.create_payment(booking, description)
        except Exception as e:
            logger.error(
                f"Gateway error creating payment for booking {booking_id}: {e}",
                extra={"booking_id": booking_id},
                exc_info=True,
            )
            return {
                "success": False,
                "error_code": "GATEWAY_ERROR",
                "error_message": "Payment provider unavailable",
            }

        await self._update_payment(
            booking_id,
            payment_intent_id=intent.id,
            payment_method=self.gateway.name,
            payment_status=PaymentStatus.PENDING,
        )

        await self.reporter.payment_event(
            "payment.initiated",
            {
                "booking_id": booking_id,
                "payment_id": intent.id,
                "amount_cents": intent.amount_cents,
                "currency": intent.currency,
                "gateway": self.gateway.name,
            },
        )

        return {
            "success": True,
            "booking_id": booking_id,
            "payment_id": intent.id,
            "redirect_url": intent.redirect_url,
        }

    async def process_payment_confirmation(
        self,
        payment_ref: str,
        booking_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Settle a payment reported by the gateway.

        Args:
            payment_ref: Gateway payment reference
            booking_id: Booking id from the gateway metadata, if known

        Returns:
            {"success": True, "booking_id": str, "confirmed": bool} when the
            payment succeeded; confirmed is False if the booking could no
            longer be confirmed (e.g., it was cancelled meanwhile).
            {"success": False, "error_code": ...} otherwise.
        """
        try:
            payment = await self.gateway.confirm_payment(payment_ref)
        except Exception as e:
            logger.error(f"Gateway error confirming payment {payment_ref}: {e}", exc_info=True)
            return {
                "success": False,
                "error_code": "GATEWAY_ERROR",
                "error_message": "Payment provider unavailable",
            }

        booking_id = booking_id or payment.metadata.get("booking_id")
        booking = await self._find_by_payment_ref(payment_ref, booking_id)
        if booking is None:
            logger.error(f"No booking found for payment {payment_ref}")
            return {
                "success": False,
                "error_code": "BOOKING_NOT_FOUND",
                "error_message": f"No booking for payment {payment_ref}",
            }

        event_data = {
            "booking_id": booking.id,
            "payment_id": payment.id,
            "amount_cents": payment.amount_cents,
            "currency": payment.currency,
            "gateway": self.gateway.name,
        }

        if payment.is_successful:
            if not booking.is_paid:
                await self._update_payment(
                    booking.id,
                    payment_status=PaymentStatus.PAID,
                    is_paid=True,
                    payment_intent_id=payment_ref,
                )
            confirmed = await self.state_machine.confirm(booking.id)
            if not confirmed:
                logger.warning(
                    f"Payment {payment_ref} succeeded but booking {booking.id} "
                    f"was not confirmed (status {booking.status})",
                    extra={"booking_id": booking.id},
                )
            await self.reporter.payment_event("payment.succeeded", event_data)
            return {"success": True, "booking_id": booking.id, "confirmed": confirmed}

        if payment.is_failed:
            await self._update_payment(booking.id, payment_status=PaymentStatus.FAILED)
            await self.reporter.payment_event("payment.failed", event_data)
            logger.warning(
                f"Payment {payment_ref} failed for booking {booking.id}",
                extra={"booking_id": booking.id},
            )
            return {
                "success": False,
                "booking_id": booking.id,
                "error_code": "PAYMENT_FAILED",
                "error_message": "Payment was declined",
            }

        return {
            "success": False,
            "booking_id": booking.id,
            "error_code": "PAYMENT_PENDING",
            "error_message": "Payment is still being processed",
        }

    async def refund_booking(self, booking_id: str, amount_cents: int | None = None) -> dict[str, Any]:
        """Refund a paid booking fully (amount_cents=None) or partially."""
        booking = await self._load_booking(booking_id)
        if booking is None:
            return {
                "success": False,
                "error_code": "BOOKING_NOT_FOUND",
                "error_message": f"Booking {booking_id} not found",
            }

        if not booking.is_paid or not booking.payment_intent_id:
            return {
                "success": False,
                "error_code": "REFUND_NOT_ALLOWED",
                "error_message": "Booking has no settled payment",
            }

        try:
            refund = await self.gateway.refund(booking.payment_intent_id, amount_cents)
        except Exception as e:
            logger.error(
                f"Gateway error refunding booking {booking_id}: {e}",
                extra={"booking_id": booking_id},
                exc_info=True,
            )
            return {
                "success": False,
                "error_code": "GATEWAY_ERROR",
                "error_message": "Payment provider unavailable",
            }

        if not refund.is_successful:
            logger.warning(
                f"Refund for booking {booking_id} not completed: status={refund.status}",
                extra={"booking_id": booking_id},
            )
            return {
                "success": False,
                "error_code": "REFUND_FAILED" if refund.is_failed else "REFUND_PENDING",
                "error_message": f"Refund status: {refund.status}",
            }

        full_refund = amount_cents is None or amount_cents >= booking.amount_cents
        await self._update_payment(
            booking_id,
            payment_status=PaymentStatus.REFUNDED,
            is_paid=not full_refund,
        )
        await self.reporter.payment_event(
            "payment.refunded",
            {
                "booking_id": booking_id,
                "refund_id": refund.refund_id,
                "amount_cents": refund.amount_cents,
                "currency": refund.currency,
                "gateway": self.gateway.name,
            },
        )
        return {
            "success": True,
            "booking_id": booking_id,
            "refund_id": refund.refund_id,
            "amount_cents": refund.amount_cents,
        }
