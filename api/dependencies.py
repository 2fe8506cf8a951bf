"""FastAPI dependency providers for the booking core."""

from booking.lifecycle.state_machine import BookingStateMachine
from booking.services.payment_service import PaymentService
from booking.transactions.booking_transaction import BookingTransaction
from shared.payment_gateway import StripeGateway


def get_state_machine() -> BookingStateMachine:
    return BookingStateMachine()


def get_booking_transaction() -> BookingTransaction:
    return BookingTransaction()


def get_payment_service() -> PaymentService:
    return PaymentService()


def get_stripe_gateway() -> StripeGateway:
    return StripeGateway()
