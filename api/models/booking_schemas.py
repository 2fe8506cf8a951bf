"""Pydantic models for the booking API."""

from datetime import date, datetime
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from booking.lifecycle.transitions import status_color, status_label
from booking.services.availability_service import AvailableSlot
from database.models import Booking, BookingStatus, PaymentStatus, Service


class ErrorResponse(BaseModel):
    """Error body for request validation failures."""

    error_code: str
    error_message: str
    details: list[dict[str, Any]] = Field(default_factory=list)


# =============================================================================
# Services
# =============================================================================


class ServiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    duration_minutes: int
    price_cents: int
    currency: str
    is_active: bool

    @classmethod
    def from_service(cls, service: Service) -> "ServiceResponse":
        return cls.model_validate(service)


class SlotResponse(BaseModel):
    start: datetime
    end: datetime
    period: str

    @classmethod
    def from_slot(cls, slot: AvailableSlot) -> "SlotResponse":
        return cls(start=slot.start, end=slot.end, period=slot.period)


class AvailabilityResponse(BaseModel):
    service_id: str
    date: date
    slots: list[SlotResponse]


# =============================================================================
# Bookings
# =============================================================================


class BookingCreateRequest(BaseModel):
    """Request to reserve a slot."""

    service_id: str = Field(..., min_length=1)
    scheduled_at: AwareDatetime
    client_name: str = Field(..., min_length=1, max_length=200)
    client_email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    client_phone: str | None = Field(default=None, max_length=30)
    client_notes: str | None = None
    source: str = Field(default="web", max_length=50)


class StartRequest(BaseModel):
    staff_id: str | None = None


class CompleteRequest(BaseModel):
    actual_duration_minutes: int | None = Field(default=None, ge=0)


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    actor_id: str | None = None


class RescheduleRequest(BaseModel):
    new_scheduled_at: AwareDatetime


class RefundRequest(BaseModel):
    amount_cents: int | None = Field(default=None, gt=0)


class BookingResponse(BaseModel):
    """Booking as returned by the API, with display metadata for its status."""

    id: str
    service_id: str
    service_name: str | None = None
    status: BookingStatus
    status_label: str
    status_color: str
    scheduled_at: datetime
    ends_at: datetime
    duration_minutes: int
    client_name: str
    client_email: str
    client_phone: str | None = None
    client_notes: str | None = None
    assigned_to: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    actual_duration_minutes: int | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    amount_cents: int
    currency: str
    payment_status: PaymentStatus
    is_paid: bool
    payment_method: str | None = None
    reminder_sent: bool
    reminder_sent_at: datetime | None = None
    rescheduled_from: str | None = None
    rescheduled_at: datetime | None = None
    source: str
    created_at: datetime

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            service_id=booking.service_id,
            service_name=booking.service.name if booking.service is not None else None,
            status=booking.status,
            status_label=status_label(booking.status),
            status_color=status_color(booking.status),
            scheduled_at=booking.scheduled_at,
            ends_at=booking.ends_at,
            duration_minutes=booking.duration_minutes,
            client_name=booking.client_name,
            client_email=booking.client_email,
            client_phone=booking.client_phone,
            client_notes=booking.client_notes,
            assigned_to=booking.assigned_to,
            started_at=booking.started_at,
            completed_at=booking.completed_at,
            actual_duration_minutes=booking.actual_duration_minutes,
            cancelled_at=booking.cancelled_at,
            cancellation_reason=booking.cancellation_reason,
            cancelled_by=booking.cancelled_by,
            amount_cents=booking.amount_cents,
            currency=booking.currency,
            payment_status=booking.payment_status,
            is_paid=booking.is_paid,
            payment_method=booking.payment_method,
            reminder_sent=booking.reminder_sent,
            reminder_sent_at=booking.reminder_sent_at,
            rescheduled_from=booking.rescheduled_from,
            rescheduled_at=booking.rescheduled_at,
            source=booking.source,
            created_at=booking.created_at,
        )


class CheckoutResponse(BaseModel):
    booking_id: str
    payment_id: str
    redirect_url: str
