"""
Booking Transaction Handler - Slot allocation.

Creates a booking in CREATED status while guaranteeing that no two active
bookings of a service overlap:
- The service row is locked (SELECT ... FOR UPDATE) so allocations for one
  service run one at a time
- The overlap check is repeated inside that lock, right before the insert
- A partial unique index on (service_id, scheduled_at) over active bookings
  rejects a second insert for the same slot start

The database is committed first; the booking.created event is reported after
commit and its failure never affects the booking.

The BookingTransaction.execute() method is the single entry point for creating bookings.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from booking.lifecycle.state_machine import (
    EventSink,
    SessionFactory,
    build_event_payload,
    report_event,
    utcnow,
)
from booking.lifecycle.transitions import STATUS_EVENT_ACTIONS
from booking.services.availability_service import find_conflicting_booking
from booking.services.slot_generator import business_timezone, is_slot_start
from database.connection import get_async_session
from database.models import Booking, BookingStatus, Service
from shared.config import get_settings

logger = logging.getLogger(__name__)

# Error codes
SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"
SERVICE_INACTIVE = "SERVICE_INACTIVE"
INVALID_DATETIME = "INVALID_DATETIME"
INVALID_SLOT = "INVALID_SLOT"
SLOT_IN_PAST = "SLOT_IN_PAST"
SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"


@dataclass
class BookingResult:
    """
    Result of a booking creation attempt.

    Attributes:
        success: Whether the booking was created
        booking: The created booking (success only)
        error_code: Machine-readable failure reason
        error_message: Human-readable failure reason
        details: Extra failure context (e.g., conflicting booking id)
    """

    success: bool
    booking: Optional[Booking] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, error_code: str, error_message: str, **details: Any) -> "BookingResult":
        return cls(success=False, error_code=error_code, error_message=error_message, details=details)


class BookingTransaction:
    """
    Atomic transaction handler for creating bookings.

    This class encapsulates the allocation flow:
    1. Validate the requested start time
    2. Lock the service row
    3. Check the slot lies on the service's slot grid
    4. Re-check for overlapping active bookings
    5. Insert the booking (unique index as the last line of defense)
    6. Commit, then report booking.created
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        event_sink: Optional[EventSink] = None,
        clock: Optional[Callable[[], datetime]] = None,
        event_timeout: Optional[float] = None,
    ):
        if event_sink is None:
            from shared.hub_reporter import get_hub_reporter

            event_sink = get_hub_reporter()

        self._session_factory = session_factory or get_async_session
        self._event_sink = event_sink
        self._clock = clock or utcnow
        self._event_timeout = (
            event_timeout if event_timeout is not None else get_settings().HUB_TIMEOUT_SECONDS
        )

    async def execute(
        self,
        service_id: str,
        scheduled_at: datetime,
        client_name: str,
        client_email: str,
        client_phone: str | None = None,
        client_notes: str | None = None,
        source: str = "web",
    ) -> BookingResult:
        """
        Execute the booking transaction.

        Args:
            service_id: Service to book
            scheduled_at: Slot start (timezone-aware)
            client_name: Client name snapshot
            client_email: Client email snapshot
            client_phone: Optional client phone
            client_notes: Optional client notes
            source: Channel the booking came from

        Returns:
            BookingResult; on conflict error_code is SLOT_UNAVAILABLE

        Example:
            >>> result = await BookingTransaction().execute(
            ...     service_id="01J...",
            ...     scheduled_at=datetime(2025, 3, 3, 10, 0, tzinfo=ZoneInfo("America/Santiago")),
            ...     client_name="Ana",
            ...     client_email="ana@example.com",
            ... )
            >>> if result.success:
            ...     booking_id = result.booking.id
        """
        trace_id = f"{service_id}_{scheduled_at.isoformat()}"
        logger.info(
            f"[{trace_id}] Starting booking transaction",
            extra={"service_id": service_id},
        )

        if scheduled_at.tzinfo is None or scheduled_at.utcoffset() is None:
            logger.warning(f"[{trace_id}] Rejected naive scheduled_at")
            return BookingResult.failure(
                INVALID_DATETIME, "scheduled_at must include a timezone offset"
            )

        if scheduled_at <= self._clock():
            logger.warning(f"[{trace_id}] Rejected slot in the past")
            return BookingResult.failure(SLOT_IN_PAST, "The requested slot has already started")

        async with self._session_factory() as session:
            # Step 1: Lock the service row, serializing allocation per service
            result = await session.execute(
                select(Service).where(Service.id == service_id).with_for_update()
            )
            service = result.scalar_one_or_none()

            if service is None:
                logger.warning(f"[{trace_id}] Service not found")
                return BookingResult.failure(
                    SERVICE_NOT_FOUND, "Service not found", service_id=service_id
                )
            if not service.is_active:
                logger.warning(f"[{trace_id}] Service inactive")
                return BookingResult.failure(
                    SERVICE_INACTIVE, "Service is not bookable", service_id=service_id
                )

            # Step 2: The start must be a generated slot for this service
            if not is_slot_start(scheduled_at, service.duration_minutes, business_timezone()):
                logger.warning(f"[{trace_id}] Off-grid slot for {service.duration_minutes}-minute service")
                return BookingResult.failure(
                    INVALID_SLOT,
                    "The requested time is not an available slot for this service",
                    duration_minutes=service.duration_minutes,
                )

            # Step 3: Re-check overlaps inside the lock
            end = scheduled_at + timedelta(minutes=service.duration_minutes)
            conflict = await find_conflicting_booking(session, service_id, scheduled_at, end)
            if conflict is not None:
                logger.warning(
                    f"[{trace_id}] Slot unavailable",
                    extra={"booking_id": conflict.id},
                )
                return BookingResult.failure(
                    SLOT_UNAVAILABLE,
                    "The requested slot is no longer available",
                    conflicting_booking_id=conflict.id,
                )

            # Step 4: Insert with snapshots of duration and price
            now = self._clock()
            booking = Booking(
                service_id=service.id,
                client_name=client_name,
                client_email=client_email,
                client_phone=client_phone,
                client_notes=client_notes,
                status=BookingStatus.CREATED,
                scheduled_at=scheduled_at,
                duration_minutes=service.duration_minutes,
                amount_cents=service.price_cents,
                currency=service.currency,
                source=source,
                created_at=now,
                updated_at=now,
            )
            booking.service = service
            session.add(booking)

            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.warning(f"[{trace_id}] Slot taken concurrently (unique index)")
                return BookingResult.failure(
                    SLOT_UNAVAILABLE, "The requested slot is no longer available"
                )

        logger.info(
            f"[{trace_id}] Booking committed",
            extra={"booking_id": booking.id, "service_id": service_id},
        )

        # Step 5: Report after commit
        await report_event(
            self._event_sink,
            STATUS_EVENT_ACTIONS[BookingStatus.CREATED],
            build_event_payload(
                booking,
                duration_minutes=booking.duration_minutes,
                amount_cents=booking.amount_cents,
                currency=booking.currency,
            ),
            self._event_timeout,
        )

        return BookingResult(success=True, booking=booking)
