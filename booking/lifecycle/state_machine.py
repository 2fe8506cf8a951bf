"""
Booking state machine - Atomic status transitions.

Every operation follows the same shape:
1. Load the booking and validate the move against the transition table
2. Apply it as a compare-and-swap UPDATE keyed on the status that was validated
3. Commit, then report the event to the sink outside the transaction

A rejected transition (not allowed, booking missing, or a concurrent
transition won the race) returns False and leaves the row untouched.
Event-sink failures are logged and never undo a committed transition.

Usage:
    from booking.lifecycle.state_machine import BookingStateMachine

    machine = BookingStateMachine()
    if await machine.confirm(booking_id):
        ...
"""

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import UTC, datetime, timedelta
from typing import Any, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booking.lifecycle.transitions import STATUS_EVENT_ACTIONS, can_apply
from booking.services.availability_service import find_conflicting_booking
from database.connection import get_async_session
from database.models import Booking, BookingStatus, Service, StaffMember
from shared.config import get_settings

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

# Booking fields carried over to the replacement booking on reschedule
RESCHEDULE_COPIED_FIELDS = (
    "service_id",
    "assigned_to",
    "client_name",
    "client_email",
    "client_phone",
    "client_notes",
    "duration_minutes",
    "amount_cents",
    "currency",
    "payment_status",
    "is_paid",
    "payment_method",
    "payment_intent_id",
    "source",
)


class EventSink(Protocol):
    """Receives lifecycle events after they are committed."""

    async def notify(self, event_type: str, payload: dict[str, Any]) -> Any: ...


def utcnow() -> datetime:
    return datetime.now(UTC)


def build_event_payload(booking: Booking, **extra: Any) -> dict[str, Any]:
    """Base lifecycle payload plus transition-specific fields."""
    service = booking.service
    payload: dict[str, Any] = {
        "booking_id": booking.id,
        "service_name": service.name if service is not None else None,
        "scheduled_at": booking.scheduled_at.isoformat(),
    }
    payload.update(extra)
    return payload


async def report_event(
    sink: Optional[EventSink],
    action: str,
    payload: dict[str, Any],
    timeout: float,
) -> None:
    """Deliver one event, bounded by timeout; errors are logged and contained."""
    if sink is None:
        return
    try:
        await asyncio.wait_for(sink.notify(action, payload), timeout=timeout)
    except Exception as e:
        logger.error(
            f"Event sink failed for {action}: {type(e).__name__}: {e}",
            extra={"booking_id": payload.get("booking_id")},
        )


def _booking_id(booking: Booking | str) -> str:
    return booking if isinstance(booking, str) else booking.id


class BookingStateMachine:
    """
    Applies lifecycle transitions to persisted bookings.

    Operations accept a Booking or a booking id. When a Booking instance is
    passed, its attributes are updated in place after a successful commit.
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

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def confirm(self, booking: Booking | str) -> bool:
        return await self._transition(booking, BookingStatus.CONFIRMED)

    async def mark_reminded(self, booking: Booking | str) -> bool:
        return await self._transition(
            booking,
            BookingStatus.REMINDED,
            lambda b, now: {"reminder_sent": True, "reminder_sent_at": now},
        )

    async def start(self, booking: Booking | str, staff_id: str | None = None) -> bool:
        def values(b: Booking, now: datetime) -> dict[str, Any]:
            changes: dict[str, Any] = {"started_at": now}
            if staff_id is not None:
                changes["assigned_to"] = staff_id
            return changes

        return await self._transition(booking, BookingStatus.STARTED, values, staff_id=staff_id)

    async def complete(
        self,
        booking: Booking | str,
        actual_duration_minutes: int | None = None,
    ) -> bool:
        """
        Complete a started booking.

        The recorded duration is the explicit value when given, otherwise the
        whole minutes elapsed since started_at, otherwise left unset.
        """

        def values(b: Booking, now: datetime) -> dict[str, Any]:
            duration = actual_duration_minutes
            if duration is None and b.started_at is not None:
                duration = int((now - b.started_at).total_seconds() // 60)
            return {"completed_at": now, "actual_duration_minutes": duration}

        return await self._transition(
            booking,
            BookingStatus.COMPLETED,
            values,
            lambda b: {
                "completed_at": b.completed_at.isoformat(),
                "actual_duration_minutes": b.actual_duration_minutes,
            },
        )

    async def mark_no_show(self, booking: Booking | str) -> bool:
        return await self._transition(booking, BookingStatus.NO_SHOW)

    async def cancel(
        self,
        booking: Booking | str,
        reason: str,
        actor_id: str | None = None,
    ) -> bool:
        """Cancel a booking; actor_id is the staff member acting, None for the client."""
        return await self._transition(
            booking,
            BookingStatus.CANCELLED,
            lambda b, now: {
                "cancelled_at": now,
                "cancellation_reason": reason,
                "cancelled_by": actor_id,
            },
            lambda b: {
                "cancelled_by": "staff" if actor_id else "client",
                "reason": reason,
            },
            staff_id=actor_id,
        )

    async def reschedule(
        self,
        booking: Booking | str,
        new_scheduled_at: datetime,
    ) -> Optional[Booking]:
        """
        Move a booking to a new time.

        Creates a new CREATED booking linked through rescheduled_from and marks
        the original RESCHEDULED, in one transaction. The original's
        scheduled_at is never modified.

        Returns:
            The new booking, or None (original untouched) if the move is not
            allowed or the new interval is taken
        """
        booking_id = _booking_id(booking)

        if new_scheduled_at.tzinfo is None or new_scheduled_at.utcoffset() is None:
            logger.warning(
                f"Reschedule rejected for booking {booking_id}: naive datetime",
                extra={"booking_id": booking_id},
            )
            return None

        now = self._clock()

        async with self._session_factory() as session:
            original = await self._load(session, booking_id)
            if original is None:
                logger.warning(f"Reschedule rejected: booking {booking_id} not found")
                return None

            observed = original.status
            if not can_apply(observed, BookingStatus.RESCHEDULED):
                logger.warning(
                    f"Invalid transition {observed} -> rescheduled for booking {booking_id}",
                    extra={"booking_id": booking_id},
                )
                return None

            # Serialize slot allocation for this service
            await session.execute(
                select(Service.id).where(Service.id == original.service_id).with_for_update()
            )

            if not await self._compare_and_swap(
                session, booking_id, observed, {"status": BookingStatus.RESCHEDULED, "updated_at": now}
            ):
                return None

            new_end = new_scheduled_at + timedelta(minutes=original.duration_minutes)
            conflict = await find_conflicting_booking(
                session,
                original.service_id,
                new_scheduled_at,
                new_end,
                exclude_booking_id=booking_id,
            )
            if conflict is not None:
                await session.rollback()
                logger.warning(
                    f"Reschedule rejected for booking {booking_id}: "
                    f"slot taken by {conflict.id}",
                    extra={"booking_id": booking_id},
                )
                return None

            replacement = Booking(
                **{field: getattr(original, field) for field in RESCHEDULE_COPIED_FIELDS},
                status=BookingStatus.CREATED,
                scheduled_at=new_scheduled_at,
                rescheduled_from=booking_id,
                rescheduled_at=now,
                created_at=now,
                updated_at=now,
            )
            replacement.service = original.service
            session.add(replacement)

            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.warning(
                    f"Reschedule rejected for booking {booking_id}: slot taken concurrently",
                    extra={"booking_id": booking_id},
                )
                return None

        original.status = BookingStatus.RESCHEDULED
        original.updated_at = now
        if isinstance(booking, Booking) and booking is not original:
            booking.status = BookingStatus.RESCHEDULED
            booking.updated_at = now

        logger.info(
            f"Booking {booking_id} rescheduled to {replacement.id} "
            f"at {new_scheduled_at.isoformat()}",
            extra={"booking_id": booking_id},
        )

        await report_event(
            self._event_sink,
            STATUS_EVENT_ACTIONS[BookingStatus.RESCHEDULED],
            build_event_payload(
                original,
                new_booking_id=replacement.id,
                new_scheduled_at=replacement.scheduled_at.isoformat(),
            ),
            self._event_timeout,
        )
        await report_event(
            self._event_sink,
            STATUS_EVENT_ACTIONS[BookingStatus.CREATED],
            build_event_payload(
                replacement,
                duration_minutes=replacement.duration_minutes,
                amount_cents=replacement.amount_cents,
                currency=replacement.currency,
                rescheduled_from=booking_id,
            ),
            self._event_timeout,
        )
        return replacement

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self, session: AsyncSession, booking_id: str) -> Optional[Booking]:
        result = await session.execute(
            select(Booking).where(Booking.id == booking_id, Booking.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def _compare_and_swap(
        self,
        session: AsyncSession,
        booking_id: str,
        observed: BookingStatus,
        values: dict[str, Any],
    ) -> bool:
        result = await session.execute(
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.status == observed,
                Booking.deleted_at.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await session.rollback()
            logger.warning(
                f"Booking {booking_id} left {observed} concurrently, "
                f"transition to {values['status']} dropped",
                extra={"booking_id": booking_id},
            )
            return False
        return True

    async def _transition(
        self,
        booking: Booking | str,
        target: BookingStatus,
        build_values: Optional[Callable[[Booking, datetime], dict[str, Any]]] = None,
        build_payload: Optional[Callable[[Booking], dict[str, Any]]] = None,
        staff_id: str | None = None,
    ) -> bool:
        booking_id = _booking_id(booking)
        now = self._clock()

        async with self._session_factory() as session:
            current = await self._load(session, booking_id)
            if current is None:
                logger.warning(
                    f"Transition to {target} rejected: booking {booking_id} not found",
                    extra={"booking_id": booking_id},
                )
                return False

            observed = current.status
            if not can_apply(observed, target):
                logger.warning(
                    f"Invalid transition {observed} -> {target} for booking {booking_id}",
                    extra={"booking_id": booking_id},
                )
                return False

            if staff_id is not None and await session.get(StaffMember, staff_id) is None:
                logger.warning(
                    f"Transition to {target} rejected for booking {booking_id}: "
                    f"unknown staff member {staff_id}",
                    extra={"booking_id": booking_id},
                )
                return False

            values: dict[str, Any] = {"status": target, "updated_at": now}
            if build_values is not None:
                values.update(build_values(current, now))

            try:
                if not await self._compare_and_swap(session, booking_id, observed, values):
                    return False
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.warning(
                    f"Transition {observed} -> {target} rejected for booking {booking_id}: "
                    f"constraint violation ({e.orig})",
                    extra={"booking_id": booking_id},
                )
                return False

        for key, value in values.items():
            setattr(current, key, value)
            if isinstance(booking, Booking) and booking is not current:
                setattr(booking, key, value)

        logger.info(
            f"Booking {booking_id}: {observed} -> {target}",
            extra={"booking_id": booking_id},
        )

        extra = build_payload(current) if build_payload is not None else {}
        await report_event(
            self._event_sink,
            STATUS_EVENT_ACTIONS[target],
            build_event_payload(current, **extra),
            self._event_timeout,
        )
        return True
