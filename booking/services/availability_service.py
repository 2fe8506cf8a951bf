"""
DB-backed availability resolution.

Combines the candidate slots from the slot generator with the bookings that
currently occupy a service, and answers which slots are still free.

A booking occupies [scheduled_at, scheduled_at + duration_minutes) while its
status is CREATED, CONFIRMED, REMINDED or STARTED and it is not soft-deleted.
Two intervals conflict when they intersect; touching intervals do not.

Usage:
    from booking.services.availability_service import get_available_slots

    slots = await get_available_slots(service_id, date(2025, 3, 3))
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking.lifecycle.transitions import ACTIVE_STATUSES, is_active
from booking.services.slot_generator import TimeSlot, business_timezone, generate_slots
from database.connection import get_async_session
from database.models import Booking, Service

logger = logging.getLogger(__name__)

NOON = time(12, 0)

# Bookings are looked up this far before the window start, so one that starts
# earlier but runs into the window is still seen
MAX_BOOKING_LOOKBACK = timedelta(hours=24)


@dataclass(frozen=True)
class AvailableSlot:
    """A free slot with its period-of-day label."""

    start: datetime
    end: datetime
    period: str

    def to_dict(self) -> dict[str, str]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "period": self.period,
        }


def slot_period(slot: TimeSlot, tz: ZoneInfo | None = None) -> str:
    """'morning' for slots starting before 12:00 local time, else 'afternoon'."""
    local_start = slot.start.astimezone(tz) if tz else slot.start
    return "morning" if local_start.time() < NOON else "afternoon"


def intervals_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """Half-open interval intersection."""
    return a_start < b_end and b_start < a_end


def filter_available_slots(
    slots: Iterable[TimeSlot],
    bookings: Iterable[Booking],
    tz: ZoneInfo | None = None,
) -> list[AvailableSlot]:
    """
    Drop every slot that intersects an occupying booking.

    Args:
        slots: Candidate slots in order
        bookings: Bookings to check against; inactive or deleted ones are ignored
        tz: Timezone used for the morning/afternoon label

    Returns:
        Free slots in input order
    """
    busy = [
        (b.scheduled_at, b.ends_at)
        for b in bookings
        if is_active(b.status) and b.deleted_at is None
    ]

    available: list[AvailableSlot] = []
    for slot in slots:
        if any(intervals_overlap(slot.start, slot.end, start, end) for start, end in busy):
            continue
        available.append(AvailableSlot(start=slot.start, end=slot.end, period=slot_period(slot, tz)))
    return available


def _active_bookings_query(service_id: str, window_start: datetime, window_end: datetime):
    return (
        select(Booking)
        .where(
            Booking.service_id == service_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.deleted_at.is_(None),
            Booking.scheduled_at >= window_start - MAX_BOOKING_LOOKBACK,
            Booking.scheduled_at < window_end,
        )
        .order_by(Booking.scheduled_at)
    )


async def get_active_bookings_between(
    session: AsyncSession,
    service_id: str,
    window_start: datetime,
    window_end: datetime,
) -> list[Booking]:
    """Occupying bookings of a service whose interval intersects the window."""
    result = await session.execute(_active_bookings_query(service_id, window_start, window_end))
    return [
        booking
        for booking in result.scalars().all()
        if intervals_overlap(booking.scheduled_at, booking.ends_at, window_start, window_end)
    ]


async def find_conflicting_booking(
    session: AsyncSession,
    service_id: str,
    start: datetime,
    end: datetime,
    exclude_booking_id: str | None = None,
) -> Booking | None:
    """
    Return the first occupying booking that intersects [start, end), if any.

    Must run inside the caller's transaction so the answer stays valid until
    the caller's insert (the caller holds the service row lock).
    """
    for booking in await get_active_bookings_between(session, service_id, start, end):
        if booking.id != exclude_booking_id:
            return booking
    return None


async def get_available_slots(
    service_id: str,
    target_date: date,
    session: Optional[AsyncSession] = None,
) -> list[AvailableSlot]:
    """
    Get the free slots of a service on a date.

    Existing bookings are read and the candidates filtered within a single
    session, so the answer reflects one snapshot.

    Args:
        service_id: Service to check
        target_date: Calendar date in the business timezone
        session: Optional existing database session

    Returns:
        Ordered free slots; empty for unknown or inactive services, weekends
        and durations that don't fit business hours
    """
    if session is None:
        async with get_async_session() as new_session:
            return await get_available_slots(service_id, target_date, new_session)

    service = await session.get(Service, service_id)
    if service is None or not service.is_active:
        logger.info(f"No availability: service {service_id} missing or inactive")
        return []

    tz = business_timezone()
    candidates = generate_slots(target_date, service.duration_minutes, tz)
    if not candidates:
        return []

    bookings = await get_active_bookings_between(
        session, service_id, candidates[0].start, candidates[-1].end
    )
    available = filter_available_slots(candidates, bookings, tz)

    logger.debug(
        f"Availability for service {service_id} on {target_date}: "
        f"{len(available)}/{len(candidates)} slots free"
    )
    return available
