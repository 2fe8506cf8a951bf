"""
Booking query service - Read paths and soft deletion.

Read-only lookups for services and bookings, plus logical removal of a
booking. A soft-deleted booking keeps its row for audit but never blocks a
slot and is never picked up by a sweep.
"""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import select, update

from database.connection import get_async_session
from database.models import Booking, BookingStatus, Service

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100


async def get_service(service_id: str) -> Optional[Service]:
    async with get_async_session() as session:
        return await session.get(Service, service_id)


async def list_services(include_inactive: bool = False) -> list[Service]:
    """List the service catalog ordered by name."""
    async with get_async_session() as session:
        query = select(Service).order_by(Service.name)
        if not include_inactive:
            query = query.where(Service.is_active.is_(True))
        result = await session.execute(query)
        return list(result.scalars().all())


async def get_booking(booking_id: str, include_deleted: bool = False) -> Optional[Booking]:
    """
    Get a booking by id.

    Args:
        booking_id: ULID of the booking
        include_deleted: Return soft-deleted bookings too

    Returns:
        Booking if found, None otherwise
    """
    async with get_async_session() as session:
        query = select(Booking).where(Booking.id == booking_id)
        if not include_deleted:
            query = query.where(Booking.deleted_at.is_(None))
        result = await session.execute(query)
        return result.scalar_one_or_none()


async def find_bookings(
    statuses: Optional[Iterable[BookingStatus]] = None,
    scheduled_from: Optional[datetime] = None,
    scheduled_to: Optional[datetime] = None,
    service_id: Optional[str] = None,
    limit: int = DEFAULT_LIMIT,
) -> list[Booking]:
    """
    Range query over non-deleted bookings.

    Args:
        statuses: Restrict to these statuses (None for all)
        scheduled_from: Inclusive lower bound on scheduled_at (aware)
        scheduled_to: Exclusive upper bound on scheduled_at (aware)
        service_id: Restrict to one service
        limit: Maximum rows returned

    Returns:
        Bookings ordered by scheduled_at, then id
    """
    query = select(Booking).where(Booking.deleted_at.is_(None))

    if statuses is not None:
        query = query.where(Booking.status.in_(list(statuses)))
    if scheduled_from is not None:
        query = query.where(Booking.scheduled_at >= scheduled_from)
    if scheduled_to is not None:
        query = query.where(Booking.scheduled_at < scheduled_to)
    if service_id is not None:
        query = query.where(Booking.service_id == service_id)

    query = query.order_by(Booking.scheduled_at, Booking.id).limit(limit)

    async with get_async_session() as session:
        result = await session.execute(query)
        return list(result.scalars().all())


async def soft_delete_booking(booking_id: str) -> bool:
    """
    Mark a booking deleted without removing its row.

    Returns:
        True if the booking existed and was not already deleted
    """
    async with get_async_session() as session:
        result = await session.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.deleted_at.is_(None))
            .values(deleted_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        await session.commit()

    if result.rowcount != 1:
        logger.info(f"Soft delete skipped, booking {booking_id} missing or already deleted")
        return False

    logger.info(f"Booking {booking_id} soft-deleted", extra={"booking_id": booking_id})
    return True
