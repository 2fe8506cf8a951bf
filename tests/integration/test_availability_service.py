"""
Integration tests for availability resolution and booking queries.
"""

from datetime import timedelta

import pytest
from conftest import FIXED_NOW, MONDAY, fetch_booking, monday_at

from booking.services.availability_service import find_conflicting_booking, get_available_slots
from booking.services.booking_query_service import (
    find_bookings,
    get_booking,
    list_services,
    soft_delete_booking,
)
from database.connection import AsyncSessionLocal
from database.models import BookingStatus


class TestGetAvailableSlots:
    """Tests for get_available_slots()."""

    @pytest.mark.asyncio
    async def test_empty_day_has_every_slot(self, make_service):
        service = await make_service(duration_minutes=60)

        slots = await get_available_slots(service.id, MONDAY)

        assert len(slots) == 8
        assert slots[0].start == monday_at(9)
        assert slots[0].period == "morning"
        assert slots[-1].period == "afternoon"

    @pytest.mark.asyncio
    async def test_active_bookings_remove_slots(self, make_service, make_booking):
        service = await make_service(duration_minutes=60)
        await make_booking(service, monday_at(10), BookingStatus.CONFIRMED)
        await make_booking(service, monday_at(14), BookingStatus.STARTED)
        await make_booking(service, monday_at(15), BookingStatus.CANCELLED)

        starts = [slot.start for slot in await get_available_slots(service.id, MONDAY)]

        assert monday_at(10) not in starts
        assert monday_at(14) not in starts
        assert monday_at(15) in starts
        assert len(starts) == 6

    @pytest.mark.asyncio
    async def test_booking_from_previous_day_is_seen(self, make_service, make_booking):
        """A long booking starting the day before still blocks overlapping time."""
        service = await make_service(duration_minutes=60)
        await make_booking(
            service, monday_at(9) - timedelta(hours=1), BookingStatus.CONFIRMED, duration_minutes=120
        )

        starts = [slot.start for slot in await get_available_slots(service.id, MONDAY)]

        assert monday_at(9) not in starts
        assert monday_at(10) in starts

    @pytest.mark.asyncio
    async def test_weekend_is_empty(self, make_service):
        service = await make_service()

        assert await get_available_slots(service.id, MONDAY + timedelta(days=5)) == []

    @pytest.mark.asyncio
    async def test_unknown_or_inactive_service(self, make_service):
        inactive = await make_service(is_active=False)

        assert await get_available_slots(inactive.id, MONDAY) == []
        assert await get_available_slots("01HZZZZZZZZZZZZZZZZZZZZZZZ", MONDAY) == []

    @pytest.mark.asyncio
    async def test_uses_given_session(self, make_service):
        service = await make_service(duration_minutes=240)

        async with AsyncSessionLocal() as session:
            slots = await get_available_slots(service.id, MONDAY, session=session)

        assert [s.to_dict()["period"] for s in slots] == ["morning", "afternoon"]


class TestFindConflictingBooking:
    @pytest.mark.asyncio
    async def test_touching_interval_is_not_a_conflict(self, make_service, make_booking):
        service = await make_service(duration_minutes=60)
        await make_booking(service, monday_at(10), BookingStatus.CONFIRMED)

        async with AsyncSessionLocal() as session:
            before = await find_conflicting_booking(session, service.id, monday_at(9), monday_at(10))
            after = await find_conflicting_booking(session, service.id, monday_at(11), monday_at(12))

        assert before is None
        assert after is None

    @pytest.mark.asyncio
    async def test_excluded_booking_is_ignored(self, make_service, make_booking):
        service = await make_service(duration_minutes=60)
        booking = await make_booking(service, monday_at(10))

        async with AsyncSessionLocal() as session:
            found = await find_conflicting_booking(session, service.id, monday_at(10), monday_at(11))
            excluded = await find_conflicting_booking(
                session, service.id, monday_at(10), monday_at(11), exclude_booking_id=booking.id
            )

        assert found.id == booking.id
        assert excluded is None


class TestQueries:
    @pytest.mark.asyncio
    async def test_list_services_hides_inactive(self, make_service):
        await make_service(name="B activo")
        await make_service(name="A inactivo", is_active=False)

        assert [s.name for s in await list_services()] == ["B activo"]
        assert [s.name for s in await list_services(include_inactive=True)] == ["A inactivo", "B activo"]

    @pytest.mark.asyncio
    async def test_find_bookings_filters(self, make_service, make_booking):
        service = await make_service()
        morning = await make_booking(service, monday_at(9), BookingStatus.CONFIRMED)
        await make_booking(service, monday_at(11), BookingStatus.CANCELLED)
        late = await make_booking(service, monday_at(15), BookingStatus.CONFIRMED)

        confirmed = await find_bookings(statuses=[BookingStatus.CONFIRMED])
        windowed = await find_bookings(scheduled_from=monday_at(10), scheduled_to=monday_at(16))

        assert [b.id for b in confirmed] == [morning.id, late.id]
        assert [b.status for b in windowed] == [BookingStatus.CANCELLED, BookingStatus.CONFIRMED]

    @pytest.mark.asyncio
    async def test_soft_delete(self, make_service, make_booking):
        service = await make_service()
        booking = await make_booking(service, monday_at(10))

        assert await soft_delete_booking(booking.id) is True
        assert await soft_delete_booking(booking.id) is False

        assert await get_booking(booking.id) is None
        deleted = await get_booking(booking.id, include_deleted=True)
        assert deleted.is_deleted
        assert (await fetch_booking(booking.id)).deleted_at is not None
        assert await find_bookings() == []

    @pytest.mark.asyncio
    async def test_get_booking_loads_service(self, make_service, make_booking):
        service = await make_service(name="Consulta general")
        booking = await make_booking(service, monday_at(10), created_at=FIXED_NOW)

        loaded = await get_booking(booking.id)

        assert loaded.service.name == "Consulta general"
        assert loaded.ends_at == monday_at(11)
