"""
Unit tests for the pure availability rules.

Tests coverage:
- Half-open interval overlap (touching intervals don't overlap)
- filter_available_slots() ignores inactive and soft-deleted bookings
- Property: no returned slot overlaps an occupying booking
"""

from datetime import UTC, date, datetime, timedelta
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from booking.services.availability_service import (
    filter_available_slots,
    intervals_overlap,
    slot_period,
)
from booking.services.slot_generator import generate_slots
from database.models import BookingStatus

SANTIAGO_TZ = ZoneInfo("America/Santiago")
MONDAY = date(2030, 3, 4)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2030, 3, 4, hour, minute, tzinfo=SANTIAGO_TZ)


def fake_booking(start: datetime, minutes: int, status=BookingStatus.CONFIRMED, deleted=False):
    return SimpleNamespace(
        id=f"B{start.hour:02d}{start.minute:02d}",
        scheduled_at=start,
        duration_minutes=minutes,
        ends_at=start + timedelta(minutes=minutes),
        status=status,
        deleted_at=datetime(2030, 3, 1, tzinfo=UTC) if deleted else None,
    )


class TestIntervalsOverlap:
    """Tests for intervals_overlap()."""

    def test_touching_intervals_do_not_overlap(self):
        assert not intervals_overlap(at(9), at(10), at(10), at(11))
        assert not intervals_overlap(at(10), at(11), at(9), at(10))

    def test_partial_overlap(self):
        assert intervals_overlap(at(9), at(10), at(9, 30), at(10, 30))

    def test_containment(self):
        assert intervals_overlap(at(9), at(17), at(12), at(13))

    def test_identical(self):
        assert intervals_overlap(at(9), at(10), at(9), at(10))

    def test_compares_instants_across_offsets(self):
        """10:00 Santiago is 13:00 UTC."""
        assert intervals_overlap(at(10), at(11), datetime(2030, 3, 4, 13, 30, tzinfo=UTC), at(12))


class TestFilterAvailableSlots:
    """Tests for filter_available_slots()."""

    def test_booking_removes_overlapping_slots(self):
        slots = generate_slots(MONDAY, 60, SANTIAGO_TZ)
        bookings = [fake_booking(at(10), 60)]

        available = filter_available_slots(slots, bookings, SANTIAGO_TZ)

        assert [s.start for s in available] == [
            at(9), at(11), at(12), at(13), at(14), at(15), at(16)
        ]

    def test_longer_booking_of_another_duration_blocks_two_slots(self):
        slots = generate_slots(MONDAY, 60, SANTIAGO_TZ)
        bookings = [fake_booking(at(10, 30), 60)]

        starts = [s.start for s in filter_available_slots(slots, bookings, SANTIAGO_TZ)]

        assert at(10) not in starts
        assert at(11) not in starts
        assert at(12) in starts

    @pytest.mark.parametrize(
        "status",
        [BookingStatus.CANCELLED, BookingStatus.NO_SHOW, BookingStatus.COMPLETED, BookingStatus.RESCHEDULED],
    )
    def test_inactive_bookings_do_not_block(self, status):
        slots = generate_slots(MONDAY, 60, SANTIAGO_TZ)

        available = filter_available_slots(slots, [fake_booking(at(10), 60, status)], SANTIAGO_TZ)

        assert len(available) == len(slots)

    def test_soft_deleted_booking_does_not_block(self):
        slots = generate_slots(MONDAY, 60, SANTIAGO_TZ)

        available = filter_available_slots(slots, [fake_booking(at(10), 60, deleted=True)], SANTIAGO_TZ)

        assert len(available) == len(slots)

    def test_periods(self):
        slots = generate_slots(MONDAY, 240, SANTIAGO_TZ)

        assert [slot_period(s, SANTIAGO_TZ) for s in slots] == ["morning", "afternoon"]

    @settings(max_examples=200, deadline=None)
    @given(
        duration=st.sampled_from([15, 30, 45, 60, 90, 120]),
        booked=st.lists(
            st.tuples(st.integers(min_value=0, max_value=32), st.integers(min_value=1, max_value=8)),
            max_size=6,
        ),
    )
    def test_no_available_slot_overlaps_an_active_booking(self, duration, booked):
        slots = generate_slots(MONDAY, duration, SANTIAGO_TZ)
        bookings = [
            fake_booking(at(9) + timedelta(minutes=15 * offset), 15 * quarters)
            for offset, quarters in booked
        ]

        available = filter_available_slots(slots, bookings, SANTIAGO_TZ)

        for slot in available:
            for booking in bookings:
                assert not intervals_overlap(slot.start, slot.end, booking.scheduled_at, booking.ends_at)
        # Nothing free is dropped either
        blocked = [
            s for s in slots
            if any(intervals_overlap(s.start, s.end, b.scheduled_at, b.ends_at) for b in bookings)
        ]
        assert len(available) + len(blocked) == len(slots)
