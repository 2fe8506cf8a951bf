"""
Test configuration and fixtures.

This module sets up test environment and provides shared fixtures for all tests.
"""

import os
from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import pytest

# Point the database layer at an in-memory SQLite database and keep external
# collaborators switched off.
# Must be set BEFORE any imports of database.connection or shared.config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["TIMEZONE"] = "America/Santiago"
os.environ["HUB_EVENTS_ENABLED"] = "false"
os.environ["NOTIFICATIONS_API_URL"] = ""
os.environ["LOG_LEVEL"] = "DEBUG"

from database.connection import AsyncSessionLocal, drop_db, engine, init_db  # noqa: E402
from database.models import Booking, BookingStatus, Service, StaffMember  # noqa: E402

SANTIAGO_TZ = ZoneInfo("America/Santiago")

# Friday 2030-03-01 12:00 UTC; the next business day is Monday 2030-03-04
FIXED_NOW = datetime(2030, 3, 1, 12, 0, tzinfo=UTC)
MONDAY = datetime(2030, 3, 4, tzinfo=SANTIAGO_TZ).date()


def monday_at(hour: int, minute: int = 0) -> datetime:
    """Aware datetime on the test Monday in the business timezone."""
    return datetime(MONDAY.year, MONDAY.month, MONDAY.day, hour, minute, tzinfo=SANTIAGO_TZ)


class RecordingSink:
    """Event sink that records every notify() call."""

    def __init__(self, fail: bool = False):
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.fail = fail

    async def notify(self, event_type: str, payload: dict[str, Any]) -> bool:
        self.events.append((event_type, payload))
        if self.fail:
            raise RuntimeError("hub unavailable")
        return True

    @property
    def actions(self) -> list[str]:
        return [action for action, _ in self.events]


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def event_sink():
    return RecordingSink()


@pytest.fixture
async def db():
    """
    Fresh schema for each test.

    The engine is disposed afterwards, which also discards the in-memory
    database and keeps connections from leaking across event loops.
    """
    await init_db()
    yield
    await drop_db()
    await engine.dispose()


@pytest.fixture
def make_service(db):
    """Insert a service directly."""

    async def _make(
        name: str = "Consulta general",
        duration_minutes: int = 60,
        price_cents: int = 25000,
        currency: str = "CLP",
        is_active: bool = True,
    ) -> Service:
        async with AsyncSessionLocal() as session:
            service = Service(
                name=name,
                duration_minutes=duration_minutes,
                price_cents=price_cents,
                currency=currency,
                is_active=is_active,
            )
            session.add(service)
            await session.commit()
            return service

    return _make


@pytest.fixture
def make_staff(db):
    async def _make(name: str = "Carla Rojas", email: str = "carla@example.com") -> StaffMember:
        async with AsyncSessionLocal() as session:
            staff = StaffMember(name=name, email=email)
            session.add(staff)
            await session.commit()
            return staff

    return _make


@pytest.fixture
def make_booking(db):
    """Insert a booking directly, bypassing slot validation."""

    async def _make(
        service: Service,
        scheduled_at: datetime,
        status: BookingStatus = BookingStatus.CREATED,
        **overrides: Any,
    ) -> Booking:
        fields: dict[str, Any] = {
            "service_id": service.id,
            "client_name": "Ana Pérez",
            "client_email": "ana@example.com",
            "client_phone": "+56911112222",
            "status": status,
            "scheduled_at": scheduled_at,
            "duration_minutes": service.duration_minutes,
            "amount_cents": service.price_cents,
            "currency": service.currency,
        }
        fields.update(overrides)
        async with AsyncSessionLocal() as session:
            booking = Booking(**fields)
            booking.service = await session.get(Service, service.id)
            session.add(booking)
            await session.commit()
            return booking

    return _make


async def fetch_booking(booking_id: str) -> Booking:
    """Read a booking back from the database, deleted or not."""
    async with AsyncSessionLocal() as session:
        return await session.get(Booking, booking_id)


def ago(minutes: int = 0, hours: int = 0) -> datetime:
    return FIXED_NOW - timedelta(minutes=minutes, hours=hours)


def ahead(minutes: int = 0, hours: int = 0) -> datetime:
    return FIXED_NOW + timedelta(minutes=minutes, hours=hours)
