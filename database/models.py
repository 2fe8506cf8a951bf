"""
SQLAlchemy ORM models for the booking platform.

This module defines the tables:
- staff_members: People who deliver services and act on bookings
- services: Bookable services with duration and price
- bookings: Reservations of a service slot with lifecycle state

All models use:
- ULID primary keys (26-char strings, unique and sortable by creation time)
- UTCDateTime columns (aware UTC in Python, TIMESTAMP WITH TIME ZONE in PostgreSQL)
- Proper indexes and constraints
"""

from datetime import UTC, datetime, timedelta
from enum import Enum as PyEnum

import ulid
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from database.types import UTCDateTime


def generate_ulid() -> str:
    return str(ulid.ULID())


def utcnow() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Base Class
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# ============================================================================
# Enums
# ============================================================================


class BookingStatus(str, PyEnum):
    """Booking lifecycle status."""

    CREATED = "created"            # Reserved, awaiting payment
    CONFIRMED = "confirmed"        # Paid or confirmed by staff
    REMINDED = "reminded"          # Reminder dispatched
    STARTED = "started"            # Client arrived, service in progress
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"    # Superseded by a new booking

    def __str__(self):
        return self.value


class PaymentStatus(str, PyEnum):
    """Payment state of a booking."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

    def __str__(self):
        return self.value


# Statuses that occupy a slot; mirrored by the partial unique index below
_ACTIVE_SLOT_PREDICATE = text(
    "status IN ('created', 'confirmed', 'reminded', 'started') AND deleted_at IS NULL"
)


# ============================================================================
# Core Models
# ============================================================================


class StaffMember(Base):
    """
    Staff member model - People assigned to bookings.

    Staff members start services and may cancel bookings on a client's behalf.
    """

    __tablename__ = "staff_members"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<StaffMember(id={self.id}, name='{self.name}')>"


class Service(Base):
    """
    Service model - Bookable services with duration and price.

    A referenced service is only ever deactivated, never edited in ways that
    matter to bookings: each booking snapshots duration and price.
    """

    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="CLP", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_service_duration_positive"),
        CheckConstraint("price_cents >= 0", name="check_service_price_non_negative"),
        Index(
            "idx_services_active",
            "is_active",
            postgresql_where=text("is_active = true"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name='{self.name}', duration={self.duration_minutes})>"


# ============================================================================
# Transactional Models
# ============================================================================


class Booking(Base):
    """
    Booking model - A reserved service slot with lifecycle state.

    scheduled_at is written once. Rescheduling creates a new booking linked
    through rescheduled_from and moves this one to RESCHEDULED.
    Client details, duration and amount are snapshots taken at creation.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Foreign keys
    service_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("services.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    assigned_to: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("staff_members.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Client snapshot
    client_name: Mapped[str] = mapped_column(String(200), nullable=False)
    client_email: Mapped[str] = mapped_column(String(255), nullable=False)
    client_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    client_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status tracking
    # Note: values_callable stores the enum .value ("created") so the partial
    # index predicate can compare against literal strings
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(
            BookingStatus,
            name="booking_status",
            native_enum=False,
            length=20,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=BookingStatus.CREATED,
        nullable=False,
        index=True,
    )

    # Scheduling
    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Duration (snapshot) and measured duration
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Payment (amount is a snapshot of the service price)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(
            PaymentStatus,
            name="payment_status",
            native_enum=False,
            length=20,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    # Reminders
    reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminder_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Cancellation
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("staff_members.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Reschedule linkage
    rescheduled_from: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    rescheduled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    source: Mapped[str] = mapped_column(String(50), default="web", nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Relationships
    service: Mapped["Service"] = relationship("Service", lazy="selectin")

    # Constraints and indexes
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_booking_duration_positive"),
        CheckConstraint("amount_cents >= 0", name="check_booking_amount_non_negative"),
        # One active booking per service start time
        Index(
            "uq_bookings_active_slot",
            "service_id",
            "scheduled_at",
            unique=True,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
        ),
        # Availability lookups per service and day
        Index("idx_bookings_service_scheduled", "service_id", "scheduled_at"),
        # Sweep queries (status + time window)
        Index("idx_bookings_status_scheduled", "status", "scheduled_at"),
    )

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, service_id={self.service_id}, status='{self.status.value}')>"
