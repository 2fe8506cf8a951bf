"""
Booking status transition table.

Pure data and predicates over BookingStatus. The state machine consults this
module before every mutation; nothing here touches the database.
"""

from database.models import BookingStatus

# Valid transitions: from_status -> allowed target statuses
ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.CREATED: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.RESCHEDULED,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.REMINDED,
        BookingStatus.STARTED,
        BookingStatus.NO_SHOW,
        BookingStatus.CANCELLED,
        BookingStatus.RESCHEDULED,
    }),
    BookingStatus.REMINDED: frozenset({
        BookingStatus.STARTED,
        BookingStatus.NO_SHOW,
        BookingStatus.CANCELLED,
        BookingStatus.RESCHEDULED,
    }),
    BookingStatus.STARTED: frozenset({
        BookingStatus.COMPLETED,
    }),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    # Not taken by any operation, see RETIRED_STATUSES
    BookingStatus.RESCHEDULED: frozenset({
        BookingStatus.CONFIRMED,
    }),
}

# Statuses that occupy a slot for availability purposes
ACTIVE_STATUSES: frozenset[BookingStatus] = frozenset({
    BookingStatus.CREATED,
    BookingStatus.CONFIRMED,
    BookingStatus.REMINDED,
    BookingStatus.STARTED,
})

# Historical records. RESCHEDULED -> CONFIRMED stays in the table, but a
# rescheduled original gave its slot away and no operation reactivates it;
# the replacement booking carries the live state.
RETIRED_STATUSES: frozenset[BookingStatus] = frozenset({
    BookingStatus.RESCHEDULED,
})

# (label, color) for display
STATUS_METADATA: dict[BookingStatus, tuple[str, str]] = {
    BookingStatus.CREATED: ("Created", "gray"),
    BookingStatus.CONFIRMED: ("Confirmed", "blue"),
    BookingStatus.REMINDED: ("Reminded", "purple"),
    BookingStatus.STARTED: ("Started", "yellow"),
    BookingStatus.COMPLETED: ("Completed", "green"),
    BookingStatus.NO_SHOW: ("No Show", "red"),
    BookingStatus.CANCELLED: ("Cancelled", "red"),
    BookingStatus.RESCHEDULED: ("Rescheduled", "orange"),
}

# Event action reported when a booking enters a status
STATUS_EVENT_ACTIONS: dict[BookingStatus, str] = {
    BookingStatus.CREATED: "booking.created",
    BookingStatus.CONFIRMED: "booking.confirmed",
    BookingStatus.REMINDED: "booking.reminded",
    BookingStatus.STARTED: "booking.started",
    BookingStatus.COMPLETED: "booking.completed",
    BookingStatus.NO_SHOW: "booking.no_show",
    BookingStatus.CANCELLED: "booking.cancelled",
    BookingStatus.RESCHEDULED: "booking.rescheduled",
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    """True if the transition table allows current -> target."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def can_apply(current: BookingStatus, target: BookingStatus) -> bool:
    """True if a lifecycle operation may move a booking current -> target."""
    return current not in RETIRED_STATUSES and can_transition(current, target)


def is_active(status: BookingStatus) -> bool:
    return status in ACTIVE_STATUSES


def status_label(status: BookingStatus) -> str:
    return STATUS_METADATA[status][0]


def status_color(status: BookingStatus) -> str:
    return STATUS_METADATA[status][1]
