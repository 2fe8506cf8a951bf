"""
Candidate slot generation.

Business hours are Monday to Friday, 09:00 to 17:00 in the business timezone
(settings.TIMEZONE). Slots are back-to-back intervals of the service duration
starting at opening time; a slot is emitted only if it ends by closing time.

Example:
    >>> slots = generate_slots(date(2025, 3, 3), 45)
    >>> len(slots), slots[-1].start.time(), slots[-1].end.time()
    (10, datetime.time(15, 45), datetime.time(16, 30))
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from shared.config import get_settings

OPENING_TIME = time(9, 0)
CLOSING_TIME = time(17, 0)

# Monday=0 ... Friday=4
BUSINESS_WEEKDAYS = frozenset(range(5))


@dataclass(frozen=True)
class TimeSlot:
    """Half-open interval [start, end) in the business timezone."""

    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


def business_timezone() -> ZoneInfo:
    return ZoneInfo(get_settings().TIMEZONE)


def is_business_day(target_date: date) -> bool:
    return target_date.weekday() in BUSINESS_WEEKDAYS


def generate_slots(
    target_date: date,
    duration_minutes: int,
    tz: ZoneInfo | None = None,
) -> list[TimeSlot]:
    """
    Generate the candidate slots for a service on a date.

    Args:
        target_date: Calendar date in the business timezone
        duration_minutes: Service duration
        tz: Business timezone (defaults to settings.TIMEZONE)

    Returns:
        Ordered list of slots; empty on weekends and for durations that are
        not positive or do not fit within business hours
    """
    if duration_minutes <= 0 or not is_business_day(target_date):
        return []

    tz = tz or business_timezone()
    # Wall-clock arithmetic in local time, so a DST shift never moves slot boundaries
    opening = datetime.combine(target_date, OPENING_TIME)
    closing = datetime.combine(target_date, CLOSING_TIME)
    step = timedelta(minutes=duration_minutes)

    slots: list[TimeSlot] = []
    cursor = opening
    while cursor + step <= closing:
        slots.append(
            TimeSlot(
                start=cursor.replace(tzinfo=tz),
                end=(cursor + step).replace(tzinfo=tz),
            )
        )
        cursor += step

    return slots


def is_slot_start(scheduled_at: datetime, duration_minutes: int, tz: ZoneInfo | None = None) -> bool:
    """True if scheduled_at (aware) is the start of a generated slot."""
    tz = tz or business_timezone()
    local = scheduled_at.astimezone(tz)
    return any(
        slot.start == local for slot in generate_slots(local.date(), duration_minutes, tz)
    )
