"""
Reminder sweep - Sends reminders for upcoming confirmed bookings.

A booking needs a reminder when:
- Status is CONFIRMED and no reminder was sent yet
- scheduled_at falls within the next REMINDER_WINDOW_HOURS (default 24)

For each candidate the reminder is dispatched first; the booking moves to
REMINDED only if dispatch succeeded, so a failed dispatch is retried by the
next run.

CLI:
    bookings-send-reminders [--dry-run]
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select

from booking.lifecycle.state_machine import BookingStateMachine, utcnow
from booking.workers.sweep_result import SweepResult
from database.connection import get_async_session
from database.models import Booking, BookingStatus
from shared.config import get_settings
from shared.logging_config import configure_logging
from shared.notification_client import NotificationClient, ReminderSender

logger = logging.getLogger(__name__)

JOB_NAME = "send_reminders"


async def find_reminder_candidates(now: datetime, window_hours: int) -> list[Booking]:
    """Confirmed, not yet reminded bookings starting within the window."""
    window_end = now + timedelta(hours=window_hours)

    async with get_async_session() as session:
        result = await session.execute(
            select(Booking)
            .where(
                Booking.status == BookingStatus.CONFIRMED,
                Booking.reminder_sent.is_(False),
                Booking.scheduled_at >= now,
                Booking.scheduled_at <= window_end,
                Booking.deleted_at.is_(None),
            )
            .order_by(Booking.scheduled_at, Booking.id)
        )
        return list(result.scalars().all())


async def send_reminders(
    dry_run: bool = False,
    sender: Optional[ReminderSender] = None,
    state_machine: Optional[BookingStateMachine] = None,
    clock: Optional[Callable[[], datetime]] = None,
    window_hours: Optional[int] = None,
) -> SweepResult:
    """
    Run the reminder sweep.

    Args:
        dry_run: List candidates without dispatching or changing anything
        sender: Reminder dispatcher (NotificationClient if None)
        state_machine: Transition executor (default one is built if None)
        clock: Current time source
        window_hours: Look-ahead window (defaults to REMINDER_WINDOW_HOURS)

    Returns:
        SweepResult with candidate, succeeded and failed booking ids
    """
    if window_hours is None:
        window_hours = get_settings().REMINDER_WINDOW_HOURS
    now = (clock or utcnow)()

    result = SweepResult(job_name=JOB_NAME, dry_run=dry_run)
    log_extra = {"job_name": JOB_NAME, "dry_run": dry_run}

    logger.info("Finding bookings requiring reminders", extra=log_extra)

    candidates = await find_reminder_candidates(now, window_hours)
    result.candidates = [b.id for b in candidates]

    if not candidates:
        logger.info("No bookings require reminders at this time", extra=log_extra)
        return result

    logger.info(f"Found {len(candidates)} booking(s) requiring reminders", extra=log_extra)

    if dry_run:
        for booking in candidates:
            logger.info(
                f"Would send reminder for booking {booking.id} to {booking.client_email}",
                extra={**log_extra, "booking_id": booking.id},
            )
        return result

    sender = sender or NotificationClient()
    machine = state_machine or BookingStateMachine()

    for booking in candidates:
        item_extra = {**log_extra, "booking_id": booking.id}
        try:
            if not await sender.send_reminder(booking):
                result.failed.append(booking.id)
                logger.error(f"Failed to send reminder for booking {booking.id}", extra=item_extra)
                continue

            if await machine.mark_reminded(booking):
                result.succeeded.append(booking.id)
                logger.info(f"Sent reminder for booking {booking.id}", extra=item_extra)
            else:
                result.failed.append(booking.id)
                logger.warning(
                    f"Reminder sent but booking {booking.id} could not be marked reminded",
                    extra=item_extra,
                )
        except Exception as e:
            result.failed.append(booking.id)
            logger.error(
                f"Failed to send reminder for booking {booking.id}: {e}",
                extra=item_extra,
                exc_info=True,
            )

    logger.info(f"Reminder sending complete. {result.summary()}", extra=log_extra)
    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookings-send-reminders",
        description="Send reminder notifications for bookings scheduled in the next 24 hours",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List bookings that would be reminded without sending anything",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point; returns 1 if any reminder failed."""
    args = build_parser().parse_args(argv)
    configure_logging()

    result = asyncio.run(send_reminders(dry_run=args.dry_run))

    print(result.summary())
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
