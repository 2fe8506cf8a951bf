"""
No-show sweep - Marks bookings whose client never arrived.

A booking is a no-show when:
- Status is CONFIRMED or REMINDED
- scheduled_at is at least the grace period in the past (default 15 minutes)
- It was never started

Each candidate is transitioned on its own through the state machine, so one
failure never stops the sweep and a concurrent run cannot double-apply.

CLI:
    bookings-mark-no-shows [--grace-period N] [--dry-run]
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

logger = logging.getLogger(__name__)

JOB_NAME = "mark_no_shows"

NO_SHOW_ELIGIBLE_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.REMINDED)


async def find_no_show_candidates(now: datetime, grace_period_minutes: int) -> list[Booking]:
    """Bookings past their grace period that were never started."""
    cutoff = now - timedelta(minutes=grace_period_minutes)

    async with get_async_session() as session:
        result = await session.execute(
            select(Booking)
            .where(
                Booking.status.in_(NO_SHOW_ELIGIBLE_STATUSES),
                Booking.scheduled_at <= cutoff,
                Booking.started_at.is_(None),
                Booking.deleted_at.is_(None),
            )
            .order_by(Booking.scheduled_at, Booking.id)
        )
        return list(result.scalars().all())


async def mark_no_shows(
    grace_period_minutes: Optional[int] = None,
    dry_run: bool = False,
    state_machine: Optional[BookingStateMachine] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> SweepResult:
    """
    Run the no-show sweep.

    Args:
        grace_period_minutes: Minutes after scheduled_at before marking
            (defaults to NO_SHOW_GRACE_PERIOD_MINUTES)
        dry_run: List candidates without changing anything
        state_machine: Transition executor (default one is built if None)
        clock: Current time source

    Returns:
        SweepResult with candidate, succeeded and failed booking ids
    """
    if grace_period_minutes is None:
        grace_period_minutes = get_settings().NO_SHOW_GRACE_PERIOD_MINUTES
    now = (clock or utcnow)()

    result = SweepResult(job_name=JOB_NAME, dry_run=dry_run)
    log_extra = {"job_name": JOB_NAME, "dry_run": dry_run}

    logger.info(
        f"Checking for no-shows (grace period: {grace_period_minutes} minutes)",
        extra=log_extra,
    )

    candidates = await find_no_show_candidates(now, grace_period_minutes)
    result.candidates = [b.id for b in candidates]

    if not candidates:
        logger.info("No bookings to mark as no-show", extra=log_extra)
        return result

    logger.info(f"Found {len(candidates)} booking(s) to mark as no-show", extra=log_extra)

    if dry_run:
        for booking in candidates:
            logger.info(
                f"Would mark booking {booking.id} as no-show "
                f"(scheduled: {booking.scheduled_at.isoformat()})",
                extra={**log_extra, "booking_id": booking.id},
            )
        return result

    machine = state_machine or BookingStateMachine()

    for booking in candidates:
        try:
            if await machine.mark_no_show(booking):
                result.succeeded.append(booking.id)
                logger.info(
                    f"Marked booking {booking.id} as no-show",
                    extra={**log_extra, "booking_id": booking.id},
                )
            else:
                result.failed.append(booking.id)
                logger.warning(
                    f"Booking {booking.id} could not be marked as no-show",
                    extra={**log_extra, "booking_id": booking.id},
                )
        except Exception as e:
            result.failed.append(booking.id)
            logger.error(
                f"Failed to mark booking {booking.id} as no-show: {e}",
                extra={**log_extra, "booking_id": booking.id},
                exc_info=True,
            )

    logger.info(f"No-show marking complete. {result.summary()}", extra=log_extra)
    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookings-mark-no-shows",
        description="Mark bookings as no-show if the client did not arrive",
    )
    parser.add_argument(
        "--grace-period",
        type=int,
        default=None,
        help="Minutes after scheduled time to wait (default: NO_SHOW_GRACE_PERIOD_MINUTES)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List bookings that would be marked without changing them",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point; returns 1 if any booking failed."""
    args = build_parser().parse_args(argv)
    configure_logging()

    result = asyncio.run(mark_no_shows(grace_period_minutes=args.grace_period, dry_run=args.dry_run))

    print(result.summary())
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
