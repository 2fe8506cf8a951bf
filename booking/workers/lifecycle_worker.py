"""
Lifecycle worker - Runs the booking sweeps on a schedule.

This worker handles three recurring jobs:
1. mark_no_shows (every SWEEP_INTERVAL_SECONDS): No-show sweep
2. send_reminders (every SWEEP_INTERVAL_SECONDS): Reminder sweep
3. heartbeat (every HEARTBEAT_INTERVAL_SECONDS): Hub heartbeat with uptime

Architecture:
    - Single event loop with asyncio.sleep() between ticks
    - Graceful shutdown on SIGTERM/SIGINT (the current tick finishes first)
    - Per-job health file written atomically for container health checks
"""

import asyncio
import json
import logging
import signal
import time
import traceback
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from booking.workers.no_show_worker import JOB_NAME as NO_SHOW_JOB
from booking.workers.no_show_worker import mark_no_shows
from booking.workers.reminder_worker import JOB_NAME as REMINDER_JOB
from booking.workers.reminder_worker import send_reminders
from booking.workers.sweep_result import SweepResult
from shared.config import get_settings
from shared.hub_reporter import get_hub_reporter
from shared.logging_config import configure_logging
from shared.startup_validator import StartupValidationError, validate_startup_config
from shared.uptime import init_uptime_tracker

logger = logging.getLogger(__name__)

HEALTH_FILE_NAME = "lifecycle_worker_health.json"

# Seconds between scheduler checks
TICK_SECONDS = 5

# Global flag for graceful shutdown
shutdown_requested = False


def signal_handler(signum: int, frame: Any) -> None:
    """
    Handle SIGTERM/SIGINT for graceful shutdown.
    """
    global shutdown_requested
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    shutdown_requested = True


# =============================================================================
# Health Check
# =============================================================================


def update_health_check(
    job_name: str,
    last_run: datetime,
    status: str,
    processed: int,
    errors: int,
    health_dir: Path | None = None,
) -> None:
    """
    Update health check file with job statistics.

    Args:
        job_name: Name of the job
        last_run: Timestamp of job completion
        status: Health status ('healthy' or 'unhealthy')
        processed: Number of items processed
        errors: Number of errors encountered
        health_dir: Directory for the file (defaults to HEALTH_CHECK_DIR)
    """
    health_dir = health_dir or Path(get_settings().HEALTH_CHECK_DIR)
    health_dir.mkdir(parents=True, exist_ok=True)
    health_file = health_dir / HEALTH_FILE_NAME
    temp_file = health_dir / f"lifecycle_worker_health.{int(time.time() * 1000)}.tmp"

    health_data: dict[str, Any] = {}
    if health_file.exists():
        try:
            health_data = json.loads(health_file.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Discarding unreadable health file: {e}")

    health_data[job_name] = {
        "last_run": last_run.isoformat(),
        "status": status,
        "processed": processed,
        "errors": errors,
    }

    all_healthy = all(
        job.get("status") == "healthy"
        for job in health_data.values()
        if isinstance(job, dict)
    )
    health_data["overall_status"] = "healthy" if all_healthy else "unhealthy"
    health_data["last_updated"] = datetime.now(UTC).isoformat()

    try:
        temp_file.write_text(json.dumps(health_data, indent=2))
        temp_file.replace(health_file)
        logger.debug(f"Health check file updated: {health_file}")
    except OSError as e:
        logger.error(f"Failed to write health check file: {e}", exc_info=True)


def record_sweep(result: SweepResult) -> None:
    update_health_check(
        job_name=result.job_name,
        last_run=datetime.now(UTC),
        status="healthy" if result.ok else "unhealthy",
        processed=len(result.succeeded),
        errors=len(result.failed),
    )


# =============================================================================
# Jobs
# =============================================================================


async def run_sweeps() -> list[SweepResult]:
    """Run both sweeps once; an exception in one doesn't skip the other."""
    results: list[SweepResult] = []

    jobs = ((NO_SHOW_JOB, mark_no_shows), (REMINDER_JOB, send_reminders))
    for job_name, job in jobs:
        try:
            result = await job()
        except Exception as e:
            logger.error(f"Error in {job_name}: {e}", exc_info=True, extra={"job_name": job_name})
            await get_hub_reporter().report_error(
                "high",
                f"Lifecycle sweep {job_name} crashed: {type(e).__name__}: {e}",
                {"job_name": job_name, "trace": traceback.format_exc()},
            )
            update_health_check(
                job_name=job_name,
                last_run=datetime.now(UTC),
                status="unhealthy",
                processed=0,
                errors=1,
            )
            continue
        record_sweep(result)
        results.append(result)

    return results


async def send_heartbeat() -> bool:
    settings = get_settings()
    sent = await get_hub_reporter().heartbeat(
        {
            "worker": "lifecycle",
            "sweep_interval_seconds": settings.SWEEP_INTERVAL_SECONDS,
        }
    )
    if not sent:
        logger.warning("Heartbeat not delivered")
    return sent


# =============================================================================
# Main Entry Point
# =============================================================================


async def async_main() -> None:
    """
    Main async entry point - runs the sweeps and heartbeat on one event loop.

    Handles graceful shutdown on SIGTERM/SIGINT.
    """
    global shutdown_requested
    settings = get_settings()

    try:
        await validate_startup_config(require_payments=False)
    except StartupValidationError as e:
        logger.critical(f"Startup blocked: {e}")
        raise

    init_uptime_tracker()

    logger.info(
        f"Lifecycle worker starting: sweep_interval={settings.SWEEP_INTERVAL_SECONDS}s, "
        f"heartbeat_interval={settings.HEARTBEAT_INTERVAL_SECONDS}s, "
        f"grace_period={settings.NO_SHOW_GRACE_PERIOD_MINUTES}min, "
        f"reminder_window={settings.REMINDER_WINDOW_HOURS}h"
    )

    update_health_check(
        job_name="startup",
        last_run=datetime.now(UTC),
        status="healthy",
        processed=0,
        errors=0,
    )

    loop = asyncio.get_running_loop()
    last_sweep: float | None = None
    last_heartbeat: float | None = None

    while not shutdown_requested:
        now = loop.time()

        if last_sweep is None or now - last_sweep >= settings.SWEEP_INTERVAL_SECONDS:
            await run_sweeps()
            last_sweep = now

        if last_heartbeat is None or now - last_heartbeat >= settings.HEARTBEAT_INTERVAL_SECONDS:
            await send_heartbeat()
            last_heartbeat = now

        await asyncio.sleep(TICK_SECONDS)

    logger.info("Lifecycle worker shutting down gracefully...")


def run_lifecycle_worker() -> None:
    """
    Synchronous entry point that sets up logging and signal handlers,
    then runs the async main function.
    """
    configure_logging()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    asyncio.run(async_main())


if __name__ == "__main__":
    run_lifecycle_worker()
