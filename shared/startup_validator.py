"""
Startup configuration validation module.

This module provides startup-time validation for critical configuration
to catch misconfigurations early (fail-fast) rather than at runtime when
a client tries to book or a sweep tries to send a reminder.

Usage:
    from shared.startup_validator import validate_startup_config, StartupValidationError

    async def main():
        try:
            await validate_startup_config()
        except StartupValidationError as e:
            logger.critical(f"Startup blocked: {e}")
            sys.exit(1)
"""

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import text

from shared.config import get_settings

logger = logging.getLogger(__name__)

SUPPORTED_DATABASE_PREFIXES = ("postgresql+asyncpg://", "sqlite+aiosqlite://")


class StartupValidationError(Exception):
    """Raised when critical startup validation fails."""

    pass


async def validate_startup_config(require_payments: bool = True) -> dict[str, bool]:
    """
    Validate all critical configuration at startup.

    Performs tiered validation:
    - TIER 1 (CRITICAL): Block startup if any fail
    - TIER 2 (IMPORTANT): Warn but allow startup

    Args:
        require_payments: If True, payment gateway keys are CRITICAL.
                          If False, they're IMPORTANT (warn but continue).
                          Set to False for services that never take payments
                          (e.g., the lifecycle worker).

    Returns:
        dict of {check_name: passed} for all validations

    Raises:
        StartupValidationError: If any CRITICAL check fails
    """
    settings = get_settings()
    results: dict[str, bool] = {}
    critical_failures: list[str] = []

    # =========================================================================
    # TIER 1: CRITICAL (block startup if any fail)
    # =========================================================================

    # 1. Business timezone must resolve, slot generation depends on it
    try:
        ZoneInfo(settings.TIMEZONE)
        results["timezone"] = True
        logger.info(f"  [OK] Business timezone: {settings.TIMEZONE}")
    except (ZoneInfoNotFoundError, ValueError):
        critical_failures.append(f"TIMEZONE '{settings.TIMEZONE}' is not a valid IANA timezone")
        results["timezone"] = False

    # 2. Database URL uses an async driver
    if not settings.DATABASE_URL.startswith(SUPPORTED_DATABASE_PREFIXES):
        critical_failures.append(
            "DATABASE_URL must use an async driver: postgresql+asyncpg:// or sqlite+aiosqlite://"
        )
        results["database_url_format"] = False
    else:
        results["database_url_format"] = True

    # 3. Payment gateway keys
    payment_error = None
    if settings.PAYMENT_GATEWAY != "stripe":
        payment_error = f"PAYMENT_GATEWAY '{settings.PAYMENT_GATEWAY}' is not supported"
    elif settings.STRIPE_SECRET_KEY == "sk_test_placeholder":
        payment_error = "STRIPE_SECRET_KEY is placeholder - set your Stripe secret key"
    elif settings.STRIPE_WEBHOOK_SECRET == "whsec_placeholder":
        payment_error = "STRIPE_WEBHOOK_SECRET is placeholder - set your webhook signing secret"

    results["payment_gateway"] = payment_error is None
    if payment_error:
        if require_payments:
            critical_failures.append(payment_error)
        else:
            logger.warning(f"  [WARN] {payment_error} (not required for this service)")
    else:
        logger.info("  [OK] Payment gateway configured")

    # =========================================================================
    # TIER 2: IMPORTANT (warn but allow startup)
    # =========================================================================

    # 4. Hub reporting enabled but incomplete
    if settings.HUB_EVENTS_ENABLED:
        missing = [
            key
            for key, value in (
                ("HUB_API_URL", settings.HUB_API_URL),
                ("HUB_API_TOKEN", settings.HUB_API_TOKEN),
                ("HUB_EVENT_SOURCE", settings.HUB_EVENT_SOURCE),
            )
            if not value
        ]
        if missing:
            logger.warning(f"HUB_EVENTS_ENABLED but missing: {', '.join(missing)}")
            results["hub_configured"] = False
        else:
            results["hub_configured"] = True
            logger.info("  [OK] Hub event reporting configured")
    else:
        logger.info("  [INFO] Hub event reporting disabled")
        results["hub_configured"] = False

    # 5. Reminder notifications
    if not settings.NOTIFICATIONS_API_URL or settings.NOTIFICATIONS_API_TOKEN == "placeholder":
        logger.warning("Notifications API not configured - reminders will fail to dispatch")
        results["notifications_configured"] = False
    else:
        results["notifications_configured"] = True
        logger.info("  [OK] Notifications API configured")

    # =========================================================================
    # Summary and result
    # =========================================================================

    passed = sum(1 for v in results.values() if v)
    total = len(results)
    logger.info(f"Startup validation: {passed}/{total} checks passed")

    if critical_failures:
        logger.critical("=" * 60)
        logger.critical("STARTUP BLOCKED - Critical configuration errors:")
        for i, failure in enumerate(critical_failures, 1):
            logger.critical(f"  {i}. {failure}")
        logger.critical("=" * 60)
        raise StartupValidationError(
            f"Critical startup validation failed ({len(critical_failures)} errors): "
            f"{'; '.join(critical_failures)}"
        )

    return results


async def validate_database_connection() -> bool:
    """
    Validate database connection is working.

    This is a separate check because it's slower and may be called
    after basic config validation.

    Returns:
        True if database connection successful, False otherwise
    """
    try:
        from database.connection import get_async_session

        async with get_async_session() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()

        logger.info("  [OK] Database connection successful")
        return True

    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
