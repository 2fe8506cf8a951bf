"""
Unit tests for startup validation, JSON logging and sweep results.
"""

import json
import logging
from unittest.mock import patch

import pytest

from booking.workers.sweep_result import SweepResult
from shared.config import Settings
from shared.logging_config import JSONFormatter
from shared.startup_validator import StartupValidationError, validate_startup_config

CONFIGURED = {
    "DATABASE_URL": "postgresql+asyncpg://booking:secret@db:5432/booking_db",
    "TIMEZONE": "America/Santiago",
    "STRIPE_SECRET_KEY": "sk_live_real",
    "STRIPE_WEBHOOK_SECRET": "whsec_real",
    "HUB_EVENTS_ENABLED": True,
    "HUB_API_URL": "https://hub.example.com",
    "HUB_API_TOKEN": "token",
    "HUB_EVENT_SOURCE": "bookings",
    "NOTIFICATIONS_API_URL": "https://notify.example.com",
    "NOTIFICATIONS_API_TOKEN": "notify-token",
}


def settings_with(**overrides) -> Settings:
    return Settings(**{**CONFIGURED, **overrides})


class TestValidateStartupConfig:
    """Tests for validate_startup_config()."""

    @pytest.mark.asyncio
    async def test_fully_configured(self):
        with patch("shared.startup_validator.get_settings", return_value=settings_with()):
            results = await validate_startup_config()

        assert all(results.values())

    @pytest.mark.asyncio
    async def test_invalid_timezone_blocks_startup(self):
        with patch("shared.startup_validator.get_settings", return_value=settings_with(TIMEZONE="Mars/Olympus")):
            with pytest.raises(StartupValidationError, match="TIMEZONE"):
                await validate_startup_config()

    @pytest.mark.asyncio
    async def test_sync_driver_blocks_startup(self):
        settings = settings_with(DATABASE_URL="postgresql://booking:secret@db/booking_db")

        with patch("shared.startup_validator.get_settings", return_value=settings):
            with pytest.raises(StartupValidationError, match="DATABASE_URL"):
                await validate_startup_config()

    @pytest.mark.asyncio
    async def test_placeholder_stripe_key_blocks_api(self):
        settings = settings_with(STRIPE_SECRET_KEY="sk_test_placeholder")

        with patch("shared.startup_validator.get_settings", return_value=settings):
            with pytest.raises(StartupValidationError, match="STRIPE_SECRET_KEY"):
                await validate_startup_config(require_payments=True)

    @pytest.mark.asyncio
    async def test_placeholder_stripe_key_only_warns_for_worker(self):
        settings = settings_with(STRIPE_SECRET_KEY="sk_test_placeholder")

        with patch("shared.startup_validator.get_settings", return_value=settings):
            results = await validate_startup_config(require_payments=False)

        assert results["payment_gateway"] is False

    @pytest.mark.asyncio
    async def test_incomplete_hub_config_only_warns(self):
        settings = settings_with(HUB_API_TOKEN="")

        with patch("shared.startup_validator.get_settings", return_value=settings):
            results = await validate_startup_config()

        assert results["hub_configured"] is False

    @pytest.mark.asyncio
    async def test_missing_notifications_only_warns(self):
        settings = settings_with(NOTIFICATIONS_API_URL="")

        with patch("shared.startup_validator.get_settings", return_value=settings):
            results = await validate_startup_config()

        assert results["notifications_configured"] is False


class TestJSONFormatter:
    def test_includes_context_fields(self):
        record = logging.LogRecord("booking.test", logging.INFO, __file__, 1, "Booking %s", ("B1",), None)
        record.booking_id = "B1"
        record.job_name = "mark_no_shows"

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "booking.test"
        assert data["message"] == "Booking B1"
        assert data["booking_id"] == "B1"
        assert data["job_name"] == "mark_no_shows"
        assert "service_id" not in data


class TestSweepResult:
    def test_clean_run(self):
        result = SweepResult(job_name="mark_no_shows", candidates=["a", "b"], succeeded=["a", "b"])

        assert result.attempted == 2
        assert result.exit_code == 0
        assert result.summary() == "mark_no_shows: attempted=2, succeeded=2, failed=0"

    def test_any_failure_sets_exit_code(self):
        result = SweepResult(job_name="send_reminders", candidates=["a", "b"], succeeded=["a"], failed=["b"])

        assert not result.ok
        assert result.exit_code == 1

    def test_dry_run_summary(self):
        result = SweepResult(job_name="send_reminders", dry_run=True, candidates=["a"])

        assert result.attempted == 0
        assert result.summary() == "send_reminders: dry run, 1 candidate(s)"
