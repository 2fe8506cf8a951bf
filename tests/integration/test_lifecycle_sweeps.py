"""
Integration tests for the no-show and reminder sweeps and the lifecycle worker.

Tests coverage:
- No-show: grace period boundary, eligible statuses, dry run, failures
- Reminders: 24h window, already reminded, dispatch failure keeps status
- CLI entry points return the sweep exit code
- Worker health file
"""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
from conftest import FIXED_NOW, RecordingSink, ago, ahead, fetch_booking

from booking.lifecycle.state_machine import BookingStateMachine
from booking.workers import lifecycle_worker, no_show_worker, reminder_worker
from booking.workers.no_show_worker import mark_no_shows
from booking.workers.reminder_worker import send_reminders
from booking.workers.sweep_result import SweepResult
from database.models import BookingStatus


class FakeSender:
    """Reminder sender that succeeds unless the booking id is in fail_ids."""

    def __init__(self, fail_ids=()):
        self.fail_ids = set(fail_ids)
        self.sent: list[str] = []

    async def send_reminder(self, booking) -> bool:
        self.sent.append(booking.id)
        return booking.id not in self.fail_ids


@pytest.fixture
def machine(event_sink, fixed_clock):
    return BookingStateMachine(event_sink=event_sink, clock=fixed_clock)


@pytest.fixture
async def service(make_service):
    return await make_service(duration_minutes=60)


class TestNoShowSweep:
    """Tests for mark_no_shows()."""

    @pytest.mark.asyncio
    async def test_grace_period_boundary(self, service, make_booking, machine, fixed_clock):
        late = await make_booking(service, ago(minutes=16), BookingStatus.CONFIRMED)
        within_grace = await make_booking(service, ago(minutes=14), BookingStatus.CONFIRMED)

        result = await mark_no_shows(grace_period_minutes=15, state_machine=machine, clock=fixed_clock)

        assert result.candidates == [late.id]
        assert result.succeeded == [late.id]
        assert result.exit_code == 0
        assert (await fetch_booking(late.id)).status == BookingStatus.NO_SHOW
        assert (await fetch_booking(within_grace.id)).status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_exactly_at_grace_period(self, service, make_booking, machine, fixed_clock):
        booking = await make_booking(service, ago(minutes=15), BookingStatus.REMINDED)

        result = await mark_no_shows(grace_period_minutes=15, state_machine=machine, clock=fixed_clock)

        assert result.succeeded == [booking.id]

    @pytest.mark.asyncio
    async def test_only_confirmed_and_reminded(self, service, make_booking, machine, fixed_clock):
        reminded = await make_booking(service, ago(hours=3), BookingStatus.REMINDED)
        created = await make_booking(service, ago(hours=2), BookingStatus.CREATED)
        started = await make_booking(service, ago(hours=4), BookingStatus.STARTED, started_at=ago(hours=4))
        await make_booking(service, ago(hours=5), BookingStatus.CANCELLED)

        result = await mark_no_shows(grace_period_minutes=15, state_machine=machine, clock=fixed_clock)

        assert result.candidates == [reminded.id]
        assert (await fetch_booking(created.id)).status == BookingStatus.CREATED
        assert (await fetch_booking(started.id)).status == BookingStatus.STARTED

    @pytest.mark.asyncio
    async def test_soft_deleted_bookings_are_skipped(self, service, make_booking, machine, fixed_clock):
        await make_booking(service, ago(hours=1), BookingStatus.CONFIRMED, deleted_at=FIXED_NOW)

        result = await mark_no_shows(state_machine=machine, clock=fixed_clock)

        assert result.candidates == []

    @pytest.mark.asyncio
    async def test_dry_run_changes_nothing(self, service, make_booking, event_sink, machine, fixed_clock):
        booking = await make_booking(service, ago(hours=1), BookingStatus.CONFIRMED)

        result = await mark_no_shows(dry_run=True, state_machine=machine, clock=fixed_clock)

        assert result.candidates == [booking.id]
        assert result.attempted == 0
        assert (await fetch_booking(booking.id)).status == BookingStatus.CONFIRMED
        assert event_sink.events == []

    @pytest.mark.asyncio
    async def test_failures_are_counted_and_sweep_continues(self, service, make_booking, fixed_clock):
        first = await make_booking(service, ago(hours=2), BookingStatus.CONFIRMED)
        second = await make_booking(service, ago(hours=1), BookingStatus.CONFIRMED)
        machine = BookingStateMachine(event_sink=RecordingSink(), clock=fixed_clock)
        real_mark = machine.mark_no_show

        async def flaky(booking):
            if booking.id == first.id:
                raise RuntimeError("database hiccup")
            return await real_mark(booking)

        with patch.object(machine, "mark_no_show", flaky):
            result = await mark_no_shows(state_machine=machine, clock=fixed_clock)

        assert result.failed == [first.id]
        assert result.succeeded == [second.id]
        assert result.exit_code == 1

    @pytest.mark.asyncio
    async def test_lost_race_counts_as_failed(self, service, make_booking, fixed_clock):
        booking = await make_booking(service, ago(hours=1), BookingStatus.CONFIRMED)
        machine = AsyncMock(spec=BookingStateMachine)
        machine.mark_no_show.return_value = False

        result = await mark_no_shows(state_machine=machine, clock=fixed_clock)

        assert result.failed == [booking.id]

    @pytest.mark.asyncio
    async def test_uses_configured_grace_period(self, service, make_booking, machine, fixed_clock):
        booking = await make_booking(service, ago(minutes=20), BookingStatus.CONFIRMED)

        result = await mark_no_shows(state_machine=machine, clock=fixed_clock)

        assert result.succeeded == [booking.id]


class TestReminderSweep:
    """Tests for send_reminders()."""

    @pytest.mark.asyncio
    async def test_reminds_bookings_inside_window(self, service, make_booking, machine, fixed_clock, event_sink):
        soon = await make_booking(service, ahead(hours=23), BookingStatus.CONFIRMED)
        later = await make_booking(service, ahead(hours=25), BookingStatus.CONFIRMED)
        sender = FakeSender()

        result = await send_reminders(sender=sender, state_machine=machine, clock=fixed_clock)

        assert result.succeeded == [soon.id]
        assert sender.sent == [soon.id]
        stored = await fetch_booking(soon.id)
        assert stored.status == BookingStatus.REMINDED
        assert stored.reminder_sent is True
        assert stored.reminder_sent_at == FIXED_NOW
        assert (await fetch_booking(later.id)).status == BookingStatus.CONFIRMED
        assert event_sink.actions == ["booking.reminded"]

    @pytest.mark.asyncio
    async def test_skips_already_reminded_and_unconfirmed(self, service, make_booking, machine, fixed_clock):
        await make_booking(service, ahead(hours=2), BookingStatus.CONFIRMED, reminder_sent=True)
        await make_booking(service, ahead(hours=3), BookingStatus.REMINDED, reminder_sent=True)
        await make_booking(service, ahead(hours=4), BookingStatus.CREATED)
        sender = FakeSender()

        result = await send_reminders(sender=sender, state_machine=machine, clock=fixed_clock)

        assert result.candidates == []
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_past_bookings_are_not_reminded(self, service, make_booking, machine, fixed_clock):
        await make_booking(service, ago(minutes=5), BookingStatus.CONFIRMED)

        result = await send_reminders(sender=FakeSender(), state_machine=machine, clock=fixed_clock)

        assert result.candidates == []

    @pytest.mark.asyncio
    async def test_dispatch_failure_keeps_booking_confirmed(self, service, make_booking, machine, fixed_clock):
        failing = await make_booking(service, ahead(hours=2), BookingStatus.CONFIRMED)
        working = await make_booking(service, ahead(hours=3), BookingStatus.CONFIRMED)
        sender = FakeSender(fail_ids=[failing.id])

        result = await send_reminders(sender=sender, state_machine=machine, clock=fixed_clock)

        assert result.failed == [failing.id]
        assert result.succeeded == [working.id]
        assert result.exit_code == 1
        stored = await fetch_booking(failing.id)
        assert stored.status == BookingStatus.CONFIRMED
        assert stored.reminder_sent is False

        # Retried on the next run
        retry = await send_reminders(sender=FakeSender(), state_machine=machine, clock=fixed_clock)
        assert retry.succeeded == [failing.id]

    @pytest.mark.asyncio
    async def test_dry_run_sends_nothing(self, service, make_booking, machine, fixed_clock):
        booking = await make_booking(service, ahead(hours=2), BookingStatus.CONFIRMED)
        sender = FakeSender()

        result = await send_reminders(dry_run=True, sender=sender, state_machine=machine, clock=fixed_clock)

        assert result.candidates == [booking.id]
        assert sender.sent == []
        assert (await fetch_booking(booking.id)).status == BookingStatus.CONFIRMED


class TestCommandLine:
    def test_no_show_parser(self):
        args = no_show_worker.build_parser().parse_args(["--grace-period", "30", "--dry-run"])

        assert args.grace_period == 30
        assert args.dry_run is True

    def test_no_show_main_returns_exit_code(self, capsys):
        failed = SweepResult(job_name="mark_no_shows", candidates=["a"], failed=["a"])

        with patch.object(no_show_worker, "configure_logging"), \
             patch.object(no_show_worker, "mark_no_shows", AsyncMock(return_value=failed)) as sweep:
            code = no_show_worker.main(["--grace-period", "20"])

        assert code == 1
        sweep.assert_awaited_once_with(grace_period_minutes=20, dry_run=False)
        assert "failed=1" in capsys.readouterr().out

    def test_reminder_main_dry_run(self, capsys):
        dry = SweepResult(job_name="send_reminders", dry_run=True, candidates=["a", "b"])

        with patch.object(reminder_worker, "configure_logging"), \
             patch.object(reminder_worker, "send_reminders", AsyncMock(return_value=dry)) as sweep:
            code = reminder_worker.main(["--dry-run"])

        assert code == 0
        sweep.assert_awaited_once_with(dry_run=True)
        assert "2 candidate(s)" in capsys.readouterr().out


class TestLifecycleWorker:
    def test_health_file_tracks_jobs(self, tmp_path):
        lifecycle_worker.update_health_check(
            "mark_no_shows", datetime(2030, 3, 1, tzinfo=UTC), "healthy", 3, 0, health_dir=tmp_path
        )
        lifecycle_worker.update_health_check(
            "send_reminders", datetime(2030, 3, 1, tzinfo=UTC), "unhealthy", 1, 2, health_dir=tmp_path
        )

        data = json.loads((tmp_path / lifecycle_worker.HEALTH_FILE_NAME).read_text())

        assert data["mark_no_shows"]["processed"] == 3
        assert data["send_reminders"]["errors"] == 2
        assert data["overall_status"] == "unhealthy"
        assert list(tmp_path.glob("*.tmp")) == []

    @pytest.mark.asyncio
    async def test_run_sweeps_survives_a_crashing_job(self, tmp_path):
        ok = SweepResult(job_name="send_reminders", candidates=["a"], succeeded=["a"])

        with patch.object(lifecycle_worker, "mark_no_shows", AsyncMock(side_effect=RuntimeError("boom"))), \
             patch.object(lifecycle_worker, "send_reminders", AsyncMock(return_value=ok)), \
             patch.object(lifecycle_worker, "update_health_check") as health:
            results = await lifecycle_worker.run_sweeps()

        assert results == [ok]
        statuses = {call.kwargs["job_name"]: call.kwargs["status"] for call in health.call_args_list}
        assert statuses == {"mark_no_shows": "unhealthy", "send_reminders": "healthy"}

    @pytest.mark.asyncio
    async def test_heartbeat_uses_hub_reporter(self):
        reporter = AsyncMock()
        reporter.heartbeat.return_value = True

        with patch.object(lifecycle_worker, "get_hub_reporter", return_value=reporter):
            assert await lifecycle_worker.send_heartbeat() is True

        payload = reporter.heartbeat.await_args.args[0]
        assert payload["worker"] == "lifecycle"
