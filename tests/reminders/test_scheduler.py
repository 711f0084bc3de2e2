"""Tests for arming, firing and cancelling reminder timers."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from conftest import FakeNotifier, insert_reminder, make_reminder, wait_until
from domains.reminders.models import ReminderStoreError, to_iso
from domains.reminders.scheduler import (
    CLEANUP_JOB_ID,
    RESTART_JOB_ID,
    SWEEP_JOB_ID,
    ReminderScheduler,
)


@pytest_asyncio.fixture
async def make_scheduler(sqlite_store):
    """Factory for schedulers with a custom notifier; stopped on teardown."""
    created = []

    def factory(notifier, **kwargs):
        kwargs.setdefault("sweep_interval", 0)
        kwargs.setdefault("language", "pt-br")
        scheduler = ReminderScheduler(sqlite_store, notifier, **kwargs)
        created.append(scheduler)
        return scheduler

    yield factory
    for scheduler in created:
        scheduler.stop()


def reminder_jobs(scheduler: ReminderScheduler) -> list:
    return [job for job in scheduler.scheduler.get_jobs() if job.id.startswith("reminder:")]


class TestStart:

    @pytest.mark.asyncio
    async def test_arms_all_pending(self, reminder_scheduler, sqlite_store):
        first = await insert_reminder(sqlite_store, "Um", timedelta(hours=1))
        second = await insert_reminder(sqlite_store, "Dois", timedelta(days=2))

        armed = await reminder_scheduler.start()

        assert armed == 2
        assert reminder_scheduler.started
        assert reminder_scheduler.is_armed(first)
        assert reminder_scheduler.is_armed(second)

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, reminder_scheduler, sqlite_store):
        await insert_reminder(sqlite_store, "Um", timedelta(hours=1))
        await insert_reminder(sqlite_store, "Dois", timedelta(hours=2))

        await reminder_scheduler.start()
        again = await reminder_scheduler.start()

        assert again == 0
        assert reminder_scheduler.armed_count == 2
        assert len(reminder_jobs(reminder_scheduler)) == 2

    @pytest.mark.asyncio
    async def test_overdue_reminder_fires_immediately(self, reminder_scheduler, sqlite_store, notifier):
        reminder_id = await insert_reminder(sqlite_store, "Atrasado", timedelta(minutes=-5))

        await reminder_scheduler.start()

        assert await wait_until(lambda: reminder_id in reminder_scheduler._settled)
        assert notifier.calls == [("user123", "🔔 **Lembrete:** Atrasado")]
        assert await sqlite_store.get_all_pending() == []

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, reminder_scheduler, sqlite_store):
        sqlite_store.get_all_pending = AsyncMock(side_effect=ReminderStoreError("down"))

        with pytest.raises(ReminderStoreError):
            await reminder_scheduler.start()

        assert not reminder_scheduler.started
        assert reminder_scheduler.armed_count == 0

    @pytest.mark.asyncio
    async def test_stop_then_start_rearms(self, reminder_scheduler, sqlite_store):
        await insert_reminder(sqlite_store, "Um", timedelta(hours=1))
        await insert_reminder(sqlite_store, "Dois", timedelta(hours=2))
        await reminder_scheduler.start()

        reminder_scheduler.stop()
        assert reminder_scheduler.armed_count == 0
        assert not reminder_scheduler.started

        assert await reminder_scheduler.start() == 2
        assert len(reminder_jobs(reminder_scheduler)) == 2

    @pytest.mark.asyncio
    async def test_registers_maintenance_jobs(self, make_scheduler):
        without_sweep = make_scheduler(FakeNotifier())
        await without_sweep.start()
        assert without_sweep.scheduler.get_job(CLEANUP_JOB_ID) is not None
        assert without_sweep.scheduler.get_job(SWEEP_JOB_ID) is None
        without_sweep.stop()

        with_sweep = make_scheduler(FakeNotifier(), sweep_interval=60)
        await with_sweep.start()
        assert with_sweep.scheduler.get_job(SWEEP_JOB_ID) is not None


class TestArm:

    @pytest.mark.asyncio
    async def test_arm_skips_duplicates_and_sent(self, reminder_scheduler):
        reminder = make_reminder("1")
        sent = make_reminder("2")
        sent.sent = True

        assert reminder_scheduler.arm(reminder) is True
        assert reminder_scheduler.arm(reminder) is False
        assert reminder_scheduler.arm(sent) is False
        assert reminder_scheduler.armed_count == 1

    @pytest.mark.asyncio
    async def test_disarm(self, reminder_scheduler):
        reminder_scheduler.arm(make_reminder("1"))

        assert reminder_scheduler.disarm("1") is True
        assert reminder_scheduler.disarm("1") is False
        assert reminder_jobs(reminder_scheduler) == []

    @pytest.mark.asyncio
    async def test_queue_status(self, reminder_scheduler):
        assert reminder_scheduler.queue_status() == {"scheduled": 0, "next_reminder": None}

        sooner = datetime.now(timezone.utc) + timedelta(hours=1)
        reminder_scheduler.arm(make_reminder("1", scheduled_for=sooner + timedelta(hours=3)))
        reminder_scheduler.arm(make_reminder("2", scheduled_for=sooner))

        assert reminder_scheduler.queue_status() == {"scheduled": 2, "next_reminder": to_iso(sooner)}


class TestFire:

    @pytest.mark.asyncio
    async def test_fire_delivers_once_and_retires(self, reminder_scheduler, sqlite_store, notifier):
        reminder_id = await insert_reminder(sqlite_store, "Standup", timedelta(hours=1))
        await reminder_scheduler.start()

        assert await reminder_scheduler.fire(reminder_id) is True
        assert await reminder_scheduler.fire(reminder_id) is False

        assert len(notifier.calls) == 1
        assert not reminder_scheduler.is_armed(reminder_id)
        assert await sqlite_store.get_all_pending() == []

    @pytest.mark.asyncio
    async def test_undeliverable_still_retired(self, make_scheduler, sqlite_store):
        scheduler = make_scheduler(FakeNotifier(result=False))
        reminder_id = await insert_reminder(sqlite_store, "Sem DM", timedelta(hours=1))
        await scheduler.start()

        assert await scheduler.fire(reminder_id) is False
        assert await sqlite_store.get_all_pending() == []

    @pytest.mark.asyncio
    async def test_notifier_exception_still_retired(self, make_scheduler, sqlite_store):
        scheduler = make_scheduler(FakeNotifier(error=RuntimeError("gateway closed")))
        reminder_id = await insert_reminder(sqlite_store, "Erro", timedelta(hours=1))
        await scheduler.start()

        assert await scheduler.fire(reminder_id) is False
        assert await sqlite_store.get_all_pending() == []

    @pytest.mark.asyncio
    async def test_notifier_timeout_still_retired(self, make_scheduler, sqlite_store):
        notifier = FakeNotifier(delay=2.0)
        scheduler = make_scheduler(notifier, notify_timeout=0.1)
        reminder_id = await insert_reminder(sqlite_store, "Lento", timedelta(hours=1))
        await scheduler.start()

        assert await scheduler.fire(reminder_id) is False
        assert len(notifier.calls) == 1
        assert await sqlite_store.get_all_pending() == []

    @pytest.mark.asyncio
    async def test_retire_failure_not_rearmed_by_sweep(self, reminder_scheduler, sqlite_store, notifier):
        reminder_id = await insert_reminder(sqlite_store, "Uma vez", timedelta(hours=1))
        await reminder_scheduler.start()
        sqlite_store.retire = AsyncMock(side_effect=ReminderStoreError("down"))

        assert await reminder_scheduler.fire(reminder_id) is True

        # The store still reports it pending, but it was already delivered
        assert [r.id for r in await sqlite_store.get_all_pending()] == [reminder_id]
        assert await reminder_scheduler.sweep() == 0
        assert not reminder_scheduler.is_armed(reminder_id)
        assert len(notifier.calls) == 1


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_before_fire(self, reminder_scheduler, sqlite_store, notifier):
        reminder_id = await insert_reminder(sqlite_store, "Cancelar", timedelta(hours=1))
        await reminder_scheduler.start()

        assert await reminder_scheduler.cancel(reminder_id) is True
        assert await reminder_scheduler.fire(reminder_id) is False

        assert notifier.calls == []
        assert await sqlite_store.get_all_pending() == []

    @pytest.mark.asyncio
    async def test_cancel_during_delivery(self, make_scheduler, sqlite_store):
        notifier = FakeNotifier(delay=0.2)
        scheduler = make_scheduler(notifier)
        reminder_id = await insert_reminder(sqlite_store, "Corrida", timedelta(hours=1))
        await scheduler.start()

        firing = asyncio.create_task(scheduler.fire(reminder_id))
        await asyncio.sleep(0.05)
        assert notifier.calls  # delivery started

        assert await scheduler.cancel(reminder_id) is True
        assert await firing is True

        assert len(notifier.calls) == 1
        assert await sqlite_store.get_all_pending() == []
        assert await scheduler.sweep() == 0

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, reminder_scheduler, sqlite_store):
        reminder_id = await insert_reminder(sqlite_store, "Cancelar", timedelta(hours=1))
        await reminder_scheduler.start()

        assert await reminder_scheduler.cancel(reminder_id) is True
        assert await reminder_scheduler.cancel(reminder_id) is False

    @pytest.mark.asyncio
    async def test_cancel_store_failure_left_for_sweep(self, reminder_scheduler, sqlite_store):
        reminder_id = await insert_reminder(sqlite_store, "Falha", timedelta(hours=1))
        await reminder_scheduler.start()
        original_delete = sqlite_store.delete_by_id
        sqlite_store.delete_by_id = AsyncMock(side_effect=ReminderStoreError("down"))

        with pytest.raises(ReminderStoreError):
            await reminder_scheduler.cancel(reminder_id)
        assert not reminder_scheduler.is_armed(reminder_id)

        # Still in the store, so the sweep brings the timer back
        sqlite_store.delete_by_id = original_delete
        assert await reminder_scheduler.sweep() == 1
        assert reminder_scheduler.is_armed(reminder_id)

    @pytest.mark.asyncio
    async def test_cancel_user(self, reminder_scheduler, sqlite_store):
        await insert_reminder(sqlite_store, "Um", timedelta(hours=1))
        await insert_reminder(sqlite_store, "Dois", timedelta(hours=2))
        other = await insert_reminder(sqlite_store, "Outro", timedelta(hours=1), user_id="other")
        await reminder_scheduler.start()

        assert await reminder_scheduler.cancel_user("user123") == 2

        assert reminder_scheduler.armed_count == 1
        assert reminder_scheduler.is_armed(other)
        assert [r.id for r in await sqlite_store.get_all_pending()] == [other]


class TestSweep:

    @pytest.mark.asyncio
    async def test_sweep_picks_up_unarmed(self, reminder_scheduler, sqlite_store):
        await reminder_scheduler.start()
        # Written straight to the store, bypassing arm()
        reminder_id = await insert_reminder(sqlite_store, "Perdido", timedelta(hours=1))

        assert await reminder_scheduler.sweep() == 1
        assert reminder_scheduler.is_armed(reminder_id)
        assert await reminder_scheduler.sweep() == 0

    @pytest.mark.asyncio
    async def test_stale_snapshot_never_rearms_fired_reminder(self, reminder_scheduler, sqlite_store, notifier):
        reminder_id = await insert_reminder(sqlite_store, "Uma vez só", timedelta(hours=1))
        await reminder_scheduler.start()

        read_pending = sqlite_store.get_all_pending
        release = asyncio.Event()
        parked = []

        async def slow_first_read():
            snapshot = await read_pending()
            if not parked:
                parked.append(snapshot)
                await release.wait()
            return snapshot

        sqlite_store.get_all_pending = slow_first_read

        # Older snapshot still lists the reminder as pending
        stale = asyncio.create_task(reminder_scheduler.sweep())
        assert await wait_until(lambda: parked)
        assert [r.id for r in parked[0]] == [reminder_id]

        assert await reminder_scheduler.fire(reminder_id) is True

        fresh = asyncio.create_task(reminder_scheduler.sweep())
        await asyncio.sleep(0.05)
        release.set()

        assert await stale == 0
        assert await fresh == 0
        assert not reminder_scheduler.is_armed(reminder_id)
        assert len(notifier.calls) == 1

    @pytest.mark.asyncio
    async def test_start_waits_for_running_sweep(self, reminder_scheduler, sqlite_store, notifier):
        reminder_id = await insert_reminder(sqlite_store, "Reconexão", timedelta(hours=1))
        await reminder_scheduler.start()

        read_pending = sqlite_store.get_all_pending
        release = asyncio.Event()
        parked = []

        async def slow_first_read():
            snapshot = await read_pending()
            if not parked:
                parked.append(snapshot)
                await release.wait()
            return snapshot

        sqlite_store.get_all_pending = slow_first_read

        stale = asyncio.create_task(reminder_scheduler.sweep())
        assert await wait_until(lambda: parked)
        assert await reminder_scheduler.fire(reminder_id) is True

        restart = asyncio.create_task(reminder_scheduler.start())
        await asyncio.sleep(0.05)
        release.set()

        await stale
        assert await restart == 0
        assert not reminder_scheduler.is_armed(reminder_id)
        assert len(notifier.calls) == 1

    @pytest.mark.asyncio
    async def test_sweep_store_error_is_logged(self, reminder_scheduler, sqlite_store):
        await reminder_scheduler.start()
        sqlite_store.get_all_pending = AsyncMock(side_effect=ReminderStoreError("down"))

        assert await reminder_scheduler.sweep() == 0


class TestMaintenance:

    @pytest.mark.asyncio
    async def test_cleanup(self, reminder_scheduler, sqlite_store):
        sqlite_store.delete_older_than = AsyncMock(return_value=3)

        assert await reminder_scheduler.cleanup(7) == 3
        sqlite_store.delete_older_than.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_cleanup_job_swallows_store_errors(self, reminder_scheduler, sqlite_store):
        sqlite_store.delete_older_than = AsyncMock(side_effect=ReminderStoreError("down"))

        await reminder_scheduler._cleanup_job()

    @pytest.mark.asyncio
    async def test_schedule_restart(self, reminder_scheduler):
        calls = []

        async def restart():
            calls.append(datetime.now(timezone.utc))

        reminder_scheduler.schedule_restart(0.05, restart)

        assert reminder_scheduler.scheduler.get_job(RESTART_JOB_ID) is not None
        assert await wait_until(lambda: len(calls) == 1)
