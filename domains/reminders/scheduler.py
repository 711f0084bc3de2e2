"""Arm, fire and cancel reminder jobs with APScheduler.

The store is the source of truth. The armed map is a cache rebuilt by
start() and patched by the drift sweep. Every map mutation happens on the
event loop with no await between check and update, so arm/fire/cancel are
serialized without an explicit lock. Store snapshots (start and sweep) are
read and applied under one asyncio.Lock, so an older snapshot is never
applied after a newer one has pruned the settled ids.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from logger import get_logger
from . import config
from .formatter import format_notification
from .models import Reminder, ReminderStoreError, to_iso
from .notifier import Notifier
from .store import ReminderStore

logger = get_logger(__name__)

SWEEP_JOB_ID = "reminders:sweep"
CLEANUP_JOB_ID = "reminders:cleanup"
RESTART_JOB_ID = "reminders:restart"


@dataclass
class ArmedReminder:
    """A reminder with a pending APScheduler job."""
    reminder: Reminder
    job_id: str


class ReminderScheduler:
    """In-memory timers for pending reminders, at most one delivery attempt each."""

    def __init__(
        self,
        store: ReminderStore,
        notifier: Notifier,
        scheduler: Optional[AsyncIOScheduler] = None,
        fire_epsilon: Optional[float] = None,
        notify_timeout: Optional[float] = None,
        sweep_interval: Optional[int] = None,
        retention_days: Optional[int] = None,
        cleanup_hour: Optional[int] = None,
        language: Optional[str] = None
    ):
        """Initialize the reminder scheduler.

        Args:
            store: Reminder persistence
            notifier: Delivery channel for fired reminders
            scheduler: Shared APScheduler instance (a private one is created if omitted)
            fire_epsilon: Reminders due within this many seconds fire immediately
            notify_timeout: Seconds to wait for a single delivery attempt
            sweep_interval: Seconds between drift sweeps (0 disables)
            retention_days: Age after which sent reminders are purged
            cleanup_hour: UTC hour for the daily retention cleanup
            language: Message table for notification text
        """
        self.store = store
        self.notifier = notifier
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

        self.fire_epsilon = config.REMINDER_FIRE_EPSILON_SECONDS if fire_epsilon is None else fire_epsilon
        self.notify_timeout = notify_timeout or config.REMINDER_NOTIFY_TIMEOUT_SECONDS
        self.sweep_interval = config.REMINDER_SWEEP_INTERVAL_SECONDS if sweep_interval is None else sweep_interval
        self.retention_days = retention_days or config.REMINDER_RETENTION_DAYS
        self.cleanup_hour = config.REMINDER_CLEANUP_HOUR if cleanup_hour is None else cleanup_hour
        self.language = language

        self._armed: dict[str, ArmedReminder] = {}
        # Popped from the map, delivery/retirement still running
        self._in_flight: set[str] = set()
        # Retired or cancelled here; a stale pending snapshot must not re-arm them
        self._settled: set[str] = set()
        self._snapshot_lock = asyncio.Lock()
        self._started = False

    @property
    def armed_count(self) -> int:
        return len(self._armed)

    @property
    def started(self) -> bool:
        return self._started

    def is_armed(self, reminder_id: str) -> bool:
        return reminder_id in self._armed

    def _ensure_running(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()

    def _remove_job(self, job_id: str) -> None:
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            pass  # Already executed or removed

    async def start(self) -> int:
        """Load every pending reminder from the store and arm it.

        Safe to call repeatedly: already-armed reminders are skipped.

        Returns:
            Count of reminders newly armed

        Raises:
            ReminderStoreError: If the pending list can't be loaded
        """
        async with self._snapshot_lock:
            pending = await self.store.get_all_pending()
            self._ensure_running()
            armed = self._arm_snapshot(pending)
        self._register_maintenance_jobs()
        self._started = True
        logger.info(f"Reminder scheduler started: {armed} armed, {len(self._armed)} total in queue")
        return armed

    def stop(self) -> None:
        """Disarm every timer without touching the store."""
        for entry in self._armed.values():
            self._remove_job(entry.job_id)
        count = len(self._armed)
        self._armed.clear()

        for job_id in (SWEEP_JOB_ID, CLEANUP_JOB_ID, RESTART_JOB_ID):
            self._remove_job(job_id)

        if self._owns_scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        self._started = False
        logger.info(f"Reminder scheduler stopped ({count} timers cleared)")

    def _arm_snapshot(self, pending: list[Reminder]) -> int:
        """Arm reminders from a store snapshot, honouring settled ids. Caller holds _snapshot_lock."""
        pending_ids = {r.id for r in pending}
        # Ids the store no longer reports can't come back, so forget them
        self._settled &= pending_ids
        return sum(1 for r in pending if r.id not in self._settled and self.arm(r))

    def arm(self, reminder: Reminder) -> bool:
        """Schedule a one-shot fire job for a pending reminder.

        Returns:
            True if armed, False if it was already armed, in flight or retired
        """
        if reminder.id in self._armed or reminder.id in self._in_flight:
            logger.debug(f"Reminder {reminder.id} already armed, skipping")
            return False
        if reminder.sent:
            return False

        now = datetime.now(timezone.utc)
        delay = (reminder.scheduled_for - now).total_seconds()
        run_at = reminder.scheduled_for
        if delay <= self.fire_epsilon:
            logger.info(f"Reminder {reminder.id} is due now, firing immediately")
            run_at = now

        job_id = f"reminder:{reminder.id}"
        self.scheduler.add_job(
            self.fire,
            trigger=DateTrigger(run_date=run_at),
            args=[reminder.id],
            id=job_id,
            name=f"reminder:{reminder.message[:30]}",
            replace_existing=True,
            misfire_grace_time=None
        )
        self._armed[reminder.id] = ArmedReminder(reminder=reminder, job_id=job_id)
        logger.info(f"Armed reminder {reminder.id} for {to_iso(run_at)}")
        return True

    def disarm(self, reminder_id: str) -> bool:
        """Remove a reminder's timer if armed. Does not touch the store."""
        entry = self._armed.pop(reminder_id, None)
        if entry is None:
            return False
        self._remove_job(entry.job_id)
        logger.info(f"Disarmed reminder {reminder_id}")
        return True

    def disarm_user(self, user_id: str) -> list[str]:
        """Disarm every armed reminder belonging to one user. Does not touch the store."""
        ids = [rid for rid, entry in self._armed.items() if entry.reminder.user_id == user_id]
        for rid in ids:
            self.disarm(rid)
        return ids

    async def cancel_user(self, user_id: str) -> int:
        """Disarm all of a user's timers, then delete their reminders from the store.

        Returns:
            Count deleted by the store

        Raises:
            ReminderStoreError: If the store delete fails (the sweep re-arms survivors)
        """
        ids = self.disarm_user(user_id)
        self._settled.update(ids)
        try:
            deleted = await self.store.delete_all_by_user(user_id)
        except ReminderStoreError:
            self._settled.difference_update(ids)
            raise
        logger.info(f"Cancelled {deleted} reminders for user {user_id} ({len(ids)} timers cleared)")
        return deleted

    async def fire(self, reminder_id: str) -> bool:
        """Deliver an armed reminder once, then retire it.

        The map entry is removed before any await, so a concurrent cancel
        either wins (nothing is delivered) or loses (delivered once).
        Delivery failures still retire the reminder; there is no retry.

        Returns:
            True if the notifier reported a successful delivery
        """
        entry = self._armed.pop(reminder_id, None)
        if entry is None:
            logger.debug(f"Reminder {reminder_id} already fired or cancelled")
            return False

        self._remove_job(entry.job_id)
        self._in_flight.add(reminder_id)
        reminder = entry.reminder
        delivered = False

        try:
            text = format_notification(reminder.message, self.language)
            try:
                delivered = await asyncio.wait_for(
                    self.notifier.send(reminder.user_id, text),
                    timeout=self.notify_timeout
                )
            except asyncio.TimeoutError:
                logger.error(f"Delivery of reminder {reminder_id} timed out after {self.notify_timeout}s")
            except Exception as e:
                logger.error(f"Failed to deliver reminder {reminder_id}: {e}")

            if delivered:
                logger.info(f"Fired reminder {reminder_id} to {reminder.user_name or reminder.user_id}")
            else:
                logger.warning(f"Reminder {reminder_id} not delivered, retiring without retry")

            try:
                await self.store.retire(reminder.id, reminder.user_id)
            except ReminderStoreError as e:
                logger.error(f"Failed to retire reminder {reminder_id}: {e}")
        finally:
            self._in_flight.discard(reminder_id)
            self._settled.add(reminder_id)

        return delivered

    async def cancel(self, reminder_id: str) -> bool:
        """Disarm (if armed) and delete from the store. Idempotent.

        Returns:
            True if the store deleted a record

        Raises:
            ReminderStoreError: If the store delete fails
        """
        self.disarm(reminder_id)
        self._settled.add(reminder_id)
        try:
            deleted = await self.store.delete_by_id(reminder_id)
        except ReminderStoreError:
            self._settled.discard(reminder_id)
            raise
        if deleted:
            logger.info(f"Cancelled reminder {reminder_id}")
        return deleted

    async def sweep(self) -> int:
        """Arm pending reminders missing from the map (timer drift recovery).

        Returns:
            Count of reminders picked up
        """
        async with self._snapshot_lock:
            try:
                pending = await self.store.get_all_pending()
            except ReminderStoreError as e:
                logger.error(f"Reminder sweep failed: {e}")
                return 0
            added = self._arm_snapshot(pending)

        if added > 0:
            logger.info(f"Reminder sweep picked up {added} unarmed reminder(s)")
        return added

    async def cleanup(self, days: Optional[int] = None) -> int:
        """Purge sent reminders older than `days`.

        Raises:
            ReminderStoreError: If the store delete fails
        """
        days = days or self.retention_days
        deleted = await self.store.delete_older_than(days)
        logger.info(f"Cleaned up {deleted} sent reminders older than {days} days")
        return deleted

    async def _cleanup_job(self) -> None:
        try:
            await self.cleanup()
        except ReminderStoreError as e:
            logger.error(f"Reminder cleanup failed: {e}")

    def _register_maintenance_jobs(self) -> None:
        if self.sweep_interval > 0:
            self.scheduler.add_job(
                self.sweep,
                trigger=IntervalTrigger(seconds=self.sweep_interval),
                id=SWEEP_JOB_ID,
                name="Reminder drift sweep",
                replace_existing=True
            )
        self.scheduler.add_job(
            self._cleanup_job,
            trigger=CronTrigger(hour=self.cleanup_hour, minute=0, timezone="UTC"),
            id=CLEANUP_JOB_ID,
            name="Reminder retention cleanup",
            replace_existing=True
        )

    def schedule_restart(self, delay_seconds: float, callback: Callable[[], Awaitable]) -> None:
        """Run `callback` once after `delay_seconds` (startup retry)."""
        self._ensure_running()
        self.scheduler.add_job(
            callback,
            trigger=DateTrigger(run_date=datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)),
            id=RESTART_JOB_ID,
            name="Reminder scheduler restart",
            replace_existing=True,
            misfire_grace_time=None
        )
        logger.info(f"Reminder scheduler restart in {delay_seconds:.0f}s")

    def queue_status(self) -> dict:
        """Armed count and the next due instant."""
        if not self._armed:
            return {"scheduled": 0, "next_reminder": None}
        next_due = min(entry.reminder.scheduled_for for entry in self._armed.values())
        return {"scheduled": len(self._armed), "next_reminder": to_iso(next_due)}
