"""ReminderService - the single entry point for the rest of the bot.

Every public method returns a concrete value or a result object with a
user-facing reason; nothing raises past this boundary.
"""

from datetime import datetime, timezone
from typing import Optional

from logger import get_logger
from . import config
from .formatter import format_datetime, format_list
from .matcher import SemanticMatcher, by_date_window, by_keyword
from .messages import get_texts
from .models import (
    AddResult,
    DeleteCriteria,
    DeleteResult,
    Reminder,
    ReminderError,
    ReminderFilters,
    ReminderStats,
    ReminderStoreError,
    ReminderValidationError,
    to_iso,
    to_utc,
)
from .scheduler import ReminderScheduler
from .store import ReminderStore

logger = get_logger(__name__)


class ReminderService:
    """Facade over the store, scheduler and matcher."""

    def __init__(
        self,
        store: ReminderStore,
        scheduler: ReminderScheduler,
        matcher: Optional[SemanticMatcher] = None,
        min_lead_seconds: Optional[float] = None,
        date_window_hours: Optional[float] = None,
        language: Optional[str] = None
    ):
        self.store = store
        self.scheduler = scheduler
        self.matcher = matcher or SemanticMatcher()
        self.min_lead_seconds = config.REMINDER_MIN_LEAD_SECONDS if min_lead_seconds is None else min_lead_seconds
        self.date_window_hours = date_window_hours or config.REMINDER_DATE_WINDOW_HOURS
        self.language = language
        self.texts = get_texts(language)
        self._start_attempts = 0

    # ----- lifecycle -----

    async def start(self) -> bool:
        """Start the scheduler; on store failure, run degraded and retry with backoff.

        Returns:
            True if the scheduler loaded the pending reminders
        """
        try:
            await self.scheduler.start()
        except ReminderStoreError as e:
            self._start_attempts += 1
            delay = min(
                config.REMINDER_START_RETRY_BASE_SECONDS * 2 ** (self._start_attempts - 1),
                config.REMINDER_START_RETRY_MAX_SECONDS
            )
            logger.error(
                f"REMINDER SCHEDULER FAILED TO START (attempt {self._start_attempts}): {e} - "
                f"reminders disabled until retry in {delay}s"
            )
            self.scheduler.schedule_restart(delay, self.start)
            return False

        self._start_attempts = 0
        return True

    def stop(self) -> None:
        self.scheduler.stop()

    # ----- create -----

    def _validate(self, message: str, scheduled_for: datetime | str) -> tuple[str, datetime]:
        """Normalise message and date, raising ReminderValidationError with a user-facing reason."""
        message = (message or "").strip()
        if not message:
            raise ReminderValidationError(self.texts.error_empty_message)

        try:
            when = to_utc(scheduled_for)
        except (ValueError, OverflowError):
            raise ReminderValidationError(self.texts.error_invalid_date)

        lead = (when - datetime.now(timezone.utc)).total_seconds()
        if lead < self.min_lead_seconds:
            raise ReminderValidationError(self.texts.error_too_soon)

        return message, when

    async def add(
        self,
        user_id: str,
        user_name: str,
        message: str,
        scheduled_for: datetime | str
    ) -> AddResult:
        """Validate, persist and arm a new reminder.

        Args:
            user_id: Owner id
            user_name: Owner display name
            message: Reminder text
            scheduled_for: ISO-8601 string or datetime (naive = UTC)

        Returns:
            AddResult with the new id, or a user-facing reason on failure
        """
        try:
            message, when = self._validate(message, scheduled_for)
        except ReminderValidationError as e:
            logger.warning(f"Rejected reminder for user {user_id}: {e}")
            return AddResult(success=False, message=str(e))

        try:
            reminder_id = await self.store.insert(str(user_id), user_name, message, to_iso(when))
        except ReminderStoreError as e:
            logger.error(f"Failed to add reminder: {e}")
            return AddResult(success=False, message=self.texts.error_store)

        now = datetime.now(timezone.utc)
        reminder = Reminder(
            id=reminder_id,
            user_id=str(user_id),
            user_name=user_name,
            message=message,
            scheduled_for=when,
            created_at=now,
        )
        self.scheduler.arm(reminder)
        logger.info(f"Reminder {reminder_id} scheduled for {to_iso(when)}")

        return AddResult(
            success=True,
            reminder_id=reminder_id,
            message=self.texts.added.format(
                date=format_datetime(when, language=self.language),
                text=message
            )
        )

    # ----- read -----

    async def list_by_user(self, user_id: str, filters: Optional[ReminderFilters] = None) -> list[Reminder]:
        """Pending reminders for a user, optionally narrowed by one filter."""
        try:
            reminders = await self.store.get_pending_by_user(str(user_id))
        except ReminderStoreError as e:
            logger.error(f"Error getting user reminders: {e}")
            return []

        reminders.sort(key=lambda r: r.scheduled_for)
        if filters is None or filters.is_empty():
            return reminders

        if filters.keyword:
            return await self.matcher.select(reminders, filters.keyword)
        if filters.date:
            try:
                return by_date_window(reminders, filters.date, self.date_window_hours)
            except (ValueError, OverflowError):
                logger.warning(f"Ignoring unparseable date filter {filters.date!r}")
                return []
        return await self.matcher.select(reminders, filters.description)

    async def stats(self) -> ReminderStats:
        try:
            return await self.store.stats()
        except ReminderStoreError as e:
            logger.error(f"Error getting reminder stats: {e}")
            return ReminderStats()

    def format_list(self, reminders: list[Reminder]) -> str:
        return format_list(reminders, language=self.language)

    def queue_status(self) -> dict:
        return self.scheduler.queue_status()

    # ----- delete -----

    async def _find_owned(self, reminder_id: str, user_id: str) -> Optional[Reminder]:
        reminders = await self.store.get_pending_by_user(str(user_id))
        return next((r for r in reminders if r.id == str(reminder_id)), None)

    async def delete_by_id(self, reminder_id: str, user_id: str) -> bool:
        """Delete one of the user's reminders. False if not found or not theirs."""
        try:
            reminder = await self._find_owned(reminder_id, user_id)
            if reminder is None:
                logger.info(f"Reminder {reminder_id} not found for user {user_id}")
                return False
            removed = await self.scheduler.cancel(reminder.id)
        except ReminderStoreError as e:
            logger.error(f"Error deleting reminder {reminder_id}: {e}")
            return False

        if not removed:
            logger.info(f"Reminder {reminder_id} was already removed")
            return False

        logger.info(f"Reminder {reminder_id} deleted for user {user_id}")
        return True

    async def _cancel(self, reminder: Reminder) -> bool:
        """Cancel one reminder. True only when the store actually removed it."""
        try:
            removed = await self.scheduler.cancel(reminder.id)
        except ReminderStoreError as e:
            logger.error(f"Failed to delete reminder {reminder.id}: {e}")
            return False
        if not removed:
            logger.info(f"Reminder {reminder.id} was already removed")
        return removed

    async def _resolve_candidates(self, reminders: list[Reminder], criteria: DeleteCriteria) -> list[Reminder]:
        if criteria.message:
            return by_keyword(reminders, criteria.message)
        if criteria.date:
            return by_date_window(reminders, criteria.date, self.date_window_hours)
        if criteria.description:
            return await self.matcher.select(reminders, criteria.description)
        if criteria.count:
            return reminders
        return []

    async def delete_by_criteria(self, user_id: str, criteria: DeleteCriteria) -> DeleteResult:
        """Delete reminders by ids or by message/date/description, capped at count.

        With only `count`, the earliest `count` pending reminders go.
        """
        user_id = str(user_id)
        try:
            if criteria.ids:
                return await self._delete_ids(user_id, criteria.ids)

            reminders = await self.store.get_pending_by_user(user_id)
            if not reminders:
                return DeleteResult(success=False, message=self.texts.delete_none_owned)

            reminders.sort(key=lambda r: r.scheduled_for)
            targets = await self._resolve_candidates(reminders, criteria)
            if criteria.count and criteria.count > 0:
                targets = targets[:criteria.count]

            if not targets:
                return DeleteResult(success=False, message=self.texts.delete_no_match)

            deleted_ids, deleted_messages = [], []
            for reminder in targets:
                if not await self._cancel(reminder):
                    continue
                deleted_ids.append(reminder.id)
                deleted_messages.append(reminder.message)

            return self._delete_result(deleted_ids, deleted_messages)

        except (ReminderError, ValueError, OverflowError) as e:
            logger.error(f"Error finding and deleting reminders: {e}")
            return DeleteResult(success=False, message=self.texts.delete_internal_error)

    async def _delete_ids(self, user_id: str, ids: list[str]) -> DeleteResult:
        owned = {r.id: r for r in await self.store.get_pending_by_user(user_id)}
        deleted_ids, deleted_messages = [], []
        for raw_id in ids:
            reminder = owned.get(str(raw_id))
            if reminder is None:
                logger.info(f"Reminder {raw_id} not found for user {user_id}")
                continue
            if not await self._cancel(reminder):
                continue
            deleted_ids.append(reminder.id)
            deleted_messages.append(reminder.message)

        if not deleted_ids:
            return DeleteResult(success=False, message=self.texts.delete_no_match)
        return self._delete_result(deleted_ids, deleted_messages)

    def _delete_result(self, deleted_ids: list[str], deleted_messages: list[str]) -> DeleteResult:
        count = len(deleted_ids)
        if count == 0:
            return DeleteResult(success=False, message=self.texts.delete_failed)

        message = self.texts.deleted_one if count == 1 else self.texts.deleted_many.format(n=count)
        logger.info(f"Deleted {count} reminder(s): {deleted_ids}")
        return DeleteResult(
            success=True,
            deleted_ids=deleted_ids,
            deleted_messages=deleted_messages,
            count=count,
            message=message
        )

    async def delete_all_by_user(self, user_id: str) -> int:
        """Disarm then delete every reminder of a user. Returns the store's count."""
        try:
            return await self.scheduler.cancel_user(str(user_id))
        except ReminderStoreError as e:
            logger.error(f"Error deleting all reminders for user {user_id}: {e}")
            return 0

    async def cleanup_old_reminders(self, days: Optional[int] = None) -> bool:
        try:
            await self.scheduler.cleanup(days)
        except ReminderStoreError as e:
            logger.error(f"Error cleaning up old reminders: {e}")
            return False
        return True
