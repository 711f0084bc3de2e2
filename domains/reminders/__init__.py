"""Reminders module for one-off private notifications.

APScheduler date jobs armed from a Supabase or SQLite store, with
keyword/semantic matching for bulk cancellation.
"""

from .models import (
    Reminder,
    ReminderStats,
    AddResult,
    ReminderFilters,
    DeleteCriteria,
    DeleteResult,
    ReminderError,
    ReminderValidationError,
    ReminderStoreError,
)
from .store import ReminderStore, SupabaseReminderStore, SqliteReminderStore, create_store
from .notifier import Notifier, DiscordNotifier
from .matcher import SemanticMatcher, by_date_window, by_keyword
from .scheduler import ReminderScheduler
from .service import ReminderService
from .formatter import format_list, format_notification, relative_time
from .intent import ReminderIntent, ClaudeIntentParser
from .handler import handle_reminder_intent, list_reminders

__all__ = [
    "Reminder",
    "ReminderStats",
    "AddResult",
    "ReminderFilters",
    "DeleteCriteria",
    "DeleteResult",
    "ReminderError",
    "ReminderValidationError",
    "ReminderStoreError",
    "ReminderStore",
    "SupabaseReminderStore",
    "SqliteReminderStore",
    "create_store",
    "Notifier",
    "DiscordNotifier",
    "SemanticMatcher",
    "by_date_window",
    "by_keyword",
    "ReminderScheduler",
    "ReminderService",
    "format_list",
    "format_notification",
    "relative_time",
    "ReminderIntent",
    "ClaudeIntentParser",
    "handle_reminder_intent",
    "list_reminders",
]
