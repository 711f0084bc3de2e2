"""Reminder domain configuration."""

import os

from config import DATA_DIR

# Local SQLite store (used when Supabase isn't configured)
REMINDER_DB_PATH = os.environ.get("REMINDER_DB_PATH", str(DATA_DIR / "reminders.db"))

# Display
REMINDER_TIMEZONE = os.environ.get("REMINDER_TIMEZONE", "America/Sao_Paulo")
REMINDER_LANGUAGE = os.environ.get("REMINDER_LANGUAGE", "pt-br")

# Scheduling
REMINDER_FIRE_EPSILON_SECONDS = float(os.environ.get("REMINDER_FIRE_EPSILON_SECONDS", 1))
REMINDER_MIN_LEAD_SECONDS = float(os.environ.get("REMINDER_MIN_LEAD_SECONDS", 1))
REMINDER_NOTIFY_TIMEOUT_SECONDS = float(os.environ.get("REMINDER_NOTIFY_TIMEOUT_SECONDS", 15))

# Drift sweep - secondary recovery path only (0 disables)
REMINDER_SWEEP_INTERVAL_SECONDS = int(os.environ.get("REMINDER_SWEEP_INTERVAL_SECONDS", 300))

# Retention of sent reminders
REMINDER_RETENTION_DAYS = int(os.environ.get("REMINDER_RETENTION_DAYS", 30))
REMINDER_CLEANUP_HOUR = int(os.environ.get("REMINDER_CLEANUP_HOUR", 4))

# Matching
REMINDER_DATE_WINDOW_HOURS = float(os.environ.get("REMINDER_DATE_WINDOW_HOURS", 24))

# Startup retry when the store is unreachable
REMINDER_START_RETRY_BASE_SECONDS = int(os.environ.get("REMINDER_START_RETRY_BASE_SECONDS", 30))
REMINDER_START_RETRY_MAX_SECONDS = int(os.environ.get("REMINDER_START_RETRY_MAX_SECONDS", 600))

# Store HTTP timeout
REMINDER_STORE_TIMEOUT_SECONDS = float(os.environ.get("REMINDER_STORE_TIMEOUT_SECONDS", 10))
