"""Render reminders for Discord."""

from datetime import datetime, timezone
from typing import Iterable
from zoneinfo import ZoneInfo

from . import config
from .messages import get_texts
from .models import Reminder


def relative_time(target: datetime, now: datetime, language: str | None = None) -> str:
    """Human phrase for how far away `target` is (days, then hours, then minutes)."""
    texts = get_texts(language)
    seconds = int((target - now).total_seconds())
    if seconds <= 0:
        return texts.relative_now

    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60

    if days > 0:
        template = texts.relative_day if days == 1 else texts.relative_days
        return template.format(n=days)
    if hours > 0:
        template = texts.relative_hour if hours == 1 else texts.relative_hours
        return template.format(n=hours)
    if minutes > 0:
        template = texts.relative_minute if minutes == 1 else texts.relative_minutes
        return template.format(n=minutes)
    return texts.relative_now


def format_datetime(value: datetime, tz: ZoneInfo | None = None, language: str | None = None) -> str:
    """dd/mm/yyyy <connector> HH:MM in the display timezone."""
    tz = tz or ZoneInfo(config.REMINDER_TIMEZONE)
    local = value.astimezone(tz)
    return f"{local.strftime('%d/%m/%Y')} {get_texts(language).date_connector} {local.strftime('%H:%M')}"


def format_notification(message: str, language: str | None = None) -> str:
    """Text delivered to the user when a reminder fires."""
    return get_texts(language).notify.format(text=message)


def dedupe_reminders(reminders: Iterable[Reminder]) -> list[Reminder]:
    """Drop repeated (message, scheduled_for) pairs, keeping the first seen."""
    seen: set[tuple[str, datetime]] = set()
    unique = []
    for reminder in reminders:
        key = (reminder.message, reminder.scheduled_for)
        if key in seen:
            continue
        seen.add(key)
        unique.append(reminder)
    return unique


def format_list(
    reminders: Iterable[Reminder],
    now: datetime | None = None,
    tz: ZoneInfo | None = None,
    language: str | None = None
) -> str:
    """Deterministic list rendering: deduped, ascending by scheduled_for, 1-based.

    Args:
        reminders: Reminders to render (any order)
        now: Reference instant for relative phrases (defaults to now, UTC)
        tz: Display timezone (defaults to REMINDER_TIMEZONE)
        language: Message table to use

    Returns:
        Rendered list, or the "no reminders" text for an empty input
    """
    unique = dedupe_reminders(reminders)
    if not unique:
        return get_texts(language).no_reminders

    now = now or datetime.now(timezone.utc)
    unique.sort(key=lambda r: r.scheduled_for)

    entries = []
    for index, reminder in enumerate(unique, start=1):
        date_str = format_datetime(reminder.scheduled_for, tz, language)
        relative = relative_time(reminder.scheduled_for, now, language)
        entries.append(
            f"**{index}.** ⏳ **{date_str}** ({relative})\n"
            f"└ 📝 {reminder.message}\n"
            f"└ 🆔 ID: {reminder.id}"
        )

    return "\n\n".join(entries)
