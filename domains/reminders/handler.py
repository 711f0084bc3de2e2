"""Reminder intent handler for the bot's message router."""

from logger import get_logger
from .intent import ReminderIntent
from .service import ReminderService

logger = get_logger(__name__)


async def handle_reminder_intent(
    intent: ReminderIntent | None,
    user_id: str,
    user_name: str,
    service: ReminderService
) -> str | None:
    """Carry out a parsed reminder intent.

    Args:
        intent: Parsed intent (None means not a reminder request)
        user_id: Discord user ID
        user_name: Discord display name
        service: Reminder facade

    Returns:
        Response string if handled, None if not a reminder request
    """
    if intent is None:
        return None

    user_id = str(user_id)

    if intent.delete_all:
        count = await service.delete_all_by_user(user_id)
        return service.texts.deleted_all.format(n=count)

    if intent.delete:
        result = await service.delete_by_criteria(user_id, intent.delete)
        if not result.success:
            return result.message
        lines = [f"🗑️ {result.message}"]
        lines.extend(f"└ {msg}" for msg in result.deleted_messages)
        return "\n".join(lines)

    if intent.list_reminders:
        return await list_reminders(user_id, service)

    if intent.set_message:
        result = await service.add(user_id, user_name, intent.set_message, intent.set_date)
        if not result.success:
            logger.info(f"Reminder rejected for {user_id}: {result.message}")
        return result.message

    # Clarifying question or plain answer
    return intent.reply or None


async def list_reminders(user_id: str, service: ReminderService) -> str:
    """List pending reminders for a user."""
    reminders = await service.list_by_user(user_id)
    if not reminders:
        return service.format_list([])
    return f"{service.texts.list_header}\n\n{service.format_list(reminders)}"
