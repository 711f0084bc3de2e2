"""Turn chat messages into structured reminder intents via Claude."""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from logger import get_logger
from . import config
from .models import DeleteCriteria, to_iso

logger = get_logger(__name__)

INTENT_SYSTEM_PROMPT = """You are Hermes, the team's assistant, handling REMINDER requests.
The user may write in Portuguese or English. Write "reply" in the user's language.

CURRENT TIME: {now} (UTC). User timezone: {timezone}.

Return ONLY one JSON object:
{{
  "reply": "<short answer to the user>",
  "intent": {{
    "setReminder": {{"date": "<ISO 8601 UTC with Z>", "message": "<task>"}},
    "listReminders": true,
    "deleteReminders": {{"ids": ["<id>"], "message": "", "date": "", "description": "", "count": 0}},
    "deleteAllReminders": true
  }}
}}
Include only the intent keys that apply. Omit "intent" if the message is not about reminders.

RULES
- Set setReminder only when date/time is clear ("em 5 minutos", "amanhã às 9"). Otherwise ask ONE clarifying question in "reply".
- Relative times are CURRENT TIME + offset. Missing time means 09:00 local. Never return a past date.
- setReminder.message is the bare task: "Me lembre de falar com o João" -> "Falar com o João".
- "deletar lembrete 123" -> deleteReminders.ids ["123"]
- "deletar todos os lembretes sobre reunião" -> deleteReminders.description "reunião"
- "deletar 3 lembretes" -> deleteReminders.count 3
- "limpar lembretes de ontem" -> deleteReminders.date "<that date>"
- "apagar todos os lembretes" -> deleteAllReminders true
- "quais são meus lembretes?" -> listReminders true (never invent reminders in "reply")
"""


@dataclass
class ReminderIntent:
    """Structured reminder action extracted from a chat message."""
    reply: str = ""
    set_date: Optional[str] = None
    set_message: Optional[str] = None
    list_reminders: bool = False
    delete: Optional[DeleteCriteria] = None
    delete_all: bool = False
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def has_action(self) -> bool:
        return bool(self.set_message or self.list_reminders or self.delete or self.delete_all)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReminderIntent":
        """Parse the {reply, intent: {...}} shape (or a bare intent object)."""
        intent = data.get("intent", data) or {}

        set_reminder = intent.get("setReminder") or {}
        delete = None
        delete_data = intent.get("deleteReminders") or intent.get("deleteReminder")
        if delete_data:
            ids = delete_data.get("ids") or ([delete_data["id"]] if delete_data.get("id") else [])
            count = delete_data.get("count")
            delete = DeleteCriteria(
                ids=[str(i) for i in ids],
                message=delete_data.get("message") or None,
                date=delete_data.get("date") or None,
                description=delete_data.get("description") or None,
                count=int(count) if count else None,
            )

        return cls(
            reply=data.get("reply", "") or "",
            set_date=set_reminder.get("date") or None,
            set_message=set_reminder.get("message") or None,
            list_reminders=bool(intent.get("listReminders")),
            delete=delete,
            delete_all=bool(intent.get("deleteAllReminders")),
            raw=data,
        )


def extract_json(text: str) -> Optional[dict]:
    """Pull the first JSON object out of a model answer (tolerates code fences)."""
    match = re.search(r"\{.*\}", text or "", re.DOTALL)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


class ClaudeIntentParser:
    """Asks Claude to classify a message into a ReminderIntent."""

    def __init__(self, client):
        self.client = client

    async def parse(self, content: str, now: Optional[datetime] = None) -> Optional[ReminderIntent]:
        """Classify a message.

        Returns:
            ReminderIntent, or None when there's no reminder intent or the
            answer can't be used
        """
        now = now or datetime.now(timezone.utc)
        system = INTENT_SYSTEM_PROMPT.format(now=to_iso(now), timezone=config.REMINDER_TIMEZONE)

        try:
            answer = await self.client.complete(json.dumps(content, ensure_ascii=False), system=system)
        except Exception as e:
            logger.error(f"Reminder intent parsing failed: {e}")
            return None

        data = extract_json(answer)
        if data is None:
            logger.warning("Reminder intent answer was not JSON")
            return None

        intent = ReminderIntent.from_dict(data)
        return intent if (intent.has_action or intent.reply) else None
