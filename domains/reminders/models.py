"""Reminder entity, result types and errors."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from dateutil.parser import parse as parse_datetime


class ReminderError(Exception):
    """Base error for the reminder engine."""


class ReminderValidationError(ReminderError):
    """Raised when a reminder request is malformed or not in the future."""


class ReminderStoreError(ReminderError):
    """Raised when the reminder store cannot complete an operation."""


def to_utc(value: datetime | str) -> datetime:
    """Parse/normalise a datetime to an aware UTC datetime.

    Naive values are assumed to already be UTC.

    Raises:
        ValueError: If the value isn't a datetime or a parseable date string
    """
    if isinstance(value, str):
        value = parse_datetime(value)
    if not isinstance(value, datetime):
        raise ValueError(f"Not a date: {value!r}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Render an instant as ISO-8601 UTC with a Z suffix."""
    return to_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class Reminder:
    """A scheduled, user-owned notification."""
    id: str
    user_id: str
    user_name: str
    message: str
    scheduled_for: datetime
    created_at: datetime
    sent: bool = False
    sent_at: Optional[datetime] = None

    @property
    def pending(self) -> bool:
        return not self.sent

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Reminder":
        """Build a Reminder from a store row (snake_case columns)."""
        sent_at = row.get("sent_at")
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            user_name=row.get("user_name") or "",
            message=row["message"],
            scheduled_for=to_utc(row["scheduled_for"]),
            created_at=to_utc(row["created_at"]),
            sent=bool(row.get("sent")),
            sent_at=to_utc(sent_at) if sent_at else None,
        )


@dataclass
class ReminderStats:
    """Aggregate counts as reported by the store."""
    total: int = 0
    pending: int = 0
    sent: int = 0


@dataclass
class AddResult:
    """Outcome of ReminderService.add."""
    success: bool
    reminder_id: Optional[str] = None
    message: str = ""


@dataclass
class ReminderFilters:
    """Optional narrowing for listing. First present field wins: keyword, date, description."""
    keyword: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.keyword or self.date or self.description)


@dataclass
class DeleteCriteria:
    """Bulk deletion criteria."""
    ids: list[str] = field(default_factory=list)
    message: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None
    count: Optional[int] = None


@dataclass
class DeleteResult:
    """Outcome of a criteria-based deletion."""
    success: bool
    deleted_ids: list[str] = field(default_factory=list)
    deleted_messages: list[str] = field(default_factory=list)
    count: int = 0
    message: str = ""
