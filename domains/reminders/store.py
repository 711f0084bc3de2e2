"""Reminder persistence: Supabase (PostgREST over httpx) or a local SQLite file.

Both stores retire reminders by marking them sent (sent=true, sent_at=now),
so pending queries only ever see sent=false rows.
"""

import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import httpx

from logger import get_logger
from . import config
from .models import Reminder, ReminderStats, ReminderStoreError, to_iso

logger = get_logger(__name__)


class ReminderStore(ABC):
    """Durable CRUD for reminder records. All timestamps are ISO-8601 UTC."""

    @abstractmethod
    async def insert(self, user_id: str, user_name: str, message: str, scheduled_for: str) -> str:
        """Persist a new pending reminder and return its id."""

    @abstractmethod
    async def get_pending_by_user(self, user_id: str) -> list[Reminder]:
        """Pending reminders for one user, ascending by scheduled_for."""

    @abstractmethod
    async def get_all_pending(self) -> list[Reminder]:
        """Every pending reminder (due or future), ascending by scheduled_for."""

    @abstractmethod
    async def retire(self, reminder_id: str, user_id: str) -> None:
        """Mark a reminder as sent."""

    @abstractmethod
    async def delete_by_id(self, reminder_id: str) -> bool:
        """Delete one reminder. Returns False if nothing was deleted."""

    @abstractmethod
    async def delete_all_by_user(self, user_id: str) -> int:
        """Delete every reminder of a user and return the count."""

    @abstractmethod
    async def delete_older_than(self, days: int) -> int:
        """Purge sent reminders whose sent_at is older than `days`."""

    @abstractmethod
    async def stats(self) -> ReminderStats:
        """Total / pending / sent counts."""


def _cutoff_iso(days: int) -> str:
    return to_iso(datetime.now(timezone.utc) - timedelta(days=days))


class SupabaseReminderStore(ReminderStore):
    """Reminders table in Supabase, accessed through the PostgREST API."""

    def __init__(self, url: str, key: str, timeout: float | None = None):
        self.url = url.rstrip("/")
        self.key = key
        self.timeout = timeout or config.REMINDER_STORE_TIMEOUT_SECONDS
        self._endpoint = f"{self.url}/rest/v1/reminders"

    def _headers(self) -> dict:
        """Get headers for Supabase API calls."""
        return {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation"
        }

    async def _request(self, method: str, params: Optional[dict] = None, json: Optional[dict] = None) -> list[dict]:
        """Run one PostgREST call and return the JSON rows.

        Raises:
            ReminderStoreError: On transport or HTTP status errors
        """
        try:
            async with httpx.AsyncClient() as client:
                response = await client.request(
                    method,
                    self._endpoint,
                    headers=self._headers(),
                    params=params,
                    json=json,
                    timeout=self.timeout
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            logger.error(f"Supabase {method} reminders failed: {e}")
            raise ReminderStoreError(f"Supabase {method} failed: {e}") from e

    async def insert(self, user_id: str, user_name: str, message: str, scheduled_for: str) -> str:
        rows = await self._request("POST", json={
            "user_id": user_id,
            "user_name": user_name,
            "message": message,
            "scheduled_for": scheduled_for,
            "created_at": to_iso(datetime.now(timezone.utc)),
            "sent": False
        })
        if not rows:
            raise ReminderStoreError("Supabase insert returned no row")
        return str(rows[0]["id"])

    async def get_pending_by_user(self, user_id: str) -> list[Reminder]:
        rows = await self._request("GET", params={
            "user_id": f"eq.{user_id}",
            "sent": "eq.false",
            "select": "*",
            "order": "scheduled_for.asc"
        })
        return [Reminder.from_row(r) for r in rows]

    async def get_all_pending(self) -> list[Reminder]:
        rows = await self._request("GET", params={
            "sent": "eq.false",
            "select": "*",
            "order": "scheduled_for.asc"
        })
        return [Reminder.from_row(r) for r in rows]

    async def retire(self, reminder_id: str, user_id: str) -> None:
        await self._request(
            "PATCH",
            params={"id": f"eq.{reminder_id}", "user_id": f"eq.{user_id}"},
            json={"sent": True, "sent_at": to_iso(datetime.now(timezone.utc))}
        )

    async def delete_by_id(self, reminder_id: str) -> bool:
        rows = await self._request("DELETE", params={"id": f"eq.{reminder_id}"})
        return len(rows) > 0

    async def delete_all_by_user(self, user_id: str) -> int:
        rows = await self._request("DELETE", params={"user_id": f"eq.{user_id}"})
        return len(rows)

    async def delete_older_than(self, days: int) -> int:
        rows = await self._request("DELETE", params={
            "sent": "eq.true",
            "sent_at": f"lt.{_cutoff_iso(days)}"
        })
        return len(rows)

    async def stats(self) -> ReminderStats:
        rows = await self._request("GET", params={"select": "sent"})
        sent = sum(1 for r in rows if r.get("sent"))
        return ReminderStats(total=len(rows), pending=len(rows) - sent, sent=sent)


class SqliteReminderStore(ReminderStore):
    """Reminders in a local SQLite file (WAL mode), one connection per store."""

    def __init__(self, db_path: str | None = None):
        self.db_path = db_path or config.REMINDER_DB_PATH
        self._connection: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection with WAL mode."""
        if self._connection is not None:
            return self._connection

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=10.0)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
            self._init_schema(conn)
        except sqlite3.Error as e:
            logger.error(f"Failed to open reminder store {self.db_path}: {e}")
            raise ReminderStoreError(f"Failed to open reminder store: {e}") from e

        self._connection = conn
        logger.info(f"Reminder store initialized: {self.db_path}")
        return conn

    @staticmethod
    def _init_schema(conn: sqlite3.Connection) -> None:
        """Create tables if they don't exist."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS reminders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                user_name TEXT,
                message TEXT NOT NULL,
                scheduled_for TEXT NOT NULL,
                created_at TEXT NOT NULL,
                sent INTEGER NOT NULL DEFAULT 0,
                sent_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_reminders_user ON reminders(user_id, sent);
            CREATE INDEX IF NOT EXISTS idx_reminders_pending ON reminders(sent, scheduled_for);
        """)
        conn.commit()

    @contextmanager
    def _transaction(self):
        """Context manager for database transactions, mapping errors to ReminderStoreError."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Reminder store error: {e}")
            raise ReminderStoreError(str(e)) from e

    def close(self) -> None:
        """Close the connection (reopened lazily on next use)."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    async def insert(self, user_id: str, user_name: str, message: str, scheduled_for: str) -> str:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO reminders (user_id, user_name, message, scheduled_for, created_at, sent)
                VALUES (?, ?, ?, ?, ?, 0)
                """,
                (user_id, user_name, message, scheduled_for, to_iso(datetime.now(timezone.utc)))
            )
            return str(cursor.lastrowid)

    async def get_pending_by_user(self, user_id: str) -> list[Reminder]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM reminders WHERE user_id = ? AND sent = 0 ORDER BY scheduled_for, id",
                (user_id,)
            ).fetchall()
        return [Reminder.from_row(dict(r)) for r in rows]

    async def get_all_pending(self) -> list[Reminder]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM reminders WHERE sent = 0 ORDER BY scheduled_for, id"
            ).fetchall()
        return [Reminder.from_row(dict(r)) for r in rows]

    async def retire(self, reminder_id: str, user_id: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE reminders SET sent = 1, sent_at = ? WHERE id = ? AND user_id = ?",
                (to_iso(datetime.now(timezone.utc)), reminder_id, user_id)
            )

    async def delete_by_id(self, reminder_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM reminders WHERE id = ?", (reminder_id,))
            return cursor.rowcount > 0

    async def delete_all_by_user(self, user_id: str) -> int:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM reminders WHERE user_id = ?", (user_id,))
            return cursor.rowcount

    async def delete_older_than(self, days: int) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM reminders WHERE sent = 1 AND sent_at < ?",
                (_cutoff_iso(days),)
            )
            return cursor.rowcount

    async def stats(self) -> ReminderStats:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total, COALESCE(SUM(sent), 0) AS sent FROM reminders"
            ).fetchone()
        total, sent = row["total"], row["sent"]
        return ReminderStats(total=total, pending=total - sent, sent=sent)


def create_store() -> ReminderStore:
    """Supabase when configured, otherwise the local SQLite file."""
    from config import SUPABASE_URL, SUPABASE_KEY

    if SUPABASE_URL and SUPABASE_KEY:
        logger.info("Using Supabase reminder store")
        return SupabaseReminderStore(SUPABASE_URL, SUPABASE_KEY)

    logger.warning("Supabase not configured, using local SQLite reminder store")
    return SqliteReminderStore()
