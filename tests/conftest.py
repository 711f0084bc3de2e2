"""Pytest configuration and fixtures."""

import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, AsyncMock, patch

import pytest
import pytest_asyncio

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from domains.reminders.models import Reminder, to_iso
from domains.reminders.notifier import Notifier
from domains.reminders.scheduler import ReminderScheduler
from domains.reminders.service import ReminderService
from domains.reminders.store import SqliteReminderStore


class FakeNotifier(Notifier):
    """Records every delivery attempt."""

    def __init__(self, result: bool = True, error: Exception | None = None, delay: float = 0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    async def send(self, user_id: str, text: str) -> bool:
        self.calls.append((user_id, text))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


def make_reminder(
    reminder_id: str = "1",
    message: str = "Falar com o João",
    scheduled_for: datetime | None = None,
    user_id: str = "user123",
    user_name: str = "TestUser"
) -> Reminder:
    """Build an in-memory pending reminder."""
    now = datetime.now(timezone.utc)
    return Reminder(
        id=reminder_id,
        user_id=user_id,
        user_name=user_name,
        message=message,
        scheduled_for=scheduled_for or now + timedelta(hours=1),
        created_at=now,
    )


async def insert_reminder(store, message: str, delta: timedelta, user_id: str = "user123") -> str:
    """Insert straight into a store, bypassing validation (e.g. overdue reminders)."""
    when = datetime.now(timezone.utc) + delta
    return await store.insert(user_id, "TestUser", message, to_iso(when))


async def wait_until(predicate, timeout: float = 3.0, interval: float = 0.05) -> bool:
    """Poll `predicate` on the running loop until it's truthy or the timeout passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return bool(predicate())


@pytest.fixture
def sqlite_store(tmp_path):
    """A fresh SQLite reminder store per test."""
    store = SqliteReminderStore(str(tmp_path / "reminders.db"))
    yield store
    store.close()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest_asyncio.fixture
async def reminder_scheduler(sqlite_store, notifier):
    """Scheduler with its own APScheduler, no sweep, short delivery timeout."""
    scheduler = ReminderScheduler(
        sqlite_store,
        notifier,
        sweep_interval=0,
        notify_timeout=1,
        language="pt-br"
    )
    yield scheduler
    scheduler.stop()


@pytest_asyncio.fixture
async def reminder_service(sqlite_store, reminder_scheduler):
    """Service wired to the SQLite store and keyword-only matching."""
    service = ReminderService(sqlite_store, reminder_scheduler, language="pt-br")
    yield service
    service.stop()


@pytest.fixture
def mock_discord_bot():
    """Create a mock Discord bot."""
    bot = Mock()
    user = Mock(send=AsyncMock())
    bot.get_user = Mock(return_value=user)
    bot.fetch_user = AsyncMock(return_value=user)
    bot.user = Mock(name="TestBot#1234")
    return bot


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx client."""
    with patch('httpx.AsyncClient') as mock:
        client = AsyncMock()
        mock.return_value.__aenter__.return_value = client
        yield client
