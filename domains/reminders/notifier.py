"""Deliver fired reminders to users."""

from abc import ABC, abstractmethod

import discord

from logger import get_logger

logger = get_logger(__name__)


class Notifier(ABC):
    """Sends a text message to a user id and reports success."""

    @abstractmethod
    async def send(self, user_id: str, text: str) -> bool:
        """Attempt delivery. Returns False when the user is unreachable."""


class DiscordNotifier(Notifier):
    """Delivers reminders as Discord direct messages."""

    def __init__(self, bot: discord.Client):
        self.bot = bot

    async def send(self, user_id: str, text: str) -> bool:
        try:
            user = self.bot.get_user(int(user_id))
            if user is None:
                user = await self.bot.fetch_user(int(user_id))
        except ValueError:
            logger.warning(f"Invalid Discord user id for reminder: {user_id}")
            return False
        except discord.NotFound:
            logger.warning(f"User {user_id} not found for reminder delivery")
            return False
        except discord.HTTPException as e:
            logger.error(f"Failed to fetch user {user_id}: {e}")
            return False

        try:
            await user.send(text)
            return True
        except discord.Forbidden:
            logger.warning(f"User {user_id} does not accept DMs - reminder not delivered")
            return False
        except discord.HTTPException as e:
            logger.error(f"Failed to DM user {user_id}: {e}")
            return False
