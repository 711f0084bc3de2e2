"""Hermes team assistant - Discord bot.

Schedules free-text reminders and delivers them as direct messages.
"""

import asyncio

import discord
from discord import app_commands
from discord.ext import commands
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from claude_client import create_claude_client
from logger import logger
from config import DISCORD_TOKEN

from domains.reminders import (
    ClaudeIntentParser,
    DiscordNotifier,
    ReminderFilters,
    ReminderScheduler,
    ReminderService,
    SemanticMatcher,
    create_store,
    handle_reminder_intent,
    list_reminders,
)

# Initialize bot
intents = discord.Intents.default()
intents.message_content = True
bot = commands.Bot(command_prefix="/", intents=intents)

# Shared scheduler for all timed jobs
scheduler = AsyncIOScheduler(timezone="UTC")

# Initialized in on_ready
reminder_service: ReminderService | None = None
intent_parser: ClaudeIntentParser | None = None

NOT_READY = "⏳ Lembretes ainda não estão prontos."


def build_reminder_service(client: discord.Client) -> ReminderService:
    """Wire store, notifier, matcher and scheduler into the facade."""
    claude = create_claude_client()
    store = create_store()
    reminder_scheduler = ReminderScheduler(
        store=store,
        notifier=DiscordNotifier(client),
        scheduler=scheduler
    )
    return ReminderService(
        store=store,
        scheduler=reminder_scheduler,
        matcher=SemanticMatcher(claude)
    )


@bot.event
async def on_ready():
    """Called when bot is connected and ready."""
    global reminder_service, intent_parser
    logger.info(f"Logged in as {bot.user}")

    # Sync slash commands with Discord
    try:
        synced = await bot.tree.sync()
        logger.info(f"Synced {len(synced)} slash commands")
    except discord.HTTPException as e:
        logger.error(f"Failed to sync slash commands: {e}")

    if not scheduler.running:
        scheduler.start()

    # on_ready fires again after reconnects - start() is idempotent
    if reminder_service is None:
        reminder_service = build_reminder_service(bot)
        claude = reminder_service.matcher.classifier
        intent_parser = ClaudeIntentParser(claude) if claude else None

    if await reminder_service.start():
        status = reminder_service.queue_status()
        logger.info(f"Reminders ready: {status['scheduled']} armed, next at {status['next_reminder']}")
    else:
        logger.error("Reminders running in degraded mode (store unavailable)")


@bot.event
async def on_message(message: discord.Message):
    """Route DMs and mentions through the reminder intent parser."""
    if message.author.bot:
        return

    is_dm = isinstance(message.channel, discord.DMChannel)
    mentioned = bot.user is not None and bot.user in message.mentions
    if not (is_dm or mentioned):
        return

    if reminder_service is None or intent_parser is None:
        return

    content = message.content
    if bot.user is not None:
        content = content.replace(f"<@{bot.user.id}>", "").strip()
    if not content:
        return

    async with message.channel.typing():
        intent = await intent_parser.parse(content)
        response = await handle_reminder_intent(
            intent,
            str(message.author.id),
            message.author.display_name,
            reminder_service
        )

    if response:
        # Split long messages
        for i in range(0, len(response), 2000):
            await message.channel.send(response[i:i + 2000])


@bot.tree.command(name="lembretes", description="Lista seus lembretes pendentes")
@app_commands.describe(filtro="Palavra-chave ou descrição (opcional)")
async def reminders_command(interaction: discord.Interaction, filtro: str | None = None):
    service = reminder_service
    if service is None:
        await interaction.response.send_message(NOT_READY, ephemeral=True)
        return

    await interaction.response.defer(ephemeral=True)
    user_id = str(interaction.user.id)
    if filtro:
        found = await service.list_by_user(user_id, ReminderFilters(description=filtro))
        text = service.format_list(found)
    else:
        text = await list_reminders(user_id, service)
    await interaction.followup.send(text[:2000], ephemeral=True)


@bot.tree.command(name="lembrete", description="Cria um lembrete")
@app_commands.describe(data="Data/hora ISO 8601 (UTC)", mensagem="Texto do lembrete")
async def remind_command(interaction: discord.Interaction, data: str, mensagem: str):
    service = reminder_service
    if service is None:
        await interaction.response.send_message(NOT_READY, ephemeral=True)
        return

    result = await service.add(str(interaction.user.id), interaction.user.display_name, mensagem, data)
    await interaction.response.send_message(result.message, ephemeral=True)


@bot.tree.command(name="lembrete-apagar", description="Apaga um lembrete pelo ID")
@app_commands.describe(id="ID do lembrete")
async def delete_reminder_command(interaction: discord.Interaction, id: str):
    service = reminder_service
    if service is None:
        await interaction.response.send_message(NOT_READY, ephemeral=True)
        return

    deleted = await service.delete_by_id(id, str(interaction.user.id))
    text = service.texts.deleted_single.format(id=id) if deleted else service.texts.not_found
    await interaction.response.send_message(text, ephemeral=True)


@bot.tree.command(name="lembretes-limpar", description="Apaga todos os seus lembretes")
async def clear_reminders_command(interaction: discord.Interaction):
    service = reminder_service
    if service is None:
        await interaction.response.send_message(NOT_READY, ephemeral=True)
        return

    count = await service.delete_all_by_user(str(interaction.user.id))
    await interaction.response.send_message(service.texts.deleted_all.format(n=count), ephemeral=True)


@bot.tree.command(name="lembretes-stats", description="Estatísticas dos lembretes")
async def reminder_stats_command(interaction: discord.Interaction):
    service = reminder_service
    if service is None:
        await interaction.response.send_message(NOT_READY, ephemeral=True)
        return

    stats = await service.stats()
    status = service.queue_status()
    text = service.texts.stats.format(total=stats.total, pending=stats.pending, sent=stats.sent)
    if status["next_reminder"]:
        text += f"\n⏰ {status['scheduled']} agendados, próximo em {status['next_reminder']}"
    await interaction.response.send_message(text, ephemeral=True)


async def shutdown():
    """Stop reminder timers and the scheduler before closing."""
    if reminder_service is not None:
        reminder_service.stop()
    if scheduler.running:
        scheduler.shutdown(wait=False)


def main():
    if not DISCORD_TOKEN:
        raise SystemExit("DISCORD_TOKEN is not set")

    async def runner():
        async with bot:
            try:
                await bot.start(DISCORD_TOKEN)
            finally:
                await shutdown()

    try:
        asyncio.run(runner())
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
