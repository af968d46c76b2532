import logging
from typing import Optional

from dotenv import load_dotenv
import discord
from discord import app_commands

from shieldbot.commands import CommandDispatcher
from shieldbot.logging_setup import configure_logging
from shieldbot.notifier import DiscordNotifier
from shieldbot.poller import Poller
from shieldbot.schedule import ScheduleState, ShieldPhase
from shieldbot.settings import load_settings
from shieldbot.storage import ConfigStore
from shieldbot.timemath import discord_timestamp

load_dotenv()
settings = load_settings()
configure_logging(settings.log_level, settings.log_file)
logger = logging.getLogger("shieldbot")

intents = discord.Intents.default()
intents.message_content = True
client = discord.Client(intents=intents)
tree = app_commands.CommandTree(client)

state = ScheduleState(ConfigStore(settings.config_path, settings.defaults_path))
notifier = DiscordNotifier(client, settings.ping_message, settings.delivery_timeout_seconds)
poller = Poller(state, notifier, settings.check_interval_seconds)
dispatcher = CommandDispatcher(state, notifier, settings.prefix)

# Theme
SHIELDED_COLOR = discord.Color.from_rgb(52, 152, 219)
UNSHIELDED_COLOR = discord.Color.from_rgb(231, 76, 60)
IDLE_COLOR = discord.Color.light_grey()
SHIELD_EMOJI = "\U0001F6E1"  # shield
SWORDS_EMOJI = "⚔"      # crossed swords
TIME_EMOJI = "⏰"        # alarm clock
BELL_EMOJI = "\U0001F514"    # bell
FOOTER_TEXT = "Lost Temple - Shield Timer"


def is_allowed_guild(guild_id: Optional[int]) -> bool:
    return not settings.allowed_guild_ids or guild_id in settings.allowed_guild_ids


def require_allowed_guild(interaction: discord.Interaction) -> bool:
    if not is_allowed_guild(interaction.guild_id):
        raise app_commands.CheckFailure("This bot is restricted to approved servers.")
    return True


def get_status_embed() -> discord.Embed:
    """Build the shield status embed from the current schedule."""
    times = state.times()
    if times is None:
        return discord.Embed(
            title=f"{SHIELD_EMOJI} Lost Temple",
            description=f"No shield drop set.\nUse `{settings.prefix}setdrop YYYY-MM-DD HH:MM TZ`",
            color=IDLE_COLOR,
        )

    config = state.config
    phase = state.phase()
    if phase is ShieldPhase.UNSHIELDED:
        title = f"{SWORDS_EMOJI} UNSHIELDED (contest phase)"
        color = UNSHIELDED_COLOR
    elif phase is ShieldPhase.BETWEEN_CYCLES:
        title = f"{SHIELD_EMOJI} SHIELDED (between cycles)"
        color = SHIELDED_COLOR
    else:
        title = f"{SHIELD_EMOJI} SHIELDED"
        color = SHIELDED_COLOR

    details = (
        f"{TIME_EMOJI} Shield drops: {discord_timestamp(times.drop, 'R')}\n"
        f"{TIME_EMOJI} Drop: {discord_timestamp(times.drop)}\n"
        f"{TIME_EMOJI} Reshield: {discord_timestamp(times.reshield_at)}\n"
        f"{BELL_EMOJI} Ping: {discord_timestamp(times.ping_at)}"
    )
    embed = discord.Embed(title=title, description=details, color=color)
    embed.add_field(name="Cycle", value=f"{config.cycle_days} days")
    embed.add_field(name="Ping Before", value=f"{config.ping_hours_before}h")
    embed.add_field(name="Unshielded", value=f"{config.unshielded_hours}h")
    embed.set_footer(text=FOOTER_TEXT)
    return embed


# ============ EVENTS ============
@client.event
async def on_guild_join(guild: discord.Guild):
    if not is_allowed_guild(guild.id):
        await guild.leave()


@client.event
async def on_ready():
    async with state.lock:
        config = state.reload()
        state.ensure_future()
    logger.info(
        "Config channel=%s role=%s cycleDays=%s pingHoursBefore=%s",
        config.target_channel_id,
        config.ping_role_id,
        config.cycle_days,
        config.ping_hours_before,
    )
    if settings.allowed_guild_ids:
        logger.info("Allowed guild IDs: %s", sorted(settings.allowed_guild_ids))
    synced = await tree.sync()
    logger.info("Synced %d global commands", len(synced))
    poller.start()
    logger.info("Bot is online as %s", client.user)


@client.event
async def on_message(message: discord.Message):
    if message.author.bot:
        return
    if message.guild is not None and not is_allowed_guild(message.guild.id):
        return
    reply = await dispatcher.dispatch(message.content)
    if reply is None:
        return
    await message.reply(reply, allowed_mentions=discord.AllowedMentions.none())


@tree.error
async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError):
    if isinstance(error, app_commands.CheckFailure):
        message = str(error) if str(error) else "You don't have permission to use this command."
    elif isinstance(error, app_commands.CommandInvokeError):
        message = "An internal error occurred while running that command."
        logger.error("Command error: %r", error.original, exc_info=error.original)
    else:
        message = "An unexpected error occurred."
        logger.error("App command error: %r", error)

    if interaction.response.is_done():
        await interaction.followup.send(message, ephemeral=True)
    else:
        await interaction.response.send_message(message, ephemeral=True)


# ============ PUBLIC COMMAND ============
@tree.command(name="status", description="Check the temple shield status (only you can see)")
@app_commands.check(require_allowed_guild)
async def status(interaction: discord.Interaction):
    async with state.lock:
        state.ensure_future()
        embed = get_status_embed()
    await interaction.response.send_message(embed=embed, ephemeral=True)


def main() -> None:
    if not settings.token:
        raise RuntimeError("DISCORD_BOT_TOKEN environment variable is not set.")
    client.run(settings.token, log_handler=None)


if __name__ == "__main__":
    main()
