"""Delivery boundary for the shield-drop ping."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

import discord

from shieldbot.errors import DeliveryError

logger = logging.getLogger(__name__)

DEFAULT_PING_MESSAGE = "Wake up! Trophies time!"


class Notifier(Protocol):
    async def deliver(self, channel_id: str, role_id: str) -> None:
        """Send the ping. Raises DeliveryError on any failure."""


def missing_channel_perms(channel: discord.abc.GuildChannel, member: discord.Member) -> list[str]:
    perms = channel.permissions_for(member)
    missing = []
    if not perms.view_channel:
        missing.append("View Channel")
    if not perms.send_messages:
        missing.append("Send Messages")
    if isinstance(channel, discord.Thread) and not perms.send_messages_in_threads:
        missing.append("Send Messages in Threads")
    return missing


def build_ping_content(role_id: str, message: str = DEFAULT_PING_MESSAGE) -> str:
    return f"<@&{role_id}> {message}" if role_id else message


class DiscordNotifier:
    def __init__(
        self,
        client: discord.Client,
        message: str = DEFAULT_PING_MESSAGE,
        timeout_seconds: float = 15.0,
    ):
        self.client = client
        self.message = message
        self.timeout_seconds = timeout_seconds

    async def _resolve_channel(self, channel_id: str) -> discord.abc.Messageable:
        if not channel_id or not channel_id.isdigit():
            raise DeliveryError("Target channel is not configured.")
        channel = self.client.get_channel(int(channel_id))
        if channel is None:
            try:
                channel = await self.client.fetch_channel(int(channel_id))
            except (discord.NotFound, discord.Forbidden) as exc:
                raise DeliveryError(f"Target channel {channel_id} not found or not accessible.") from exc
        if not isinstance(channel, discord.abc.Messageable):
            raise DeliveryError(f"Target channel {channel_id} is not text-based.")
        return channel

    async def _send(self, channel_id: str, role_id: str) -> None:
        channel = await self._resolve_channel(channel_id)

        guild: Optional[discord.Guild] = getattr(channel, "guild", None)
        if guild is not None and self.client.user is not None:
            member = guild.get_member(self.client.user.id)
            if member is not None and isinstance(channel, discord.abc.GuildChannel):
                missing = missing_channel_perms(channel, member)
                if missing:
                    raise DeliveryError(f"Missing permissions in <#{channel_id}>: {', '.join(missing)}")

        roles = [discord.Object(id=int(role_id))] if role_id and role_id.isdigit() else False
        await channel.send(
            content=build_ping_content(role_id, self.message),
            allowed_mentions=discord.AllowedMentions(everyone=False, users=False, roles=roles),
        )

    async def deliver(self, channel_id: str, role_id: str) -> None:
        try:
            await asyncio.wait_for(self._send(channel_id, role_id), timeout=self.timeout_seconds)
        except DeliveryError:
            raise
        except asyncio.TimeoutError as exc:
            raise DeliveryError(f"Sending the ping timed out after {self.timeout_seconds:g}s.") from exc
        except discord.HTTPException as exc:
            raise DeliveryError(f"Discord rejected the ping: {exc}") from exc
        except Exception as exc:
            raise DeliveryError(f"Sending the ping failed: {exc!r}") from exc
        logger.info("Ping delivered to channel %s for role %s", channel_id, role_id)
