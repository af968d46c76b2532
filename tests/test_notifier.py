import asyncio
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from shieldbot.errors import DeliveryError
from shieldbot.notifier import DiscordNotifier, build_ping_content


def make_channel(send_messages: bool = True) -> MagicMock:
    channel = MagicMock(spec=discord.TextChannel)
    channel.send = AsyncMock()
    perms = MagicMock(view_channel=True, send_messages=send_messages)
    channel.permissions_for.return_value = perms
    return channel


def make_client(channel=None) -> MagicMock:
    client = MagicMock(spec=discord.Client)
    client.get_channel.return_value = channel
    client.fetch_channel = AsyncMock(return_value=channel)
    return client


class TestBuildPingContent:
    def test_mentions_role(self):
        assert build_ping_content("333") == "<@&333> Wake up! Trophies time!"

    def test_without_role(self):
        assert build_ping_content("", "Shield drops soon") == "Shield drops soon"


class TestDiscordNotifier:
    def test_sends_role_ping(self):
        channel = make_channel()
        notifier = DiscordNotifier(make_client(channel))

        asyncio.run(notifier.deliver("222", "333"))

        channel.send.assert_awaited_once()
        kwargs = channel.send.await_args.kwargs
        assert kwargs["content"] == "<@&333> Wake up! Trophies time!"
        assert [role.id for role in kwargs["allowed_mentions"].roles] == [333]

    def test_fetches_uncached_channel(self):
        channel = make_channel()
        client = make_client(channel)
        client.get_channel.return_value = None

        asyncio.run(DiscordNotifier(client).deliver("222", "333"))

        client.fetch_channel.assert_awaited_once_with(222)
        channel.send.assert_awaited_once()

    @pytest.mark.parametrize("channel_id", ["", "general"])
    def test_unconfigured_channel(self, channel_id):
        with pytest.raises(DeliveryError, match="not configured"):
            asyncio.run(DiscordNotifier(make_client()).deliver(channel_id, "333"))

    def test_unknown_channel(self):
        client = make_client()
        client.get_channel.return_value = None
        client.fetch_channel.side_effect = discord.NotFound(MagicMock(status=404, reason="Not Found"), "Unknown Channel")

        with pytest.raises(DeliveryError, match="not found"):
            asyncio.run(DiscordNotifier(client).deliver("222", "333"))

    def test_non_text_channel(self):
        client = make_client(MagicMock(spec=discord.CategoryChannel))
        with pytest.raises(DeliveryError, match="not text-based"):
            asyncio.run(DiscordNotifier(client).deliver("222", "333"))

    def test_missing_permissions(self):
        channel = make_channel(send_messages=False)
        with pytest.raises(DeliveryError, match="Send Messages"):
            asyncio.run(DiscordNotifier(make_client(channel)).deliver("222", "333"))
        channel.send.assert_not_awaited()

    def test_discord_http_error(self):
        channel = make_channel()
        channel.send.side_effect = discord.Forbidden(MagicMock(status=403, reason="Forbidden"), "Missing Access")
        with pytest.raises(DeliveryError, match="rejected"):
            asyncio.run(DiscordNotifier(make_client(channel)).deliver("222", "333"))

    def test_timeout(self):
        async def slow_send(**kwargs):
            await asyncio.sleep(1)

        channel = make_channel()
        channel.send.side_effect = slow_send
        notifier = DiscordNotifier(make_client(channel), timeout_seconds=0.01)

        with pytest.raises(DeliveryError, match="timed out"):
            asyncio.run(notifier.deliver("222", "333"))

    def test_client_errors_become_delivery_errors(self):
        client = make_client()
        client.get_channel.return_value = None
        client.fetch_channel.side_effect = discord.InvalidData("Unknown channel type")

        with pytest.raises(DeliveryError, match="InvalidData"):
            asyncio.run(DiscordNotifier(client).deliver("222", "333"))
