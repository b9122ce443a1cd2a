"""Tests for the Discord platform adapter (discord.py fully mocked)."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from chorus.channels.base import ChatPlatform
from chorus.channels.discord_channel import WEBHOOK_REASON, DiscordPlatform, to_destination
from chorus.gateway.models import Destination, IdentityHandle
from chorus.personas.models import Persona

BOT_USER_ID = 4242


def _channel(channel_id: int = 100) -> MagicMock:
    channel = MagicMock()
    channel.id = channel_id
    channel.typing = AsyncMock()
    channel.send = AsyncMock()
    channel.webhooks = AsyncMock(return_value=[])
    channel.create_webhook = AsyncMock()
    return channel


def _platform_with(channel: MagicMock, **kwargs) -> DiscordPlatform:
    platform = DiscordPlatform(bot_token="token", **kwargs)
    client = MagicMock()
    client.user.id = BOT_USER_ID
    client.get_channel.return_value = channel
    client.fetch_channel = AsyncMock(return_value=channel)
    platform._client = client
    return platform


def _message(guild_id: int | None = 1, bot: bool = False) -> MagicMock:
    message = MagicMock()
    message.id = 555
    message.content = "hello !Claude"
    message.author.id = 77
    message.author.bot = bot
    message.author.__str__.return_value = "alice"
    message.channel = _channel(100)
    message.created_at = datetime(2025, 1, 1, tzinfo=UTC)
    if guild_id is None:
        message.guild = None
    else:
        message.guild.id = guild_id
    return message


def test_satisfies_platform_protocol() -> None:
    assert isinstance(DiscordPlatform(bot_token="t"), ChatPlatform)


class TestDestinations:
    def test_plain_channel(self) -> None:
        guild = MagicMock()
        guild.id = 1
        dest = to_destination(_channel(100), guild)

        assert dest == Destination(id="100", server_id="1")
        assert not dest.is_thread

    def test_thread_keeps_parent(self) -> None:
        thread = MagicMock(spec=discord.Thread)
        thread.id = 200
        thread.parent_id = 100
        guild = MagicMock()
        guild.id = 1

        dest = to_destination(thread, guild)

        assert dest.is_thread
        assert dest.identity_scope == "100"

    def test_to_inbound(self) -> None:
        inbound = DiscordPlatform.to_inbound(_message(bot=True))

        assert inbound.id == "555"
        assert inbound.author_id == "77"
        assert inbound.author_name == "alice"
        assert inbound.text == "hello !Claude"
        assert inbound.from_bot is True
        assert inbound.server_id == "1"


class TestDispatch:
    @pytest.mark.asyncio
    async def test_forwards_guild_messages(self) -> None:
        platform = DiscordPlatform(bot_token="t")
        router = MagicMock()
        router.handle_message = AsyncMock()
        platform.attach(router)

        await platform.dispatch(_message())

        router.handle_message.assert_awaited_once()
        assert router.handle_message.await_args.args[0].destination.id == "100"

    @pytest.mark.asyncio
    async def test_ignores_direct_messages(self) -> None:
        platform = DiscordPlatform(bot_token="t")
        router = MagicMock()
        router.handle_message = AsyncMock()
        platform.attach(router)

        await platform.dispatch(_message(guild_id=None))

        router.handle_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_allowed_guilds_filter(self) -> None:
        platform = DiscordPlatform(bot_token="t", allowed_guilds=["2"])
        router = MagicMock()
        router.handle_message = AsyncMock()
        platform.attach(router)

        await platform.dispatch(_message(guild_id=1))
        await platform.dispatch(_message(guild_id=2))

        router.handle_message.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_router_errors_are_contained(self) -> None:
        platform = DiscordPlatform(bot_token="t")
        router = MagicMock()
        router.handle_message = AsyncMock(side_effect=RuntimeError("boom"))
        platform.attach(router)

        await platform.dispatch(_message())


class TestCapabilities:
    @pytest.mark.asyncio
    async def test_send_typing(self) -> None:
        channel = _channel()
        platform = _platform_with(channel)

        await platform.send_typing(Destination(id="100"))

        channel.typing.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resolve_falls_back_to_fetch(self) -> None:
        channel = _channel()
        platform = _platform_with(channel)
        platform._client.get_channel.return_value = None

        await platform.send(Destination(id="100"), "hi")

        platform._client.fetch_channel.assert_awaited_once_with(100)
        channel.send.assert_awaited_once_with("hi")

    @pytest.mark.asyncio
    async def test_unavailable_channel(self) -> None:
        platform = _platform_with(_channel())
        platform._client.get_channel.return_value = None
        platform._client.fetch_channel.side_effect = discord.NotFound(
            MagicMock(status=404, reason="Not Found"), "Unknown Channel"
        )

        assert await platform.is_available(Destination(id="100")) is False

    @pytest.mark.asyncio
    async def test_not_connected(self) -> None:
        with pytest.raises(RuntimeError):
            await DiscordPlatform(bot_token="t").send_typing(Destination(id="1"))

    @pytest.mark.asyncio
    async def test_fetch_messages(self) -> None:
        channel = _channel()
        older = MagicMock(id=1, content="first", created_at=datetime(2025, 1, 1, tzinfo=UTC))
        older.author.id = 77
        newer = MagicMock(id=2, content=None, created_at=datetime(2025, 1, 2, tzinfo=UTC))
        newer.author.id = BOT_USER_ID

        async def history(limit: int, before: discord.Object):
            assert limit == 2
            assert before.id == 555
            for msg in (newer, older):
                yield msg

        channel.history = history
        platform = _platform_with(channel)

        messages = await platform.fetch_messages(Destination(id="100"), before="555", limit=2)

        assert [m.id for m in messages] == ["2", "1"]
        assert messages[0].author_id == str(BOT_USER_ID)
        assert messages[0].text == ""

    @pytest.mark.asyncio
    async def test_reply(self) -> None:
        channel = _channel()
        partial = MagicMock()
        partial.reply = AsyncMock()
        channel.get_partial_message.return_value = partial
        platform = _platform_with(channel)

        await platform.reply(Destination(id="100"), "555", "answer")

        channel.get_partial_message.assert_called_once_with(555)
        partial.reply.assert_awaited_once_with("answer")


class TestWebhooks:
    @pytest.mark.asyncio
    async def test_lists_only_own_usable_webhooks(self) -> None:
        mine = MagicMock(id=1, token="tok")
        mine.user.id = BOT_USER_ID
        foreign = MagicMock(id=2, token="tok")
        foreign.user.id = 999
        tokenless = MagicMock(id=3, token=None)
        tokenless.user.id = BOT_USER_ID
        channel = _channel()
        channel.webhooks.return_value = [foreign, tokenless, mine]
        platform = _platform_with(channel)

        handles = await platform.list_identities("100")

        assert [h.id for h in handles] == ["1"]
        assert handles[0].resource is mine

    @pytest.mark.asyncio
    async def test_create_identity(self) -> None:
        channel = _channel()
        channel.create_webhook.return_value = MagicMock(id=9)
        platform = _platform_with(channel)

        handle = await platform.create_identity("100", "Chorus")

        channel.create_webhook.assert_awaited_once_with(name="Chorus", reason=WEBHOOK_REASON)
        assert handle.id == "9"
        assert handle.scope_id == "100"
        assert handle.resource is channel.create_webhook.return_value

    @pytest.mark.asyncio
    async def test_send_as_in_channel(self) -> None:
        webhook = MagicMock()
        webhook.send = AsyncMock()
        handle = IdentityHandle(id="1", scope_id="100", resource=webhook)

        await DiscordPlatform(bot_token="t").send_as(
            handle, Destination(id="100"), "hi", username="Claude", avatar_url="https://a/b.png"
        )

        webhook.send.assert_awaited_once_with(
            "hi", username="Claude", wait=True, avatar_url="https://a/b.png"
        )

    @pytest.mark.asyncio
    async def test_send_as_in_thread_with_reference(self) -> None:
        webhook = MagicMock()
        webhook.send = AsyncMock()
        handle = IdentityHandle(id="1", scope_id="100", resource=webhook)
        thread = Destination(id="200", server_id="1", parent_id="100")

        await DiscordPlatform(bot_token="t").send_as(
            handle, thread, "hi", username="Claude", reference_id="555"
        )

        kwargs = webhook.send.await_args.kwargs
        assert kwargs["thread"].id == 200
        assert kwargs["allowed_mentions"].replied_user is True
        assert "avatar_url" not in kwargs


class TestCommands:
    @pytest.fixture
    def router(self) -> MagicMock:
        router = MagicMock()
        router.enable_persona = AsyncMock(return_value=True)
        router.disable_persona = AsyncMock(return_value=False)
        router.list_personas = AsyncMock(return_value=[])
        router.suppress = AsyncMock()
        router.resume = AsyncMock()
        return router

    @pytest.fixture
    def platform(self, router) -> DiscordPlatform:
        platform = DiscordPlatform(bot_token="t")
        platform.attach(router)
        return platform

    @pytest.mark.asyncio
    async def test_config(self, platform, router) -> None:
        reply = await platform.command_config("1", "Claude")
        router.enable_persona.assert_awaited_once_with("1", "Claude")
        assert "enabled" in reply

    @pytest.mark.asyncio
    async def test_disable_not_enabled(self, platform) -> None:
        reply = await platform.command_disable("1", "Claude")
        assert "not enabled" in reply

    @pytest.mark.asyncio
    async def test_list_empty(self, platform) -> None:
        reply = await platform.command_list("1")
        assert isinstance(reply, str)
        assert "/config" in reply

    @pytest.mark.asyncio
    async def test_list_embed(self, platform, router) -> None:
        router.list_personas.return_value = [
            Persona(alias="Claude", provider="anthropic", encrypted_api_key="e",
                    system_prompt="Be kind."),
        ]

        reply = await platform.command_list("1")

        assert isinstance(reply, discord.Embed)
        assert reply.fields[0].name == "!Claude (anthropic)"
        assert reply.fields[0].value == "Be kind."

    @pytest.mark.asyncio
    async def test_stop_and_start(self, platform, router) -> None:
        await platform.command_stop("1")
        await platform.command_start("1")

        router.suppress.assert_awaited_once_with("1")
        router.resume.assert_awaited_once_with("1")

    @pytest.mark.asyncio
    async def test_without_router(self) -> None:
        reply = await DiscordPlatform(bot_token="t").command_stop("1")
        assert "starting up" in reply

    @pytest.mark.asyncio
    async def test_slash_commands_registered(self) -> None:
        platform = DiscordPlatform(bot_token="t")
        platform.build_client()

        names = {cmd.name for cmd in platform._tree.get_commands()}

        assert names == {"config", "disable", "list", "start", "stop"}

    @pytest.mark.asyncio
    async def test_on_ready_records_servers(self, platform, router) -> None:
        router.record_server = AsyncMock()
        guild = MagicMock(id=1)
        guild.name = "Guild One"
        client = MagicMock()
        client.guilds = [guild]
        client.change_presence = AsyncMock()
        platform._client = client
        platform._presence = "Use !<alias>"
        platform._tree = MagicMock()
        platform._tree.sync = AsyncMock(return_value=[])

        await platform._on_ready()

        client.change_presence.assert_awaited_once()
        router.record_server.assert_awaited_once_with("1", "Guild One")
        platform._tree.sync.assert_awaited_once()
