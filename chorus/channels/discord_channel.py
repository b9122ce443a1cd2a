"""Discord platform adapter via discord.py.

Translates gateway events into :class:`~chorus.gateway.models.InboundMessage`
objects for the router and implements the
:class:`~chorus.channels.base.ChatPlatform` capabilities on top of Discord:
typing indicators, channel history, webhooks as persona identities, and
plain replies as the bot user.  Also registers the ``/config``,
``/disable``, ``/list``, ``/start`` and ``/stop`` slash commands.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands

from chorus.gateway.models import (
    Destination,
    IdentityHandle,
    InboundMessage,
    TranscriptMessage,
)
from chorus.personas.awareness import preview_prompt

if TYPE_CHECKING:
    from chorus.gateway.router import PersonaRouter

logger = logging.getLogger(__name__)

WEBHOOK_REASON = "Created for Chorus persona responses"


class DiscordPlatform:
    """Discord implementation of the chat platform protocol."""

    def __init__(
        self,
        bot_token: str,
        allowed_guilds: list[str] | None = None,
        presence: str = "",
        sync_commands: bool = True,
    ) -> None:
        self._token = bot_token
        self._allowed_guilds: set[str] = set(allowed_guilds or [])
        self._presence = presence
        self._sync_commands = sync_commands
        self._client: discord.Client | None = None
        self._tree: app_commands.CommandTree | None = None
        self._router: PersonaRouter | None = None

    def attach(self, router: PersonaRouter) -> None:
        """Set the router that receives inbound messages and commands."""
        self._router = router

    @property
    def self_id(self) -> str | None:
        if self._client is None or self._client.user is None:
            return None
        return str(self._client.user.id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def build_client(self) -> discord.Client:
        """Create the discord.py client and wire events and commands."""
        intents = discord.Intents.default()
        intents.message_content = True
        client = discord.Client(intents=intents)
        tree = app_commands.CommandTree(client)
        self._client = client
        self._tree = tree
        self._register_commands(tree)

        platform = self

        @client.event
        async def on_ready() -> None:
            logger.info("Discord connected as %s", client.user)
            await platform._on_ready()

        @client.event
        async def on_guild_join(guild: discord.Guild) -> None:
            if platform._router is not None:
                await platform._router.record_server(str(guild.id), guild.name)

        @client.event
        async def on_message(message: discord.Message) -> None:
            await platform.dispatch(message)

        return client

    async def run(self) -> None:
        """Connect and block until the client stops."""
        client = self.build_client()
        async with client:
            await client.start(self._token)

    async def _on_ready(self) -> None:
        client = self._client
        if client is None:
            return

        if self._presence:
            try:
                await client.change_presence(
                    activity=discord.CustomActivity(name=self._presence),
                    status=discord.Status.online,
                )
            except Exception as exc:
                logger.warning("Could not set presence: %s", exc)

        if self._router is not None:
            for guild in client.guilds:
                await self._router.record_server(str(guild.id), guild.name)

        if self._sync_commands and self._tree is not None:
            try:
                synced = await self._tree.sync()
                logger.info("Synced %d slash commands", len(synced))
            except discord.HTTPException as exc:
                logger.error("Failed to sync slash commands: %s", exc)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def dispatch(self, message: discord.Message) -> None:
        """Hand a Discord message to the router."""
        if self._router is None or message.guild is None:
            return
        if self._allowed_guilds and str(message.guild.id) not in self._allowed_guilds:
            return

        try:
            await self._router.handle_message(self.to_inbound(message))
        except Exception:
            logger.exception("Error processing Discord message %s", message.id)

    @staticmethod
    def to_inbound(message: discord.Message) -> InboundMessage:
        return InboundMessage(
            id=str(message.id),
            author_id=str(message.author.id),
            author_name=str(message.author),
            text=message.content or "",
            destination=to_destination(message.channel, message.guild),
            from_bot=bool(message.author.bot),
            created_at=message.created_at,
        )

    # ------------------------------------------------------------------
    # ChatPlatform capabilities
    # ------------------------------------------------------------------

    async def send_typing(self, destination: Destination) -> None:
        channel = await self._resolve(destination.id)
        await channel.typing()

    async def is_available(self, destination: Destination) -> bool:
        try:
            channel = await self._resolve(destination.id)
        except (discord.NotFound, discord.Forbidden):
            return False
        return hasattr(channel, "typing")

    async def fetch_messages(
        self, destination: Destination, before: str, limit: int
    ) -> list[TranscriptMessage]:
        channel = await self._resolve(destination.id)
        return [
            TranscriptMessage(
                id=str(msg.id),
                author_id=str(msg.author.id),
                text=msg.content or "",
                created_at=msg.created_at,
            )
            async for msg in channel.history(limit=limit, before=discord.Object(id=int(before)))
        ]

    async def list_identities(self, scope_id: str) -> list[IdentityHandle]:
        channel = await self._resolve(scope_id)
        if not hasattr(channel, "webhooks"):
            raise TypeError(f"Channel {scope_id} does not support webhooks")

        me = self.self_id
        return [
            IdentityHandle(id=str(hook.id), scope_id=scope_id, resource=hook)
            for hook in await channel.webhooks()
            if hook.user is not None and str(hook.user.id) == me and hook.token
        ]

    async def create_identity(self, scope_id: str, name: str) -> IdentityHandle:
        channel = await self._resolve(scope_id)
        if not hasattr(channel, "create_webhook"):
            raise TypeError(f"Channel {scope_id} does not support webhooks")
        hook = await channel.create_webhook(name=name, reason=WEBHOOK_REASON)
        return IdentityHandle(id=str(hook.id), scope_id=scope_id, resource=hook)

    async def send_as(
        self,
        handle: IdentityHandle,
        destination: Destination,
        text: str,
        *,
        username: str,
        avatar_url: str | None = None,
        reference_id: str | None = None,
    ) -> None:
        webhook: discord.Webhook = handle.resource
        kwargs: dict = {"username": username, "wait": True}
        if avatar_url:
            kwargs["avatar_url"] = avatar_url
        if destination.is_thread:
            kwargs["thread"] = discord.Object(id=int(destination.id))
        if reference_id is not None:
            kwargs["allowed_mentions"] = discord.AllowedMentions(replied_user=True)
        await webhook.send(text, **kwargs)

    async def reply(self, destination: Destination, message_id: str, text: str) -> None:
        channel = await self._resolve(destination.id)
        await channel.get_partial_message(int(message_id)).reply(text)

    async def send(self, destination: Destination, text: str) -> None:
        channel = await self._resolve(destination.id)
        await channel.send(text)

    async def _resolve(self, channel_id: str):
        if self._client is None:
            raise RuntimeError("Discord adapter is not connected")
        channel = self._client.get_channel(int(channel_id))
        if channel is None:
            channel = await self._client.fetch_channel(int(channel_id))
        return channel

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------

    async def command_config(self, guild_id: str, alias: str) -> str:
        if self._router is None:
            return "The bot is still starting up."
        if await self._router.enable_persona(guild_id, alias):
            return f"✅ Persona `{alias}` has been enabled for this server."
        return f"❌ Failed to enable persona `{alias}`. It may not exist or there was an error."

    async def command_disable(self, guild_id: str, alias: str) -> str:
        if self._router is None:
            return "The bot is still starting up."
        if await self._router.disable_persona(guild_id, alias):
            return f"✅ Persona `{alias}` has been disabled for this server."
        return f"❌ Persona `{alias}` is not enabled for this server."

    async def command_list(self, guild_id: str) -> discord.Embed | str:
        if self._router is None:
            return "The bot is still starting up."
        personas = await self._router.list_personas(guild_id)
        if not personas:
            return (
                "No personas are currently enabled for this server. "
                "Use `/config <alias>` to enable one."
            )

        embed = discord.Embed(
            title="Enabled Personas",
            description="These personas are currently enabled for this server:",
            colour=discord.Colour.green(),
        )
        for persona in personas:
            embed.add_field(
                name=f"{persona.mention} ({persona.provider})",
                value=preview_prompt(persona.system_prompt) or "(no system prompt)",
                inline=False,
            )
        return embed

    async def command_start(self, guild_id: str) -> str:
        if self._router is None:
            return "The bot is still starting up."
        await self._router.resume(guild_id)
        return "▶️ Personas will respond to messages in this server again."

    async def command_stop(self, guild_id: str) -> str:
        if self._router is None:
            return "The bot is still starting up."
        await self._router.suppress(guild_id)
        return "⏹️ Personas will no longer respond in this server. Use `/start` to resume."

    def _register_commands(self, tree: app_commands.CommandTree) -> None:
        platform = self

        async def _answer(interaction: discord.Interaction, result: discord.Embed | str) -> None:
            if isinstance(result, discord.Embed):
                await interaction.followup.send(embed=result)
            else:
                await interaction.followup.send(result)

        @tree.command(name="config", description="Enable a persona for this server")
        @app_commands.describe(alias="The alias of the persona to enable")
        @app_commands.default_permissions(manage_guild=True)
        @app_commands.guild_only()
        async def config(interaction: discord.Interaction, alias: str) -> None:
            await interaction.response.defer()
            await _answer(
                interaction, await platform.command_config(str(interaction.guild_id), alias)
            )

        @tree.command(name="disable", description="Disable a persona for this server")
        @app_commands.describe(alias="The alias of the persona to disable")
        @app_commands.default_permissions(manage_guild=True)
        @app_commands.guild_only()
        async def disable(interaction: discord.Interaction, alias: str) -> None:
            await interaction.response.defer()
            await _answer(
                interaction, await platform.command_disable(str(interaction.guild_id), alias)
            )

        @tree.command(name="list", description="List the personas enabled for this server")
        @app_commands.guild_only()
        async def list_(interaction: discord.Interaction) -> None:
            await interaction.response.defer()
            await _answer(interaction, await platform.command_list(str(interaction.guild_id)))

        @tree.command(name="start", description="Resume persona responses in this server")
        @app_commands.default_permissions(manage_guild=True)
        @app_commands.guild_only()
        async def start(interaction: discord.Interaction) -> None:
            await interaction.response.defer()
            await _answer(interaction, await platform.command_start(str(interaction.guild_id)))

        @tree.command(name="stop", description="Stop persona responses in this server")
        @app_commands.default_permissions(manage_guild=True)
        @app_commands.guild_only()
        async def stop(interaction: discord.Interaction) -> None:
            await interaction.response.defer()
            await _answer(interaction, await platform.command_stop(str(interaction.guild_id)))


def to_destination(channel: object, guild: discord.Guild | None) -> Destination:
    """Build a :class:`Destination` for a Discord channel or thread."""
    server_id = str(guild.id) if guild is not None else None
    if isinstance(channel, discord.Thread):
        return Destination(
            id=str(channel.id), server_id=server_id, parent_id=str(channel.parent_id)
        )
    return Destination(id=str(channel.id), server_id=server_id)  # type: ignore[attr-defined]
