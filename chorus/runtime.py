"""Central runtime: builds and holds all live components."""

from __future__ import annotations

import logging

from chorus.channels.discord_channel import DiscordPlatform
from chorus.cognitive import PersonaGenerator
from chorus.config import ConfigManager
from chorus.config.schema import ChorusConfig
from chorus.crypto import CredentialCipher
from chorus.errors import ConfigError, CredentialError
from chorus.gateway.identity import IdentityChannel
from chorus.gateway.router import PersonaRouter
from chorus.gateway.session import SessionStore
from chorus.gateway.typing_lease import TypingLeases
from chorus.personas.storage import PersonaRegistry

logger = logging.getLogger(__name__)


def build_cipher(config: ChorusConfig) -> CredentialCipher:
    """Return the credential cipher, or raise :class:`ConfigError`."""
    key = config.security.encryption_key
    if not key:
        raise ConfigError(
            "No encryption key configured; set CHORUS_ENCRYPTION_KEY or security.encryption_key"
        )
    try:
        return CredentialCipher(key)
    except CredentialError as exc:
        raise ConfigError(str(exc)) from exc


class ChorusRuntime:
    """Wires config to components and runs the Discord client.

    The runtime is the single place that knows how the router, the
    registry, the provider backends and the Discord adapter fit together.
    """

    def __init__(self, config: ChorusConfig | None = None) -> None:
        self._config = config or ConfigManager().load()
        self.registry: PersonaRegistry | None = None
        self.platform: DiscordPlatform | None = None
        self.router: PersonaRouter | None = None

    @property
    def config(self) -> ChorusConfig:
        return self._config

    def build(self) -> PersonaRouter:
        """Create every component. Raises :class:`ConfigError` on bad config."""
        cfg = self._config
        if not cfg.discord.bot_token:
            raise ConfigError(
                "No Discord bot token; set CHORUS_DISCORD_TOKEN or discord.bot_token"
            )
        cipher = build_cipher(cfg)

        data_dir = cfg.get_data_path()
        data_dir.mkdir(parents=True, exist_ok=True)
        self.registry = PersonaRegistry(cfg.get_database_path())
        logger.info("Persona registry: %s", cfg.get_database_path())

        self.platform = DiscordPlatform(
            bot_token=cfg.discord.bot_token,
            allowed_guilds=cfg.discord.allowed_guilds,
            presence=cfg.discord.presence,
            sync_commands=cfg.discord.sync_commands,
        )
        routing = cfg.routing
        self.router = PersonaRouter(
            self.registry,
            self.platform,
            PersonaGenerator(cipher, cfg.providers),
            sessions=SessionStore(),
            leases=TypingLeases(self.platform, interval=routing.typing_interval_seconds),
            identities=IdentityChannel(
                self.platform,
                identity_name=cfg.discord.webhook_name,
                limit=routing.message_limit,
                chunk_delay=routing.chunk_delay_seconds,
            ),
        )
        self.platform.attach(self.router)
        return self.router

    async def run(self) -> None:
        """Build (if needed) and run until the Discord client disconnects."""
        if self.router is None:
            self.build()
        assert self.router is not None and self.platform is not None

        restored = await self.router.restore_sessions()
        if restored:
            logger.info("Restored stop flag for %d server(s)", restored)

        logger.info("Chorus starting...")
        try:
            await self.platform.run()
        finally:
            await self.router.leases.close()
            if self.registry is not None:
                self.registry.close()
            logger.info("Chorus stopped")
