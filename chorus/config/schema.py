"""Pydantic models for Chorus configuration.

Nested section models use plain ``BaseModel`` so pydantic-settings does not
read environment variables for individual fields.  Only the top-level
:class:`ChorusConfig` extends ``BaseSettings``; secrets are overlaid from
the environment by :class:`~chorus.config.manager.ConfigManager`.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChorusSection(BaseModel):
    """Core settings."""

    version: str = "0.1.0"
    data_dir: str = "~/.local/share/chorus"
    log_level: str = "info"


class DiscordSection(BaseModel):
    """Discord connection settings."""

    bot_token: str = ""
    allowed_guilds: list[str] = Field(default_factory=list)
    webhook_name: str = "Chorus"
    presence: str = "Use !<alias> to chat with me"
    sync_commands: bool = True


class RoutingSection(BaseModel):
    """Routing and delivery tuning."""

    message_limit: int = Field(default=2000, ge=1)
    chunk_delay_seconds: float = Field(default=0.5, ge=0)
    typing_interval_seconds: float = Field(default=8.0, gt=0)


class ProviderConfig(BaseModel):
    """Defaults for one LLM provider."""

    model: str
    max_tokens: int = 1000
    temperature: float = 0.7
    base_url: str = ""
    timeout_seconds: float = 120.0


class ProvidersSection(BaseModel):
    """Per-provider defaults, keyed by provider kind."""

    openai: ProviderConfig = Field(default_factory=lambda: ProviderConfig(model="gpt-4o"))
    anthropic: ProviderConfig = Field(
        default_factory=lambda: ProviderConfig(model="claude-3-opus-20240229")
    )
    gemini: ProviderConfig = Field(default_factory=lambda: ProviderConfig(model="gemini-pro"))

    def for_kind(self, kind: str) -> ProviderConfig | None:
        """Return the config block for a provider kind, or ``None``."""
        value = getattr(self, kind.lower(), None)
        return value if isinstance(value, ProviderConfig) else None


class SecuritySection(BaseModel):
    """Credential encryption settings."""

    encryption_key: str = ""


class ChorusConfig(BaseSettings):
    """Top-level Chorus configuration model.

    Maps to the TOML structure:
        [chorus] / [discord] / [routing] / [providers.*] / [security]

    Config file lives at ``~/.config/chorus/config.toml``.
    """

    model_config = SettingsConfigDict(env_prefix="CHORUS_", extra="ignore")

    chorus: ChorusSection = Field(default_factory=ChorusSection)
    discord: DiscordSection = Field(default_factory=DiscordSection)
    routing: RoutingSection = Field(default_factory=RoutingSection)
    providers: ProvidersSection = Field(default_factory=ProvidersSection)
    security: SecuritySection = Field(default_factory=SecuritySection)

    def get_data_path(self) -> Path:
        """Return the resolved data directory path."""
        return Path(self.chorus.data_dir).expanduser()

    def get_database_path(self) -> Path:
        """Return the persona registry database path."""
        return self.get_data_path() / "chorus.db"
