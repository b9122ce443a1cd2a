"""Default configuration values for Chorus."""

from __future__ import annotations

DEFAULT_CONFIG: dict[str, dict[str, object]] = {
    "chorus": {
        "version": "0.1.0",
        "data_dir": "~/.local/share/chorus",
        "log_level": "info",
    },
    "discord": {
        "bot_token": "",
        "allowed_guilds": [],
        "webhook_name": "Chorus",
        "presence": "Use !<alias> to chat with me",
        "sync_commands": True,
    },
    "routing": {
        "message_limit": 2000,
        "chunk_delay_seconds": 0.5,
        "typing_interval_seconds": 8.0,
    },
    "providers": {
        "openai": {"model": "gpt-4o", "max_tokens": 1000, "temperature": 0.7},
        "anthropic": {"model": "claude-3-opus-20240229", "max_tokens": 1000, "temperature": 0.7},
        "gemini": {"model": "gemini-pro", "max_tokens": 1000, "temperature": 0.7},
    },
    "security": {
        "encryption_key": "",
    },
}
