"""Exception hierarchy for Chorus."""

from __future__ import annotations


class ChorusError(Exception):
    """Base class for all Chorus errors."""


class ConfigError(ChorusError):
    """Required configuration is missing or invalid."""


class CredentialError(ChorusError):
    """A persona credential could not be encrypted or decrypted."""


class UnsupportedProviderError(ChorusError):
    """A persona names a provider kind with no backend."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"Unsupported LLM provider: {provider}")
        self.provider = provider


class GenerationError(ChorusError):
    """A provider call failed or returned an unusable payload."""
