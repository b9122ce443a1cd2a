"""Persona model."""

from __future__ import annotations

from dataclasses import dataclass

PROVIDER_KINDS = ("openai", "anthropic", "gemini")


@dataclass(frozen=True)
class Persona:
    """One configured responder identity.

    A snapshot read from the registry for a single routing decision.
    ``response_probability`` is the chance (0..1) of answering a message
    nobody addressed explicitly; ``history_size`` is how many earlier
    channel messages are fed to the model as context.
    """

    alias: str
    provider: str
    encrypted_api_key: str
    response_probability: float = 0.0
    system_prompt: str = ""
    avatar_url: str | None = None
    history_size: int = 10
    model: str | None = None

    def __post_init__(self) -> None:
        if not self.alias:
            raise ValueError("Persona alias must not be empty")
        if not 0.0 <= self.response_probability <= 1.0:
            raise ValueError(
                f"response_probability must be within [0, 1], got {self.response_probability}"
            )
        if self.history_size < 0:
            raise ValueError(f"history_size must be >= 0, got {self.history_size}")
        object.__setattr__(self, "provider", self.provider.lower())

    @property
    def mention(self) -> str:
        """The literal trigger that addresses this persona."""
        return f"!{self.alias}"
