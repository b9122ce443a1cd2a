"""Chat platform protocol: the capabilities the router needs from a host."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from chorus.gateway.models import (
        Destination,
        IdentityHandle,
        TranscriptMessage,
    )

__all__ = ["ChatPlatform"]


@runtime_checkable
class ChatPlatform(Protocol):
    """Protocol the Discord adapter (or a test double) must satisfy.

    Every method may raise; callers in :mod:`chorus.gateway` wrap each call
    with local recovery.
    """

    @property
    def self_id(self) -> str | None:
        """User id this process posts under, or ``None`` before login."""

    async def send_typing(self, destination: Destination) -> None:
        """Show the "is typing" indicator once."""

    async def is_available(self, destination: Destination) -> bool:
        """Return ``True`` while the destination still exists and accepts messages."""

    async def fetch_messages(
        self, destination: Destination, before: str, limit: int
    ) -> list[TranscriptMessage]:
        """Return up to *limit* messages posted before message id *before*."""

    async def list_identities(self, scope_id: str) -> list[IdentityHandle]:
        """Return identity resources in *scope_id* owned by this process."""

    async def create_identity(self, scope_id: str, name: str) -> IdentityHandle:
        """Create a new identity resource in channel *scope_id*."""

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
        """Post *text* through *handle* under a custom name and avatar."""

    async def reply(self, destination: Destination, message_id: str, text: str) -> None:
        """Post *text* as this process, replying to *message_id*."""

    async def send(self, destination: Destination, text: str) -> None:
        """Post *text* as this process."""
