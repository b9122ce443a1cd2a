"""Gateway data models: lightweight message and destination objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True)
class Destination:
    """A channel, or a thread inside a channel."""

    id: str
    server_id: str | None = None
    parent_id: str | None = None  # set for threads

    @property
    def is_thread(self) -> bool:
        return self.parent_id is not None

    @property
    def identity_scope(self) -> str:
        """Channel that owns identity resources for this destination."""
        return self.parent_id or self.id


@dataclass
class InboundMessage:
    """Normalised message arriving from the chat platform."""

    id: str
    author_id: str
    author_name: str
    text: str
    destination: Destination
    from_bot: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def server_id(self) -> str | None:
        return self.destination.server_id


@dataclass
class TranscriptMessage:
    """A message read back from a destination's history."""

    id: str
    author_id: str
    text: str
    created_at: datetime


@dataclass
class IdentityHandle:
    """A platform resource able to post under any display name and avatar."""

    id: str
    scope_id: str
    resource: Any = None
