"""Shared fixtures for the Chorus test suite."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from chorus.gateway.models import Destination, IdentityHandle, InboundMessage
from chorus.personas.models import Persona
from chorus.personas.storage import PersonaRegistry

BOT_ID = "bot-1"
GUILD_ID = "guild-1"
CHANNEL_ID = "chan-1"
BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


class FixedRandom:
    """Random source that replays a fixed sequence of draws."""

    def __init__(self, *values: float) -> None:
        self._values = list(values)
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self._values.pop(0)


@pytest.fixture
def platform() -> MagicMock:
    """A ChatPlatform double with every capability as an AsyncMock."""
    mock = MagicMock()
    mock.self_id = BOT_ID
    mock.send_typing = AsyncMock()
    mock.is_available = AsyncMock(return_value=True)
    mock.fetch_messages = AsyncMock(return_value=[])
    mock.list_identities = AsyncMock(return_value=[])
    mock.create_identity = AsyncMock(
        side_effect=lambda scope_id, name: IdentityHandle(id=f"wh-{scope_id}", scope_id=scope_id)
    )
    mock.send_as = AsyncMock()
    mock.reply = AsyncMock()
    mock.send = AsyncMock()
    return mock


@pytest.fixture
def destination() -> Destination:
    return Destination(id=CHANNEL_ID, server_id=GUILD_ID)


@pytest.fixture
def make_persona() -> Callable[..., Persona]:
    def _make(alias: str = "Claude", **overrides: object) -> Persona:
        kwargs: dict[str, object] = {
            "alias": alias,
            "provider": "anthropic",
            "encrypted_api_key": "enc",
            "response_probability": 0.0,
            "system_prompt": f"You are {alias}.",
            "avatar_url": f"https://example.com/{alias}.png",
            "history_size": 5,
        }
        kwargs.update(overrides)
        return Persona(**kwargs)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def make_message(destination: Destination) -> Callable[..., InboundMessage]:
    counter = iter(range(1000, 10_000))

    def _make(text: str = "hello", **overrides: object) -> InboundMessage:
        seq = next(counter)
        kwargs: dict[str, object] = {
            "id": f"msg-{seq}",
            "author_id": "user-1",
            "author_name": "alice",
            "text": text,
            "destination": destination,
            "from_bot": False,
            "created_at": BASE_TIME + timedelta(minutes=10),
        }
        kwargs.update(overrides)
        return InboundMessage(**kwargs)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def registry(tmp_path: Path):
    reg = PersonaRegistry(tmp_path / "chorus.db")
    yield reg
    reg.close()


@pytest.fixture
def fixed_random() -> type[FixedRandom]:
    return FixedRandom
