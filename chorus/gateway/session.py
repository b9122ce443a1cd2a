"""Per-server session state: suppression flag and enabled-persona cache."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Mutable state for one server.

    ``enabled`` mirrors the registry's view of which personas are switched
    on; it is advisory and refreshed whenever the router reads the registry.
    """

    server_id: str
    suppressed: bool = False
    enabled: set[str] = field(default_factory=set)


class SessionStore:
    """In-memory sessions keyed by server id, created on first reference."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def get(self, server_id: str) -> Session:
        session = self._sessions.get(server_id)
        if session is None:
            session = Session(server_id=server_id)
            self._sessions[server_id] = session
        return session

    def suppress(self, server_id: str) -> None:
        self.get(server_id).suppressed = True
        logger.info("Stopped responding in server %s", server_id)

    def resume(self, server_id: str) -> None:
        self.get(server_id).suppressed = False
        logger.info("Resumed responding in server %s", server_id)

    def is_suppressed(self, server_id: str) -> bool:
        session = self._sessions.get(server_id)
        return session is not None and session.suppressed

    def set_enabled(self, server_id: str, aliases: Iterable[str]) -> None:
        self.get(server_id).enabled = set(aliases)

    def mark_enabled(self, server_id: str, alias: str) -> None:
        self.get(server_id).enabled.add(alias)

    def mark_disabled(self, server_id: str, alias: str) -> None:
        self.get(server_id).enabled.discard(alias)

    def __len__(self) -> int:
        return len(self._sessions)
