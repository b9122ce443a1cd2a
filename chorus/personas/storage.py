"""SQLite-backed persona registry.

Holds the persona catalogue, the servers the bot has seen, and which
personas are enabled in which server.  Blocking SQLite calls are pushed to
worker threads so the event loop is never held up by disk I/O.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from chorus.personas.models import Persona

logger = logging.getLogger(__name__)


class PersonaRegistry:
    """Persona catalogue and per-server enablement (SQLite, WAL mode)."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = str(db_path)
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_db(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS personas (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                alias TEXT NOT NULL UNIQUE,
                provider TEXT NOT NULL,
                encrypted_api_key TEXT NOT NULL,
                response_probability REAL NOT NULL DEFAULT 0,
                system_prompt TEXT NOT NULL DEFAULT '',
                avatar_url TEXT,
                history_size INTEGER NOT NULL DEFAULT 10,
                model TEXT,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS servers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                server_id TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL DEFAULT 'Unknown',
                joined_at TEXT NOT NULL,
                stopped INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS server_personas (
                server_pk INTEGER NOT NULL,
                persona_pk INTEGER NOT NULL,
                PRIMARY KEY (server_pk, persona_pk),
                FOREIGN KEY (server_pk) REFERENCES servers(id) ON DELETE CASCADE,
                FOREIGN KEY (persona_pk) REFERENCES personas(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_personas_provider ON personas(provider);
            CREATE INDEX IF NOT EXISTS idx_server_personas_persona
                ON server_personas(persona_pk);
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Public async API
    # ------------------------------------------------------------------

    async def get_by_alias(self, alias: str) -> Persona | None:
        return await asyncio.to_thread(self._get_by_alias_sync, alias)

    async def get_enabled(self, server_id: str) -> list[Persona]:
        return await asyncio.to_thread(self._get_enabled_sync, server_id)

    async def set_enabled(self, server_id: str, alias: str) -> bool:
        return await asyncio.to_thread(self._set_enabled_sync, server_id, alias)

    async def set_disabled(self, server_id: str, alias: str) -> bool:
        return await asyncio.to_thread(self._set_disabled_sync, server_id, alias)

    async def save(self, persona: Persona) -> None:
        await asyncio.to_thread(self._save_sync, persona)

    async def delete(self, alias: str) -> bool:
        return await asyncio.to_thread(self._delete_sync, alias)

    async def list_all(self) -> list[Persona]:
        return await asyncio.to_thread(self._list_all_sync)

    async def update_server(self, server_id: str, name: str) -> None:
        await asyncio.to_thread(self._update_server_sync, server_id, name)

    async def set_stopped(self, server_id: str, stopped: bool) -> None:
        await asyncio.to_thread(self._set_stopped_sync, server_id, stopped)

    async def stopped_servers(self) -> set[str]:
        return await asyncio.to_thread(self._stopped_servers_sync)

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Synchronous implementations
    # ------------------------------------------------------------------

    def _get_by_alias_sync(self, alias: str) -> Persona | None:
        row = self._conn.execute("SELECT * FROM personas WHERE alias = ?", (alias,)).fetchone()
        return self._row_to_persona(row) if row else None

    def _get_enabled_sync(self, server_id: str) -> list[Persona]:
        rows = self._conn.execute(
            "SELECT p.* FROM personas p "
            "JOIN server_personas sp ON sp.persona_pk = p.id "
            "JOIN servers s ON s.id = sp.server_pk "
            "WHERE s.server_id = ? ORDER BY p.alias",
            (server_id,),
        ).fetchall()
        return [self._row_to_persona(r) for r in rows]

    def _set_enabled_sync(self, server_id: str, alias: str) -> bool:
        persona_row = self._conn.execute(
            "SELECT id FROM personas WHERE alias = ?", (alias,)
        ).fetchone()
        if persona_row is None:
            logger.warning("Cannot enable unknown persona %r", alias)
            return False

        server_pk = self._ensure_server(server_id)
        self._conn.execute(
            "INSERT OR IGNORE INTO server_personas (server_pk, persona_pk) VALUES (?, ?)",
            (server_pk, persona_row["id"]),
        )
        self._conn.commit()
        return True

    def _set_disabled_sync(self, server_id: str, alias: str) -> bool:
        cur = self._conn.execute(
            "DELETE FROM server_personas WHERE "
            "server_pk = (SELECT id FROM servers WHERE server_id = ?) AND "
            "persona_pk = (SELECT id FROM personas WHERE alias = ?)",
            (server_id, alias),
        )
        self._conn.commit()
        return cur.rowcount > 0

    def _save_sync(self, persona: Persona) -> None:
        self._conn.execute(
            """INSERT INTO personas
            (alias, provider, encrypted_api_key, response_probability,
             system_prompt, avatar_url, history_size, model, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(alias) DO UPDATE SET
                provider = excluded.provider,
                encrypted_api_key = excluded.encrypted_api_key,
                response_probability = excluded.response_probability,
                system_prompt = excluded.system_prompt,
                avatar_url = excluded.avatar_url,
                history_size = excluded.history_size,
                model = excluded.model""",
            (
                persona.alias,
                persona.provider,
                persona.encrypted_api_key,
                persona.response_probability,
                persona.system_prompt,
                persona.avatar_url,
                persona.history_size,
                persona.model,
                datetime.now(UTC).isoformat(),
            ),
        )
        self._conn.commit()

    def _delete_sync(self, alias: str) -> bool:
        cur = self._conn.execute("DELETE FROM personas WHERE alias = ?", (alias,))
        self._conn.commit()
        return cur.rowcount > 0

    def _list_all_sync(self) -> list[Persona]:
        rows = self._conn.execute("SELECT * FROM personas ORDER BY alias").fetchall()
        return [self._row_to_persona(r) for r in rows]

    def _update_server_sync(self, server_id: str, name: str) -> None:
        self._conn.execute(
            "INSERT INTO servers (server_id, name, joined_at) VALUES (?, ?, ?) "
            "ON CONFLICT(server_id) DO UPDATE SET name = excluded.name",
            (server_id, name, datetime.now(UTC).isoformat()),
        )
        self._conn.commit()

    def _set_stopped_sync(self, server_id: str, stopped: bool) -> None:
        server_pk = self._ensure_server(server_id)
        self._conn.execute(
            "UPDATE servers SET stopped = ? WHERE id = ?", (int(stopped), server_pk)
        )
        self._conn.commit()

    def _stopped_servers_sync(self) -> set[str]:
        rows = self._conn.execute("SELECT server_id FROM servers WHERE stopped = 1").fetchall()
        return {r["server_id"] for r in rows}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_server(self, server_id: str) -> int:
        """Return the row id for *server_id*, inserting a placeholder if new."""
        self._conn.execute(
            "INSERT OR IGNORE INTO servers (server_id, joined_at) VALUES (?, ?)",
            (server_id, datetime.now(UTC).isoformat()),
        )
        row = self._conn.execute(
            "SELECT id FROM servers WHERE server_id = ?", (server_id,)
        ).fetchone()
        return int(row["id"])

    @staticmethod
    def _row_to_persona(row: sqlite3.Row) -> Persona:
        return Persona(
            alias=row["alias"],
            provider=row["provider"],
            encrypted_api_key=row["encrypted_api_key"],
            response_probability=row["response_probability"],
            system_prompt=row["system_prompt"],
            avatar_url=row["avatar_url"],
            history_size=row["history_size"],
            model=row["model"],
        )
