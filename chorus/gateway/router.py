"""Persona router: decides who answers a message and drives the reply.

For each inbound message the router either honours an explicit ``!alias``
trigger or runs the probabilistic draw over the server's enabled personas,
then runs the response pipeline: typing lease, context assembly, peer
awareness, generation and delivery.  Nothing raised by a collaborator
escapes :meth:`PersonaRouter.handle_message`; failures end in silence.
"""

from __future__ import annotations

import logging
import random
from dataclasses import replace

from chorus.channels.base import ChatPlatform
from chorus.cognitive import Generator
from chorus.gateway.identity import IdentityChannel
from chorus.gateway.models import InboundMessage, TranscriptMessage
from chorus.gateway.selection import RandomSource, choose_responder, extract_trigger
from chorus.gateway.session import SessionStore
from chorus.gateway.typing_lease import TypingLeases
from chorus.personas.awareness import build_peer_awareness, with_peer_awareness
from chorus.personas.models import Persona
from chorus.personas.storage import PersonaRegistry

logger = logging.getLogger(__name__)


class PersonaRouter:
    """Routes inbound messages to at most one persona each."""

    def __init__(
        self,
        registry: PersonaRegistry,
        platform: ChatPlatform,
        generator: Generator,
        *,
        sessions: SessionStore | None = None,
        leases: TypingLeases | None = None,
        identities: IdentityChannel | None = None,
        rng: RandomSource | None = None,
    ) -> None:
        self._registry = registry
        self._platform = platform
        self._generator = generator
        self._sessions = sessions or SessionStore()
        self._leases = leases or TypingLeases(platform)
        self._identities = identities or IdentityChannel(platform)
        self._rng = rng or random.Random()

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    @property
    def leases(self) -> TypingLeases:
        return self._leases

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def handle_message(self, message: InboundMessage) -> None:
        """Process one inbound message; never raises."""
        server_id = message.server_id
        if server_id is None:
            return
        if self._sessions.is_suppressed(server_id):
            return

        try:
            alias = extract_trigger(message.text)
            if alias is not None:
                await self.route_explicit(message, alias)
            else:
                await self.route_probabilistic(message)
        except Exception:
            logger.exception("Error processing message %s in %s", message.id, server_id)

    async def route_explicit(self, message: InboundMessage, alias: str) -> bool:
        """Answer as *alias* if it exists and is enabled in the server."""
        server_id = message.server_id
        if server_id is None:
            return False

        persona = await self._registry.get_by_alias(alias)
        if persona is None:
            logger.warning("Persona with alias %s not found", alias)
            return False

        enabled = await self._load_enabled(server_id)
        if not any(p.alias == alias for p in enabled):
            logger.warning("Persona %s is not enabled for server %s", alias, server_id)
            return False

        return await self.respond(message, persona, enabled)

    async def route_probabilistic(self, message: InboundMessage) -> bool:
        """Let chance decide whether, and which, persona answers."""
        server_id = message.server_id
        if server_id is None or message.from_bot:
            return False

        enabled = await self._load_enabled(server_id)
        persona = choose_responder(enabled, self._rng)
        if persona is None:
            return False

        logger.debug("Probabilistic pick in %s: %s", server_id, persona.alias)
        return await self.respond(message, persona, enabled)

    # ------------------------------------------------------------------
    # Response pipeline
    # ------------------------------------------------------------------

    async def respond(
        self, message: InboundMessage, persona: Persona, enabled: list[Persona]
    ) -> bool:
        """Generate and deliver *persona*'s reply to *message*.

        Returns ``True`` if a reply was delivered.
        """
        destination = message.destination
        leased = False
        try:
            leased = await self._leases.start(destination)
            context = await self.build_context(message, persona.history_size)
            addendum = build_peer_awareness(enabled, persona.alias)
            speaker = replace(
                persona, system_prompt=with_peer_awareness(persona.system_prompt, addendum)
            )

            try:
                text = await self._generator.generate(speaker, context)
            except Exception:
                logger.exception("Error generating response as %s", persona.alias)
                return False

            if not text or not text.strip():
                logger.warning("Persona %s produced an empty response", persona.alias)
                return False

            return await self._identities.send(message, text, persona)
        finally:
            if leased:
                self._leases.stop(destination)

    async def build_context(
        self, message: InboundMessage, history_size: int
    ) -> list[dict[str, str]]:
        """Return the chat history for the model, oldest first.

        Messages posted by the bot's own user become ``assistant`` turns,
        everything else ``user``.  If history cannot be read the context is
        just the triggering message.
        """
        current = TranscriptMessage(
            id=message.id,
            author_id=message.author_id,
            text=message.text,
            created_at=message.created_at,
        )

        history: list[TranscriptMessage] = []
        if history_size > 0:
            try:
                history = await self._platform.fetch_messages(
                    message.destination, before=message.id, limit=history_size
                )
            except Exception as exc:
                logger.warning(
                    "Error fetching message history in %s: %s", message.destination.id, exc
                )
                return [{"role": "user", "content": message.text}]

        self_id = self._platform.self_id
        ordered = sorted([*history, current], key=lambda m: m.created_at)
        return [
            {
                "role": "assistant" if self_id is not None and m.author_id == self_id else "user",
                "content": m.text,
            }
            for m in ordered
            if m.text or m is current
        ]

    # ------------------------------------------------------------------
    # Session control (used by the command layer)
    # ------------------------------------------------------------------

    async def suppress(self, server_id: str) -> None:
        """Stop answering in *server_id* until :meth:`resume`."""
        self._sessions.suppress(server_id)
        try:
            await self._registry.set_stopped(server_id, True)
        except Exception as exc:
            logger.warning("Could not persist stop flag for %s: %s", server_id, exc)

    async def resume(self, server_id: str) -> None:
        self._sessions.resume(server_id)
        try:
            await self._registry.set_stopped(server_id, False)
        except Exception as exc:
            logger.warning("Could not persist stop flag for %s: %s", server_id, exc)

    def is_suppressed(self, server_id: str) -> bool:
        return self._sessions.is_suppressed(server_id)

    async def restore_sessions(self) -> int:
        """Re-apply stop flags persisted by earlier runs. Returns the count."""
        try:
            stopped = await self._registry.stopped_servers()
        except Exception as exc:
            logger.warning("Could not load stopped servers: %s", exc)
            return 0
        for server_id in stopped:
            self._sessions.get(server_id).suppressed = True
        return len(stopped)

    async def enable_persona(self, server_id: str, alias: str) -> bool:
        try:
            ok = await self._registry.set_enabled(server_id, alias)
        except Exception:
            logger.exception("Error enabling persona %s for server %s", alias, server_id)
            return False
        if ok:
            self._sessions.mark_enabled(server_id, alias)
            logger.info("Enabled persona %s for server %s", alias, server_id)
        return ok

    async def disable_persona(self, server_id: str, alias: str) -> bool:
        try:
            ok = await self._registry.set_disabled(server_id, alias)
        except Exception:
            logger.exception("Error disabling persona %s for server %s", alias, server_id)
            return False
        if ok:
            self._sessions.mark_disabled(server_id, alias)
            logger.info("Disabled persona %s for server %s", alias, server_id)
        return ok

    async def list_personas(self, server_id: str) -> list[Persona]:
        try:
            return await self._load_enabled(server_id)
        except Exception:
            logger.exception("Error listing personas for server %s", server_id)
            return []

    async def _load_enabled(self, server_id: str) -> list[Persona]:
        enabled = await self._registry.get_enabled(server_id)
        self._sessions.set_enabled(server_id, (p.alias for p in enabled))
        return enabled

    async def record_server(self, server_id: str, name: str) -> None:
        """Remember a server's display name; failures are only logged."""
        try:
            await self._registry.update_server(server_id, name)
            logger.info("Updated server info for %s (%s)", name, server_id)
        except Exception as exc:
            logger.error("Error updating server info for %s (%s): %s", name, server_id, exc)
