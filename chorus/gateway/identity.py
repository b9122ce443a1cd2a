"""Identity channel: deliver replies under a persona's name and avatar.

Replies go out through a per-destination identity resource (a Discord
webhook).  Resources are looked up lazily, reused across restarts when one
owned by this process already exists, and cached until a delivery
through them fails.  Concurrent lookups for one channel share a single
search, so a channel never gets two resources.  Threads borrow the
resource of their parent channel but are cached under their own id.  When
persona delivery fails the reply is posted as the bot itself.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from chorus.channels.base import ChatPlatform
from chorus.gateway.models import Destination, IdentityHandle, InboundMessage
from chorus.gateway.segmenter import DEFAULT_LIMIT, split_message
from chorus.personas.models import Persona

logger = logging.getLogger(__name__)

DeliveryStrategy = Callable[[InboundMessage, list[str], Persona], Awaitable[None]]


class IdentityChannel:
    """Sends chunked replies as a persona, falling back to the bot identity."""

    def __init__(
        self,
        platform: ChatPlatform,
        *,
        identity_name: str = "Chorus",
        limit: int = DEFAULT_LIMIT,
        chunk_delay: float = 0.5,
    ) -> None:
        self._platform = platform
        self._identity_name = identity_name
        self._limit = limit
        self._chunk_delay = chunk_delay
        self._handles: dict[str, IdentityHandle] = {}
        # one lookup per channel at a time; threads share their parent's
        self._pending: dict[str, asyncio.Task[IdentityHandle]] = {}
        self._strategies: list[tuple[str, DeliveryStrategy]] = [
            ("persona identity", self._deliver_as_persona),
            ("bot identity", self._deliver_as_self),
        ]

    async def send(self, message: InboundMessage, text: str, persona: Persona) -> bool:
        """Deliver *text* in reply to *message*.

        Returns ``True`` once any strategy delivered every chunk, ``False``
        when all of them failed.
        """
        chunks = split_message(text, self._limit)
        destination = message.destination

        for name, strategy in self._strategies:
            try:
                await strategy(message, chunks, persona)
            except Exception as exc:
                logger.warning(
                    "Delivery via %s failed in %s: %s", name, destination.id, exc
                )
                continue
            logger.info(
                "Sent response as %s via %s (%d parts)", persona.alias, name, len(chunks)
            )
            return True

        logger.error("Giving up delivering %s's reply in %s", persona.alias, destination.id)
        return False

    async def get_handle(self, destination: Destination) -> IdentityHandle:
        """Return the cached handle for *destination*, creating it if needed."""
        scope_id = destination.identity_scope
        handle = self._handles.get(destination.id) or self._handles.get(scope_id)
        if handle is not None:
            self._handles[destination.id] = handle
            return handle

        task = self._pending.get(scope_id)
        if task is None:
            task = asyncio.create_task(self._find_or_create(scope_id))
            self._pending[scope_id] = task
            task.add_done_callback(lambda _: self._pending.pop(scope_id, None))

        handle = await asyncio.shield(task)
        self._handles[destination.id] = handle
        return handle

    def forget(self, destination: Destination) -> None:
        """Drop the cached handle for *destination* and every destination sharing it."""
        handle = self._handles.pop(destination.id, None)
        if handle is None:
            return
        for key in [k for k, v in self._handles.items() if v is handle]:
            del self._handles[key]
        logger.debug("Forgot identity %s for %s", handle.id, destination.id)

    def cached(self, destination: Destination) -> IdentityHandle | None:
        return self._handles.get(destination.id)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _deliver_as_persona(
        self, message: InboundMessage, chunks: list[str], persona: Persona
    ) -> None:
        destination = message.destination
        handle = await self.get_handle(destination)
        try:
            for index, chunk in enumerate(chunks):
                if index:
                    await asyncio.sleep(self._chunk_delay)
                await self._platform.send_as(
                    handle,
                    destination,
                    chunk,
                    username=persona.alias,
                    avatar_url=persona.avatar_url,
                    reference_id=message.id if index == 0 else None,
                )
        except Exception:
            # the resource may be gone; look it up again next time
            self.forget(destination)
            raise

    async def _deliver_as_self(
        self, message: InboundMessage, chunks: list[str], persona: Persona
    ) -> None:
        destination = message.destination
        for index, chunk in enumerate(chunks):
            if index:
                await asyncio.sleep(self._chunk_delay)
                await self._platform.send(destination, chunk)
            else:
                await self._platform.reply(destination, message.id, chunk)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _find_or_create(self, scope_id: str) -> IdentityHandle:
        existing = await self._platform.list_identities(scope_id)
        if existing:
            logger.debug("Reusing identity %s in channel %s", existing[0].id, scope_id)
            return existing[0]

        handle = await self._platform.create_identity(scope_id, self._identity_name)
        logger.info("Created identity %s in channel %s", handle.id, scope_id)
        return handle
