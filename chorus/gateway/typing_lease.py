"""Typing leases: keep the "is typing" indicator alive during generation.

Discord's indicator expires after roughly ten seconds, so a lease sends one
signal immediately and renews it from a background task until released.
"""

from __future__ import annotations

import asyncio
import logging

from chorus.channels.base import ChatPlatform
from chorus.gateway.models import Destination

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 8.0


class TypingLeases:
    """At most one renewing typing signal per destination."""

    def __init__(self, platform: ChatPlatform, interval: float = DEFAULT_INTERVAL) -> None:
        self._platform = platform
        self._interval = interval
        self._leases: dict[str, asyncio.Task[None]] = {}
        self._holders: dict[str, int] = {}

    async def start(self, destination: Destination) -> bool:
        """Open a lease on *destination*, or join the one already live.

        Every successful call must be paired with one :meth:`stop`; the
        indicator keeps running until the last holder releases it.  Returns
        ``False`` when the first signal could not be sent, in which case no
        lease is recorded and the caller must not call :meth:`stop`.
        """
        if destination.id in self._leases:
            self._holders[destination.id] += 1
            return True

        try:
            await self._platform.send_typing(destination)
        except Exception as exc:
            logger.warning("Could not start typing in %s: %s", destination.id, exc)
            return False

        # another start() may have won while we were awaiting
        if destination.id in self._leases:
            self._holders[destination.id] += 1
            return True

        self._leases[destination.id] = asyncio.create_task(
            self._renew(destination), name=f"typing-{destination.id}"
        )
        self._holders[destination.id] = 1
        logger.debug("Started typing indicator in %s", destination.id)
        return True

    def stop(self, destination: Destination) -> None:
        """Release one hold on *destination*'s lease; a no-op if there is none."""
        if destination.id not in self._leases:
            return
        remaining = self._holders.get(destination.id, 1) - 1
        if remaining > 0:
            self._holders[destination.id] = remaining
            return

        self._holders.pop(destination.id, None)
        task = self._leases.pop(destination.id)
        task.cancel()
        logger.debug("Stopped typing indicator in %s", destination.id)

    def active(self, destination: Destination) -> bool:
        return destination.id in self._leases

    async def close(self) -> None:
        """Cancel every live lease and wait for the renewal tasks to finish."""
        tasks = list(self._leases.values())
        self._leases.clear()
        self._holders.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def __len__(self) -> int:
        return len(self._leases)

    async def _renew(self, destination: Destination) -> None:
        me = asyncio.current_task()
        try:
            while True:
                await asyncio.sleep(self._interval)
                if self._leases.get(destination.id) is not me:
                    return
                if not await self._platform.is_available(destination):
                    logger.debug("Destination %s is gone; dropping typing lease", destination.id)
                    break
                await self._platform.send_typing(destination)
        except Exception as exc:
            logger.warning("Error maintaining typing indicator in %s: %s", destination.id, exc)

        if self._leases.get(destination.id) is me:
            del self._leases[destination.id]
            self._holders.pop(destination.id, None)
