"""Chat platform adapters."""

from chorus.channels.base import ChatPlatform

__all__ = ["ChatPlatform"]
