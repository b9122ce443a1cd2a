"""Chorus: several LLM personas sharing one Discord server."""

__version__ = "0.1.0"
