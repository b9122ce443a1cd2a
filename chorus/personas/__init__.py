"""Persona model, registry and peer-awareness prompt."""

from __future__ import annotations

from chorus.personas.awareness import build_peer_awareness, preview_prompt
from chorus.personas.models import PROVIDER_KINDS, Persona
from chorus.personas.storage import PersonaRegistry

__all__ = [
    "PROVIDER_KINDS",
    "Persona",
    "PersonaRegistry",
    "build_peer_awareness",
    "preview_prompt",
]
