"""Peer-awareness text appended to a responder's system prompt."""

from __future__ import annotations

from collections.abc import Iterable

from chorus.personas.models import Persona

PROMPT_PREVIEW_CHARS = 100

_INSTRUCTIONS = (
    "\nYou can message these assistants by writing !<alias> in your response. "
    "Feel free to collaborate with them. When another assistant messages you, "
    "answer as you would a human user. Only a message containing !<alias> "
    "reaches that assistant, so if you want one of them to reply you MUST "
    "use the !<alias> format.\n"
    "Always address an assistant by its alias, never by a character it is "
    "role-playing. For example, if !Claude says it is playing Aristotle:\n"
    "- CORRECT: '!Claude, I have a question for you as Aristotle...'\n"
    "- INCORRECT: '!Aristotle, I have a question for you...'"
)


def preview_prompt(prompt: str, limit: int = PROMPT_PREVIEW_CHARS) -> str:
    """Truncate *prompt* to *limit* characters, marking the cut with ``...``."""
    if len(prompt) <= limit:
        return prompt
    return prompt[:limit] + "..."


def build_peer_awareness(enabled: Iterable[Persona], responder_alias: str) -> str:
    """Describe every enabled persona except the responder.

    Returns an empty string when the responder has no peers.
    """
    peers = [p for p in enabled if p.alias != responder_alias]
    if not peers:
        return ""

    lines = ["You can interact with other AI assistants in this server:"]
    for peer in peers:
        lines.append(f"- {peer.mention} ({peer.provider}): {preview_prompt(peer.system_prompt)}")
    return "\n".join(lines) + "\n" + _INSTRUCTIONS


def with_peer_awareness(system_prompt: str, addendum: str) -> str:
    """Join a persona's own instructions and the peer addendum."""
    if not addendum:
        return system_prompt
    if not system_prompt:
        return addendum
    return f"{system_prompt}\n\n{addendum}"
