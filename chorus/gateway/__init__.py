"""Chorus gateway: routing, typing leases, identity delivery, segmentation."""

from chorus.gateway.identity import IdentityChannel
from chorus.gateway.models import Destination, IdentityHandle, InboundMessage, TranscriptMessage
from chorus.gateway.router import PersonaRouter
from chorus.gateway.segmenter import split_message
from chorus.gateway.selection import choose_responder, extract_trigger, weighted_choice
from chorus.gateway.session import Session, SessionStore
from chorus.gateway.typing_lease import TypingLeases

__all__ = [
    "Destination",
    "IdentityChannel",
    "IdentityHandle",
    "InboundMessage",
    "PersonaRouter",
    "Session",
    "SessionStore",
    "TranscriptMessage",
    "TypingLeases",
    "choose_responder",
    "extract_trigger",
    "split_message",
    "weighted_choice",
]
