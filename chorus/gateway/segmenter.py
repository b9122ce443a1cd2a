"""Split oversized replies into platform-sized chunks without losing text."""

from __future__ import annotations

import re

DEFAULT_LIMIT = 2000

PARAGRAPH_WINDOW = 200
LINE_WINDOW = 100
SENTENCE_WINDOW = 100
SPACE_WINDOW = 50

_SENTENCE_BREAK = re.compile(r"[.!?]\s")


def split_message(text: str, limit: int = DEFAULT_LIMIT) -> list[str]:
    """Split *text* into chunks of at most *limit* characters.

    Cuts prefer, in order: a paragraph break, a line break, the end of a
    sentence, a space, and finally a hard cut at *limit*.  Break characters
    stay at the end of the chunk they close, so ``"".join(chunks) == text``.
    """
    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = _find_cut(remaining, limit)
        chunks.append(remaining[:cut])
        remaining = remaining[cut:]
    if remaining:
        chunks.append(remaining)
    return chunks


def _find_cut(text: str, limit: int) -> int:
    """Return the index to cut *text* at; always in ``1..limit``."""
    paragraph = text.rfind("\n\n", 0, limit)
    if paragraph >= 0 and paragraph > limit - PARAGRAPH_WINDOW:
        return paragraph + 2

    line = text.rfind("\n", 0, limit)
    if line >= 0 and line > limit - LINE_WINDOW:
        return line + 1

    sentence = -1
    for match in _SENTENCE_BREAK.finditer(text, 0, limit):
        sentence = match.end()
    if sentence > 0 and sentence > limit - SENTENCE_WINDOW:
        return sentence

    space = text.rfind(" ", 0, limit)
    if space >= 0 and space > limit - SPACE_WINDOW:
        return space + 1

    return limit
