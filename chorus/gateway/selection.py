"""Trigger extraction and probabilistic persona selection."""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Protocol, TypeVar

from chorus.personas.models import Persona

TRIGGER_PATTERN = re.compile(r"!([A-Za-z0-9_-]+)")

T = TypeVar("T")


class RandomSource(Protocol):
    """Anything with a ``random()`` method returning a float in ``[0, 1)``."""

    def random(self) -> float: ...


def extract_trigger(text: str) -> str | None:
    """Return the alias of the first ``!alias`` mention in *text*, if any."""
    match = TRIGGER_PATTERN.search(text)
    return match.group(1) if match else None


def weighted_choice(items: Sequence[T], weights: Sequence[float], rng: RandomSource) -> T | None:
    """Pick one item with probability proportional to its weight.

    Items are walked in the given order; the first whose cumulative weight
    exceeds the draw wins.
    """
    if not items or len(items) != len(weights):
        return None

    draw = rng.random() * sum(weights)
    cumulative = 0.0
    for item, weight in zip(items, weights, strict=True):
        cumulative += weight
        if draw < cumulative:
            return item
    # float rounding can leave the draw at the very top of the range
    return items[-1]


def choose_responder(personas: Sequence[Persona], rng: RandomSource) -> Persona | None:
    """Decide whether anyone answers an unaddressed message, and who.

    The first draw gates on the highest configured probability, so adding a
    low-probability persona never raises the overall response rate.  The
    second draw picks one persona weighted by its own probability.
    """
    eligible = [p for p in personas if p.response_probability > 0]
    if not eligible:
        return None

    highest = max(p.response_probability for p in eligible)
    if rng.random() >= highest:
        return None

    return weighted_choice(eligible, [p.response_probability for p in eligible], rng)
