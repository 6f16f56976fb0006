"""
joyrewards.engine.drops — Weighted Sticker Draw
================================================

Pure functions; no DB I/O.  The collection service loads the candidate
stickers and hands them here.

Weights need not sum to 1 (or 100): selection is proportional.  A
collection either uses each sticker's own ``drop_rate`` or rarity tier
percentages, where every sticker in a tier gets an equal share of that
tier's percentage.
"""

from __future__ import annotations

import random
from collections import Counter
from collections.abc import Mapping, Sequence
from typing import Protocol, TypeVar

from joyrewards.errors import EmptyCollection

T = TypeVar("T")


class RarityWeighted(Protocol):
    rarity: str
    drop_rate: float


def draw_one(
    candidates: Sequence[T],
    weights: Sequence[float],
    rng: random.Random | None = None,
) -> T:
    """Pick one candidate with probability proportional to its weight.

    Candidates are walked in the order given, subtracting each weight from
    ``r = uniform(0, total)``; the first one that takes ``r`` to ``<= 0``
    wins.  If float rounding leaves ``r`` positive after the walk, the last
    positively weighted candidate is returned.

    Raises
    ------
    EmptyCollection
        If there are no candidates or no positive weight.
    ValueError
        If lengths differ or a weight is negative.
    """
    if len(candidates) != len(weights):
        raise ValueError("candidates and weights must be the same length")
    if any(w < 0 for w in weights):
        raise ValueError("weights must be non-negative")

    pool = [(c, float(w)) for c, w in zip(candidates, weights) if w > 0]
    if not pool:
        raise EmptyCollection()

    rng = rng or random
    total = sum(w for _, w in pool)
    r = rng.uniform(0, total)

    for candidate, weight in pool:
        r -= weight
        if r <= 0:
            return candidate

    return pool[-1][0]


def tier_drop_rate(tier_percentage: float, stickers_in_tier: int) -> float:
    """Share of a tier's percentage that each sticker in it receives."""
    if stickers_in_tier <= 0:
        return 0.0
    return tier_percentage / stickers_in_tier


def effective_weights(
    stickers: Sequence[RarityWeighted],
    rarity_percentages: Mapping[str, float] | None = None,
) -> list[float]:
    """Weights for *stickers* in the same order.

    Without *rarity_percentages* each sticker's ``drop_rate`` is used as-is.
    With them, a sticker's weight is its tier percentage divided by the
    number of stickers sharing that tier; tiers absent from the mapping
    weigh nothing.
    """
    if not rarity_percentages:
        return [float(s.drop_rate) for s in stickers]

    tier_counts = Counter(s.rarity for s in stickers)
    return [
        tier_drop_rate(float(rarity_percentages.get(s.rarity, 0)), tier_counts[s.rarity])
        for s in stickers
    ]
