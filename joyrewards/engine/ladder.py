"""
joyrewards.engine.ladder — Leaderboard Tier Ladder
===================================================

The ladder is inclusive and cumulative: a rank qualifies for every tier
whose threshold it is at or under, so 1st–3rd collect top-3, top-5 and
top-10 rewards, 4th–5th collect top-5 and top-10, 6th–10th collect top-10.
"""

from __future__ import annotations

from collections.abc import Sequence

from joyrewards.constants import TIME_TRIAL_TIERS


def qualifying_tiers(
    rank: int,
    ladder: Sequence[tuple[int, str]] = TIME_TRIAL_TIERS,
) -> list[str]:
    """Reward keys a 1-based *rank* qualifies for, best tier first."""
    if rank < 1:
        return []
    return [key for threshold, key in ladder if rank <= threshold]
