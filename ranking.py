"""
Rank engine for the Spy Card.

Maps a cumulative total score onto the five rank tiers (S best, D worst) and
each tier onto the modifier applied to new score contributions. Both are
total functions: every real total yields a tier, every tier a modifier.
"""

import math

from app_types import SkillRank
from constants import LOWEST_RANK, RANK_MODIFIERS, RANK_THRESHOLDS


def rank_for_total(total: float) -> SkillRank:
    """Returns the best tier whose threshold the total meets.

    Args:
        total: Cumulative overall score (may be negative)

    Returns:
        The matching SkillRank; LOWEST_RANK when no threshold is met.
    """
    for rank, threshold in RANK_THRESHOLDS:
        if total >= threshold:
            return rank
    return LOWEST_RANK


def modifier_for_rank(rank: SkillRank) -> float:
    """Multiplier applied to contributions earned at the given tier."""
    return RANK_MODIFIERS[SkillRank(rank)]


def round_half_up(value: float) -> int:
    """Rounds to the nearest integer, halves towards positive infinity
    (2.5 -> 3, -2.5 -> -2), unlike the built-in round().
    """
    return math.floor(value + 0.5)


def scaled_delta(old_value: int | None, new_value: int | None, rank: SkillRank) -> int:
    """Signed, rank-scaled difference between two stored scores.

    Unset scores count as 0.
    """
    difference = (new_value or 0) - (old_value or 0)
    if difference == 0:
        return 0
    return round_half_up(difference * modifier_for_rank(rank))
