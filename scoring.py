"""
Ability score formula.

Converts one game result into per-ability scores:

    raw = base * difficulty_multiplier * rank_modifier * ability_weight_ratio

rounded to the nearest integer and clamped to [MIN_SCORE, MAX_SCORE]. All
functions here are pure.
"""

import logging
import math

from app_types import (
    AbilityCategory,
    AbilityScores,
    AbilityWeightRatios,
    Difficulty,
    PlayerRanks,
    SkillRank,
)
from constants import DIFFICULTY_MULTIPLIERS, MAX_SCORE, MIN_SCORE
from exceptions import ValidationError
from ranking import modifier_for_rank, round_half_up

logger = logging.getLogger("app.scoring")


def clamp_score(value: float) -> int:
    return int(max(MIN_SCORE, min(MAX_SCORE, value)))


def floor_score(value: float | None, field_name: str = "score") -> int | None:
    """Truncates a caller-supplied score towards negative infinity.

    Args:
        value: Numeric score or None
        field_name: Reported in the error when the value is not a number

    Returns:
        The floored integer, or None when value is None.

    Raises:
        ValidationError: If the value is not a finite number.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Invalid score for {field_name}: {value!r}", field_name)
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"Invalid score for {field_name}: {value!r}", field_name
        ) from e
    if not math.isfinite(number):
        raise ValidationError(f"Invalid score for {field_name}: {value!r}", field_name)
    return math.floor(number)


def difficulty_multiplier(difficulty: Difficulty, is_win: bool) -> float:
    """Looks up the multiplier for a difficulty and outcome."""
    win_multiplier, loss_multiplier = DIFFICULTY_MULTIPLIERS[Difficulty(difficulty)]
    return win_multiplier if is_win else loss_multiplier


def compute_ability_score(
    base_score: float,
    difficulty: Difficulty,
    player_rank: SkillRank,
    ability_weight_ratio: float,
    is_win: bool,
) -> int:
    """Computes one ability's contribution from a game result.

    Args:
        base_score: Raw game score (or AI judge score) for this ability
        difficulty: Difficulty the game was played at
        player_rank: Player's current tier for this ability
        ability_weight_ratio: How much the game exercises the ability, in [0, 1]
        is_win: Whether the player won the game

    Returns:
        Integer score clamped to [MIN_SCORE, MAX_SCORE].
    """
    raw = (
        base_score
        * difficulty_multiplier(difficulty, is_win)
        * modifier_for_rank(player_rank)
        * ability_weight_ratio
    )
    return clamp_score(round_half_up(raw))


def compute_game_score(
    base_score: float,
    difficulty: Difficulty,
    is_win: bool,
    player_ranks: PlayerRanks,
    ratios: AbilityWeightRatios,
    default_rank: SkillRank = SkillRank.D,
) -> AbilityScores:
    """Scores every ability a game exercises.

    Abilities with a zero (or missing) ratio are left out of the result
    rather than reported as 0.

    Args:
        base_score: Raw game score shared by all abilities
        difficulty: Difficulty the game was played at
        is_win: Whether the player won
        player_ranks: Player tier per ability; missing entries use default_rank
        ratios: Game weight per ability
        default_rank: Tier used for abilities absent from player_ranks

    Returns:
        Sparse mapping of ability to score.
    """
    scores: AbilityScores = {}
    for ability in AbilityCategory:
        ratio = ratios.get(ability, 0.0)
        if not ratio:
            continue
        scores[ability] = compute_ability_score(
            base_score,
            difficulty,
            player_ranks.get(ability, default_rank),
            ratio,
            is_win,
        )

    logger.debug(
        "Calculated game score: %s", {a.value: s for a, s in scores.items()}
    )
    return scores


def total_game_score(scores: AbilityScores) -> int:
    """Sum of the produced ability scores."""
    return sum(scores.values())
