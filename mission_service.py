"""
Service layer for mission scoring.

This module sits between the API layer and the lower-level scoring/database
modules. Score edits made while a mission is being played are stored on the
mission-player record only; the Spy Card is updated when the mission is
completed (or rebuilt from history on request).
"""

import logging
from collections.abc import Mapping

from app_types import (
    AbilityCategory,
    AbilityWeightRatios,
    Difficulty,
    MissionPlayerRecord,
    MissionState,
    PartialAbilityScores,
    PlayerRanks,
    PlayerScoreEntry,
    RecalculationResult,
    SkillRank,
)
from catalog import AbilityCatalog, get_catalog
from database import MissionPlayerDB, SpyCardDB, UserProfileDB
from exceptions import NotFoundError, SpyCardAppError, ValidationError
import judge
import spy_card_service
from scoring import (
    compute_ability_score,
    compute_game_score,
    floor_score,
    total_game_score,
)

logger = logging.getLogger("app.mission_service")


def get_mission_player(mission_id: str, player_id: str) -> MissionPlayerRecord:
    """Fetches a mission-player record.

    Raises:
        NotFoundError: If the player is not part of the mission.
        DatabaseError: If the query fails.
    """
    record = MissionPlayerDB.get_mission_player(mission_id, player_id)
    if record is None:
        raise NotFoundError(
            f"Player '{player_id}' is not part of mission '{mission_id}'"
        )
    return record


def normalize_ability_scores(
    partial_scores: Mapping,
) -> dict[AbilityCategory, int | None]:
    """Parses ability keys and floors every non-null score.

    Keys may be AbilityCategory members or any ability slug spelling.

    Raises:
        ValidationError: On an unknown ability or a non-numeric score.
    """
    normalized: dict[AbilityCategory, int | None] = {}
    for key, value in partial_scores.items():
        try:
            ability = (
                key if isinstance(key, AbilityCategory) else AbilityCategory.from_slug(key)
            )
        except ValueError as e:
            raise ValidationError(f"Unknown ability: {key}", str(key)) from e
        normalized[ability] = floor_score(value, ability.camel_key)
    return normalized


def update_overall_score(
    mission_id: str, player_id: str, new_score: float | None
) -> MissionPlayerRecord:
    """Stores a player's overall mission score.

    Only the score field is written; ability scores, state and the Spy Card
    are untouched.

    Raises:
        NotFoundError: If the player is not part of the mission.
        ValidationError: If the score is not a number.
        DatabaseError: If the update fails.
    """
    score = floor_score(new_score)
    previous = get_mission_player(mission_id, player_id)

    record = MissionPlayerDB.update_mission_player(
        mission_id, player_id, {"score": score}
    )
    logger.info(
        f"Mission '{mission_id}' player '{player_id}': score "
        f"{previous.score} -> {record.score}"
    )
    return record


def update_ability_scores(
    mission_id: str, player_id: str, partial_scores: PartialAbilityScores
) -> MissionPlayerRecord:
    """Stores some of a player's ability scores.

    Abilities absent from partial_scores are left as stored. The Spy Card is
    not updated.

    Raises:
        NotFoundError: If the player is not part of the mission.
        ValidationError: On an unknown ability or a non-numeric score.
        DatabaseError: If the update fails.
    """
    changes = normalize_ability_scores(partial_scores)
    record = get_mission_player(mission_id, player_id)
    if not changes:
        return record

    record = MissionPlayerDB.update_mission_player(mission_id, player_id, dict(changes))
    logger.info(
        f"Mission '{mission_id}' player '{player_id}': updated "
        f"{', '.join(a.value for a in changes)}"
    )
    return record


def _propagate_to_spy_card(
    player_id: str,
    previous: MissionPlayerRecord,
    record: MissionPlayerRecord,
) -> None:
    username = UserProfileDB.get_username(player_id)
    if username is None:
        raise NotFoundError(f"No user profile for player '{player_id}'")

    # Provisional scores of a playing record have not reached the card yet
    if previous.is_completed:
        old_score, old_abilities = previous.score, previous.ability_scores
    else:
        old_score, old_abilities = None, {}

    spy_card_service.apply_score_change(
        username,
        old_score=old_score,
        new_score=record.score,
        old_abilities=old_abilities,
        new_abilities=record.ability_scores,
    )


def complete_mission(
    mission_id: str, player_scores: list[PlayerScoreEntry]
) -> list[MissionPlayerRecord]:
    """Finalizes a mission for each listed player and updates their Spy Cards.

    Players are processed in order and independently. A player whose record
    cannot be read or written is logged and left out of the result. A Spy
    Card that fails to update is logged only; the mission record stays
    completed and the card can be repaired with
    recalculate_profile_from_history.

    Args:
        mission_id: Mission being completed
        player_scores: Final overall score (None keeps the stored one) and
            any final ability scores per player

    Returns:
        The completed records of the players that were stored.
    """
    completed: list[MissionPlayerRecord] = []

    for entry in player_scores:
        try:
            supplied = normalize_ability_scores(entry.ability_scores)
            new_score = floor_score(entry.overall_score)
            previous = get_mission_player(mission_id, entry.player_id)

            changes: dict = dict(supplied)
            if new_score is not None:
                changes["score"] = new_score
            changes["state"] = MissionState.COMPLETED

            record = MissionPlayerDB.update_mission_player(
                mission_id, entry.player_id, changes
            )
        except SpyCardAppError as e:
            logger.error(
                f"Skipping player '{entry.player_id}' in mission '{mission_id}': {e}"
            )
            continue

        completed.append(record)

        try:
            _propagate_to_spy_card(entry.player_id, previous, record)
        except Exception:
            logger.exception(
                f"Spy Card update failed for player '{entry.player_id}' "
                f"after completing mission '{mission_id}'"
            )

    logger.info(
        f"Completed mission '{mission_id}' for {len(completed)}/"
        f"{len(player_scores)} player(s)"
    )
    return completed


def recalculate_profile_from_history(username: str) -> RecalculationResult:
    """Rebuilds a Spy Card from every completed mission of the user.

    Historical scores are rescaled with the modifier of the rank their
    unscaled overall sum reaches, so repeated runs give the same card.
    Nothing is written when the user has no completed mission.

    Raises:
        NotFoundError: If the username is unknown.
        DatabaseError: If a query or the write fails.
    """
    player_id = UserProfileDB.get_player_id(username)
    if player_id is None:
        raise NotFoundError(f"User '{username}' not found")

    records = MissionPlayerDB.get_completed_for_player(player_id)
    if not records:
        logger.info(f"No scores found for '{username}', Spy Card left unchanged")
        return RecalculationResult(
            username=username,
            total_score=0,
            overall_rank=None,
            mission_count=0,
            found=False,
        )

    profile = spy_card_service.rebuild_spy_card(username, records)
    return RecalculationResult(
        username=username,
        total_score=profile.overall_total,
        overall_rank=profile.overall_rank,
        mission_count=len(records),
    )


def current_player_ranks(player_id: str) -> PlayerRanks:
    """Rank used for every ability of a player when scoring a new game.

    The Spy Card keeps one overall rank; players without a card are D.
    """
    rank = SkillRank.D
    username = UserProfileDB.get_username(player_id)
    if username is not None:
        profile = SpyCardDB.get_spy_card(username)
        if profile is not None:
            rank = profile.overall_rank
    return {ability: rank for ability in AbilityCategory}


def record_game_score(
    mission_id: str,
    player_id: str,
    game_slug: str,
    base_score: float,
    difficulty: Difficulty,
    is_win: bool,
    player_ranks: PlayerRanks | None = None,
    catalog: AbilityCatalog | None = None,
) -> MissionPlayerRecord:
    """Scores a locally played game and stores it as provisional ability scores.

    Args:
        mission_id: Mission the game belongs to
        player_id: The player's profile id
        game_slug: Catalog slug of the game played
        base_score: Raw game score
        difficulty: Difficulty the game was played at
        is_win: Whether the player won
        player_ranks: Rank per ability; defaults to the Spy Card rank
        catalog: Catalog to read weights from; defaults to the shared one

    Raises:
        NotFoundError: If the player is not in the mission or the game is unknown.
    """
    get_mission_player(mission_id, player_id)
    ratios = (catalog or get_catalog()).get_ability_weight_ratios(game_slug)
    ranks = player_ranks or current_player_ranks(player_id)

    scores = compute_game_score(base_score, difficulty, is_win, ranks, ratios)
    if not scores:
        logger.warning(f"Game '{game_slug}' exercises no ability; nothing stored")
        return get_mission_player(mission_id, player_id)

    logger.info(
        f"Game '{game_slug}' scored {total_game_score(scores)} for player '{player_id}'"
    )
    return update_ability_scores(mission_id, player_id, scores)


def record_judged_game_score(
    mission_id: str,
    player_id: str,
    game_slug: str,
    match_payload: dict,
    difficulty: Difficulty,
    is_win: bool,
    mission_context: str | None = None,
    player_ranks: PlayerRanks | None = None,
    catalog: AbilityCatalog | None = None,
) -> MissionPlayerRecord:
    """Scores an externally judged game and stores provisional ability scores.

    The AI judge returns one raw score per ability, each of which is run
    through the score formula with the game's weight. A game without catalog
    weights counts fully towards all six abilities.

    Raises:
        NotFoundError: If the player is not in the mission or the game is unknown.
        ValidationError: If the judge reply is malformed; nothing is stored.
        JudgeError: If the judge is unavailable.
    """
    get_mission_player(mission_id, player_id)
    raw_scores = judge.analyze_result(match_payload, mission_context)

    ratios: AbilityWeightRatios = (
        catalog or get_catalog()
    ).get_ability_weight_ratios(game_slug)
    if not ratios:
        ratios = {ability: 1.0 for ability in AbilityCategory}
    ranks = player_ranks or current_player_ranks(player_id)

    scores = {
        ability: compute_ability_score(
            raw_scores[ability],
            difficulty,
            ranks.get(ability, SkillRank.D),
            ratio,
            is_win,
        )
        for ability, ratio in ratios.items()
        if ratio
    }
    return update_ability_scores(mission_id, player_id, scores)
