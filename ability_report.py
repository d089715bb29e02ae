"""
Read-side ability report.

Builds the per-ability summary shown on a player's profile, either from the
raw game_results history (unweighted averages of raw game scores) or from
the persisted Spy Card totals. Both produce the same AbilityReport shape.
"""

import logging
import math
from typing import Any

import pandas as pd

from app_types import AbilityCategory, AbilityReport, AbilityScoreSummary
from catalog import AbilityCatalog, get_catalog
from database import GameResultDB
from ranking import round_half_up
import spy_card_service

logger = logging.getLogger("app.ability_report")

REPORT_MIN = 0.0
REPORT_MAX = 100.0


def round2(value: float) -> float:
    return round_half_up(value * 100) / 100


def extract_score(game_result: Any) -> float | None:
    """Pulls the raw score out of a stored game result payload.

    Tries score, points and totalScore as numbers, then score as a numeric
    string. Returns None when the payload carries no usable score.
    """
    if not isinstance(game_result, dict):
        return None

    for key in ("score", "points", "totalScore"):
        value = game_result.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)

    value = game_result.get("score")
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return None
        if math.isfinite(parsed):
            return parsed
    return None


def _summary(ability: AbilityCategory, average: float, game_count: int) -> AbilityScoreSummary:
    clamped = max(REPORT_MIN, min(REPORT_MAX, average))
    return AbilityScoreSummary(
        ability=ability,
        score=round2(clamped),
        game_count=game_count,
        average_score=round2(average),
    )


def _build_report(summaries: dict[AbilityCategory, AbilityScoreSummary]) -> AbilityReport:
    overall = sum(s.score for s in summaries.values()) / len(summaries)
    return AbilityReport(
        abilities=summaries,
        overall_average=round2(overall),
        total_games=sum(s.game_count for s in summaries.values()),
    )


def calculate_ability_scores(
    player_id: str, catalog: AbilityCatalog | None = None
) -> AbilityReport:
    """Summarises a player's raw game history per ability.

    Each game result is attributed to the ability its game fills in the
    missions; results of unmapped games or without a score are ignored.
    Abilities without games report zeros.

    Raises:
        DatabaseError: If the results cannot be read.
        CatalogError: If the catalog cannot be loaded.
    """
    results = GameResultDB.get_game_results_for_player(player_id)
    game_map = (catalog or get_catalog()).build_game_ability_map()

    rows = []
    for result in results:
        ability = game_map.get(result.get("game_slug"))
        if ability is None:
            continue
        score = extract_score(result.get("game_result"))
        if score is not None:
            rows.append({"ability": ability.value, "score": score})

    logger.debug(
        f"Player '{player_id}': {len(rows)} of {len(results)} game results mapped"
    )

    if rows:
        stats = pd.DataFrame(rows).groupby("ability")["score"].agg(["mean", "count"])
    else:
        stats = pd.DataFrame(columns=["mean", "count"])

    summaries = {}
    for ability in AbilityCategory:
        if ability.value in stats.index:
            row = stats.loc[ability.value]
            summaries[ability] = _summary(ability, float(row["mean"]), int(row["count"]))
        else:
            summaries[ability] = _summary(ability, 0.0, 0)
    return _build_report(summaries)


def get_ability_scores_from_spy_card(username: str) -> AbilityReport:
    """Reports the persisted Spy Card totals in the ability report shape.

    Raises:
        NotFoundError: If the user has no Spy Card.
        DatabaseError: If the query fails.
    """
    profile = spy_card_service.get_spy_card(username)

    summaries = {
        ability: _summary(ability, float(profile.ability_totals[ability]), 0)
        for ability in AbilityCategory
    }
    return _build_report(summaries)
