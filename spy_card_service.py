"""
Service layer for Spy Card mutations.

A Spy Card is a shared accumulator: every mission a player completes adds to
it. It is only changed through two paths:

- apply_score_change: adds the signed, rank-scaled difference between a
  mission record's old and new scores (incremental path)
- rebuild_spy_card: overwrites all totals from the completed mission history
  (reconciliation path)

Both run the read-modify-write under a per-username lock and store the result
with an optimistic version check, retrying when another writer got there
first.
"""

import logging
import threading
import weakref
from collections.abc import Iterable

from app_types import (
    AbilityCategory,
    MissionPlayerRecord,
    SkillRank,
    SpyCardProfile,
)
from constants import PROFILE_WRITE_ATTEMPTS
from database import SpyCardDB
from exceptions import DatabaseError, NotFoundError
from logger import log_profile_delta
from ranking import modifier_for_rank, rank_for_total, round_half_up, scaled_delta

logger = logging.getLogger("app.spy_card_service")

# Entries disappear once no caller holds the lock
_profile_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = (
    weakref.WeakValueDictionary()
)
_registry_lock = threading.Lock()


def profile_lock(username: str) -> threading.Lock:
    """Returns the lock serialising writes to one user's Spy Card."""
    with _registry_lock:
        lock = _profile_locks.get(username)
        if lock is None:
            lock = threading.Lock()
            _profile_locks[username] = lock
        return lock


def get_spy_card(username: str) -> SpyCardProfile:
    """Fetches a Spy Card.

    Raises:
        NotFoundError: If the user has no Spy Card.
        DatabaseError: If the query fails.
    """
    profile = SpyCardDB.get_spy_card(username)
    if profile is None:
        raise NotFoundError(f"Spy Card for '{username}' not found")
    return profile


def get_or_create_spy_card(username: str) -> SpyCardProfile:
    """Fetches a Spy Card, creating an empty one (rank D) on first use."""
    profile = SpyCardDB.get_spy_card(username)
    if profile is None:
        logger.info(f"Creating Spy Card for '{username}'")
        profile = SpyCardDB.create_spy_card(username)
    return profile


def compute_profile_update(
    profile: SpyCardProfile,
    old_score: int | None,
    new_score: int | None,
    old_abilities: dict[AbilityCategory, int | None],
    new_abilities: dict[AbilityCategory, int | None],
) -> tuple[SpyCardProfile, int, dict[AbilityCategory, int]]:
    """Applies one mission record change to a Spy Card, without storing it.

    Every difference is scaled by the modifier of the card's stored overall
    rank. The new rank is derived from the new overall total only.

    Args:
        profile: Spy Card as currently stored
        old_score: Overall mission score before the change
        new_score: Overall mission score after the change
        old_abilities: Ability scores before the change
        new_abilities: Ability scores supplied with the change; absent
            abilities are unchanged

    Returns:
        Tuple of (updated profile, overall delta, non-zero ability deltas).
    """
    rank = profile.overall_rank
    overall_delta = scaled_delta(old_score, new_score, rank)

    ability_deltas: dict[AbilityCategory, int] = {}
    for ability, new_value in new_abilities.items():
        delta = scaled_delta(old_abilities.get(ability), new_value, rank)
        if delta:
            ability_deltas[ability] = delta

    new_total = profile.overall_total + overall_delta
    updated = SpyCardProfile(
        username=profile.username,
        ability_totals={
            ability: profile.ability_totals[ability] + ability_deltas.get(ability, 0)
            for ability in AbilityCategory
        },
        overall_total=new_total,
        overall_rank=rank_for_total(new_total),
        version=profile.version + 1,
    )
    return updated, overall_delta, ability_deltas


def apply_score_change(
    username: str,
    old_score: int | None,
    new_score: int | None,
    old_abilities: dict[AbilityCategory, int | None],
    new_abilities: dict[AbilityCategory, int | None],
) -> SpyCardProfile:
    """Propagates a mission record change into the owner's Spy Card.

    A change whose deltas are all zero does not write.

    Returns:
        The Spy Card as stored after the change.

    Raises:
        DatabaseError: If reading or writing fails, or every attempt lost a
            version race.
    """
    with profile_lock(username):
        for attempt in range(1, PROFILE_WRITE_ATTEMPTS + 1):
            profile = get_or_create_spy_card(username)
            updated, overall_delta, ability_deltas = compute_profile_update(
                profile, old_score, new_score, old_abilities, new_abilities
            )

            if not overall_delta and not ability_deltas:
                logger.debug(f"No Spy Card change for '{username}'")
                return profile

            if SpyCardDB.write_spy_card(updated, expected_version=profile.version):
                log_profile_delta(
                    logger,
                    username,
                    modifier_for_rank(profile.overall_rank),
                    overall_delta,
                    ability_deltas,
                    updated.overall_total,
                    updated.overall_rank,
                )
                return updated

            logger.warning(
                f"Spy Card for '{username}' changed concurrently "
                f"(attempt {attempt}/{PROFILE_WRITE_ATTEMPTS}), retrying"
            )

    raise DatabaseError(f"Failed to update Spy Card for '{username}' - write conflict")


def rebuild_totals(
    records: Iterable[MissionPlayerRecord], rank: SkillRank
) -> tuple[int, dict[AbilityCategory, int]]:
    """Sums completed mission scores, each scaled by the given rank's modifier.

    Returns:
        Tuple of (overall total, total per ability).
    """
    modifier = modifier_for_rank(rank)
    overall_total = 0
    ability_totals = {ability: 0 for ability in AbilityCategory}

    for record in records:
        if record.score is not None:
            overall_total += round_half_up(record.score * modifier)
        for ability, value in record.ability_scores.items():
            if value is not None:
                ability_totals[ability] += round_half_up(value * modifier)

    return overall_total, ability_totals


def history_rank(records: Iterable[MissionPlayerRecord]) -> SkillRank:
    """Rank implied by the unscaled sum of the overall mission scores."""
    return rank_for_total(
        sum(record.score for record in records if record.score is not None)
    )


def rebuild_spy_card(
    username: str, records: list[MissionPlayerRecord]
) -> SpyCardProfile:
    """Overwrites a Spy Card from the user's completed mission records.

    All historical scores are rescaled with the modifier of the rank their
    unscaled overall sum reaches. The modifier in force when each mission was
    scored is not kept, so this approximates the incremental totals. The
    result depends on the records only, so repeated rebuilds agree.

    Returns:
        The Spy Card as stored after the rebuild.

    Raises:
        DatabaseError: If reading or writing fails, or every attempt lost a
            version race.
    """
    rank = history_rank(records)
    overall_total, ability_totals = rebuild_totals(records, rank)

    with profile_lock(username):
        for attempt in range(1, PROFILE_WRITE_ATTEMPTS + 1):
            profile = get_or_create_spy_card(username)
            rebuilt = SpyCardProfile(
                username=username,
                ability_totals=ability_totals,
                overall_total=overall_total,
                overall_rank=rank_for_total(overall_total),
                version=profile.version + 1,
            )

            if SpyCardDB.write_spy_card(rebuilt, expected_version=profile.version):
                logger.info(
                    f"Rebuilt Spy Card for '{username}': total "
                    f"{profile.overall_total} -> {overall_total}, rank "
                    f"{profile.overall_rank.name} -> {rebuilt.overall_rank.name}"
                )
                return rebuilt

            logger.warning(
                f"Spy Card for '{username}' changed concurrently "
                f"(attempt {attempt}/{PROFILE_WRITE_ATTEMPTS}), retrying"
            )

    raise DatabaseError(f"Failed to rebuild Spy Card for '{username}' - write conflict")
