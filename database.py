# database.py
"""
Database operations for the Spy Card scoring engine.

This module handles all Supabase database interactions for mission players,
Spy Cards, user profiles and game results. All methods translate Supabase
exceptions to DatabaseError for consistent error handling.
"""

import logging
from datetime import datetime, timezone
from typing import Any

import streamlit as st
from supabase import Client, ClientOptions, create_client

from app_types import (
    AbilityCategory,
    MissionPlayerRecord,
    MissionState,
    SkillRank,
    SpyCardProfile,
)
from constants import (
    DEFAULT_DB_SCHEMA,
    GAME_RESULTS_TABLE,
    MISSION_PLAYERS_TABLE,
    SPY_CARDS_TABLE,
    USER_PROFILES_TABLE,
)
from exceptions import DatabaseError
from ranking import rank_for_total

logger = logging.getLogger("app.database")


# Initialize Supabase client; the schema is resolved once here
@st.cache_resource
def get_supabase_client() -> Client:
    url = st.secrets["SUPABASE_URL"]
    key = st.secrets["SUPABASE_KEY"]
    schema = st.secrets.get("SUPABASE_SCHEMA", DEFAULT_DB_SCHEMA)
    return create_client(url, key, options=ClientOptions(schema=schema))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _total_column(ability: AbilityCategory) -> str:
    return f"{ability.column}_total"


def _row_to_mission_player(row: dict) -> MissionPlayerRecord:
    return MissionPlayerRecord(
        mission_id=row["mission_id"],
        player_id=row["player_id"],
        ability_scores={ability: row.get(ability.column) for ability in AbilityCategory},
        score=row.get("score"),
        state=MissionState(row.get("state") or MissionState.PLAYING),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _row_to_spy_card(row: dict) -> SpyCardProfile:
    overall_total = row.get("overall_total") or 0
    stored_rank = row.get("overall_rank")
    return SpyCardProfile(
        username=row["username"],
        ability_totals={
            ability: row.get(_total_column(ability)) or 0 for ability in AbilityCategory
        },
        overall_total=overall_total,
        # Rows written before ranks were stored derive it from the total
        overall_rank=SkillRank(stored_rank) if stored_rank else rank_for_total(overall_total),
        version=row.get("version") or 0,
    )


def _spy_card_to_row(profile: SpyCardProfile) -> dict:
    row: dict[str, Any] = {
        _total_column(ability): profile.ability_totals[ability]
        for ability in AbilityCategory
    }
    row["overall_total"] = profile.overall_total
    row["overall_rank"] = int(profile.overall_rank)
    return row


class MissionPlayerDB:
    """Handles mission-player persistence in Supabase."""

    @staticmethod
    def get_mission_player(mission_id: str, player_id: str) -> MissionPlayerRecord | None:
        """Fetches one mission-player record.

        Returns:
            The record, or None if the player is not in the mission.

        Raises:
            DatabaseError: If the query fails.
        """
        try:
            supabase = get_supabase_client()
            response = (
                supabase.table(MISSION_PLAYERS_TABLE)
                .select("*")
                .eq("mission_id", mission_id)
                .eq("player_id", player_id)
                .execute()
            )
        except Exception as e:
            logger.exception(
                f"Supabase API call failed: get_mission_player '{mission_id}'"
            )
            raise DatabaseError("Failed to fetch mission player from database") from e

        if response.data:
            return _row_to_mission_player(response.data[0])
        return None

    @staticmethod
    def update_mission_player(
        mission_id: str, player_id: str, changes: dict
    ) -> MissionPlayerRecord:
        """Writes a partial set of fields to a mission-player record.

        Args:
            mission_id: Mission the player joined
            player_id: The player's profile id
            changes: Keys are "score", "state" or an AbilityCategory. Only the
                given keys are written.

        Returns:
            The record as stored after the update.

        Raises:
            DatabaseError: If the update fails or no row was updated.
        """
        data: dict[str, Any] = {"updated_at": _now()}
        for key, value in changes.items():
            if isinstance(key, AbilityCategory):
                data[key.column] = value
            elif key == "state":
                data["state"] = MissionState(value).value
            else:
                data[key] = value

        try:
            supabase = get_supabase_client()
            response = (
                supabase.table(MISSION_PLAYERS_TABLE)
                .update(data)
                .eq("mission_id", mission_id)
                .eq("player_id", player_id)
                .execute()
            )
        except Exception as e:
            logger.exception(
                f"Supabase API call failed: update_mission_player '{mission_id}'"
            )
            raise DatabaseError("Failed to update mission player in database") from e

        if response.data:
            return _row_to_mission_player(response.data[0])

        logger.error(
            f"Mission player update returned empty data for '{mission_id}'/'{player_id}'"
        )
        raise DatabaseError("Failed to update mission player - No row returned")

    @staticmethod
    def get_completed_for_player(player_id: str) -> list[MissionPlayerRecord]:
        """Fetches every completed mission-player record of a player.

        Raises:
            DatabaseError: If the query fails.
        """
        try:
            supabase = get_supabase_client()
            response = (
                supabase.table(MISSION_PLAYERS_TABLE)
                .select("*")
                .eq("player_id", player_id)
                .eq("state", MissionState.COMPLETED.value)
                .order("created_at")
                .execute()
            )
        except Exception as e:
            logger.exception("Supabase API call failed: get_completed_for_player")
            raise DatabaseError("Failed to fetch mission history from database") from e

        return [_row_to_mission_player(row) for row in response.data or []]


class SpyCardDB:
    """Handles Spy Card persistence in Supabase."""

    @staticmethod
    def get_spy_card(username: str) -> SpyCardProfile | None:
        """Fetches a user's Spy Card, or None if they have none yet.

        Raises:
            DatabaseError: If the query fails.
        """
        try:
            supabase = get_supabase_client()
            response = (
                supabase.table(SPY_CARDS_TABLE)
                .select("*")
                .eq("username", username)
                .execute()
            )
        except Exception as e:
            logger.exception(f"Supabase API call failed: get_spy_card '{username}'")
            raise DatabaseError(f"Failed to retrieve Spy Card for '{username}'") from e

        if response.data:
            return _row_to_spy_card(response.data[0])
        return None

    @staticmethod
    def create_spy_card(username: str) -> SpyCardProfile:
        """Inserts a Spy Card with zero totals and the lowest rank.

        An existing card is left untouched and returned instead.

        Raises:
            DatabaseError: If the insert fails.
        """
        row = _spy_card_to_row(SpyCardProfile(username=username))
        row["username"] = username
        row["version"] = 0

        try:
            supabase = get_supabase_client()
            supabase.table(SPY_CARDS_TABLE).upsert(
                row, on_conflict="username", ignore_duplicates=True
            ).execute()
        except Exception as e:
            logger.exception(f"Supabase API call failed: create_spy_card '{username}'")
            raise DatabaseError(f"Failed to create Spy Card for '{username}'") from e

        profile = SpyCardDB.get_spy_card(username)
        if profile is None:
            logger.error(f"Spy Card creation returned no row for '{username}'")
            raise DatabaseError(f"Failed to create Spy Card for '{username}'")
        return profile

    @staticmethod
    def write_spy_card(profile: SpyCardProfile, expected_version: int) -> bool:
        """Stores all totals and the rank in one versioned write.

        The row is only updated if its version still equals expected_version;
        the stored version becomes expected_version + 1.

        Returns:
            True if the row was written, False on a version conflict.

        Raises:
            DatabaseError: If the update fails.
        """
        data = _spy_card_to_row(profile)
        data["version"] = expected_version + 1
        data["updated_at"] = _now()

        try:
            supabase = get_supabase_client()
            response = (
                supabase.table(SPY_CARDS_TABLE)
                .update(data)
                .eq("username", profile.username)
                .eq("version", expected_version)
                .execute()
            )
        except Exception as e:
            logger.exception(
                f"Supabase API call failed: write_spy_card '{profile.username}'"
            )
            raise DatabaseError(
                f"Failed to save Spy Card for '{profile.username}'"
            ) from e

        return bool(response.data)

    @staticmethod
    def get_all_usernames() -> list[str]:
        """Fetches every username that owns a Spy Card.

        Raises:
            DatabaseError: If the query fails.
        """
        try:
            supabase = get_supabase_client()
            response = (
                supabase.table(SPY_CARDS_TABLE)
                .select("username")
                .order("username")
                .execute()
            )
        except Exception as e:
            logger.exception("Supabase API call failed: get_all_usernames")
            raise DatabaseError("Failed to fetch Spy Card owners from database") from e

        return [row["username"] for row in response.data or []]


class UserProfileDB:
    """Read-only lookups between player ids and usernames."""

    @staticmethod
    def get_username(player_id: str) -> str | None:
        """Returns the username of a player id, or None if unknown.

        Raises:
            DatabaseError: If the query fails.
        """
        try:
            supabase = get_supabase_client()
            response = (
                supabase.table(USER_PROFILES_TABLE)
                .select("id, username")
                .eq("id", player_id)
                .execute()
            )
        except Exception as e:
            logger.exception("Supabase API call failed: get_username")
            raise DatabaseError("Failed to fetch user profile from database") from e

        if response.data:
            return response.data[0]["username"]
        return None

    @staticmethod
    def get_player_id(username: str) -> str | None:
        """Returns the player id of a username, or None if unknown.

        Raises:
            DatabaseError: If the query fails.
        """
        try:
            supabase = get_supabase_client()
            response = (
                supabase.table(USER_PROFILES_TABLE)
                .select("id, username")
                .eq("username", username)
                .execute()
            )
        except Exception as e:
            logger.exception(f"Supabase API call failed: get_player_id '{username}'")
            raise DatabaseError("Failed to fetch user profile from database") from e

        if response.data:
            return response.data[0]["id"]
        return None


class GameResultDB:
    """Handles raw game result reads in Supabase."""

    @staticmethod
    def get_game_results_for_player(player_id: str) -> list[dict]:
        """Fetches every game result of a player.

        Returns:
            List of dicts with game_slug and game_result (raw JSON payload).

        Raises:
            DatabaseError: If the query fails.
        """
        try:
            supabase = get_supabase_client()
            response = (
                supabase.table(GAME_RESULTS_TABLE)
                .select("game_slug, game_result")
                .eq("player_id", player_id)
                .execute()
            )
        except Exception as e:
            logger.exception("Supabase API call failed: get_game_results_for_player")
            raise DatabaseError("Failed to fetch game results from database") from e

        return response.data if response.data else []
