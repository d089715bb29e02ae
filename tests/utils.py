import copy
from contextlib import ExitStack, contextmanager
from typing import Generator
from unittest.mock import patch

from app_types import (
    AbilityCategory,
    MissionPlayerRecord,
    MissionState,
    SkillRank,
    SpyCardProfile,
)
from catalog import AbilityCatalog
from database import GameResultDB, MissionPlayerDB, SpyCardDB, UserProfileDB
from exceptions import DatabaseError

MISSION_ID = "mission-1"
PLAYER_ID = "player-1"
USERNAME = "alice"


class InMemoryStore:
    """
    Dict-backed stand-in for the Supabase tables.

    Mirrors the contract of the *DB gateway classes: reads return copies,
    update_mission_player only touches the given fields, and write_spy_card
    honours the optimistic version check.
    """

    def __init__(self):
        self.mission_players: dict[tuple[str, str], MissionPlayerRecord] = {}
        self.spy_cards: dict[str, SpyCardProfile] = {}
        self.usernames: dict[str, str] = {}
        self.game_results: dict[str, list[dict]] = {}
        self.spy_card_writes = 0

    # --- seeding helpers ---

    def add_user(self, player_id: str, username: str) -> None:
        self.usernames[player_id] = username

    def add_mission_player(
        self,
        mission_id: str,
        player_id: str,
        score: int | None = None,
        state: MissionState = MissionState.PLAYING,
        **abilities: int | None,
    ) -> MissionPlayerRecord:
        record = MissionPlayerRecord(
            mission_id=mission_id,
            player_id=player_id,
            ability_scores={
                AbilityCategory.from_slug(key): value for key, value in abilities.items()
            },
            score=score,
            state=state,
        )
        self.mission_players[(mission_id, player_id)] = record
        return record

    def add_spy_card(
        self,
        username: str,
        overall_total: int = 0,
        overall_rank: SkillRank = SkillRank.D,
        **totals: int,
    ) -> SpyCardProfile:
        profile = SpyCardProfile(
            username=username,
            ability_totals={
                AbilityCategory.from_slug(key): value for key, value in totals.items()
            },
            overall_total=overall_total,
            overall_rank=overall_rank,
        )
        self.spy_cards[username] = profile
        return profile

    # --- MissionPlayerDB ---

    def get_mission_player(self, mission_id, player_id):
        return copy.deepcopy(self.mission_players.get((mission_id, player_id)))

    def update_mission_player(self, mission_id, player_id, changes):
        record = self.mission_players.get((mission_id, player_id))
        if record is None:
            raise DatabaseError("Failed to update mission player - No row returned")
        for key, value in changes.items():
            if isinstance(key, AbilityCategory):
                record.ability_scores[key] = value
            elif key == "state":
                record.state = MissionState(value)
            else:
                setattr(record, key, value)
        return copy.deepcopy(record)

    def get_completed_for_player(self, player_id):
        return [
            copy.deepcopy(r)
            for r in self.mission_players.values()
            if r.player_id == player_id and r.state == MissionState.COMPLETED
        ]

    # --- SpyCardDB ---

    def get_spy_card(self, username):
        return copy.deepcopy(self.spy_cards.get(username))

    def create_spy_card(self, username):
        self.spy_cards.setdefault(username, SpyCardProfile(username=username))
        return copy.deepcopy(self.spy_cards[username])

    def write_spy_card(self, profile, expected_version):
        stored = self.spy_cards.get(profile.username)
        if stored is None or stored.version != expected_version:
            return False
        saved = copy.deepcopy(profile)
        saved.version = expected_version + 1
        self.spy_cards[profile.username] = saved
        self.spy_card_writes += 1
        return True

    def get_all_usernames(self):
        return sorted(self.spy_cards)

    # --- UserProfileDB ---

    def get_username(self, player_id):
        return self.usernames.get(player_id)

    def get_player_id(self, username):
        for player_id, name in self.usernames.items():
            if name == username:
                return player_id
        return None

    # --- GameResultDB ---

    def get_game_results_for_player(self, player_id):
        return list(self.game_results.get(player_id, []))


@contextmanager
def patched_store(store: InMemoryStore) -> Generator[InMemoryStore, None, None]:
    """
    Routes every *DB gateway call to the given in-memory store.

    Yields:
        The same store, for assertions on its contents.
    """
    targets = {
        MissionPlayerDB: (
            "get_mission_player",
            "update_mission_player",
            "get_completed_for_player",
        ),
        SpyCardDB: (
            "get_spy_card",
            "create_spy_card",
            "write_spy_card",
            "get_all_usernames",
        ),
        UserProfileDB: ("get_username", "get_player_id"),
        GameResultDB: ("get_game_results_for_player",),
    }
    with ExitStack() as stack:
        for gateway, names in targets.items():
            for name in names:
                stack.enter_context(
                    patch.object(gateway, name, side_effect=getattr(store, name))
                )
        yield store


def make_game(slug: str, **weights: int | None) -> dict:
    """Builds a CMS game document; weights are keyed by camelCase ability."""
    return {
        "id": f"id-{slug}",
        "slug": slug,
        "abilities": [
            {"slug": AbilityCategory.from_slug(key).value, "score": score}
            for key, score in weights.items()
        ],
    }


def make_catalog(games: list[dict], missions: list[dict] | None = None) -> AbilityCatalog:
    return AbilityCatalog(missions=missions or [], games=games)
