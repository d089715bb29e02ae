import pytest

from app_types import SkillRank
from tests.utils import (
    MISSION_ID,
    PLAYER_ID,
    USERNAME,
    InMemoryStore,
    make_catalog,
    make_game,
    patched_store,
)


@pytest.fixture
def store():
    """An empty in-memory store wired into every database gateway."""
    with patched_store(InMemoryStore()) as s:
        yield s


@pytest.fixture
def alice(store):
    """Alice is in mission-1 (still playing) and owns a fresh Spy Card."""
    store.add_user(PLAYER_ID, USERNAME)
    store.add_mission_player(MISSION_ID, PLAYER_ID)
    store.add_spy_card(USERNAME, overall_total=0, overall_rank=SkillRank.D)
    return store


@pytest.fixture
def sample_games():
    """Returns a list of catalog game documents."""
    return [
        make_game("aim-trainer", aimMechanicalSkill=100, gameSenseAwareness=50),
        make_game("chess-blitz", strategy=80, adaptabilityDecisionMaking=None),
        make_game("league-of-legends"),
    ]


@pytest.fixture
def sample_catalog(sample_games):
    """Catalog with one mission using the group-object shape."""
    mission = {
        "slug": "first-contact",
        "games": {
            "aimMechanicalSkill": {"slug": "aim-trainer"},
            "strategy": "chess-blitz",
        },
    }
    return make_catalog(sample_games, [mission])
