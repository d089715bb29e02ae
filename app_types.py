# app_types.py
"""
Type aliases and data classes for the Spy Card scoring engine.

This module defines the closed ability/rank enumerations, the persisted
record shapes and the report shapes shared by the services.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum

import pandas as pd

# =============================================================================
# Enumerations
# =============================================================================


class AbilityCategory(str, Enum):
    """The six fixed ability dimensions tracked per player."""

    MENTAL_FORTITUDE_COMPOSURE = "mental-fortitude-composure"
    ADAPTABILITY_DECISION_MAKING = "adaptability-decision-making"
    AIM_MECHANICAL_SKILL = "aim-mechanical-skill"
    GAME_SENSE_AWARENESS = "game-sense-awareness"
    TEAMWORK_COMMUNICATION = "teamwork-communication"
    STRATEGY = "strategy"

    @property
    def column(self) -> str:
        """snake_case name used for storage columns."""
        return self.value.replace("-", "_")

    @property
    def camel_key(self) -> str:
        """camelCase name used by the CMS and the AI judge."""
        head, *rest = self.value.split("-")
        return head + "".join(part.capitalize() for part in rest)

    @property
    def label(self) -> str:
        return ABILITY_LABELS[self]

    @classmethod
    def from_slug(cls, slug: str) -> "AbilityCategory":
        """Parses kebab-case, snake_case or camelCase ability names.

        Raises:
            ValueError: If the slug names no known ability.
        """
        for ability in cls:
            if slug in (ability.value, ability.column, ability.camel_key):
                return ability
        raise ValueError(f"Unknown ability slug: {slug}")


ABILITY_LABELS = {
    AbilityCategory.MENTAL_FORTITUDE_COMPOSURE: "Mental Fortitude & Composure",
    AbilityCategory.ADAPTABILITY_DECISION_MAKING: "Adaptability & Decision Making",
    AbilityCategory.AIM_MECHANICAL_SKILL: "Aim & Mechanical Skill",
    AbilityCategory.GAME_SENSE_AWARENESS: "Game Sense & Awareness",
    AbilityCategory.TEAMWORK_COMMUNICATION: "Teamwork & Communication",
    AbilityCategory.STRATEGY: "Strategy",
}


class SkillRank(IntEnum):
    """Rank tiers. Lower value means higher skill (S=1 best, D=5 worst)."""

    S = 1
    A = 2
    B = 3
    C = 4
    D = 5


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class MissionState(str, Enum):
    """Lifecycle of a mission-player record."""

    PLAYING = "playing"
    COMPLETED = "completed"


# =============================================================================
# Basic Type Aliases
# =============================================================================

# Identifiers as stored by the database (UUID strings)
PlayerId = str
MissionId = str
Username = str

# Per-ability integer scores; absent keys mean "not produced"
AbilityScores = dict[AbilityCategory, int]

# Per-ability optional scores used for partial updates (None clears the field)
PartialAbilityScores = dict[AbilityCategory, float | None]

# Per-ability weight of a game, each in [0, 1]
AbilityWeightRatios = dict[AbilityCategory, float]

# Per-ability rank of a player, used by the score formula
PlayerRanks = dict[AbilityCategory, SkillRank]

# Game slug -> ability category it exercises within a mission
GameAbilityMap = dict[str, AbilityCategory]


# =============================================================================
# Persisted Records
# =============================================================================


@dataclass
class MissionPlayerRecord:
    """One row of the mission_players table.

    Attributes:
        mission_id: Mission the player joined
        player_id: The player's profile id
        ability_scores: Sparse map of stored per-ability scores (None = unset)
        score: Overall mission score, or None before scoring
        state: Authoritative lifecycle state
    """

    mission_id: MissionId
    player_id: PlayerId
    ability_scores: dict[AbilityCategory, int | None] = field(default_factory=dict)
    score: int | None = None
    state: MissionState = MissionState.PLAYING
    created_at: str | None = None
    updated_at: str | None = None

    def __post_init__(self) -> None:
        for ability in AbilityCategory:
            self.ability_scores.setdefault(ability, None)

    @property
    def display_state(self) -> MissionState:
        """Hint for UIs: a scored record reads as completed.

        Not authoritative; only complete_mission commits the transition.
        """
        if self.score is not None:
            return MissionState.COMPLETED
        return self.state

    @property
    def is_completed(self) -> bool:
        return self.state == MissionState.COMPLETED


@dataclass
class SpyCardProfile:
    """One row of the spy_cards table.

    Attributes:
        username: Owner of the card
        ability_totals: Accumulated total per ability
        overall_total: Accumulated overall total
        overall_rank: Rank tier derived from overall_total
        version: Optimistic concurrency token, bumped on every write
    """

    username: Username
    ability_totals: dict[AbilityCategory, int] = field(default_factory=dict)
    overall_total: int = 0
    overall_rank: SkillRank = SkillRank.D
    version: int = 0

    def __post_init__(self) -> None:
        for ability in AbilityCategory:
            self.ability_totals.setdefault(ability, 0)


# =============================================================================
# Service Inputs / Results
# =============================================================================


@dataclass
class PlayerScoreEntry:
    """One player's final scores submitted with a mission completion."""

    player_id: PlayerId
    overall_score: float | None = None
    ability_scores: PartialAbilityScores = field(default_factory=dict)


@dataclass
class RecalculationResult:
    """Result of rebuilding a Spy Card from the full mission history.

    Attributes:
        total_score: New overall total (0 when nothing was found)
        overall_rank: New overall rank (None when nothing was found)
        mission_count: Number of completed missions used
        found: False when the user has no completed missions
    """

    username: Username
    total_score: int
    overall_rank: SkillRank | None
    mission_count: int
    found: bool = True


@dataclass
class AbilityScoreSummary:
    """Presentation numbers for one ability."""

    ability: AbilityCategory
    score: float
    game_count: int
    average_score: float

    @property
    def name(self) -> str:
        return self.ability.label


@dataclass
class AbilityReport:
    """Per-ability summaries plus overall figures.

    Produced identically from raw history or from a Spy Card so callers do
    not need to know the source.
    """

    abilities: dict[AbilityCategory, AbilityScoreSummary]
    overall_average: float
    total_games: int

    def to_dataframe(self) -> pd.DataFrame:
        """One row per ability, in enumeration order."""
        rows = [self.abilities[ability] for ability in AbilityCategory]
        return pd.DataFrame(
            {
                "Ability": [s.name for s in rows],
                "Slug": [s.ability.value for s in rows],
                "Score": [s.score for s in rows],
                "Games": [s.game_count for s in rows],
                "Average": [s.average_score for s in rows],
            }
        )
