from app_types import Difficulty, SkillRank

# Score Range Constants
MIN_SCORE = -100
MAX_SCORE = 100

# Rank Constants
# Ordered best tier first; rank_for_total walks this table top-down.
RANK_THRESHOLDS = (
    (SkillRank.S, 80),
    (SkillRank.A, 60),
    (SkillRank.B, 40),
    (SkillRank.C, 20),
    (SkillRank.D, 0),
)
LOWEST_RANK = SkillRank.D

# Better tiers earn smaller multipliers
RANK_MODIFIERS = {
    SkillRank.S: 1.0,
    SkillRank.A: 1.2,
    SkillRank.B: 1.4,
    SkillRank.C: 1.6,
    SkillRank.D: 1.8,
}

# Difficulty Constants: (win multiplier, loss multiplier)
DIFFICULTY_MULTIPLIERS = {
    Difficulty.EASY: (0.8, 0.4),
    Difficulty.MEDIUM: (1.0, 0.5),
    Difficulty.HARD: (1.2, 0.7),
}

# Catalog Constants
CATALOG_WEIGHT_SCALE = 100.0
CATALOG_REQUEST_TIMEOUT = 10
DEFAULT_PAYLOAD_URL = "http://localhost:3000"

# Database Constants
DEFAULT_DB_SCHEMA = "gamebox"
MISSION_PLAYERS_TABLE = "mission_players"
SPY_CARDS_TABLE = "spy_cards"
USER_PROFILES_TABLE = "user_profiles"
GAME_RESULTS_TABLE = "game_results"
PROFILE_WRITE_ATTEMPTS = 5

# AI Judge Constants
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
JUDGE_TEMPERATURE = 0.2
JUDGE_MAX_TOKENS = 400
