"""
Ability catalog backed by the Payload CMS.

Missions bundle up to six games, one per ability slot. Games list the
abilities they exercise with a 0-100 weight. This module fetches both
collections and answers the two lookups the scoring engine needs:

- which ability a game is played for inside a mission
- how strongly a game exercises each ability (ratio in [0, 1])

Mission games are modelled as a sparse AbilityCategory -> game map. Two CMS
shapes are accepted: the group object keyed by camelCase ability name, and a
list of {"ability": ..., "game": ...} entries.
"""

import logging
from typing import Any

import requests
import streamlit as st

from app_types import AbilityCategory, AbilityWeightRatios, GameAbilityMap
from constants import (
    CATALOG_REQUEST_TIMEOUT,
    CATALOG_WEIGHT_SCALE,
    DEFAULT_PAYLOAD_URL,
)
from exceptions import CatalogError, NotFoundError

logger = logging.getLogger("app.catalog")


def get_payload_url() -> str:
    return st.secrets.get("PAYLOAD_URL", DEFAULT_PAYLOAD_URL).rstrip("/")


def _get(endpoint: str, params: dict | None = None) -> dict:
    """GETs a Payload REST endpoint and returns the decoded JSON body.

    Raises:
        NotFoundError: On HTTP 404.
        CatalogError: On any other transport or HTTP failure.
    """
    url = f"{get_payload_url()}/api/{endpoint}"
    try:
        response = requests.get(url, params=params, timeout=CATALOG_REQUEST_TIMEOUT)
    except requests.RequestException as e:
        logger.exception(f"Payload CMS request failed: {endpoint}")
        raise CatalogError(f"Catalog request failed: {endpoint}") from e

    if response.status_code == 404:
        raise NotFoundError(f"Catalog resource not found: {endpoint}")
    if not response.ok:
        logger.error(
            f"Payload CMS request failed: {endpoint} "
            f"({response.status_code} {response.reason})"
        )
        raise CatalogError(f"Catalog request failed: {endpoint}")

    try:
        return response.json()
    except ValueError as e:
        logger.exception(f"Payload CMS returned invalid JSON: {endpoint}")
        raise CatalogError(f"Catalog request failed: {endpoint}") from e


def fetch_missions() -> list[dict]:
    """Fetches all missions with their games populated."""
    body = _get("missions", {"limit": 100, "depth": 2})
    return body.get("docs") or []


def fetch_games() -> list[dict]:
    """Fetches all games with their abilities populated."""
    body = _get("games", {"limit": 100, "depth": 1})
    return body.get("docs") or []


def fetch_game(game_slug: str) -> dict:
    """Fetches one game by slug.

    Raises:
        NotFoundError: If no game has the slug.
    """
    body = _get("games", {"where[slug][equals]": game_slug, "depth": 1})
    docs = body.get("docs") or []
    if not docs:
        raise NotFoundError(f"Game with slug '{game_slug}' not found")
    return docs[0]


def _parse_ability(slug: Any) -> AbilityCategory | None:
    if not isinstance(slug, str):
        return None
    try:
        return AbilityCategory.from_slug(slug)
    except ValueError:
        logger.warning(f"Unknown ability slug: {slug}")
        return None


def weight_ratios_from_game(game: dict) -> AbilityWeightRatios:
    """Converts a game's ability entries into weight ratios.

    Each entry carries a slug and an optional 0-100 score; a missing score
    means the game fully exercises the ability. Ratios are clamped to [0, 1];
    entries with a non-numeric score are skipped.
    """
    ratios: AbilityWeightRatios = {}
    for entry in game.get("abilities") or []:
        if not isinstance(entry, dict):
            continue
        ability = _parse_ability(entry.get("slug"))
        if ability is None:
            continue
        score = entry.get("score")
        try:
            ratio = 1.0 if score is None else float(score) / CATALOG_WEIGHT_SCALE
        except (TypeError, ValueError):
            logger.warning(f"Skipping {ability.value}: non-numeric weight {score!r}")
            continue
        ratios[ability] = max(0.0, min(1.0, ratio))
    return ratios


class AbilityCatalog:
    """Read-only view over the mission and game collections."""

    def __init__(self, missions: list[dict], games: list[dict]):
        self.missions = missions
        self.games = games
        self._games_by_slug = {g["slug"]: g for g in games if g.get("slug")}
        self._games_by_id = {g["id"]: g for g in games if g.get("id") is not None}

    @classmethod
    def from_cms(cls) -> "AbilityCatalog":
        """Loads both collections from the Payload CMS."""
        missions = fetch_missions()
        games = fetch_games()
        logger.debug(f"Loaded catalog: {len(missions)} missions, {len(games)} games")
        return cls(missions, games)

    def _resolve_game(self, ref: Any) -> dict | None:
        """Resolves a relationship value (object, id, slug or list) to a game."""
        if ref is None or ref == "":
            return None
        if isinstance(ref, list):
            for item in ref:
                game = self._resolve_game(item)
                if game is not None:
                    return game
            return None
        if isinstance(ref, dict):
            if ref.get("slug"):
                return self._games_by_slug.get(ref["slug"], ref)
            return self._games_by_id.get(ref.get("id"))
        if isinstance(ref, str) and ref in self._games_by_slug:
            return self._games_by_slug[ref]
        return self._games_by_id.get(ref)

    def _mission_slots(self, mission: dict) -> dict[AbilityCategory, dict]:
        slots: dict[AbilityCategory, dict] = {}
        games = mission.get("games")

        if isinstance(games, dict):
            pairs = list(games.items())
        elif isinstance(games, list):
            pairs = [
                (entry.get("ability"), entry.get("game"))
                for entry in games
                if isinstance(entry, dict)
            ]
        else:
            pairs = []

        for ability_slug, ref in pairs:
            ability = _parse_ability(ability_slug)
            if ability is None:
                continue
            game = self._resolve_game(ref)
            if game is not None:
                slots[ability] = game
        return slots

    def get_mission(self, mission_slug: str) -> dict:
        for mission in self.missions:
            if mission.get("slug") == mission_slug:
                return mission
        raise NotFoundError(f"Mission with slug '{mission_slug}' not found")

    def get_games_for_mission(self, mission_slug: str) -> dict[AbilityCategory, dict]:
        """Sparse map of ability slot to game document for one mission.

        Raises:
            NotFoundError: If the mission does not exist.
        """
        return self._mission_slots(self.get_mission(mission_slug))

    def get_ability_weight_ratios(self, game_slug: str) -> AbilityWeightRatios:
        """Weight ratios of one game.

        Falls back to a direct CMS lookup for games not in the loaded list.

        Raises:
            NotFoundError: If the game does not exist.
        """
        game = self._games_by_slug.get(game_slug)
        if game is None:
            game = fetch_game(game_slug)
        return weight_ratios_from_game(game)

    def build_game_ability_map(self) -> GameAbilityMap:
        """Maps every game slug used by a mission to its ability slot.

        A game used for different abilities in different missions keeps the
        slot of the last mission listed.
        """
        mapping: GameAbilityMap = {}
        for mission in self.missions:
            for ability, game in self._mission_slots(mission).items():
                slug = game.get("slug")
                if not slug:
                    continue
                if slug in mapping and mapping[slug] != ability:
                    logger.debug(
                        f"Game '{slug}' remapped from {mapping[slug].value} "
                        f"to {ability.value}"
                    )
                mapping[slug] = ability

        logger.debug(f"Created game to ability map with {len(mapping)} entries")
        return mapping


@st.cache_resource(ttl=300)
def get_catalog() -> AbilityCatalog:
    """Shared catalog instance, refreshed every five minutes."""
    return AbilityCatalog.from_cms()
