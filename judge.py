"""
AI judge for externally scored game types.

Sends a played match (e.g. a League of Legends match summary) to Gemini and
asks for one score per ability in [MIN_SCORE, MAX_SCORE]. The reply is
treated as untrusted input: every one of the six abilities must be present,
numeric and in range, otherwise a ValidationError naming the field is raised
and nothing downstream is written.
"""

import json
import logging
import re
from typing import Any

import streamlit as st
from google import genai
from google.genai import types as genai_types

from app_types import AbilityCategory, AbilityScores
from constants import (
    DEFAULT_GEMINI_MODEL,
    JUDGE_MAX_TOKENS,
    JUDGE_TEMPERATURE,
    MAX_SCORE,
    MIN_SCORE,
)
from exceptions import JudgeError, ValidationError
from scoring import floor_score

logger = logging.getLogger("app.judge")

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

SYSTEM_PROMPT = f"""You evaluate a player's performance in a video game match
across six ability categories. Score each category from {MIN_SCORE} (very poor)
to {MAX_SCORE} (outstanding); 0 means average.

Categories:
- mentalFortitudeComposure: handling pressure and staying composed
- adaptabilityDecisionMaking: adapting to changing situations and deciding well
- aimMechanicalSkill: mechanical skill, accuracy and execution
- gameSenseAwareness: map, game and situational awareness
- teamworkCommunication: coordination and communication with teammates
- strategy: planning and tactical execution

Reply with a single JSON object with exactly these six keys and numeric
values. No other text."""


@st.cache_resource
def get_genai_client() -> genai.Client | None:
    """Builds the Gemini client, or returns None when no key is configured."""
    api_key = st.secrets.get("GEMINI_API_KEY")
    if not api_key:
        logger.warning("GEMINI_API_KEY not configured. AI judging is unavailable.")
        return None
    return genai.Client(api_key=api_key)


def get_model_name() -> str:
    return st.secrets.get("GEMINI_MODEL", DEFAULT_GEMINI_MODEL)


def build_prompt(match_payload: Any, mission_context: str | None = None) -> str:
    prompt = "Match result:\n" + json.dumps(match_payload, indent=2, default=str)
    if mission_context:
        prompt += (
            "\n\nMission context (weigh the categories it emphasises):\n"
            + mission_context
        )
    return prompt


def parse_response_text(text: str) -> dict:
    """Extracts the JSON object from the model reply.

    Raises:
        ValidationError: If no JSON object can be decoded.
    """
    match = _JSON_OBJECT.search(text or "")
    if match is None:
        raise ValidationError("Judge response contains no JSON object")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ValidationError(f"Judge response is not valid JSON: {e.msg}") from e
    if not isinstance(parsed, dict):
        raise ValidationError("Judge response is not a JSON object")
    return parsed


def validate_judge_scores(raw: dict) -> AbilityScores:
    """Checks a judge reply and converts it to integer ability scores.

    Keys may use any ability spelling (camelCase, kebab-case, snake_case).

    Raises:
        ValidationError: Naming the first missing, non-numeric or
            out-of-range ability.
    """
    by_ability: dict[AbilityCategory, Any] = {}
    for key, value in raw.items():
        try:
            by_ability[AbilityCategory.from_slug(key)] = value
        except ValueError:
            logger.debug(f"Ignoring unknown judge field: {key}")

    scores: AbilityScores = {}
    for ability in AbilityCategory:
        field_name = ability.camel_key
        value = by_ability.get(ability)
        if value is None:
            raise ValidationError(
                f"Judge response missing required field: {field_name}", field_name
            )
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(
                f"Judge response has invalid score for {field_name}: {value!r}",
                field_name,
            )
        if not MIN_SCORE <= value <= MAX_SCORE:
            raise ValidationError(
                f"Judge response has out-of-range score for {field_name}: {value}",
                field_name,
            )
        scores[ability] = floor_score(value, field_name)
    return scores


def _call_model(client: genai.Client, prompt: str) -> str:
    response = client.models.generate_content(
        model=get_model_name(),
        contents=[
            genai_types.Content(role="user", parts=[genai_types.Part(text=prompt)])
        ],
        config=genai_types.GenerateContentConfig(
            system_instruction=SYSTEM_PROMPT,
            temperature=JUDGE_TEMPERATURE,
            max_output_tokens=JUDGE_MAX_TOKENS,
            response_mime_type="application/json",
        ),
    )
    return response.text or ""


def analyze_result(match_payload: Any, mission_context: str | None = None) -> AbilityScores:
    """Scores a played match on all six abilities.

    Args:
        match_payload: JSON-serialisable match data
        mission_context: Optional mission description to steer the weighting

    Returns:
        One integer score per ability, each in [MIN_SCORE, MAX_SCORE].

    Raises:
        JudgeError: If the judge is not configured or the call fails.
        ValidationError: If the reply violates the six-score contract.
    """
    client = get_genai_client()
    if client is None:
        raise JudgeError("AI judge is not configured")

    try:
        text = _call_model(client, build_prompt(match_payload, mission_context))
    except Exception as e:
        logger.exception("Gemini API call failed: analyze_result")
        raise JudgeError("AI judge request failed") from e

    logger.debug(f"Received judge response: {text}")
    scores = validate_judge_scores(parse_response_text(text))
    logger.info("Judge scored match: %s", {a.value: s for a, s in scores.items()})
    return scores
