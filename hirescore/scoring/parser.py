"""Tolerant parsing of provider replies into ScoringResult objects.

Replies are expected to hold one JSON object, but models often wrap it in a
fenced block or surrounding prose. The object is located first, then each
field is coerced leniently; absent fields become empty or zero values.

The gating penalty is applied here and only here: the final score is capped
by the number of missing required skills while the breakdown keeps the raw
sub-scores.
"""

import json
import logging
import math
import re
from typing import Any

from hirescore.schemas.scoring import Recommendation, ScoreBreakdown, ScoringResult

logger = logging.getLogger(__name__)

# Missing required skills -> maximum final score
GATING_CAPS = ((3, 40), (2, 55), (1, 75))

DEGRADED_SCORE = 50
DEGRADED_SUMMARY_LENGTH = 300

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")

BREAKDOWN_KEYS = {
    "technical_skills": ("technicalSkills", "technical_skills", "technical"),
    "experience": ("experience",),
    "education": ("education",),
    "career_progression": ("careerProgression", "career_progression", "progression"),
    "communication": ("communication",),
}


class PayloadParseError(ValueError):
    """Raised when no decodable JSON object can be found in a reply."""

    pass


def extract_json_block(content: str) -> str:
    """Locate the JSON object inside a provider reply.

    Handles fenced blocks, leading/trailing prose, trailing commas and
    stray control characters. Applying it to its own output is a no-op.

    Raises:
        PayloadParseError: If the reply holds no JSON object.
    """
    text = content.strip()
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1).strip()

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise PayloadParseError("No JSON object found in response")

    text = text[start:end + 1]
    text = _TRAILING_COMMA_RE.sub(r"\1", text)
    text = _CONTROL_CHARS_RE.sub("", text)
    return text


def decode_payload(content: str) -> dict[str, Any]:
    """Extract and decode the JSON object from a reply.

    Raises:
        PayloadParseError: If nothing decodable is found.
    """
    block = extract_json_block(content)
    try:
        payload = json.loads(block)
    except json.JSONDecodeError as e:
        raise PayloadParseError(f"Invalid JSON in response: {e}") from e
    if not isinstance(payload, dict):
        raise PayloadParseError("Response JSON is not an object")
    return payload


def _pick(payload: dict, *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        # NaN and Infinity are valid JSON to the decoder
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if match:
            return float(match.group())
    return None


def _to_int(value: Any, default: int = 0) -> int:
    number = _to_number(value)
    return default if number is None else int(round(number))


def _to_years(value: Any) -> int:
    """Parse "10", 10, "10+ years" or "10-15" as a non-negative integer."""
    return max(0, _to_int(value))


def _to_confidence(value: Any) -> float | None:
    number = _to_number(value)
    if number is None:
        return None
    if 1 < number <= 100:
        number /= 100
    return min(1.0, max(0.0, number))


def _item_text(item: Any, *keys: str) -> str | None:
    if isinstance(item, str):
        return item.strip() or None
    if isinstance(item, dict):
        value = _pick(item, *keys)
        return str(value).strip() if value is not None else None
    if item is None:
        return None
    return str(item)


def _to_str_list(value: Any, *keys: str) -> list[str]:
    if not isinstance(value, list):
        return []
    items = (_item_text(item, *keys) for item in value)
    return [item for item in items if item]


def _to_partial_matches(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    matches = []
    for item in value:
        if isinstance(item, dict):
            skill = _pick(item, "skill", "name")
            has = _pick(item, "candidateHas", "candidate_has")
            if skill and has:
                matches.append(f"{skill} (have: {has})")
            elif skill:
                matches.append(str(skill))
        elif isinstance(item, str) and item.strip():
            matches.append(item.strip())
    return matches


def _to_breakdown(value: Any) -> ScoreBreakdown | None:
    if not isinstance(value, dict):
        return None
    fields = {
        field: max(0, _to_int(_pick(value, *keys)))
        for field, keys in BREAKDOWN_KEYS.items()
    }
    return ScoreBreakdown(**fields)


def gating_cap(missing_count: int) -> int | None:
    """Maximum allowed score for the number of missing required skills."""
    for threshold, cap in GATING_CAPS:
        if missing_count >= threshold:
            return cap
    return None


def apply_gating(score: int, missing_count: int) -> tuple[int, bool]:
    """Cap a score by missing required skills.

    Returns:
        Tuple of (final score, whether the cap lowered it).
    """
    cap = gating_cap(missing_count)
    if cap is not None and score > cap:
        return cap, True
    return score, False


def build_scoring_result(payload: dict[str, Any]) -> ScoringResult:
    """Build a ScoringResult from a decoded payload, defaulting absent fields."""
    raw_score = min(100, max(0, _to_int(payload.get("score"))))
    missing_skills = _to_str_list(_pick(payload, "missingSkills", "missing_skills"), "skill", "name")
    score, gating_applied = apply_gating(raw_score, len(missing_skills))

    recommendation_value = payload.get("recommendation")
    try:
        recommendation = Recommendation(recommendation_value)
    except ValueError:
        recommendation = None
    if recommendation is None or gating_applied:
        recommendation = Recommendation.from_score(score)

    if gating_applied:
        logger.info(
            f"Gating applied: raw {raw_score}, missing {len(missing_skills)}, final {score}"
        )

    matched_skills = _to_str_list(_pick(payload, "matchedSkills", "matched_skills"), "skill", "name")
    strengths = _to_str_list(payload.get("strengths"))
    relevant_years = _pick(payload, "relevantExperienceYears", "relevant_experience_years")
    skill_match = _to_number(_pick(payload, "skillMatchPercent", "skill_match_percent"))
    confidence_reason = _pick(payload, "confidenceReason", "confidence_reason")

    return ScoringResult(
        score=score,
        recommendation=recommendation,
        summary=str(payload.get("summary") or ""),
        matched_skills=matched_skills,
        missing_skills=missing_skills,
        partial_matches=_to_partial_matches(_pick(payload, "partialMatches", "partial_matches")),
        strengths=strengths or matched_skills[:5],
        concerns=_to_str_list(payload.get("concerns")),
        interview_questions=_to_str_list(
            _pick(payload, "interviewQuestions", "interview_questions"), "question", "text"
        ),
        experience_years=_to_years(_pick(payload, "experienceYears", "experience_years")),
        relevant_experience_years=_to_years(relevant_years) if relevant_years is not None else None,
        confidence=_to_confidence(payload.get("confidence")),
        confidence_reason=str(confidence_reason) if confidence_reason else None,
        breakdown=_to_breakdown(_pick(payload, "scoreBreakdown", "score_breakdown", "breakdown")),
        skill_match_percent=skill_match,
        raw_score=raw_score,
        gating_applied=gating_applied,
    )


def degraded_result(content: str) -> ScoringResult:
    """Neutral result for a reply that could not be decoded at all."""
    text = re.sub(r"\s+", " ", content).strip()
    if len(text) > DEGRADED_SUMMARY_LENGTH:
        text = text[:DEGRADED_SUMMARY_LENGTH].rstrip() + "..."
    summary = "Analysis completed but the response could not be fully parsed."
    if text:
        summary += f" Raw response: {text}"
    return ScoringResult(
        score=DEGRADED_SCORE,
        recommendation=Recommendation.MAYBE,
        summary=summary,
        raw_score=DEGRADED_SCORE,
        degraded=True,
    )


def parse_scoring_response(content: str) -> ScoringResult:
    """Parse a single-candidate reply; never raises for malformed payloads."""
    try:
        payload = decode_payload(content)
    except PayloadParseError as e:
        logger.warning(f"Falling back to degraded result: {e}")
        return degraded_result(content)
    return build_scoring_result(payload)


def parse_batch_response(content: str, candidate_ids: list[str]) -> dict[str, ScoringResult]:
    """Parse an aggregated reply into results keyed by candidate id.

    Entries with unknown or duplicate ids are dropped; callers score any
    candidate missing from the returned mapping individually.

    Raises:
        PayloadParseError: If the reply holds no decodable results array.
    """
    payload = decode_payload(content)
    entries = payload.get("results")
    if not isinstance(entries, list):
        raise PayloadParseError("Aggregated response has no results array")

    expected = set(candidate_ids)
    results: dict[str, ScoringResult] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        candidate_id = _pick(entry, "candidateId", "candidate_id", "id")
        candidate_id = str(candidate_id) if candidate_id is not None else None
        if candidate_id not in expected or candidate_id in results:
            logger.warning(f"Ignoring aggregated entry with id {candidate_id!r}")
            continue
        results[candidate_id] = build_scoring_result(entry)
    return results
