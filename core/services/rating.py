"""Rating math and local form validation for spots."""

from __future__ import annotations

from core.models import SpotFields

DEFAULT_SCALE = 5
MIN_NAME_LENGTH = 2
MIN_RATED_CRITERIA = 3

# (threshold, tier) from best to worst
TIER_THRESHOLDS: list[tuple[float, str]] = [(9.0, "S"), (8.0, "A"), (6.5, "B"), (5.0, "C")]


def overall_score(ratings: dict[str, int], scale: int = DEFAULT_SCALE) -> float:
    """Average of rated criteria mapped onto 0..10, rounded to one decimal.

    Criteria rated 0 count as "not rated" and are ignored.
    """
    filled = [r for r in (ratings or {}).values() if r and r > 0]
    if not filled or scale <= 0:
        return 0.0
    average = sum(filled) / len(filled)
    return round((average / scale) * 10, 1)


def tier_for(score: float) -> str:
    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return "D"


def validate_fields(fields: SpotFields) -> dict[str, str]:
    """Return field -> message for every failed rule; empty when valid."""
    errors: dict[str, str] = {}
    if len((fields.name or "").strip()) < MIN_NAME_LENGTH:
        errors["name"] = f"Name must be at least {MIN_NAME_LENGTH} characters"
    rated = [r for r in (fields.ratings or {}).values() if r and r > 0]
    if len(rated) < MIN_RATED_CRITERIA:
        errors["ratings"] = f"Rate at least {MIN_RATED_CRITERIA} criteria"
    if not fields.category:
        errors["category"] = "Select a category"
    return errors
