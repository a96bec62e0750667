"""
Rating normalizer.

Turns whatever a client sends for a rating into the canonical shape stored
in MongoDB. Every function here is total: malformed input is coerced to a
default, never rejected, so the aggregate code only ever sees clean records.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from catalog import CRITERIA

MIN_SCORE = 1.0
MAX_SCORE = 5.0
UNRATED = 0.0


@dataclass
class NormalizedSubmission:
    ship_name: str
    imo: str
    cabin_type: str
    general_observation: str
    items: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    ship_info: Dict[str, Any] = field(default_factory=dict)


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        value = value.value
    return str(value).strip()


def coerce_score(value) -> float:
    """
    Coerce a raw score to a float in [1.0, 5.0], or 0.0 (unrated).

    Accepts ints, floats and numeric strings using either "," or "." as
    decimal separator. Booleans, NaN/inf, unparseable and out-of-range
    values are all treated as unrated.
    """
    if isinstance(value, bool):
        return UNRATED
    if isinstance(value, (int, float)):
        score = float(value)
    elif isinstance(value, str):
        try:
            score = float(value.strip().replace(",", "."))
        except ValueError:
            return UNRATED
    else:
        return UNRATED

    if not math.isfinite(score) or not MIN_SCORE <= score <= MAX_SCORE:
        return UNRATED
    return score


def normalize_entry(entry) -> Dict[str, Any]:
    """Coerce one {"score", "note"} entry; anything that is not a map counts as unrated."""
    if not isinstance(entry, dict):
        entry = {}
    return {"score": coerce_score(entry.get("score")), "note": _text(entry.get("note"))}


def normalize_items(raw) -> Dict[str, Dict[str, Any]]:
    """Return {criterion name: {"score", "note"}} covering every catalog criterion."""
    raw = raw if isinstance(raw, dict) else {}
    items = {}
    for criterion in CRITERIA:
        items[criterion.value] = normalize_entry(raw.get(criterion.value))
    return items


def coerce_cabin_count(value) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        count = value
    elif isinstance(value, float) and value.is_integer():
        count = int(value)
    elif isinstance(value, str):
        try:
            count = int(value.strip())
        except ValueError:
            return 0
    else:
        return 0
    return max(count, 0)


def normalize_ship_info(raw) -> Dict[str, Any]:
    """
    Normalize the ship details a submitter filled in.

    Only fields the submitter actually sent (non-null) appear in the result,
    so merging it into a ship never erases what an earlier submitter set.
    A blank nationality counts as not sent.
    """
    if not isinstance(raw, dict):
        return {}

    info: Dict[str, Any] = {}
    nationality = _text(raw.get("crew_nationality"))
    if nationality:
        info["crew_nationality"] = nationality
    if raw.get("cabin_count") is not None:
        info["cabin_count"] = coerce_cabin_count(raw["cabin_count"])
    if raw.get("has_minibar") is not None:
        info["has_minibar"] = raw["has_minibar"] is True
    if raw.get("has_sink") is not None:
        info["has_sink"] = raw["has_sink"] is True
    return info


def normalize_submission(raw) -> NormalizedSubmission:
    raw = raw if isinstance(raw, dict) else {}
    return NormalizedSubmission(
        ship_name=_text(raw.get("ship_name")),
        imo=_text(raw.get("imo")),
        cabin_type=_text(raw.get("cabin_type")),
        general_observation=_text(raw.get("general_observation")),
        items=normalize_items(raw.get("items")),
        ship_info=normalize_ship_info(raw.get("ship_info")),
    )
