"""
Rating submission flow and the per-user rating history.
"""

import logging
from datetime import date, datetime, time, timezone
from typing import Dict, List, Optional, Tuple

from bson import ObjectId

import settings
from aggregates import apply_submission
from errors import Unauthenticated
from normalizer import normalize_submission
from ship_resolver import resolve_ship
from stores import RatingStore, ShipStore, sort_by_recency

logger = logging.getLogger(__name__)


def _as_datetime(value) -> Optional[datetime]:
    # BSON has no date-only type; store midnight UTC.
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return None


def submit_rating(ships: ShipStore, ratings: RatingStore, user: Optional[Dict], raw: Dict) -> Tuple[ObjectId, ObjectId]:
    """
    Store one rating and bring its ship up to date.

    Each step waits for the previous one. Nothing is rolled back if a later
    step fails: the ship may already exist, and the rating may already be
    stored with the ship's means not yet refreshed.

    Returns:
        (ship_id, rating_id)

    Raises:
        Unauthenticated: before any read or write.
        TransientIOError: from any persistence step.
    """
    user_id = (user or {}).get("id")
    if not user_id:
        raise Unauthenticated("A signed-in user is required to rate a ship")

    submission = normalize_submission(raw)
    ship_id = resolve_ship(ships, submission.ship_name, submission.imo, user_id)

    display_name = user.get("display_name") or user.get("name") or settings.DEFAULT_DISPLAY_NAME
    rating_id = ratings.append(ship_id, {
        "user_id": user_id,
        "user_display_name": display_name,
        "disembarkation_date": _as_datetime(raw.get("disembarkation_date")),
        "cabin_type": submission.cabin_type,
        "general_observation": submission.general_observation,
        "items": submission.items,
        "ship_info": submission.ship_info,
    })

    apply_submission(ships, ratings, ship_id, submission.ship_info)
    return ship_id, rating_id


def list_user_ratings(ships: ShipStore, ratings: RatingStore, user: Dict) -> List[Dict]:
    """The user's ratings across all ships, newest first, with ship name and IMO attached."""
    found = ratings.list_for_user(user["id"], user.get("display_name"))
    cache: Dict = {}
    for rating in found:
        ship_id = rating.get("ship_id")
        if ship_id not in cache:
            cache[ship_id] = ships.get(ship_id) or {}
        ship = cache[ship_id]
        rating["ship_name"] = ship.get("name")
        rating["ship_imo"] = ship.get("imo")
    return sort_by_recency(found)
