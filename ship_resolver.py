"""Find or create the ship a new rating belongs to."""

import logging
from typing import Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from errors import Unauthenticated
from stores import ShipStore

logger = logging.getLogger(__name__)


def resolve_ship(ships: ShipStore, name: str, imo: Optional[str], user_id: Optional[str]) -> ObjectId:
    """
    Return the id of the ship to attach a rating to, creating it if needed.

    A non-empty IMO is the identity: the ship with that IMO is used even if
    its stored name differs. Without an IMO the exact name is looked up.
    Existing ships are never renamed or merged.

    Raises:
        Unauthenticated: no user id, checked before touching the database.
        TransientIOError: the lookup or the insert failed.
    """
    if not user_id:
        raise Unauthenticated("A signed-in user is required to rate a ship")

    name = (name or "").strip()
    imo = (imo or "").strip()

    existing = ships.find_by_imo(imo) if imo else ships.find_by_name(name)
    if existing:
        return existing["_id"]

    try:
        ship_id = ships.create(name, imo)
    except DuplicateKeyError:
        # Another submission created the same IMO first; use theirs.
        existing = ships.find_by_imo(imo)
        if not existing:
            raise
        logger.info(f"Ship with IMO {imo} was created concurrently, reusing {existing['_id']}")
        return existing["_id"]

    logger.info(f"Created ship {ship_id} (name={name!r}, imo={imo or None!r})")
    return ship_id
