"""
Persistence gateway for ships and their ratings.

Ships live in the "ship" collection. Ratings live in the "rating" collection,
each one pointing at its parent ship through "ship_id"; nothing here ever
changes that pointer, so a rating belongs to the same ship for its whole life.

Every pymongo failure is re-raised as TransientIOError, except
DuplicateKeyError which callers handle themselves.
"""

import functools
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import TransientIOError

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1)


def to_object_id(value) -> Optional[ObjectId]:
    """ObjectId for a string/ObjectId, or None when the value is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def _io(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except DuplicateKeyError:
            raise
        except PyMongoError as e:
            logger.error(f"{fn.__qualname__} failed: {e}")
            raise TransientIOError(f"{fn.__qualname__} failed: {e}") from e
    return wrapper


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def rating_timestamp(rating: Dict) -> datetime:
    """
    When a rating was made: "created_at", or the legacy "date" field for
    records written before "created_at" existed, or the epoch.
    """
    for field in ("created_at", "date"):
        value = rating.get(field)
        if isinstance(value, datetime):
            return _naive_utc(value)
    return EPOCH


def sort_by_recency(ratings: Iterable[Dict]) -> List[Dict]:
    """Newest first. Ties are broken by insertion order of the ids."""
    return sorted(
        ratings,
        key=lambda r: (rating_timestamp(r), str(r.get("_id", ""))),
        reverse=True,
    )


class ShipStore:
    """Reads and writes the "ship" collection."""

    def __init__(self, db) -> None:
        self._ships = db["ship"]

    def _first(self, query: Dict) -> Optional[Dict]:
        # Oldest record wins when more than one matches.
        return next(iter(self._ships.find(query).sort("_id", ASCENDING).limit(1)), None)

    @_io
    def get(self, ship_id) -> Optional[Dict]:
        oid = to_object_id(ship_id)
        if oid is None:
            return None
        return self._ships.find_one({"_id": oid})

    @_io
    def find_by_imo(self, imo: str) -> Optional[Dict]:
        return self._first({"imo": imo})

    @_io
    def find_by_name(self, name: str) -> Optional[Dict]:
        return self._first({"name": name})

    @_io
    def create(self, name: str, imo: str = "") -> ObjectId:
        doc = {
            "name": name,
            "info": {},
            "means": {},
            "created_at": datetime.now(timezone.utc),
        }
        if imo:
            doc["imo"] = imo
        res = self._ships.insert_one(doc)
        return res.inserted_id

    @_io
    def list(self) -> List[Dict]:
        return list(self._ships.find({}).sort("name", ASCENDING))

    def search(self, term: str) -> List[Dict]:
        """Ships whose name or IMO contains the term, case-insensitively."""
        term = (term or "").strip().lower()
        ships = self.list()
        if not term:
            return ships
        return [
            s for s in ships
            if term in (s.get("name") or "").lower() or term in (s.get("imo") or "").lower()
        ]

    @_io
    def ids(self) -> List[ObjectId]:
        return [doc["_id"] for doc in self._ships.find({}, {"_id": 1})]

    @_io
    def merge_info(self, ship_id, info: Dict) -> None:
        """Overwrite only the info fields present in `info`."""
        if not info:
            return
        update = {f"info.{field}": value for field, value in info.items()}
        self._ships.update_one({"_id": to_object_id(ship_id)}, {"$set": update})

    @_io
    def replace_means(self, ship_id, means: Dict[str, float]) -> None:
        self._ships.update_one(
            {"_id": to_object_id(ship_id)},
            {"$set": {"means": dict(means), "means_updated_at": datetime.now(timezone.utc)}},
        )


class RatingStore:
    """Reads and writes the "rating" collection. Ratings are never updated."""

    def __init__(self, db) -> None:
        self._ratings = db["rating"]

    @_io
    def append(self, ship_id, record: Dict) -> ObjectId:
        doc = dict(record)
        doc.pop("_id", None)
        doc["ship_id"] = to_object_id(ship_id)
        doc["created_at"] = datetime.now(timezone.utc)
        res = self._ratings.insert_one(doc)
        logger.info(f"Appended rating {res.inserted_id} to ship {ship_id}")
        return res.inserted_id

    @_io
    def get(self, rating_id) -> Optional[Dict]:
        oid = to_object_id(rating_id)
        if oid is None:
            return None
        return self._ratings.find_one({"_id": oid})

    @_io
    def list_for_ship(self, ship_id) -> List[Dict]:
        return list(self._ratings.find({"ship_id": to_object_id(ship_id)}))

    @_io
    def list_for_user(self, user_id: str, display_name: Optional[str] = None) -> List[Dict]:
        """
        Ratings submitted by a user. Old records with no "user_id" (missing or null) are
        matched on the display name captured at submission instead.
        """
        clauses = [{"user_id": user_id}]
        if display_name:
            # None matches a missing field as well as an explicit null.
            clauses.append({"user_id": None, "user_display_name": display_name})
        return list(self._ratings.find({"$or": clauses}))

    @_io
    def delete(self, rating_id) -> Optional[Dict]:
        """Remove a rating and return it, or None if it did not exist."""
        oid = to_object_id(rating_id)
        if oid is None:
            return None
        doc = self._ratings.find_one_and_delete({"_id": oid})
        if doc:
            logger.info(f"Deleted rating {oid} of ship {doc.get('ship_id')}")
        return doc
