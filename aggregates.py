"""
Per-ship mean scores.

A ship's "means" map is a cache over its ratings: it is always rebuilt from
every rating the ship currently has, never patched incrementally, and always
written back as a whole so that criteria with no remaining scores disappear.

Three call sites share the same computation:
- after a rating is submitted (apply_submission), failures propagate;
- after a rating is deleted (on_rating_deleted), failures are logged only;
- the admin batch job (recompute_all).
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Optional

import settings
from catalog import CRITERIA, aggregate_key
from errors import TransientIOError
from normalizer import coerce_score
from stores import RatingStore, ShipStore

logger = logging.getLogger(__name__)


def _round(value: float, precision: int) -> float:
    quantum = Decimal(1).scaleb(-precision)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def compute_means(ratings: Iterable[Dict], precision: Optional[int] = None) -> Dict[str, float]:
    """
    Mean score per aggregate key over the given rating documents.

    Scores of 0 (unrated) never count. Criterion names missing from the
    catalog are ignored. Keys with no contributing score are left out.
    """
    if precision is None:
        precision = settings.MEANS_PRECISION

    totals: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    for rating in ratings:
        items = rating.get("items")
        if not isinstance(items, dict):
            continue
        for name, entry in items.items():
            key = aggregate_key(name)
            if key is None or not isinstance(entry, dict):
                continue
            score = coerce_score(entry.get("score"))
            if score <= 0:
                continue
            totals[key] = totals.get(key, 0.0) + score
            counts[key] = counts.get(key, 0) + 1

    means = {}
    for criterion in CRITERIA:
        key = aggregate_key(criterion)
        if counts.get(key):
            means[key] = _round(totals[key] / counts[key], precision)
    return means


def recompute_ship_means(ships: ShipStore, ratings: RatingStore, ship_id) -> Dict[str, float]:
    """Rebuild and store a ship's means from all of its current ratings."""
    means = compute_means(ratings.list_for_ship(ship_id))
    ships.replace_means(ship_id, means)
    logger.info(f"Recomputed means for ship {ship_id}: {means}")
    return means


def apply_submission(ships: ShipStore, ratings: RatingStore, ship_id, ship_info: Dict) -> Dict[str, float]:
    """
    Fold a freshly appended rating into its ship.

    Info fields present in the snapshot overwrite the ship's values; fields
    absent from it are left alone. Means are then recomputed from scratch.
    """
    ships.merge_info(ship_id, ship_info)
    return recompute_ship_means(ships, ratings, ship_id)


def on_rating_deleted(ships: ShipStore, ratings: RatingStore, ship_id, rating_id) -> None:
    """
    Deletion trigger. Runs in the background, so there is nobody to report
    a failure to: it is logged and the ship keeps its stale means until the
    next recomputation.
    """
    logger.info(f"Rating {rating_id} removed from ship {ship_id}, recomputing means")
    try:
        recompute_ship_means(ships, ratings, ship_id)
    except TransientIOError:
        logger.exception(f"Abandoned means recomputation for ship {ship_id} after deletion of {rating_id}")
    except Exception:
        logger.exception(f"Abandoned means recomputation for ship {ship_id} after deletion of {rating_id}: unexpected error")
        raise


def recompute_all(ships: ShipStore, ratings: RatingStore) -> int:
    """Recompute every ship's means. Returns the number of ships processed."""
    ship_ids = ships.ids()
    for ship_id in ship_ids:
        recompute_ship_means(ships, ratings, ship_id)
    logger.info(f"Recomputed means for {len(ship_ids)} ships")
    return len(ship_ids)
