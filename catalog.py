"""
Criterion catalog.

The fixed, ordered list of criteria a ship is rated on and the short keys
under which their means are stored on the ship document.

Stored ratings reference criteria by name and stored ships reference them by
aggregate key, so a released (name, key) pair can never be renamed or
removed. New criteria are added by appending a new release to
CATALOG_VERSIONS; the check at the bottom of this module refuses to import
a catalog that rewrites an older release.
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple


class Criterion(str, Enum):
    DEVICE = "Embarkation/Disembarkation Device"
    CABIN_TEMP = "Cabin Temperature"
    CABIN_CLEAN = "Cabin Cleanliness"
    BRIDGE_EQUIP = "Bridge - Equipment"
    BRIDGE_TEMP = "Bridge - Temperature"
    FOOD = "Food"
    RELATIONSHIP = "Relationship with Master/Crew"


class CabinType(str, Enum):
    PRT = "PRT"
    OWNER = "OWNER"
    SPARE_OFFICER = "Spare Officer"
    CREW = "Crew"


# Release number -> full (criterion, aggregate key) table of that release.
CATALOG_VERSIONS: Dict[int, Tuple[Tuple[Criterion, str], ...]] = {
    1: (
        (Criterion.DEVICE, "device"),
        (Criterion.CABIN_TEMP, "cabin_temp"),
        (Criterion.CABIN_CLEAN, "cabin_clean"),
        (Criterion.BRIDGE_EQUIP, "bridge_equip"),
        (Criterion.BRIDGE_TEMP, "bridge_temp"),
        (Criterion.FOOD, "food"),
        (Criterion.RELATIONSHIP, "relationship"),
    ),
}

CATALOG_VERSION = max(CATALOG_VERSIONS)
CATALOG: Tuple[Tuple[Criterion, str], ...] = CATALOG_VERSIONS[CATALOG_VERSION]

CRITERIA: List[Criterion] = [criterion for criterion, _ in CATALOG]
AGGREGATE_KEYS: Dict[Criterion, str] = dict(CATALOG)
_KEY_BY_NAME: Dict[str, str] = {criterion.value: key for criterion, key in CATALOG}


def criterion_names() -> List[str]:
    """Criterion names in display order."""
    return [criterion.value for criterion in CRITERIA]


def aggregate_key(name) -> Optional[str]:
    """Aggregate key for a criterion name, or None when the name is not in the catalog."""
    if isinstance(name, Criterion):
        return AGGREGATE_KEYS.get(name)
    return _KEY_BY_NAME.get(name)


def verify_catalog(versions: Dict[int, Tuple[Tuple[Criterion, str], ...]]) -> None:
    """
    Check that every release only appends to the one before it.

    Raises:
        ValueError: a release renames, removes or reorders an older entry,
            or a name/key appears twice.
    """
    previous: Tuple[Tuple[Criterion, str], ...] = ()
    for version in sorted(versions):
        table = versions[version]
        if table[:len(previous)] != previous:
            raise ValueError(f"Catalog release {version} alters an earlier release")
        names = [criterion for criterion, _ in table]
        keys = [key for _, key in table]
        if len(set(names)) != len(names) or len(set(keys)) != len(keys):
            raise ValueError(f"Catalog release {version} repeats a criterion or key")
        previous = table

    latest = versions[max(versions)]
    if [criterion for criterion, _ in latest] != list(Criterion):
        raise ValueError("Criterion enum and latest catalog release disagree")


verify_catalog(CATALOG_VERSIONS)
