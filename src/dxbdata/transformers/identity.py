"""
Entity Identity Resolver

The ledger has no unit identifier, so a physical unit is inferred from its
building, its size rounded to a tolerance and its bedroom category.

Known limitation: two different units of the same rounded size in one
building are merged (false merge), and a unit whose recorded size changes
across sales is split (false split). Widening UNIT_SIZE_ROUNDING_SQM trades
fewer splits for more merges.
"""
import math
import re
from typing import NamedTuple, Optional

from config.settings import settings
from src.dxbdata.models.record import Record

# Size tolerance in square meters used when building unit keys
UNIT_SIZE_ROUNDING_SQM: float = settings.unit_size_rounding_sqm

_WHITESPACE = re.compile(r"\s+")


class UnitKey(NamedTuple):
    """Logical unit identity: (building, rounded size, bedroom category)."""

    building: str
    size: float
    rooms: Optional[str]


def normalize_name(name: Optional[str]) -> Optional[str]:
    """
    Trim, collapse whitespace and case-fold a name.

    Returns:
        Normalized name, or None for missing/blank input
    """
    if name is None:
        return None
    cleaned = _WHITESPACE.sub(" ", name).strip()
    if not cleaned:
        return None
    return cleaned.casefold()


def round_size(size: float, step: Optional[float] = None) -> float:
    """Round half-up to the nearest multiple of step."""
    step = step or UNIT_SIZE_ROUNDING_SQM
    return math.floor(size / step + 0.5) * step


def identity_of(record: Record, step: Optional[float] = None) -> Optional[UnitKey]:
    """
    Derive the logical unit key of a record.

    Args:
        record: Transaction record
        step: Size rounding tolerance (defaults to UNIT_SIZE_ROUNDING_SQM)

    Returns:
        UnitKey, or None when building or size is unusable
    """
    building = normalize_name(record.building_name)
    if building is None:
        return None
    if record.size_sqm is None or not record.size_sqm > 0:
        return None
    return UnitKey(
        building=building,
        size=round_size(record.size_sqm, step),
        rooms=normalize_name(record.rooms),
    )


def area_key(record: Record) -> Optional[str]:
    """Normalized area name used to partition units and group analytics."""
    return normalize_name(record.area_name)
