"""
Criteria Matcher

Pure predicate deciding whether a ledger record satisfies an alert's
criteria. Matching never raises: a record with a missing value on a filtered
field simply does not match.
"""
from typing import Optional

from src.dxbdata.models.alert import AlertCriteria, AlertKind
from src.dxbdata.models.record import Record


def _contains(value: Optional[str], needle: Optional[str]) -> bool:
    if not needle:
        return True
    if not value:
        return False
    return needle.casefold() in value.casefold()


def _equals(value: Optional[str], expected: Optional[str]) -> bool:
    if not expected:
        return True
    if not value:
        return False
    return value.strip().casefold() == expected.strip().casefold()


def compared_value(record: Record, kind: AlertKind) -> Optional[float]:
    """Value an alert of this kind compares: unit price or absolute amount."""
    if kind.compares_unit_price:
        return record.unit_price
    return record.amount


def passes_threshold(record: Record, criteria: AlertCriteria) -> bool:
    """
    Strict threshold comparison for the criteria's kind.

    A value exactly equal to the threshold never passes.
    """
    if criteria.kind is AlertKind.ANY_NEW:
        return True

    value = compared_value(record, criteria.kind)
    if value is None or criteria.threshold is None:
        return False
    if criteria.kind.is_below:
        return value < criteria.threshold
    return value > criteria.threshold


def matches(record: Record, criteria: AlertCriteria) -> bool:
    """
    Evaluate criteria against a record.

    Args:
        record: Ledger record
        criteria: Alert criteria

    Returns:
        True when every filtered dimension and the threshold match
    """
    if not _contains(record.area_name, criteria.area_name):
        return False
    if not _contains(record.building_name, criteria.building_name):
        return False
    if not _equals(record.property_type, criteria.property_type):
        return False
    return passes_threshold(record, criteria)
