"""
Null-safe ratio helpers.

A zero, missing or NaN denominator yields None, never infinity or zero.
"""
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional


def _usable(value: Optional[float]) -> bool:
    if value is None:
        return False
    try:
        return not math.isnan(value) and not math.isinf(value)
    except TypeError:
        return False


def round_half_up(value: Optional[float], ndigits: int = 2) -> Optional[float]:
    """Round like SQL ROUND(numeric): halves away from zero."""
    if not _usable(value):
        return None
    quantum = Decimal(1).scaleb(-ndigits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def safe_ratio(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    """numerator / denominator, or None when undefined."""
    if not _usable(numerator) or not _usable(denominator) or denominator == 0:
        return None
    return numerator / denominator


def pct_change(current: Optional[float], previous: Optional[float], ndigits: int = 2) -> Optional[float]:
    """(current - previous) / previous * 100, rounded."""
    if not _usable(current):
        return None
    ratio = safe_ratio(current - previous if _usable(previous) else None, previous)
    if ratio is None:
        return None
    return round_half_up(ratio * 100, ndigits)


def pct_of(part: Optional[float], whole: Optional[float], ndigits: int = 2) -> Optional[float]:
    """part / whole * 100, rounded."""
    ratio = safe_ratio(part, whole)
    if ratio is None:
        return None
    return round_half_up(ratio * 100, ndigits)
