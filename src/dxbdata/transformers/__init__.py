"""
Transformers Module

Identity resolution for records that carry no explicit unit key.
"""
from src.dxbdata.transformers.identity import (
    UNIT_SIZE_ROUNDING_SQM,
    UnitKey,
    area_key,
    identity_of,
    normalize_name,
    round_size,
)

__all__ = [
    "UNIT_SIZE_ROUNDING_SQM",
    "UnitKey",
    "area_key",
    "identity_of",
    "normalize_name",
    "round_size",
]
