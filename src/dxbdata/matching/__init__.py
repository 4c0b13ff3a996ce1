"""
Matching Module

Alert criteria evaluation.
"""
from src.dxbdata.matching.criteria import compared_value, matches, passes_threshold

__all__ = ["matches", "passes_threshold", "compared_value"]
