"""
Analytics Module

Windowed aggregation and derived market metrics.
"""
from src.dxbdata.analytics.aggregator import (
    AggregationBucket,
    TimeWindow,
    WindowedAggregator,
)
from src.dxbdata.analytics.market import MarketAnalytics, VacancySignal, classify_vacancy
from src.dxbdata.analytics.neighborhoods import NeighborhoodAnalytics
from src.dxbdata.analytics.offplan import OffPlanTracker

__all__ = [
    "AggregationBucket",
    "TimeWindow",
    "WindowedAggregator",
    "MarketAnalytics",
    "VacancySignal",
    "classify_vacancy",
    "NeighborhoodAnalytics",
    "OffPlanTracker",
]
