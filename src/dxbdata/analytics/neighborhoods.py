"""
Neighborhood analytics: amenity mix per area, metro and mall catchments, the
unit-price premium of transactions near a metro station and the property type
breakdown.
"""
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Union

from src.dxbdata.analytics.aggregator import (
    ATTRIBUTE_KEYS,
    AggregationBucket,
    TimeWindow,
    WindowedAggregator,
    records_in_window,
)
from src.dxbdata.analytics.market import filter_records
from src.dxbdata.analytics.ratios import pct_change, round_half_up
from src.dxbdata.models.record import Record


def _positive_unit_price(record: Record) -> Optional[float]:
    if record.unit_price is None or record.unit_price <= 0:
        return None
    return record.unit_price


def _sub_type_or_blank(record: Record) -> str:
    # keeps types without a sub type as their own group
    return ATTRIBUTE_KEYS["property_sub_type"](record) or ""


def _most_common(buckets: List[AggregationBucket]) -> Optional[str]:
    """Key of the largest bucket; ties go to the first key in sort order."""
    if not buckets:
        return None
    return max(buckets, key=lambda b: b.count).key[0]


class NeighborhoodAnalytics:

    def __init__(self, now: Optional[Union[date, datetime]] = None):
        self.now = now
        self.aggregator = WindowedAggregator(now=now)

    def _top(self, records: List[Record], key: str, label: str, limit: int) -> List[dict]:
        buckets = self.aggregator.aggregate(records, key)
        buckets.sort(key=lambda b: b.count, reverse=True)
        return [{label: b.key[0], "properties": b.count} for b in buckets[:limit]]

    def area_profile(self, transactions: Iterable[Record], area: str) -> Optional[dict]:
        """Stats, nearby amenities, property mix and top developers of an area."""
        records = filter_records(transactions, area=area)
        if not records:
            return None

        stats = {
            "area": records[0].area_name,
            "total_transactions": len(records),
            "buildings": len({r.building_name for r in records if r.building_name}),
            "projects": len({r.project_name for r in records if r.project_name}),
            "avg_price": round_half_up(_mean([r.amount for r in records])),
            "avg_price_sqm": round_half_up(_mean([r.unit_price for r in records])),
            "first_transaction": min(r.event_date for r in records),
            "latest_transaction": max(r.event_date for r in records),
        }

        mix = self.aggregator.aggregate(records, ["property_type", "property_sub_type"], "unit_price")
        mix.sort(key=lambda b: b.count, reverse=True)
        developers = self.aggregator.aggregate(records, "developer", "unit_price")
        developers.sort(key=lambda b: b.count, reverse=True)

        return {
            "stats": stats,
            "nearby": {
                "metros": self._top(records, "metro", "metro", 5),
                "malls": self._top(records, "mall", "mall", 5),
                "landmarks": self._top(records, "landmark", "landmark", 5),
            },
            "property_mix": [
                {
                    "property_type": b.key[0],
                    "property_sub_type": b.key[1],
                    "count": b.count,
                    "avg_price_sqm": round_half_up(b.mean),
                }
                for b in mix[:10]
            ],
            "top_developers": [
                {
                    "developer": b.key[0],
                    "projects_sold": b.count,
                    "avg_price_sqm": round_half_up(b.mean),
                }
                for b in developers[:10]
            ],
        }

    def metros(self, transactions: Iterable[Record], max_areas: int = 10) -> List[dict]:
        """Metro stations with the areas they serve, busiest first."""
        records = list(transactions)
        served = {}
        for b in self.aggregator.aggregate(records, ["metro", "area"]):
            served.setdefault(b.key[0], []).append(b.key[1])

        rows = []
        for b in self.aggregator.aggregate(records, "metro", "unit_price"):
            areas = sorted(served.get(b.key[0], []))
            rows.append({
                "metro": b.key[0],
                "areas_served": len(areas),
                "total_transactions": b.count,
                "avg_price_sqm": round_half_up(b.mean),
                "areas": areas[:max_areas],
            })
        rows.sort(key=lambda row: row["total_transactions"], reverse=True)
        return rows

    def malls(self, transactions: Iterable[Record], limit: int = 50) -> List[dict]:
        """Malls with the number of areas they serve, busiest first."""
        records = list(transactions)
        served = {}
        for b in self.aggregator.aggregate(records, ["mall", "area"]):
            served[b.key[0]] = served.get(b.key[0], 0) + 1

        rows = [
            {
                "mall": b.key[0],
                "areas_served": served.get(b.key[0], 0),
                "total_transactions": b.count,
                "avg_price_sqm": round_half_up(b.mean),
            }
            for b in self.aggregator.aggregate(records, "mall", "unit_price")
        ]
        rows.sort(key=lambda row: row["total_transactions"], reverse=True)
        return rows[:limit]

    def compare_neighborhoods(
        self,
        transactions: Iterable[Record],
        areas: Union[str, Sequence[str]],
        years: int = 2,
    ) -> List[dict]:
        """
        Side-by-side amenity comparison of areas over a trailing window.

        Args:
            transactions: Transaction records
            areas: Area substrings, or one comma-separated string of them
            years: Trailing window length

        Returns:
            One row per term that matched, in the order given. A term that
            matches several areas reports the busiest of them.

        Raises:
            ValueError: If no area term is given
        """
        terms = areas.split(",") if isinstance(areas, str) else list(areas)
        terms = [term.strip() for term in terms if term and term.strip()]
        if not terms:
            raise ValueError("At least one area is required")

        recent = records_in_window(transactions, TimeWindow(years=years), self.now)
        rows = []
        for term in terms:
            matched = filter_records(recent, area=term)
            buckets = self.aggregator.aggregate(matched, "area", "unit_price")
            if not buckets:
                continue
            busiest = max(buckets, key=lambda b: b.count)
            in_area = [r for r in matched if ATTRIBUTE_KEYS["area"](r) == busiest.key[0]]
            metros = self.aggregator.aggregate(in_area, "metro")
            malls = self.aggregator.aggregate(in_area, "mall")
            rows.append({
                "area": busiest.key[0],
                "transactions": busiest.count,
                "avg_price_sqm": round_half_up(busiest.mean),
                "metro_stations": len(metros),
                "malls": len(malls),
                "primary_metro": _most_common(metros),
                "primary_mall": _most_common(malls),
            })
        return rows

    def property_types(self, transactions: Iterable[Record]) -> List[dict]:
        """Sales count and average unit price per property type and sub type."""
        buckets = self.aggregator.aggregate(
            transactions, ["property_type", _sub_type_or_blank], "unit_price"
        )
        rows = [
            {
                "property_type": b.key[0],
                "property_sub_type": b.key[1] or None,
                "count": b.count,
                "avg_price_sqm": round_half_up(b.mean),
            }
            for b in buckets
        ]
        rows.sort(key=lambda row: row["count"], reverse=True)
        return rows

    def metro_premium(
        self,
        transactions: Iterable[Record],
        years: int = 2,
        min_area_sales: int = 50,
        min_metro_sales: int = 20,
        limit: int = 30,
    ) -> List[dict]:
        """
        Unit-price premium of near-metro sales over the area average.

        Only positive unit prices inside the trailing window count.
        """
        window = TimeWindow(years=years)
        records = list(transactions)
        area_avg = {
            b.key[0]: b
            for b in self.aggregator.aggregate(records, "area", _positive_unit_price, window=window)
            if b.samples >= min_area_sales
        }

        rows = []
        for b in self.aggregator.aggregate(records, ["area", "metro"], _positive_unit_price, window=window):
            area, metro = b.key
            baseline = area_avg.get(area)
            if baseline is None or b.samples < min_metro_sales:
                continue
            premium = pct_change(b.mean, baseline.mean)
            if premium is None:
                continue
            rows.append({
                "area": area,
                "metro": metro,
                "near_metro_price_sqm": round_half_up(b.mean),
                "area_avg_price_sqm": round_half_up(baseline.mean),
                "metro_premium_pct": premium,
                "transactions": b.samples,
            })
        rows.sort(key=lambda row: row["metro_premium_pct"], reverse=True)
        return rows[:limit]


def _mean(values: List[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)
