"""
Market Analytics

Derived market signals built on the windowed aggregator: trends,
seasonality, rental demand and vacancy signals, gross yields and area
comparisons. Percentages are rounded to 2 decimals and undefined ratios are
returned as None.
"""
import calendar
from datetime import date, datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Union

from config.settings import settings
from src.dxbdata.analytics.aggregator import (
    AggregationBucket,
    TimeWindow,
    WindowedAggregator,
)
from src.dxbdata.analytics.ratios import pct_change, pct_of, round_half_up, safe_ratio
from src.dxbdata.matching.criteria import matches
from src.dxbdata.models.alert import AlertCriteria
from src.dxbdata.models.record import Record
from src.dxbdata.utils.logger import get_logger

logger = get_logger(__name__)

# Vacancy classification thresholds (fractions, not percent)
HIGH_VACANCY_VOLUME_DROP = 0.20
HIGH_VACANCY_AMOUNT_DROP = 0.05
MODERATE_VACANCY_VOLUME_DROP = 0.10
HIGH_DEMAND_VOLUME_RISE = 0.20


class VacancySignal(str, Enum):
    HIGH_VACANCY_RISK = "High Vacancy Risk"
    MODERATE_VACANCY_RISK = "Moderate Vacancy Risk"
    HIGH_DEMAND = "High Demand"
    STABLE = "Stable"
    INSUFFICIENT_DATA = "Insufficient Data"


def classify_vacancy(
    volume_change: Optional[float],
    amount_change: Optional[float],
) -> VacancySignal:
    """
    Classify a recent-vs-prior comparison.

    Args:
        volume_change: (recent - prior) / prior volume, as a fraction
        amount_change: (recent - prior) / prior average amount, as a fraction
    """
    if volume_change is None:
        return VacancySignal.INSUFFICIENT_DATA
    if (volume_change < -HIGH_VACANCY_VOLUME_DROP
            and amount_change is not None
            and amount_change < -HIGH_VACANCY_AMOUNT_DROP):
        return VacancySignal.HIGH_VACANCY_RISK
    if volume_change < -MODERATE_VACANCY_VOLUME_DROP:
        return VacancySignal.MODERATE_VACANCY_RISK
    if volume_change > HIGH_DEMAND_VOLUME_RISE:
        return VacancySignal.HIGH_DEMAND
    return VacancySignal.STABLE


def filter_records(
    records: Iterable[Record],
    area: Optional[str] = None,
    property_type: Optional[str] = None,
    year: Optional[int] = None,
) -> List[Record]:
    """Area substring, exact property type and calendar year filter."""
    criteria = AlertCriteria(area_name=area, property_type=property_type)
    return [
        r for r in records
        if matches(r, criteria) and (year is None or r.event_date.year == year)
    ]


def _positive_amount(record: Record) -> Optional[float]:
    if record.amount is None or record.amount <= 0:
        return None
    return record.amount


def _by_key(buckets: Iterable[AggregationBucket]) -> Dict:
    return {b.key if len(b.key) > 1 else b.key[0]: b for b in buckets}


class MarketAnalytics:
    """
    Market-level analytics over transaction and rental records.

    All trailing windows are measured back from ``now`` (defaults to the
    current time at each call).
    """

    def __init__(self, now: Optional[Union[date, datetime]] = None):
        self.now = now
        self.aggregator = WindowedAggregator(now=now)

    def market_summary(
        self,
        records: Iterable[Record],
        area: Optional[str] = None,
        property_type: Optional[str] = None,
        year: Optional[int] = None,
    ) -> dict:
        """Totals for a filtered record set."""
        selected = filter_records(records, area, property_type, year)
        amounts = [r.amount for r in selected if r.amount is not None]
        unit_prices = [r.unit_price for r in selected if r.unit_price is not None]
        return {
            "total_records": len(selected),
            "total_value": round_half_up(sum(amounts)) if amounts else None,
            "avg_amount": round_half_up(safe_ratio(sum(amounts), len(amounts))),
            "avg_unit_price": round_half_up(safe_ratio(sum(unit_prices), len(unit_prices))),
            "min_amount": min(amounts) if amounts else None,
            "max_amount": max(amounts) if amounts else None,
        }

    def area_stats(self, transactions: Iterable[Record]) -> List[dict]:
        """Per-area transaction count and average prices, busiest first."""
        transactions = list(transactions)
        prices = _by_key(self.aggregator.aggregate(transactions, "area", "amount"))
        unit_prices = self.aggregator.aggregate(transactions, "area", "unit_price")
        rows = [
            {
                "area": bucket.key[0],
                "transaction_count": bucket.count,
                "avg_unit_price": round_half_up(bucket.mean),
                "avg_price": round_half_up(prices[bucket.key[0]].mean),
            }
            for bucket in unit_prices
        ]
        rows.sort(key=lambda row: row["transaction_count"], reverse=True)
        return rows

    def building_stats(
        self,
        transactions: Iterable[Record],
        area: Optional[str] = None,
        min_transactions: int = 5,
        limit: int = 100,
    ) -> List[dict]:
        """Per-building activity for buildings with enough transactions."""
        selected = filter_records(transactions, area=area)
        prices = _by_key(self.aggregator.aggregate(selected, ["building", "area"], "amount"))
        rows = []
        for bucket in self.aggregator.aggregate(selected, ["building", "area"], "unit_price"):
            if bucket.count < min_transactions:
                continue
            rows.append({
                "building": bucket.key[0],
                "area": bucket.key[1],
                "transaction_count": bucket.count,
                "avg_unit_price": round_half_up(bucket.mean),
                "avg_price": round_half_up(prices[bucket.key].mean),
            })
        rows.sort(key=lambda row: row["transaction_count"], reverse=True)
        return rows[:limit]

    def monthly_trend(
        self,
        transactions: Iterable[Record],
        area: Optional[str] = None,
        property_type: Optional[str] = None,
        years: int = 5,
    ) -> List[dict]:
        """Monthly volume, average unit price and total value."""
        selected = filter_records(transactions, area, property_type)
        window = TimeWindow(years=years)
        values = _by_key(self.aggregator.aggregate(selected, "month", "amount", window=window))
        return [
            {
                "month": bucket.key[0],
                "count": bucket.count,
                "avg_unit_price": round_half_up(bucket.mean),
                "total_value": round_half_up(values[bucket.key[0]].sum),
            }
            for bucket in self.aggregator.aggregate(selected, "month", "unit_price", window=window)
        ]

    def yearly_trend(
        self,
        records: Iterable[Record],
        area: Optional[str] = None,
        property_type: Optional[str] = None,
        years: int = 5,
    ) -> List[dict]:
        """
        Annual volume and average amounts with year-over-year change.

        The earliest year has no predecessor, so its changes are None.
        """
        selected = filter_records(records, area, property_type)
        window = TimeWindow(years=years)
        amounts = self.aggregator.aggregate(selected, "year", "amount", window=window)
        unit_prices = _by_key(self.aggregator.aggregate(selected, "year", "unit_price", window=window))

        rows = []
        previous: Optional[AggregationBucket] = None
        for bucket in amounts:
            year = bucket.key[0]
            rows.append({
                "year": year,
                "count": bucket.count,
                "avg_amount": round_half_up(bucket.mean),
                "avg_unit_price": round_half_up(unit_prices[year].mean),
                "yoy_amount_change_pct": (
                    pct_change(bucket.mean, previous.mean) if previous else None
                ),
                "yoy_volume_change_pct": (
                    pct_change(bucket.count, previous.count) if previous else None
                ),
            })
            previous = bucket
        return rows

    def seasonal_index(
        self,
        records: Iterable[Record],
        area: Optional[str] = None,
        years: int = 3,
    ) -> dict:
        """
        Monthly activity relative to the average month (base 100).

        Every calendar month is reported, so a month without contracts has
        index 0. Peak and low months are the first argmax/argmin.
        """
        selected = filter_records(records, area=area)
        buckets = _by_key(self.aggregator.aggregate(
            selected, "month_of_year", "amount", window=TimeWindow(years=years)
        ))
        total = sum(b.count for b in buckets.values())
        monthly_average = safe_ratio(total, 12)

        data = []
        for month in range(1, 13):
            bucket = buckets.get(month)
            count = bucket.count if bucket else 0
            index = pct_of(count, monthly_average, ndigits=0)
            data.append({
                "month": month,
                "month_name": calendar.month_abbr[month],
                "count": count,
                "avg_amount": round_half_up(bucket.mean) if bucket else None,
                "pct_of_yearly": pct_of(count, total),
                "seasonal_index": int(index) if index is not None else None,
            })

        indexed = [row for row in data if row["seasonal_index"] is not None]
        peak = max(indexed, key=lambda row: row["seasonal_index"], default=None)
        low = min(indexed, key=lambda row: row["seasonal_index"], default=None)
        return {"data": data, "insights": {"peak_month": peak, "low_month": low}}

    def rental_demand(
        self,
        rentals: Iterable[Record],
        year: Optional[int] = None,
        min_contracts: int = 50,
    ) -> List[dict]:
        """Contracts per active month by area, fastest renting first."""
        selected = filter_records(rentals, year=year)
        rents = _by_key(self.aggregator.aggregate(selected, "area", "amount"))
        rents_sqm = _by_key(self.aggregator.aggregate(selected, "area", "unit_price"))
        active = {}
        for bucket in self.aggregator.aggregate(selected, ["area", "month"]):
            active[bucket.key[0]] = active.get(bucket.key[0], 0) + 1

        rows = []
        for area, bucket in rents.items():
            if bucket.count < min_contracts:
                continue
            rows.append({
                "area": area,
                "total_contracts": bucket.count,
                "avg_annual_rent": round_half_up(bucket.mean),
                "avg_rent_sqm": round_half_up(rents_sqm[area].mean),
                "active_months": active.get(area, 0),
                "contracts_per_month": round_half_up(safe_ratio(bucket.count, active.get(area, 0))),
            })
        rows.sort(key=lambda row: row["contracts_per_month"] or 0, reverse=True)
        return rows

    def vacancy_signals(
        self,
        rentals: Iterable[Record],
        min_prior_contracts: int = 100,
        window_months: int = 6,
    ) -> List[dict]:
        """
        Compare the recent window to the one before it, per area.

        Areas whose prior volume is below min_prior_contracts are omitted.
        A zero prior volume yields None changes and Insufficient Data.
        """
        rentals = list(rentals)
        recent_start = TimeWindow(months=window_months).start(self.now)
        recent = _by_key(self.aggregator.aggregate(
            rentals, "area", "amount", window=TimeWindow(months=window_months)
        ))
        prior = _by_key(self.aggregator.aggregate(
            rentals, "area", "amount",
            window=TimeWindow(months=2 * window_months), until=recent_start,
        ))

        rows = []
        for area in sorted(set(recent) | set(prior)):
            r, p = recent.get(area), prior.get(area)
            recent_count = r.count if r else 0
            prior_count = p.count if p else 0
            if prior_count < min_prior_contracts:
                continue
            recent_avg = r.mean if r else None
            prior_avg = p.mean if p else None
            volume_change = safe_ratio(recent_count - prior_count, prior_count)
            amount_change = (
                safe_ratio(recent_avg - prior_avg, prior_avg)
                if recent_avg is not None and prior_avg is not None else None
            )
            rows.append({
                "area": area,
                "recent_contracts": recent_count,
                "prev_contracts": prior_count,
                "volume_change_pct": pct_change(recent_count, prior_count),
                "recent_avg_amount": round_half_up(recent_avg),
                "prev_avg_amount": round_half_up(prior_avg),
                "amount_change_pct": pct_change(recent_avg, prior_avg),
                "signal": classify_vacancy(volume_change, amount_change).value,
            })
        rows.sort(key=lambda row: (row["volume_change_pct"] is None, row["volume_change_pct"] or 0))
        logger.info(
            "vacancy_signals_computed",
            areas=len(rows),
            insufficient_data=sum(
                1 for row in rows if row["signal"] == VacancySignal.INSUFFICIENT_DATA.value
            ),
        )
        return rows

    def gross_yields(
        self,
        transactions: Iterable[Record],
        rentals: Iterable[Record],
        years: int = 2,
        min_samples: Optional[int] = None,
        property_type: Optional[str] = None,
    ) -> List[dict]:
        """
        Gross yield per area: avg annual rent / avg purchase price * 100.

        Only positive amounts count. Areas where either side has fewer than
        min_samples records are omitted, not zero-filled.
        """
        min_samples = settings.yield_min_samples if min_samples is None else min_samples
        window = TimeWindow(years=years)
        sales = self.aggregator.aggregate(
            filter_records(transactions, property_type=property_type),
            "area", _positive_amount, window=window,
        )
        rents = {
            b.key[0].casefold(): b
            for b in self.aggregator.aggregate(rentals, "area", _positive_amount, window=window)
        }

        rows = []
        for sale in sales:
            rent = rents.get(sale.key[0].casefold())
            if rent is None or sale.samples < min_samples or rent.samples < min_samples:
                continue
            gross_yield = pct_of(rent.mean, sale.mean)
            if gross_yield is None:
                continue
            rows.append({
                "area": sale.key[0],
                "avg_purchase_price": round_half_up(sale.mean),
                "avg_annual_rent": round_half_up(rent.mean),
                "gross_yield_pct": gross_yield,
                "sale_count": sale.samples,
                "rent_count": rent.samples,
            })
        rows.sort(key=lambda row: row["gross_yield_pct"], reverse=True)
        logger.info(
            "gross_yields_computed",
            areas_with_sales=len(sales),
            areas_with_rents=len(rents),
            areas_reported=len(rows),
        )
        return rows

    def compare_areas(
        self,
        transactions: Iterable[Record],
        rentals: Iterable[Record],
        areas: Sequence[str],
        years: int = 3,
    ) -> dict:
        """Side-by-side sales, rental and yield figures for named areas."""
        window = TimeWindow(years=years)
        wanted = [a.strip().casefold() for a in areas if a and a.strip()]

        def area_key(record: Record) -> Optional[str]:
            return (record.area_name or "").strip().casefold() or None

        sales = _by_key(self.aggregator.aggregate(transactions, area_key, "amount", window=window))
        sales_sqm = _by_key(self.aggregator.aggregate(transactions, area_key, "unit_price", window=window))
        rents = _by_key(self.aggregator.aggregate(rentals, area_key, "amount", window=window))

        comparison = []
        for area in wanted:
            sale, rent = sales.get(area), rents.get(area)
            avg_price = sale.mean if sale else None
            avg_rent = rent.mean if rent else None
            comparison.append({
                "area": area,
                "sales": {
                    "transactions": sale.count if sale else 0,
                    "avg_price": round_half_up(avg_price),
                    "avg_unit_price": round_half_up(sales_sqm[area].mean) if area in sales_sqm else None,
                },
                "rentals": {
                    "contracts": rent.count if rent else 0,
                    "avg_annual_rent": round_half_up(avg_rent),
                },
                "gross_yield_pct": (
                    pct_of(avg_rent, avg_price)
                    if avg_price and avg_rent and avg_price > 0 and avg_rent > 0 else None
                ),
            })
        return {"years": years, "comparison": comparison}

