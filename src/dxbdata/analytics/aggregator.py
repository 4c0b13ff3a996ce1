"""
Windowed Aggregator

Grouped aggregation over a record set: bucket by area, calendar period or any
key function, compute count/sum/mean/min/max/percentiles of one metric, and
optionally restrict to a trailing window measured back from the invocation
time.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from src.dxbdata.analytics.ratios import round_half_up
from src.dxbdata.models.record import Record
from src.dxbdata.utils.logger import get_logger

logger = get_logger(__name__)

KeyFunc = Callable[[Record], object]
MetricFunc = Callable[[Record], Optional[float]]
GroupBy = Union[str, KeyFunc, Sequence[Union[str, KeyFunc]]]


def _strip(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


# Record attribute groupings; blank names group nowhere
ATTRIBUTE_KEYS: Dict[str, KeyFunc] = {
    "area": lambda r: _strip(r.area_name),
    "building": lambda r: _strip(r.building_name),
    "project": lambda r: _strip(r.project_name),
    "developer": lambda r: _strip(r.master_project),
    "property_type": lambda r: _strip(r.property_type),
    "property_sub_type": lambda r: _strip(r.property_sub_type),
    "rooms": lambda r: _strip(r.rooms),
    "metro": lambda r: _strip(r.nearest_metro),
    "mall": lambda r: _strip(r.nearest_mall),
    "landmark": lambda r: _strip(r.nearest_landmark),
}

# Calendar groupings derived from event_date
PERIOD_FREQ: Dict[str, str] = {"month": "M", "quarter": "Q", "year": "Y"}


@dataclass(frozen=True)
class TimeWindow:
    """
    Trailing window ending at the invocation time.

    Boundaries are rolling-from-invocation, not calendar aligned: a 6 month
    window called on 2024-08-17 starts on 2024-02-17 (inclusive).
    """

    years: int = 0
    months: int = 0

    def start(self, now: Optional[Union[date, datetime]] = None) -> pd.Timestamp:
        anchor = pd.Timestamp(now or datetime.now()).normalize()
        return anchor - pd.DateOffset(years=self.years, months=self.months)


@dataclass
class AggregationBucket:
    """
    Aggregate of one metric for one group.

    count is the number of records in the group; samples is the number of
    records whose metric was present. sum/mean/min/max ignore missing values
    and are None when no sample exists.
    """

    key: Tuple
    count: int
    samples: int
    sum: Optional[float] = None
    mean: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    percentiles: Dict[float, Optional[float]] = field(default_factory=dict)

    def as_dict(self, key_names: Sequence[str], ndigits: Optional[int] = 2) -> dict:
        """Flatten into a row dict keyed by group names."""
        def rounded(value):
            return value if ndigits is None else round_half_up(value, ndigits)

        row = dict(zip(key_names, self.key))
        row.update({
            "count": self.count,
            "samples": self.samples,
            "sum": rounded(self.sum),
            "mean": rounded(self.mean),
            "min": rounded(self.min),
            "max": rounded(self.max),
        })
        for q, value in self.percentiles.items():
            row[f"p{int(round(q * 100))}"] = rounded(value)
        return row


def records_in_window(
    records: Iterable[Record],
    window: Optional[TimeWindow] = None,
    now: Optional[Union[date, datetime]] = None,
    until: Optional[Union[date, datetime]] = None,
) -> List[Record]:
    """
    Keep records with event_date >= window start and, if given, < until.
    """
    start = window.start(now).date() if window else None
    end = pd.Timestamp(until).normalize().date() if until is not None else None
    kept = []
    for record in records:
        if start is not None and record.event_date < start:
            continue
        if end is not None and record.event_date >= end:
            continue
        kept.append(record)
    return kept


class WindowedAggregator:
    """
    Reusable grouped-aggregation engine.

    Example:
        agg = WindowedAggregator(now=date(2024, 6, 30))
        buckets = agg.aggregate(rentals, ["area", "year"], "amount",
                                window=TimeWindow(years=3), percentiles=(0.5,))
    """

    def __init__(self, now: Optional[Union[date, datetime]] = None):
        self.now = now

    def key_names(self, group_by: GroupBy) -> List[str]:
        """Column names for the group keys (callables are named key_<n>)."""
        specs = self._specs(group_by)
        return [spec if isinstance(spec, str) else f"key_{i}" for i, spec in enumerate(specs)]

    def aggregate(
        self,
        records: Iterable[Record],
        group_by: GroupBy,
        metric: Optional[Union[str, MetricFunc]] = None,
        window: Optional[TimeWindow] = None,
        percentiles: Sequence[float] = (),
        until: Optional[Union[date, datetime]] = None,
    ) -> List[AggregationBucket]:
        """
        Group records and aggregate one metric per group.

        Args:
            records: Input records
            group_by: Key name(s) or key function(s)
            metric: Attribute name or extractor; None counts records only
            window: Trailing window relative to the aggregator's now
            percentiles: Quantiles in [0, 1] (linear interpolation)
            until: Exclusive upper bound on event_date

        Returns:
            Buckets sorted by key. Records with a missing group key are
            excluded from every group.
        """
        specs = self._specs(group_by)
        frame = self.frame(
            records_in_window(records, window, self.now, until),
            specs,
            metric,
        )
        if frame.empty:
            return []

        key_cols = [f"k{i}" for i in range(len(specs))]
        grouped = frame.groupby(key_cols, sort=True, dropna=True)["value"]
        stats = grouped.agg(["size", "count", "sum", "mean", "min", "max"])
        quantiles = {q: grouped.quantile(q) for q in percentiles}

        buckets = []
        for key, row in stats.iterrows():
            key = key if isinstance(key, tuple) else (key,)
            has_samples = row["count"] > 0
            buckets.append(AggregationBucket(
                key=tuple(_plain(k) for k in key),
                count=int(row["size"]),
                samples=int(row["count"]),
                sum=float(row["sum"]) if has_samples else None,
                mean=float(row["mean"]) if has_samples else None,
                min=float(row["min"]) if has_samples else None,
                max=float(row["max"]) if has_samples else None,
                percentiles={
                    q: (_float_or_none(series.loc[key if len(key) > 1 else key[0]])
                        if has_samples else None)
                    for q, series in quantiles.items()
                },
            ))

        logger.debug(
            "aggregation_complete",
            group_by=self.key_names(group_by),
            records=len(frame),
            skipped=len(frame) - int(stats["size"].sum()),
            groups=len(buckets),
        )
        return buckets

    def frame(
        self,
        records: Sequence[Record],
        specs: Sequence[Union[str, KeyFunc]],
        metric: Optional[Union[str, MetricFunc]] = None,
    ) -> pd.DataFrame:
        """Build a frame with one key column per spec plus the metric value."""
        if not records:
            return pd.DataFrame(columns=[f"k{i}" for i in range(len(specs))] + ["value"])

        dates = pd.to_datetime(pd.Series([r.event_date for r in records]))
        data = {}
        for i, spec in enumerate(specs):
            if spec == "year":
                data[f"k{i}"] = dates.dt.year
            elif isinstance(spec, str) and spec in PERIOD_FREQ:
                data[f"k{i}"] = dates.dt.to_period(PERIOD_FREQ[spec]).astype(str)
            elif spec == "month_of_year":
                data[f"k{i}"] = dates.dt.month
            elif isinstance(spec, str):
                data[f"k{i}"] = [ATTRIBUTE_KEYS[spec](r) for r in records]
            else:
                data[f"k{i}"] = [spec(r) for r in records]

        extract = _metric_func(metric)
        data["value"] = pd.to_numeric(
            pd.Series([extract(r) if extract else None for r in records], dtype="object"),
            errors="coerce",
        )
        return pd.DataFrame(data)

    @staticmethod
    def _specs(group_by: GroupBy) -> List[Union[str, KeyFunc]]:
        if isinstance(group_by, str) or callable(group_by):
            specs = [group_by]
        else:
            specs = list(group_by)
        for spec in specs:
            if isinstance(spec, str) and spec not in ATTRIBUTE_KEYS \
                    and spec not in PERIOD_FREQ and spec != "month_of_year":
                raise ValueError(f"Unknown group key: {spec}")
        return specs


def _metric_func(metric: Optional[Union[str, MetricFunc]]) -> Optional[MetricFunc]:
    if metric is None:
        return None
    if isinstance(metric, str):
        return lambda r: getattr(r, metric)
    return metric


def _float_or_none(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def _plain(value):
    """Unwrap numpy scalars so keys compare and serialize like Python values."""
    return value.item() if hasattr(value, "item") else value
