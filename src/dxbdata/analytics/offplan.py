"""
Off-Plan Tracker

Project-level analytics over off-plan registrations: launch versus current
pricing, quarterly price history and projects that look delayed (old off-plan
sales, no ready-unit sales yet).
"""
from datetime import date, datetime
from typing import Iterable, List, Optional, Union

import pandas as pd

from config.settings import settings
from src.dxbdata.analytics.aggregator import TimeWindow, WindowedAggregator
from src.dxbdata.analytics.ratios import pct_change, round_half_up
from src.dxbdata.models.record import Record
from src.dxbdata.utils.logger import get_logger

logger = get_logger(__name__)

PROJECT_COLUMNS = [
    "project", "area", "developer", "event_date", "record_id",
    "unit_price", "amount", "size_sqm", "property_sub_type", "rooms",
]


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def project_frame(records: Iterable[Record], off_plan_only: bool = True) -> pd.DataFrame:
    """
    One row per sale with a project name, sorted by (project, date, id).
    """
    rows = [
        {
            "project": _clean(r.project_name),
            "area": _clean(r.area_name),
            "developer": _clean(r.master_project),
            "event_date": r.event_date,
            "record_id": r.record_id,
            "unit_price": r.unit_price,
            "amount": r.amount,
            "size_sqm": r.size_sqm,
            "property_sub_type": _clean(r.property_sub_type),
            "rooms": _clean(r.rooms),
        }
        for r in records
        if _clean(r.project_name) and (r.is_off_plan or not off_plan_only)
    ]
    frame = pd.DataFrame(rows, columns=PROJECT_COLUMNS)
    frame["unit_price"] = pd.to_numeric(frame["unit_price"], errors="coerce")
    frame["amount"] = pd.to_numeric(frame["amount"], errors="coerce")
    frame["size_sqm"] = pd.to_numeric(frame["size_sqm"], errors="coerce")
    return frame.sort_values(["project", "event_date", "record_id"], kind="mergesort").reset_index(drop=True)


def _mean(series: pd.Series) -> Optional[float]:
    value = series.mean()
    return None if pd.isna(value) else float(value)


def _none_if_na(value):
    return None if pd.isna(value) else value


class OffPlanTracker:
    """Off-plan project analytics; ``now`` anchors every trailing window."""

    def __init__(self, now: Optional[Union[date, datetime]] = None):
        self.now = now

    def list_projects(
        self,
        transactions: Iterable[Record],
        area: Optional[str] = None,
        developer: Optional[str] = None,
        min_units: int = 5,
        sort: str = "total_sales",
        ascending: bool = False,
        limit: int = 100,
    ) -> List[dict]:
        """Per (project, developer, area) sales statistics."""
        frame = project_frame(transactions)
        if area:
            frame = frame[frame["area"].fillna("").str.casefold().str.contains(area.casefold(), regex=False)]
        if developer:
            frame = frame[frame["developer"].fillna("").str.casefold().str.contains(developer.casefold(), regex=False)]
        if frame.empty:
            return []

        grouped = frame.groupby(["project", "developer", "area"], dropna=False, sort=True)
        rows = []
        for (project, dev, project_area), group in grouped:
            if len(group) < min_units:
                continue
            rows.append({
                "project": project,
                "developer": _none_if_na(dev),
                "area": _none_if_na(project_area),
                "total_sales": len(group),
                "first_sale": group["event_date"].min(),
                "latest_sale": group["event_date"].max(),
                "avg_price_sqm": round_half_up(_mean(group["unit_price"])),
                "min_price_sqm": round_half_up(group["unit_price"].min()),
                "max_price_sqm": round_half_up(group["unit_price"].max()),
                "total_value": round_half_up(group["amount"].sum()),
                "avg_size_sqm": round_half_up(_mean(group["size_sqm"])),
            })

        sort_key = {
            "price_change": "avg_price_sqm",
            "latest_sale": "latest_sale",
        }.get(sort, "total_sales")
        rows.sort(key=lambda row: (row[sort_key] is None, row[sort_key]), reverse=not ascending)
        return rows[:limit]

    def price_change_from_launch(
        self,
        transactions: Iterable[Record],
        sample_size: Optional[int] = None,
        min_sales: int = 10,
        recent_months: Optional[int] = 12,
        area: Optional[str] = None,
        limit: int = 50,
    ) -> List[dict]:
        """
        Average unit price of the first k sales versus the last k sales.

        Args:
            transactions: Transaction records (off-plan registrations are used)
            sample_size: k, defaults to settings.launch_sample_size
            min_sales: Minimum sales per project
            recent_months: Only last-k sales inside this trailing window count
                as "current"; projects without any are skipped. None disables.
            area: Area substring filter
            limit: Maximum rows

        Returns:
            Rows sorted by price_change_pct descending
        """
        k = sample_size or settings.launch_sample_size
        frame = project_frame(transactions)
        frame = frame[frame["unit_price"] > 0]
        if area:
            frame = frame[frame["area"].fillna("").str.casefold().str.contains(area.casefold(), regex=False)]
        if frame.empty:
            return []

        recent_start = (
            TimeWindow(months=recent_months).start(self.now).date()
            if recent_months is not None else None
        )

        rows = []
        for project, group in frame.groupby("project", sort=True):
            if len(group) < min_sales:
                continue
            launch = group.head(k)
            current = group.tail(k)
            if recent_start is not None:
                current = current[current["event_date"] >= recent_start]
            if current.empty:
                continue
            launch_price = _mean(launch["unit_price"])
            current_price = _mean(current["unit_price"])
            latest = current.iloc[-1]
            rows.append({
                "project": project,
                "area": _none_if_na(latest["area"]),
                "developer": _none_if_na(latest["developer"]),
                "total_sales": len(group),
                "launch_price_sqm": round_half_up(launch_price),
                "current_price_sqm": round_half_up(current_price),
                "price_change_pct": pct_change(current_price, launch_price),
                "latest_sale": latest["event_date"],
            })

        rows.sort(key=lambda row: (row["price_change_pct"] is None, -(row["price_change_pct"] or 0)))
        logger.info("launch_price_changes_computed", projects=len(rows), sample_size=k)
        return rows[:limit]

    def project_summary(self, transactions: Iterable[Record], name: str) -> Optional[dict]:
        """
        Summary, quarterly price history and unit mix for one project.

        The project is matched by case-insensitive substring. Returns None
        when no off-plan sale matches.
        """
        records = [
            r for r in transactions
            if r.is_off_plan and r.project_name and name.casefold() in r.project_name.casefold()
        ]
        if not records:
            return None

        frame = project_frame(records)
        first = frame.iloc[0]
        summary = {
            "project": first["project"],
            "developer": _none_if_na(first["developer"]),
            "area": _none_if_na(first["area"]),
            "total_sales": len(frame),
            "first_sale": frame["event_date"].min(),
            "latest_sale": frame["event_date"].max(),
            "avg_price_sqm": round_half_up(_mean(frame["unit_price"])),
            "avg_price": round_half_up(_mean(frame["amount"])),
            "total_value": round_half_up(frame["amount"].sum()),
        }

        aggregator = WindowedAggregator(now=self.now)
        prices = {b.key[0]: b for b in aggregator.aggregate(records, "quarter", "amount")}
        history = [
            {
                "quarter": bucket.key[0],
                "sales": bucket.count,
                "avg_price_sqm": round_half_up(bucket.mean),
                "avg_price": round_half_up(prices[bucket.key[0]].mean),
            }
            for bucket in aggregator.aggregate(records, "quarter", "unit_price")
        ]
        change = None
        if history:
            change = pct_change(history[-1]["avg_price_sqm"], history[0]["avg_price_sqm"])

        breakdown = []
        for (sub_type, rooms), group in frame.groupby(["property_sub_type", "rooms"], dropna=False):
            breakdown.append({
                "unit_type": _none_if_na(sub_type),
                "bedrooms": _none_if_na(rooms),
                "count": len(group),
                "avg_price_sqm": round_half_up(_mean(group["unit_price"])),
                "avg_size": round_half_up(_mean(group["size_sqm"])),
            })
        breakdown.sort(key=lambda row: row["count"], reverse=True)

        return {
            "summary": summary,
            "price_change_from_launch_pct": change,
            "price_history": history,
            "unit_breakdown": breakdown,
        }

    def delayed_projects(
        self,
        transactions: Iterable[Record],
        years_threshold: int = 4,
        limit: int = 50,
    ) -> List[dict]:
        """
        Off-plan projects launched at least years_threshold ago (first sale on
        or before the cutoff date) that have no sale registered as an existing
        (ready) property.
        """
        transactions = list(transactions)
        ready = {
            _clean(r.project_name) for r in transactions
            if r.is_existing and _clean(r.project_name)
        }
        frame = project_frame(transactions)
        if frame.empty:
            return []

        anchor = pd.Timestamp(self.now or datetime.now()).normalize()
        cutoff = TimeWindow(years=years_threshold).start(self.now).date()

        rows = []
        grouped = frame.groupby(["project", "area", "developer"], dropna=False, sort=True)
        for (project, project_area, dev), group in grouped:
            first_sale = group["event_date"].min()
            if first_sale > cutoff or project in ready:
                continue
            rows.append({
                "project": project,
                "area": _none_if_na(project_area),
                "developer": _none_if_na(dev),
                "first_offplan_sale": first_sale,
                "latest_offplan_sale": group["event_date"].max(),
                "total_offplan_sales": len(group),
                "years_since_launch": _full_years(first_sale, anchor.date()),
                "status": "No ready sales - potential delay",
            })
        rows.sort(key=lambda row: row["first_offplan_sale"])
        return rows[:limit]


def _full_years(start: date, end: date) -> int:
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return years
