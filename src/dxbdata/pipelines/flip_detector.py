"""
Flip Sequence Detector

Reconstructs the sale sequence of each logical unit and pairs consecutive
sales into flip candidates with hold duration and profit.
"""
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from config.settings import settings
from src.dxbdata.analytics.ratios import round_half_up, safe_ratio
from src.dxbdata.models.record import Record
from src.dxbdata.models.results import FlipCandidate
from src.dxbdata.transformers.identity import UnitKey, area_key, identity_of
from src.dxbdata.utils.logger import get_logger

logger = get_logger(__name__)

DAYS_PER_YEAR = 365


class FlipDetector:
    """
    Detects flipped units from transaction records.

    Records are partitioned by (unit identity, area), ordered by event date
    with ties broken by record id, and only adjacent ranks are paired. A
    candidate is accepted when:

    - the sell date is strictly after the buy date,
    - hold_days <= max_hold_days,
    - the partition holds at least min_sales records.

    Records without a positive amount never enter a sequence, so a
    zero-worth transfer between two sales does not split them.
    """

    def __init__(
        self,
        max_hold_days: Optional[int] = None,
        min_sales: Optional[int] = None,
        size_rounding: Optional[float] = None,
    ):
        self.max_hold_days = (
            max_hold_days if max_hold_days is not None
            else settings.flip_max_hold_years * DAYS_PER_YEAR
        )
        self.min_sales = min_sales if min_sales is not None else settings.flip_min_sales
        self.size_rounding = size_rounding
        logger.debug(
            "flip_detector_initialized",
            max_hold_days=self.max_hold_days,
            min_sales=self.min_sales,
        )

    def sequence_frame(self, records: Iterable[Record]) -> pd.DataFrame:
        """
        Ranked sale sequence per unit.

        Records without a unit identity, an area or a positive amount are left
        out entirely: they take no rank and do not count toward total_sales.

        Returns:
            Frame sorted by (partition, event_date, record_id) with sale_rank
            (1-based), total_sales and the next sale's columns.
        """
        partitions: Dict[Tuple[UnitKey, str], int] = {}
        rows = []
        skipped = 0
        for record in records:
            unit = identity_of(record, self.size_rounding)
            area = area_key(record)
            if unit is None or area is None or not (record.amount is not None and record.amount > 0):
                skipped += 1
                continue
            pid = partitions.setdefault((unit, area), len(partitions))
            rows.append({
                "partition": pid,
                "area_key": area,
                "building_name": record.building_name.strip(),
                "area_name": record.area_name.strip(),
                "unit_size": unit.size,
                "rooms": record.rooms,
                "property_sub_type": record.property_sub_type,
                "record_id": record.record_id,
                "event_date": pd.Timestamp(record.event_date),
                "amount": record.amount,
            })

        if skipped:
            logger.debug("flip_records_without_identity", skipped=skipped)

        columns = [
            "partition", "area_key", "building_name", "area_name", "unit_size",
            "rooms", "property_sub_type", "record_id", "event_date", "amount",
        ]
        frame = pd.DataFrame(rows, columns=columns)
        frame["amount"] = pd.to_numeric(frame["amount"], errors="coerce")
        frame = frame.sort_values(
            ["partition", "event_date", "record_id"], kind="mergesort"
        ).reset_index(drop=True)

        by_partition = frame.groupby("partition", sort=False)
        frame["sale_rank"] = by_partition.cumcount() + 1
        frame["total_sales"] = by_partition["record_id"].transform("size")
        for column in ("record_id", "event_date", "amount"):
            frame[f"next_{column}"] = by_partition[column].shift(-1)
        return frame

    def detect(
        self,
        records: Iterable[Record],
        area: Optional[str] = None,
        min_profit: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[FlipCandidate]:
        """
        Find accepted flip candidates.

        Args:
            records: Transaction records
            area: Optional case-insensitive area substring
            min_profit: Minimum absolute profit
            limit: Maximum number of candidates

        Returns:
            Candidates sorted by profit_pct descending
        """
        if area:
            needle = area.casefold()
            records = [r for r in records if r.area_name and needle in r.area_name.casefold()]

        frame = self.sequence_frame(records)
        pairs = frame[frame["next_record_id"].notna()]

        candidates = []
        rejected = 0
        for row in pairs.itertuples(index=False):
            candidate = self._candidate(row)
            if candidate is None:
                rejected += 1
                continue
            if min_profit is not None and candidate.profit < min_profit:
                continue
            candidates.append(candidate)

        candidates.sort(key=lambda c: (-c.profit_pct, c.sell_date, c.buy_record_id))
        if limit is not None:
            candidates = candidates[:limit]

        logger.info(
            "flip_detection_complete",
            records=len(frame),
            units=int(frame["partition"].nunique()) if not frame.empty else 0,
            pairs=len(pairs),
            accepted=len(candidates),
            rejected=rejected,
        )
        return candidates

    def _candidate(self, row) -> Optional[FlipCandidate]:
        """Build a candidate from a ranked row, or None when policy rejects it."""
        if row.total_sales < self.min_sales:
            return None
        hold_days = (row.next_event_date - row.event_date).days
        if hold_days <= 0 or hold_days > self.max_hold_days:
            return None
        buy_price, sell_price = row.amount, row.next_amount
        if pd.isna(buy_price) or pd.isna(sell_price) or buy_price <= 0:
            return None

        profit = float(sell_price) - float(buy_price)
        profit_ratio = safe_ratio(profit, float(buy_price))
        if profit_ratio is None:
            return None

        return FlipCandidate(
            building_name=row.building_name,
            area_name=row.area_name,
            unit_size=float(row.unit_size),
            rooms=_none_if_na(row.rooms),
            property_sub_type=_none_if_na(row.property_sub_type),
            buy_record_id=row.record_id,
            sell_record_id=row.next_record_id,
            buy_date=row.event_date.date(),
            sell_date=row.next_event_date.date(),
            buy_price=float(buy_price),
            sell_price=float(sell_price),
            hold_days=int(hold_days),
            profit=profit,
            profit_pct=round_half_up(profit_ratio * 100),
            sale_rank=int(row.sale_rank),
        )

    def by_area(self, candidates: List[FlipCandidate], min_flips: int = 10) -> List[dict]:
        """
        Flip statistics per area over accepted candidates.

        Returns:
            Rows sorted by avg_profit_pct descending
        """
        frame = _candidates_frame(candidates)
        if frame.empty:
            return []
        frame["area_key"] = frame["area_name"].str.casefold()

        rows = []
        for _, group in frame.groupby("area_key", sort=True):
            if len(group) < min_flips:
                continue
            rows.append({
                "area": group["area_name"].iloc[0],
                **_flip_stats(group),
                "median_profit_pct": round_half_up(group["profit_pct"].median()),
                "avg_hold_days": int(round_half_up(group["hold_days"].mean(), 0)),
                "worst_flip_pct": round_half_up(group["profit_pct"].min()),
                "best_flip_pct": round_half_up(group["profit_pct"].max()),
                "profitable_flips": int((group["profit"] > 0).sum()),
            })
        rows.sort(key=lambda row: row["avg_profit_pct"], reverse=True)
        return rows

    def top_buildings(
        self,
        candidates: List[FlipCandidate],
        min_flips: int = 5,
        limit: int = 50,
    ) -> List[dict]:
        """Buildings with the best average flip return."""
        frame = _candidates_frame(candidates)
        if frame.empty:
            return []
        frame["building_key"] = frame["building_name"].str.casefold()
        frame["area_key"] = frame["area_name"].str.casefold()

        rows = []
        for _, group in frame.groupby(["building_key", "area_key"], sort=True):
            if len(group) < min_flips:
                continue
            rows.append({
                "building": group["building_name"].iloc[0],
                "area": group["area_name"].iloc[0],
                **_flip_stats(group),
            })
        rows.sort(key=lambda row: row["avg_profit_pct"], reverse=True)
        return rows[:limit]


def _none_if_na(value):
    return None if pd.isna(value) else value


def _candidates_frame(candidates: List[FlipCandidate]) -> pd.DataFrame:
    return pd.DataFrame([c.model_dump() for c in candidates])


def _flip_stats(group: pd.DataFrame) -> dict:
    total = len(group)
    profitable = int((group["profit"] > 0).sum())
    return {
        "total_flips": total,
        "avg_profit": round_half_up(group["profit"].mean()),
        "avg_profit_pct": round_half_up(group["profit_pct"].mean()),
        "success_rate_pct": round_half_up(safe_ratio(profitable * 100, total), 1),
    }
