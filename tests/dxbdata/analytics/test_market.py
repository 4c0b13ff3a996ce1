"""
Tests for Market Analytics

Tests year-over-year trends, seasonal index, vacancy signals, gross yields
and area comparisons.
"""
import pytest
from datetime import date

from src.dxbdata.analytics.market import (
    MarketAnalytics,
    VacancySignal,
    classify_vacancy,
    filter_records,
)
from src.dxbdata.models.record import Record, RecordKind


def sale(record_id, event_date, area="Dubai Marina", amount=1_000_000.0, **extra) -> Record:
    return Record(record_id=record_id, event_date=event_date, area_name=area, amount=amount, **extra)


def rental(record_id, event_date, area="Dubai Marina", amount=100_000.0, **extra) -> Record:
    return Record(
        record_id=record_id, kind=RecordKind.RENTAL, event_date=event_date,
        area_name=area, amount=amount, **extra
    )


class TestFilterRecords:

    def test_filters_area_type_and_year(self):
        """Test filters area type and year."""
        records = [
            sale("1", date(2023, 5, 1), property_type="Unit"),
            sale("2", date(2024, 5, 1), property_type="Unit"),
            sale("3", date(2024, 5, 1), property_type="Villa"),
            sale("4", date(2024, 5, 1), area="JVC", property_type="Unit"),
        ]

        selected = filter_records(records, area="marina", property_type="unit", year=2024)

        assert [r.record_id for r in selected] == ["2"]


class TestYearlyTrend:

    def test_first_year_has_no_change(self):
        """Test first year has no change."""
        records = [
            sale("a1", date(2022, 3, 1), amount=100),
            sale("a2", date(2022, 4, 1), amount=200),
            sale("b1", date(2023, 3, 1), amount=150),
            sale("b2", date(2023, 4, 1), amount=150),
            sale("b3", date(2023, 5, 1), amount=150),
            sale("c1", date(2024, 2, 1), amount=300),
        ]

        rows = MarketAnalytics(now=date(2024, 6, 30)).yearly_trend(records)

        assert [row["year"] for row in rows] == [2022, 2023, 2024]
        assert rows[0]["yoy_amount_change_pct"] is None
        assert rows[0]["yoy_volume_change_pct"] is None
        assert rows[1]["yoy_amount_change_pct"] == 0.0
        assert rows[1]["yoy_volume_change_pct"] == 50.0
        assert rows[2]["yoy_amount_change_pct"] == 100.0
        assert rows[2]["yoy_volume_change_pct"] == -66.67

    def test_window_drops_old_years(self):
        """Test window drops old years."""
        records = [sale("old", date(2015, 3, 1)), sale("new", date(2024, 3, 1))]

        rows = MarketAnalytics(now=date(2024, 6, 30)).yearly_trend(records, years=5)

        assert [row["year"] for row in rows] == [2024]


class TestSeasonalIndex:

    def test_uniform_months_have_index_100(self):
        """Test uniform months have index 100."""
        records = [
            rental(f"{month}-{i}", date(2024, month, 10))
            for month in range(1, 13)
            for i in range(2)
        ]

        result = MarketAnalytics(now=date(2024, 12, 31)).seasonal_index(records)

        assert [row["seasonal_index"] for row in result["data"]] == [100] * 12
        assert all(row["pct_of_yearly"] == 8.33 for row in result["data"])

    def test_peak_and_low_take_first_month_on_ties(self):
        """Test peak and low take first month on ties."""
        records = [rental(f"jan-{i}", date(2024, 1, 10)) for i in range(3)]
        records += [rental(f"m-{month}", date(2024, month, 10)) for month in range(2, 13)]

        result = MarketAnalytics(now=date(2024, 12, 31)).seasonal_index(records)

        assert result["data"][0]["seasonal_index"] == 257
        assert result["data"][1]["seasonal_index"] == 86
        assert result["insights"]["peak_month"]["month"] == 1
        assert result["insights"]["low_month"]["month"] == 2

    def test_month_without_records_has_zero_index(self):
        """Test month without records has zero index."""
        records = [rental("1", date(2024, 3, 10)), rental("2", date(2024, 4, 10))]

        data = MarketAnalytics(now=date(2024, 12, 31)).seasonal_index(records)["data"]

        assert data[0]["count"] == 0
        assert data[0]["seasonal_index"] == 0
        assert data[2]["seasonal_index"] == 600

    def test_no_records(self):
        """Test market analytics with no records."""
        result = MarketAnalytics(now=date(2024, 12, 31)).seasonal_index([])

        assert all(row["seasonal_index"] is None for row in result["data"])
        assert result["insights"]["peak_month"] is None


class TestVacancySignals:

    @pytest.fixture
    def rentals(self):
        prior_day = date(2023, 9, 1)
        recent_day = date(2024, 3, 1)

        def batch(area, count, day, amount, prefix):
            return [rental(f"{prefix}-{area}-{i}", day, area=area, amount=amount) for i in range(count)]

        records = []
        records += batch("A", 10, prior_day, 100, "p") + batch("A", 7, recent_day, 90, "r")
        records += batch("B", 10, prior_day, 100, "p") + batch("B", 13, recent_day, 100, "r")
        records += batch("C", 5, recent_day, 100, "r")
        records += batch("D", 10, prior_day, 100, "p") + batch("D", 8, recent_day, 100, "r")
        records += batch("E", 10, prior_day, 100, "p") + batch("E", 10, recent_day, 100, "r")
        records += batch("F", 10, date(2022, 1, 1), 100, "old")
        return records

    def test_signals(self, rentals):
        """Test vacancy signals per area."""
        rows = MarketAnalytics(now=date(2024, 7, 1)).vacancy_signals(rentals, min_prior_contracts=0)
        by_area = {row["area"]: row for row in rows}

        assert by_area["A"]["signal"] == VacancySignal.HIGH_VACANCY_RISK.value
        assert by_area["A"]["volume_change_pct"] == -30.0
        assert by_area["A"]["amount_change_pct"] == -10.0
        assert by_area["B"]["signal"] == VacancySignal.HIGH_DEMAND.value
        assert by_area["D"]["signal"] == VacancySignal.MODERATE_VACANCY_RISK.value
        assert by_area["E"]["signal"] == VacancySignal.STABLE.value
        assert "F" not in by_area

    def test_zero_prior_volume_is_insufficient_data(self, rentals):
        """Test zero prior volume is insufficient data."""
        rows = MarketAnalytics(now=date(2024, 7, 1)).vacancy_signals(rentals, min_prior_contracts=0)
        area_c = [row for row in rows if row["area"] == "C"][0]

        assert area_c["signal"] == VacancySignal.INSUFFICIENT_DATA.value
        assert area_c["volume_change_pct"] is None
        assert area_c["prev_contracts"] == 0
        assert rows[-1]["area"] == "C"

    def test_areas_below_minimum_are_omitted(self, rentals):
        """Test areas below minimum are omitted."""
        rows = MarketAnalytics(now=date(2024, 7, 1)).vacancy_signals(rentals, min_prior_contracts=5)

        assert sorted(row["area"] for row in rows) == ["A", "B", "D", "E"]

    def test_classify_thresholds_are_strict(self):
        """Test classify thresholds are strict."""
        assert classify_vacancy(-0.2, -0.5) == VacancySignal.MODERATE_VACANCY_RISK
        assert classify_vacancy(-0.1, None) == VacancySignal.STABLE
        assert classify_vacancy(0.2, None) == VacancySignal.STABLE
        assert classify_vacancy(-0.25, None) == VacancySignal.MODERATE_VACANCY_RISK
        assert classify_vacancy(None, None) == VacancySignal.INSUFFICIENT_DATA


class TestGrossYields:

    def test_yield_per_area_with_sample_minimum(self):
        """Test yield per area with sample minimum."""
        day = date(2024, 1, 15)
        transactions = [sale(f"s{i}", day, area="Marina", amount=1_000_000) for i in range(3)]
        transactions.append(sale("zero", day, area="Marina", amount=0))
        transactions += [sale(f"j{i}", day, area="JVC", amount=500_000) for i in range(3)]
        rentals = [rental(f"r{i}", day, area="marina", amount=60_000) for i in range(3)]
        rentals += [rental(f"q{i}", day, area="JVC", amount=50_000) for i in range(2)]

        rows = MarketAnalytics(now=date(2024, 6, 30)).gross_yields(transactions, rentals, min_samples=3)

        assert len(rows) == 1
        assert rows[0]["area"] == "Marina"
        assert rows[0]["gross_yield_pct"] == 6.0
        assert rows[0]["sale_count"] == 3

    def test_old_records_outside_window(self):
        """Test old records outside window."""
        old = date(2019, 1, 1)
        rows = MarketAnalytics(now=date(2024, 6, 30)).gross_yields(
            [sale("s", old)], [rental("r", old)], min_samples=1
        )

        assert rows == []


class TestOtherMetrics:

    def test_market_summary(self):
        """Test computing the market summary."""
        records = [sale("1", date(2024, 1, 1), amount=100, size_sqm=10), sale("2", date(2024, 1, 2), amount=300)]

        summary = MarketAnalytics().market_summary(records)

        assert summary["total_records"] == 2
        assert summary["total_value"] == 400
        assert summary["avg_amount"] == 200
        assert summary["avg_unit_price"] == 10

    def test_rental_demand(self):
        """Test computing rental demand."""
        records = [
            rental("1", date(2024, 1, 5), area="X"),
            rental("2", date(2024, 1, 6), area="X"),
            rental("3", date(2024, 2, 5), area="X"),
            rental("4", date(2024, 2, 6), area="X"),
            rental("5", date(2024, 2, 6), area="Y"),
        ]

        rows = MarketAnalytics().rental_demand(records, min_contracts=2)

        assert len(rows) == 1
        assert rows[0]["area"] == "X"
        assert rows[0]["active_months"] == 2
        assert rows[0]["contracts_per_month"] == 2.0

    def test_compare_areas(self):
        """Test comparing areas side by side."""
        day = date(2024, 1, 15)
        transactions = [sale("s1", day, area="Dubai Marina", amount=1_000_000)]
        rentals = [rental("r1", day, area="dubai marina", amount=50_000)]

        result = MarketAnalytics(now=date(2024, 6, 30)).compare_areas(
            transactions, rentals, ["Dubai Marina", "Nowhere"]
        )

        marina, nowhere = result["comparison"]
        assert marina["gross_yield_pct"] == 5.0
        assert marina["sales"]["transactions"] == 1
        assert nowhere["sales"]["transactions"] == 0
        assert nowhere["gross_yield_pct"] is None
