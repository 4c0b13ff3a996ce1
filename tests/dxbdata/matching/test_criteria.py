"""
Tests for Criteria Matcher

Tests substring/exact filters, strict thresholds and missing-value handling.
"""
import pytest
from datetime import date

from src.dxbdata.matching.criteria import compared_value, matches, passes_threshold
from src.dxbdata.models.alert import AlertCriteria, AlertKind
from src.dxbdata.models.record import Record


def make_record(**overrides) -> Record:
    data = {
        "record_id": "T-1",
        "event_date": date(2024, 3, 1),
        "area_name": "Dubai Marina",
        "building_name": "Marina Gate 1",
        "property_type": "Unit",
        "size_sqm": 100.0,
        "amount": 1_500_000.0,
    }
    data.update(overrides)
    return Record(**data)


class TestFilters:
    """Tests for area, building and property type filters."""

    def test_empty_criteria_matches_everything(self):
        """Test empty criteria matches everything."""
        assert matches(make_record(), AlertCriteria())

    def test_area_is_case_insensitive_substring(self):
        """Test area is case insensitive substring."""
        assert matches(make_record(), AlertCriteria(area_name="marina"))
        assert matches(make_record(), AlertCriteria(area_name="DUBAI MAR"))
        assert not matches(make_record(), AlertCriteria(area_name="Downtown"))

    def test_building_is_case_insensitive_substring(self):
        """Test building is case insensitive substring."""
        assert matches(make_record(), AlertCriteria(building_name="gate"))
        assert not matches(make_record(), AlertCriteria(building_name="Tower"))

    def test_property_type_is_exact(self):
        """Test property type is exact."""
        assert matches(make_record(), AlertCriteria(property_type="unit"))
        assert matches(make_record(property_type=" Unit "), AlertCriteria(property_type="UNIT"))
        assert not matches(make_record(property_type="Units"), AlertCriteria(property_type="Unit"))

    def test_missing_field_never_matches_filter(self):
        """Test missing field never matches filter."""
        record = make_record(area_name=None, building_name=None)

        assert not matches(record, AlertCriteria(area_name="Marina"))
        assert not matches(record, AlertCriteria(building_name="Gate"))
        assert matches(record, AlertCriteria(property_type="Unit"))


class TestThresholds:
    """Tests for strict threshold comparisons."""

    def test_price_below_is_strict(self):
        """Test price below is strict."""
        criteria = AlertCriteria(kind=AlertKind.PRICE_BELOW, threshold=1_000_000)

        assert matches(make_record(amount=999_999), criteria)
        assert not matches(make_record(amount=1_000_000), criteria)

    def test_price_above_is_strict(self):
        """Test price above is strict."""
        criteria = AlertCriteria(kind=AlertKind.PRICE_ABOVE, threshold=1_000_000)

        assert matches(make_record(amount=1_000_001), criteria)
        assert not matches(make_record(amount=1_000_000), criteria)

    def test_sqm_kinds_compare_unit_price(self):
        """Test sqm kinds compare unit price."""
        record = make_record(amount=1_500_000, size_sqm=100)  # 15,000 / sqm

        assert compared_value(record, AlertKind.PRICE_SQM_BELOW) == 15_000
        assert matches(record, AlertCriteria(kind=AlertKind.PRICE_SQM_BELOW, threshold=16_000))
        assert not matches(record, AlertCriteria(kind=AlertKind.PRICE_SQM_ABOVE, threshold=15_000))
        assert matches(record, AlertCriteria(kind=AlertKind.PRICE_SQM_ABOVE, threshold=14_999.99))

    def test_missing_compared_value_never_matches(self):
        """Test missing compared value never matches."""
        record = make_record(amount=None, size_sqm=None)

        assert not passes_threshold(record, AlertCriteria(kind=AlertKind.PRICE_BELOW, threshold=10))
        assert not passes_threshold(record, AlertCriteria(kind=AlertKind.PRICE_SQM_ABOVE, threshold=0))

    def test_any_new_matches_without_threshold(self):
        """Test any new matches without threshold."""
        record = make_record(amount=None)

        assert matches(record, AlertCriteria(kind=AlertKind.ANY_NEW, area_name="marina"))

    def test_price_alert_requires_threshold(self):
        """Test price alert requires threshold."""
        with pytest.raises(ValueError):
            AlertCriteria(kind=AlertKind.PRICE_BELOW)
