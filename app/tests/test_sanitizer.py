"""
Unit tests for numeric sanitization (services/sanitizer.py).
"""

import math

import pytest

from services.sanitizer import sanitize_charging_data, sanitize_numeric_value, sanitize_range_data


class TestSanitizeNumericValue:

    @pytest.mark.parametrize("value,expected", [
        ("96-104", 100),
        ("104", 104),
        ("250 mi", 250),
        (" 12.5 ", 12.5),
        (42, 42),
        (0, 0),
        (3.5, 3.5),
        ("-5", -5),
    ])
    def test_parses_numbers(self, value, expected):
        assert sanitize_numeric_value(value) == expected

    @pytest.mark.parametrize("value", [None, "", "abc", "-", "a-b", True, math.nan])
    def test_unparseable_becomes_none(self, value):
        assert sanitize_numeric_value(value) is None

    def test_range_with_decimals_is_averaged(self):
        assert sanitize_numeric_value("7.2-11.5") == pytest.approx(9.35)

    def test_more_than_one_dash_is_not_a_range(self):
        assert sanitize_numeric_value("1-2-3") == 1

    @pytest.mark.parametrize("value,expected", [
        ("1e-5", 1e-5),
        ("2.5E-3", 2.5e-3),
    ])
    def test_negative_exponent_is_not_a_range(self, value, expected):
        assert sanitize_numeric_value(value) == pytest.approx(expected)

    def test_range_with_units_and_spaces(self):
        assert sanitize_numeric_value("96 - 104 mi") == 100


class TestSectionSanitizers:

    def test_range_section_only_touches_numeric_fields(self):
        sanitized = sanitize_range_data({"range": "300-310", "range_city": "", "note": "est."})

        assert sanitized == {"range": 305, "range_city": None, "note": "est."}

    def test_charging_connectors_pass_through(self):
        sanitized = sanitize_charging_data({
            "ac_connector": "J1772",
            "dc_connector": "CCS-1",
            "charging_rate_dc_fast": "150",
            "charge240": "6.5",
        })

        assert sanitized == {
            "ac_connector": "J1772",
            "dc_connector": "CCS-1",
            "charging_rate_dc_fast": 150,
            "charge240": 6.5,
        }

    def test_returns_new_dict(self):
        original = {"range": "250"}

        sanitized = sanitize_range_data(original)

        assert original == {"range": "250"}
        assert sanitized is not original

    def test_missing_section_is_empty(self):
        assert sanitize_range_data(None) == {}
        assert sanitize_charging_data("bogus") == {}
