import math
import re
from typing import Any, Dict, Mapping, Optional

# Leading numeric prefix, so "250 mi" parses as 250
_NUMBER_PREFIX = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")
# "96-104" style range with a number on both sides of the dash
_NUMERIC_RANGE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*-\s*(\d+(?:\.\d+)?)")

RANGE_NUMERIC_FIELDS = frozenset({
    "electric_only_range",
    "range",
    "range_city",
    "range_highway",
    "alternative_fuel_economy_city",
    "city08",
    "alternative_fuel_economy_highway",
    "highway08",
    "alternative_fuel_economy_combined",
    "comb08",
})

CHARGING_NUMERIC_FIELDS = frozenset({
    "charging_rate_level_2",
    "charging_speed_level_2",
    "charging_rate_dc_fast",
    "charging_speed_dc_fast",
    "charge120",
    "charge240",
    "charge240b",
})


def _parse_float(text: str) -> Optional[float]:
    match = _NUMBER_PREFIX.match(text)
    if not match:
        return None
    return float(match.group(0))


def sanitize_numeric_value(value: Any) -> Optional[float]:
    """
    Coerce a numeric-ish value into a number or None.

    "96-104" style ranges become the mean of both ends.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return None if isinstance(value, float) and math.isnan(value) else value

    text = str(value).strip()

    if text.count("-") == 1:
        match = _NUMERIC_RANGE.match(text)
        if match:
            return (float(match.group(1)) + float(match.group(2))) / 2

    return _parse_float(text)


def _sanitize_section(data: Optional[Mapping[str, Any]], numeric_fields: frozenset) -> Dict[str, Any]:
    if not isinstance(data, Mapping):
        return {}

    return {
        key: sanitize_numeric_value(value) if key in numeric_fields else value
        for key, value in data.items()
    }


def sanitize_range_data(range_data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    return _sanitize_section(range_data, RANGE_NUMERIC_FIELDS)


def sanitize_charging_data(charging_data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Connector types and other non numeric charging fields pass through untouched."""
    return _sanitize_section(charging_data, CHARGING_NUMERIC_FIELDS)
