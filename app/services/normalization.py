"""
Field alias normalization for registry records.

FIELD_MAP maps canonical section -> canonical field -> ordered list of source
field names. Top-level scalar fields (picture) map straight to an alias list.
"""

from typing import Any, Dict, List, Mapping, Optional, Union

AliasMap = Mapping[str, Union[Mapping[str, List[str]], List[str]]]

FIELD_MAP: AliasMap = {
    "vehicle": {
        "id": ["id", "vehicle_id"],
        "make": ["make", "manufacturer", "brand", "manufacturer_name"],
        "model": ["model", "model_name"],
        "year": ["year", "model_year", "model year"],
        "trim": ["trim", "version", "sub_model"],
    },
    "range": {
        "electric_only_range": ["electric_only_range", "ev_range"],
        "range": ["range", "total_range"],
        "range_city": ["range_city", "city_range"],
        "range_highway": ["range_highway", "highway_range"],
        "alternative_fuel_economy_city": ["alternative_fuel_economy_city", "alt_city_mpg"],
        "city08": ["city08"],
        "alternative_fuel_economy_highway": ["alternative_fuel_economy_highway", "alt_hwy_mpg"],
        "highway08": ["highway08"],
        "alternative_fuel_economy_combined": ["alternative_fuel_economy_combined", "alt_comb_mpg"],
        "comb08": ["comb08"],
    },
    "charging": {
        "ac_connector": ["ac_connector", "ac_type"],
        "charging_rate_level_2": ["charging_rate_level_2", "ac_kw"],
        "charging_speed_level_2": ["charging_speed_level_2", "ac_speed"],
        "dc_connector": ["dc_connector", "dc_type"],
        "charging_rate_dc_fast": ["charging_rate_dc_fast", "charging_rate_DC_fast", "dc_kw"],
        "charging_speed_dc_fast": ["charging_speed_dc_fast", "charging_speed_DC_fast", "dc_speed"],
    },
    "powertrain": {
        "engine_type": ["engine_type", "engine"],
        "fuelType": ["fuelType", "fuel_type"],
        "engine_size": ["engine_size", "engine_capacity"],
        "evMotor": ["evMotor", "electric_motor"],
        "driveTrain": ["driveTrain", "drivetrain"],
        "drive": ["drive", "drive_type"],
        "category": ["category_name", "vehicle_class"],
    },
    "battery": {
        "battery_voltage": ["battery_voltage", "voltage"],
        "battery_capacity_amp_hours": ["battery_capacity_amp_hours", "amp_hours"],
        "battery_capacity_kwh": ["battery_capacity_kwh", "kwh_capacity"],
        "battery_type": ["battery_type", "battery_kind"],
    },
    "picture": ["picture", "image_url", "photo"],
}


def resolve_alias(raw: Mapping[str, Any], aliases: List[str]) -> Optional[Any]:
    """Return the value of the first alias present in raw with a non-null scalar value."""
    for key in aliases:
        value = raw.get(key)
        if value is not None and not isinstance(value, Mapping):
            return value
    return None


def normalize_vehicle_data(raw: Mapping[str, Any], field_map: AliasMap = FIELD_MAP) -> Dict[str, Any]:
    """
    Map a source-shaped record onto the canonical section shape.

    Flat records are resolved through the alias lists. A record that already
    carries a section as a nested object ({"range": {"range": 250}}) is
    resolved inside that object first.

    Fields with no matching alias are left out of their section entirely,
    so callers can tell "unknown" apart from a known empty value.
    """
    normalized: Dict[str, Any] = {}

    for section, fields in field_map.items():
        if isinstance(fields, Mapping):
            nested = raw.get(section)
            normalized[section] = {}
            for target_field, aliases in fields.items():
                value = None
                if isinstance(nested, Mapping):
                    value = resolve_alias(nested, aliases)
                if value is None:
                    value = resolve_alias(raw, aliases)
                if value is not None:
                    normalized[section][target_field] = value
        else:
            value = resolve_alias(raw, fields)
            if value is not None:
                normalized[section] = value

    return normalized
