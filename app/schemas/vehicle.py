from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_WHEEL_SIZE = "default"


class DocumentModel(BaseModel):
    """Base for canonical sections. Numbers coming from the feeds are accepted for string fields."""
    model_config = ConfigDict(coerce_numbers_to_str=True)


class VehicleIdentity(DocumentModel):
    id: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    baseModel: Optional[str] = None
    year: Optional[str] = None
    trim: Optional[str] = None


class RangeData(DocumentModel):
    electric_only_range: Optional[float] = None
    range: Optional[float] = None
    range_city: Optional[float] = None
    range_highway: Optional[float] = None
    alternative_fuel_economy_city: Optional[float] = None
    city08: Optional[float] = None
    alternative_fuel_economy_highway: Optional[float] = None
    highway08: Optional[float] = None
    alternative_fuel_economy_combined: Optional[float] = None
    comb08: Optional[float] = None


class ChargingData(DocumentModel):
    ac_connector: Optional[str] = None
    charging_rate_level_2: Optional[float] = None
    charging_speed_level_2: Optional[float] = None
    dc_connector: Optional[str] = None
    charging_rate_dc_fast: Optional[float] = None
    charging_speed_dc_fast: Optional[float] = None
    # Charge times reported by the fuel economy catalog
    charge120: Optional[float] = None
    charge240: Optional[float] = None
    charge240b: Optional[float] = None


class Powertrain(DocumentModel):
    engine_type: Optional[str] = None
    fuelType: Optional[str] = None
    engine_size: Optional[str] = None
    evMotor: Optional[str] = None
    driveTrain: Optional[str] = None
    drive: Optional[str] = None
    cylinders: Optional[str] = None
    category: Optional[str] = None


class Battery(DocumentModel):
    battery_voltage: Optional[float] = None
    battery_capacity_amp_hours: Optional[float] = None
    battery_capacity_kwh: Optional[float] = None
    battery_type: Optional[str] = None


class WheelVariant(DocumentModel):
    size: str = DEFAULT_WHEEL_SIZE
    range: RangeData = Field(default_factory=RangeData)
    charging: ChargingData = Field(default_factory=ChargingData)


class NormalizedRecord(DocumentModel):
    """A registry record mapped onto the canonical sections. Unmatched fields stay None."""
    vehicle: VehicleIdentity = Field(default_factory=VehicleIdentity)
    range: RangeData = Field(default_factory=RangeData)
    charging: ChargingData = Field(default_factory=ChargingData)
    powertrain: Powertrain = Field(default_factory=Powertrain)
    battery: Battery = Field(default_factory=Battery)
    picture: Optional[str] = None


class CanonicalVehicle(DocumentModel):
    """The single reconciled document per (make, base model, year)."""
    vehicle: VehicleIdentity = Field(default_factory=VehicleIdentity)
    powertrain: Powertrain = Field(default_factory=Powertrain)
    battery: Battery = Field(default_factory=Battery)
    wheels: List[WheelVariant] = Field(default_factory=list)
    picture: Optional[str] = None

    def find_wheel(self, size: str) -> Optional[WheelVariant]:
        for wheel in self.wheels:
            if wheel.size == size:
                return wheel
        return None


class VehicleOut(CanonicalVehicle):
    """Canonical vehicle as returned by the read API."""
    id: int
