import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from core.metrics import track_performance
from core.prometheus_metrics import prometheus_collector
from models.charge_lab import ChargeLab
from schemas.vehicle import (
    DEFAULT_WHEEL_SIZE,
    CanonicalVehicle,
    ChargingData,
    NormalizedRecord,
    Powertrain,
    RangeData,
    WheelVariant,
)
from services.exceptions import MissingIdentityError, RegistryFeedError
from services.merge import fill_missing, merge_preserve, upsert_wheel_variant
from services.normalization import FIELD_MAP, normalize_vehicle_data
from services.sanitizer import sanitize_charging_data, sanitize_range_data
from services.variants import extract_variant_key

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
SKIPPED = "skipped"

# Range and charging data live on wheel variants, never on the vehicle itself
VARIANT_SECTIONS = frozenset({"range", "charging", "wheels"})


@dataclass
class ReconcileReport:
    source: str
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    def record(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)

    def counts(self) -> Dict[str, int]:
        return {
            CREATED: self.created,
            UPDATED: self.updated,
            SKIPPED: self.skipped,
            "failed": self.failed,
        }


@dataclass
class InjectionReport:
    registry: ReconcileReport = field(default_factory=lambda: ReconcileReport("registry"))
    catalog: ReconcileReport = field(default_factory=lambda: ReconcileReport("catalog"))
    registry_error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def clean_identity_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def catalog_range(raw: Mapping[str, Any]) -> RangeData:
    """Fuel economy catalog fields that describe range and efficiency."""
    return RangeData.model_validate(sanitize_range_data({
        "range_city": raw.get("city08"),
        "range_highway": raw.get("highway08"),
        "comb08": raw.get("comb08"),
        "city08": raw.get("city08"),
        "highway08": raw.get("highway08"),
        "electric_only_range": raw.get("range"),
        "alternative_fuel_economy_city": raw.get("cityA08"),
        "alternative_fuel_economy_highway": raw.get("highwayA08"),
        "alternative_fuel_economy_combined": raw.get("combA08"),
    }))


def catalog_charging(raw: Mapping[str, Any]) -> ChargingData:
    return ChargingData.model_validate(sanitize_charging_data({
        "charge120": raw.get("charge120"),
        "charge240": raw.get("charge240"),
        "charge240b": raw.get("charge240b"),
    }))


def catalog_powertrain(raw: Mapping[str, Any]) -> Powertrain:
    displacement = _blank_to_none(raw.get("displ"))
    return Powertrain.model_validate({
        "fuelType": _blank_to_none(raw.get("fuelType")),
        "drive": _blank_to_none(raw.get("drive")),
        "engine_size": str(displacement) if displacement is not None else None,
        "cylinders": _blank_to_none(raw.get("cylinders")),
        "category": _blank_to_none(raw.get("VClass")),
    })


class ReconciliationService:
    """
    Reconciles registry and fuel economy catalog records into one canonical
    ChargeLab document per (make, base model, year).

    Every record is committed on its own. A failing record is rolled back,
    logged and counted, and the loop moves on to the next one.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_vehicle(self, make: str, model: str, year: str) -> Optional[ChargeLab]:
        result = await self.db.execute(
            select(ChargeLab).where(
                ChargeLab.make == make,
                ChargeLab.model == model,
                ChargeLab.year == year,
            )
        )
        return result.scalar_one_or_none()

    @track_performance(service_name="ReconciliationService")
    async def ingest_registry_records(self, records: Iterable[Mapping[str, Any]]) -> ReconcileReport:
        """Normalize registry records and create or merge their canonical vehicles."""
        report = ReconcileReport("registry")

        for raw in records:
            try:
                outcome = await self._ingest_registry_record(raw)
            except MissingIdentityError as e:
                logger.info(f"Skipping registry record: {e}")
                report.skipped += 1
                continue
            except (SQLAlchemyError, SchemaValidationError) as e:
                await self.db.rollback()
                logger.error(f"Failed to save registry record {_describe(raw)}: {e}")
                report.failed += 1
                continue
            report.record(outcome)

        # In a crawl worker this registry dies with the process. The scheduler records the counts from InjectionCompleted
        prometheus_collector.record_reconciliation(report.source, report.counts())
        logger.info(f"Registry reconciliation finished: {report.counts()}")
        return report

    async def _ingest_registry_record(self, raw: Mapping[str, Any]) -> str:
        if not isinstance(raw, Mapping):
            raise MissingIdentityError(f"not a record: {raw!r}")

        normalized = normalize_vehicle_data(raw, FIELD_MAP)
        identity = normalized["vehicle"]

        base_model, wheel_size = extract_variant_key(identity.get("model"))
        make = clean_identity_value(identity.get("make"))
        year = clean_identity_value(identity.get("year"))
        if not (make and base_model and year):
            raise MissingIdentityError(f"missing make, model or year: {_describe(raw)}")

        # The canonical document always carries the clean model name
        identity.update(make=make, model=base_model, baseModel=base_model, year=year)
        normalized["range"] = sanitize_range_data(normalized["range"])
        normalized["charging"] = sanitize_charging_data(normalized["charging"])
        record = NormalizedRecord.model_validate(normalized)

        variant = WheelVariant(
            size=wheel_size or DEFAULT_WHEEL_SIZE,
            range=record.range,
            charging=record.charging,
        )
        label = f"{make} {base_model} {year}" + (f" with {wheel_size} wheels" if wheel_size else " with default range data")

        row = await self.find_vehicle(make, base_model, year)

        if row is None:
            document = CanonicalVehicle(
                vehicle=record.vehicle,
                powertrain=record.powertrain,
                battery=record.battery,
                picture=record.picture,
                wheels=[variant],
            )
            self.db.add(ChargeLab.from_document(document))
            await self.db.commit()
            logger.info(f"Added vehicle {label}")
            return CREATED

        document = row.to_document()
        upsert_wheel_variant(document, variant)

        if wheel_size is None:
            # Base level registry data also enriches the vehicle itself
            merge_preserve(document, record, exclude=VARIANT_SECTIONS)

        row.apply_document(document)
        await self.db.commit()
        logger.info(f"Updated vehicle {label}")
        return UPDATED

    @track_performance(service_name="ReconciliationService")
    async def reconcile_catalog_records(self, records: Iterable[Mapping[str, Any]]) -> ReconcileReport:
        """Augment existing canonical vehicles with staged fuel economy catalog records."""
        report = ReconcileReport("catalog")

        for raw in records:
            try:
                outcome = await self._reconcile_catalog_record(raw)
            except MissingIdentityError as e:
                logger.info(f"Skipping catalog record: {e}")
                report.skipped += 1
                continue
            except (SQLAlchemyError, SchemaValidationError) as e:
                await self.db.rollback()
                logger.error(f"Failed to save vehicle {_describe(raw)}: {e}")
                report.failed += 1
                continue
            report.record(outcome)

        # In a crawl worker this registry dies with the process. The scheduler records the counts from InjectionCompleted
        prometheus_collector.record_reconciliation(report.source, report.counts())
        logger.info(f"Catalog reconciliation finished: {report.counts()}")
        return report

    async def _reconcile_catalog_record(self, raw: Mapping[str, Any]) -> str:
        if not isinstance(raw, Mapping):
            raise MissingIdentityError(f"not a record: {raw!r}")

        make = clean_identity_value(raw.get("make"))
        model_name = clean_identity_value(raw.get("model") or raw.get("baseModel"))
        year = clean_identity_value(raw.get("year"))
        if not (make and model_name and year):
            raise MissingIdentityError(
                f"missing essential data: {make or 'Unknown'} {model_name or 'Unknown'} {year or 'Unknown'}"
            )

        base_model, wheel_size = extract_variant_key(model_name)

        row = await self.find_vehicle(make, base_model, year)
        if row is None:
            logger.info(f"Skipping {make} {base_model} {year}: not found in charge labs")
            return SKIPPED

        document = row.to_document()
        fuel_range = catalog_range(raw)
        fuel_charging = catalog_charging(raw)

        if wheel_size:
            created = upsert_wheel_variant(
                document,
                WheelVariant(size=wheel_size, range=fuel_range, charging=fuel_charging),
            )
            logger.info(f"{'Added new' if created else 'Updated existing'} {wheel_size} wheel variant for {make} {base_model} {year}")
        else:
            default = document.find_wheel(DEFAULT_WHEEL_SIZE)
            if default is not None:
                # Registry data wins: only fill fields the default variant does not know yet
                filled = fill_missing(default.range, fuel_range)
                logger.info(f"Filled default wheel variant fields {filled} for {make} {base_model} {year}")
            else:
                document.wheels.append(
                    WheelVariant(size=DEFAULT_WHEEL_SIZE, range=fuel_range, charging=fuel_charging)
                )
                logger.info(f"Added default wheel variant with fuel economy data for {make} {base_model} {year}")

            # Catalog powertrain attributes are authoritative
            merge_preserve(document.powertrain, catalog_powertrain(raw))

        row.apply_document(document)
        await self.db.commit()
        return UPDATED

    @track_performance(service_name="ReconciliationService")
    async def inject_data(self, registry_client, staging) -> InjectionReport:
        """
        Full reconciliation pass: registry feed first, then every staged catalog record.

        A registry feed failure is reported and does not prevent the catalog pass.
        """
        report = InjectionReport()

        try:
            registry_records = await registry_client.fetch_vehicles()
            report.registry = await self.ingest_registry_records(registry_records)
        except RegistryFeedError as e:
            logger.error(f"Registry feed failed: {e}")
            report.registry_error = str(e)

        catalog_records = await staging.fetch_all()
        report.catalog = await self.reconcile_catalog_records(catalog_records)

        return report


def _describe(raw: Any) -> str:
    if not isinstance(raw, Mapping):
        return repr(raw)
    return " ".join(
        clean_identity_value(raw.get(key)) or "Unknown"
        for key in ("make", "model", "year")
    )
