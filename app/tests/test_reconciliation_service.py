"""
Tests for the reconciliation engine (services/reconciliation_service.py).

Runs against in-memory SQLite so the unique (make, model, year) constraint
and per-record commits behave like the real store.
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from models.charge_lab import ChargeLab
from services.exceptions import RegistryFeedError
from services.reconciliation_service import ReconciliationService, catalog_powertrain, catalog_range
from services.staging_service import FuelStagingService


async def _document(service, make="Acme", model="Volt", year="2023"):
    row = await service.find_vehicle(make, model, year)
    assert row is not None
    return row.to_document()


async def _count(session) -> int:
    return (await session.execute(select(func.count()).select_from(ChargeLab))).scalar_one()


class TestIngestRegistryRecords:

    @pytest.mark.asyncio
    async def test_new_vehicle_with_wheel_size(self, async_db_session):
        service = ReconciliationService(async_db_session)

        report = await service.ingest_registry_records([
            {"make": "Acme", "model": "Volt (18 inch wheels)", "year": 2023, "range": {"range": 250}},
        ])

        assert report.created == 1
        document = await _document(service)
        assert document.vehicle.model == "Volt"
        assert document.vehicle.baseModel == "Volt"
        assert document.vehicle.year == "2023"
        assert len(document.wheels) == 1
        assert document.wheels[0].size == "18 inch"
        assert document.wheels[0].range.range == 250

    @pytest.mark.asyncio
    async def test_new_vehicle_without_wheel_size_gets_default_variant(self, async_db_session):
        service = ReconciliationService(async_db_session)

        await service.ingest_registry_records([
            {"make": "Acme", "model": "Volt", "year": "2023", "range": "96-104", "ac_connector": "J1772"},
        ])

        document = await _document(service)
        assert [wheel.size for wheel in document.wheels] == ["default"]
        assert document.wheels[0].range.range == 100
        assert document.wheels[0].charging.ac_connector == "J1772"

    @pytest.mark.asyncio
    async def test_new_wheel_size_is_appended(self, async_db_session):
        service = ReconciliationService(async_db_session)

        report = await service.ingest_registry_records([
            {"make": "Acme", "model": "Volt (18 inch wheels)", "year": 2023, "range": 250},
            {"make": "Acme", "model": "Volt (20 inch wheels)", "year": 2023, "range": 230},
        ])

        assert report.created == 1
        assert report.updated == 1
        assert await _count(async_db_session) == 1
        document = await _document(service)
        assert [(wheel.size, wheel.range.range) for wheel in document.wheels] == [("18 inch", 250), ("20 inch", 230)]

    @pytest.mark.asyncio
    async def test_same_wheel_size_merges_and_preserves(self, async_db_session):
        service = ReconciliationService(async_db_session)

        await service.ingest_registry_records([
            {"make": "Acme", "model": "Volt (18 inch wheels)", "year": 2023, "range": 250, "city_range": 270},
            {"make": "Acme", "model": "Volt (18 inch wheels)", "year": 2023, "range": 255},
        ])

        document = await _document(service)
        assert len(document.wheels) == 1
        assert document.wheels[0].range.range == 255
        assert document.wheels[0].range.range_city == 270

    @pytest.mark.asyncio
    async def test_base_level_record_enriches_vehicle(self, async_db_session):
        service = ReconciliationService(async_db_session)

        await service.ingest_registry_records([
            {"make": "Acme", "model": "Volt", "year": 2023, "trim": "LT", "battery_voltage": 350},
            {"make": "Acme", "model": "Volt", "year": 2023, "kwh_capacity": 65, "photo": "volt.png", "range": 240},
        ])

        document = await _document(service)
        assert document.vehicle.trim == "LT"
        assert document.battery.battery_voltage == 350
        assert document.battery.battery_capacity_kwh == 65
        assert document.picture == "volt.png"
        assert [wheel.size for wheel in document.wheels] == ["default"]
        assert document.wheels[0].range.range == 240

    @pytest.mark.asyncio
    async def test_ingest_is_idempotent(self, async_db_session):
        service = ReconciliationService(async_db_session)
        record = {"make": "Acme", "model": "Volt (18 inch wheels)", "year": 2023, "range": 250, "dc_kw": "150"}

        await service.ingest_registry_records([record])
        once = (await _document(service)).model_dump()
        await service.ingest_registry_records([record])
        twice = (await _document(service)).model_dump()

        assert once == twice
        assert await _count(async_db_session) == 1

    @pytest.mark.asyncio
    async def test_missing_identity_is_skipped(self, async_db_session):
        service = ReconciliationService(async_db_session)

        report = await service.ingest_registry_records([
            {"model": "Volt", "year": 2023},
            "not a record",
            {"make": "Acme", "model": "Volt", "year": 2023},
        ])

        assert report.skipped == 2
        assert report.created == 1
        assert report.failed == 0

    @pytest.mark.asyncio
    async def test_invalid_record_does_not_abort_the_batch(self, async_db_session):
        service = ReconciliationService(async_db_session)

        report = await service.ingest_registry_records([
            {"make": "Acme", "model": "Volt", "year": 2023, "ac_connector": ["J1772", "CCS"]},
            {"make": "Acme", "model": "Spark", "year": 2023},
        ])

        assert report.failed == 1
        assert report.created == 1
        assert await service.find_vehicle("Acme", "Spark", "2023") is not None

    @pytest.mark.asyncio
    async def test_persistence_failure_is_absorbed(self, async_db_session):
        service = ReconciliationService(async_db_session)

        with patch.object(service, "find_vehicle", side_effect=[SQLAlchemyError("connection lost"), None]):
            report = await service.ingest_registry_records([
                {"make": "Acme", "model": "Volt", "year": 2023},
                {"make": "Acme", "model": "Spark", "year": 2023},
            ])

        assert report.failed == 1
        assert report.created == 1


class TestReconcileCatalogRecords:

    @pytest.mark.asyncio
    async def test_fills_default_variant_without_touching_wheel_variant(self, async_db_session):
        service = ReconciliationService(async_db_session)
        await service.ingest_registry_records([
            {"make": "Acme", "model": "Volt (18 inch wheels)", "year": 2023, "range": {"range": 250}},
        ])

        report = await service.reconcile_catalog_records([
            {"make": "Acme", "model": "Volt", "year": "2023", "city08": 100, "highway08": 90},
        ])

        assert report.updated == 1
        document = await _document(service)
        eighteen = document.find_wheel("18 inch")
        default = document.find_wheel("default")
        assert eighteen.range.range == 250
        assert eighteen.range.range_city is None
        assert default.range.range_city == 100
        assert default.range.range_highway == 90

    @pytest.mark.asyncio
    async def test_fill_only_never_replaces_registry_values(self, async_db_session):
        service = ReconciliationService(async_db_session)
        await service.ingest_registry_records([
            {"make": "Acme", "model": "Volt", "year": 2023, "city_range": 120, "city08": 0},
        ])

        await service.reconcile_catalog_records([
            {"make": "Acme", "model": "Volt", "year": 2023, "city08": 100, "highway08": 90, "range": "53"},
        ])

        default = (await _document(service)).find_wheel("default")
        assert default.range.range_city == 120
        assert default.range.city08 == 0
        assert default.range.range_highway == 90
        assert default.range.electric_only_range == 53

    @pytest.mark.asyncio
    async def test_catalog_powertrain_is_authoritative(self, async_db_session):
        service = ReconciliationService(async_db_session)
        await service.ingest_registry_records([
            {"make": "Acme", "model": "Volt", "year": 2023, "drive_type": "FWD", "engine_type": "Electric"},
        ])

        await service.reconcile_catalog_records([{
            "make": "Acme", "model": "Volt", "year": 2023,
            "drive": "Front-Wheel Drive", "fuelType": "Electricity",
            "cylinders": "", "displ": "", "VClass": "Compact Cars",
        }])

        powertrain = (await _document(service)).powertrain
        assert powertrain.drive == "Front-Wheel Drive"
        assert powertrain.fuelType == "Electricity"
        assert powertrain.category == "Compact Cars"
        assert powertrain.engine_type == "Electric"
        assert powertrain.cylinders is None

    @pytest.mark.asyncio
    async def test_catalog_wheel_size_variant(self, async_db_session):
        service = ReconciliationService(async_db_session)
        await service.ingest_registry_records([{"make": "Acme", "model": "Volt", "year": 2023, "range": 250}])

        await service.reconcile_catalog_records([
            {"make": "Acme", "model": "Volt (20 inch wheels)", "year": 2023, "city08": 110, "charge240": "7.5"},
        ])

        document = await _document(service)
        assert [wheel.size for wheel in document.wheels] == ["default", "20 inch"]
        twenty = document.find_wheel("20 inch")
        assert twenty.range.range_city == 110
        assert twenty.charging.charge240 == 7.5

    @pytest.mark.asyncio
    async def test_creates_default_variant_when_missing(self, async_db_session):
        service = ReconciliationService(async_db_session)
        await service.ingest_registry_records([{"make": "Acme", "model": "Volt (18 inch wheels)", "year": 2023}])

        await service.reconcile_catalog_records([{"make": "Acme", "model": "Volt", "year": 2023, "comb08": 95}])

        default = (await _document(service)).find_wheel("default")
        assert default is not None
        assert default.range.comb08 == 95

    @pytest.mark.asyncio
    async def test_unknown_vehicle_is_skipped(self, async_db_session):
        service = ReconciliationService(async_db_session)

        report = await service.reconcile_catalog_records([{"make": "Acme", "model": "Volt", "year": 2023}])

        assert report.skipped == 1
        assert await _count(async_db_session) == 0

    @pytest.mark.asyncio
    async def test_missing_make_is_skipped_before_store_access(self, async_db_session):
        service = ReconciliationService(async_db_session)

        with patch.object(service, "find_vehicle", new=AsyncMock()) as find_vehicle:
            report = await service.reconcile_catalog_records([{"model": "Volt", "year": "2023", "city08": 100}])

        find_vehicle.assert_not_awaited()
        assert report.skipped == 1
        assert report.failed == 0

    @pytest.mark.asyncio
    async def test_base_model_field_is_accepted(self, async_db_session):
        service = ReconciliationService(async_db_session)
        await service.ingest_registry_records([{"make": "Acme", "model": "Volt", "year": 2023}])

        report = await service.reconcile_catalog_records([
            {"make": "Acme", "baseModel": "Volt", "year": 2023.0, "city08": 100},
        ])

        assert report.updated == 1


class TestCatalogFieldMapping:

    def test_range_fields(self):
        fuel_range = catalog_range({"city08": "100", "highway08": 90, "comb08": "95", "range": "", "cityA08": "0"})

        assert fuel_range.range_city == 100
        assert fuel_range.city08 == 100
        assert fuel_range.range_highway == 90
        assert fuel_range.comb08 == 95
        assert fuel_range.electric_only_range is None
        assert fuel_range.alternative_fuel_economy_city == 0

    def test_powertrain_fields(self):
        powertrain = catalog_powertrain({"displ": 2.0, "cylinders": 4, "fuelType": "Regular"})

        assert powertrain.engine_size == "2.0"
        assert powertrain.cylinders == "4"
        assert powertrain.fuelType == "Regular"
        assert powertrain.drive is None


class TestInjectData:

    @pytest.mark.asyncio
    async def test_registry_then_catalog(self, async_db_session):
        registry = AsyncMock()
        registry.fetch_vehicles.return_value = [{"make": "Acme", "model": "Volt", "year": 2023, "range": 250}]
        staging = FuelStagingService(async_db_session)
        await staging.bulk_insert([(7, {"make": "Acme", "model": "Volt", "year": "2023", "city08": "100"})])

        report = await ReconciliationService(async_db_session).inject_data(registry, staging)

        assert report.registry.created == 1
        assert report.catalog.updated == 1
        assert report.registry_error is None
        default = (await _document(ReconciliationService(async_db_session))).find_wheel("default")
        assert default.range.range == 250
        assert default.range.range_city == 100

    @pytest.mark.asyncio
    async def test_registry_failure_still_runs_catalog_pass(self, async_db_session):
        registry = AsyncMock()
        registry.fetch_vehicles.side_effect = RegistryFeedError("registry feed request failed")
        staging = FuelStagingService(async_db_session)
        await staging.bulk_insert([(7, {"make": "Acme", "model": "Volt", "year": "2023"})])

        report = await ReconciliationService(async_db_session).inject_data(registry, staging)

        assert report.registry_error == "registry feed request failed"
        assert report.catalog.skipped == 1
        assert report.as_dict()["catalog"]["skipped"] == 1
