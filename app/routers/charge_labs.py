from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.db import get_db
from models.charge_lab import ChargeLab
from schemas.vehicle import VehicleOut
from services.reconciliation_service import ReconciliationService
from services.registry_client import RegistryClient
from services.staging_service import FuelStagingService
from services.variants import extract_base_model

router = APIRouter(prefix="/api/charge-labs", tags=["charge-labs"])


def _to_out(row: ChargeLab) -> VehicleOut:
    return VehicleOut(id=row.id, **row.to_document().model_dump())


@router.get("/vehicles/all", response_model=List[VehicleOut])
async def list_vehicles(db: AsyncSession = Depends(get_db)):
    rows = (await db.execute(select(ChargeLab).order_by(ChargeLab.id))).scalars().all()
    return [_to_out(row) for row in rows]


@router.get("/vehicle/{vehicle_id}", response_model=VehicleOut)
async def get_vehicle(vehicle_id: int, db: AsyncSession = Depends(get_db)):
    row = (await db.execute(select(ChargeLab).where(ChargeLab.id == vehicle_id))).scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=404, detail="Vehicle not found.")
    return _to_out(row)


@router.get("/vehicles", response_model=List[VehicleOut])
async def search_vehicles(
    make: Optional[str] = None,
    model: Optional[str] = None,
    year: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Filter canonical vehicles. A model carrying a wheel size annotation matches its base model."""
    query = select(ChargeLab)
    if make:
        query = query.where(ChargeLab.make == make.strip())
    if model:
        query = query.where(ChargeLab.model == extract_base_model(model))
    if year:
        query = query.where(ChargeLab.year == year.strip())

    rows = (await db.execute(query.order_by(ChargeLab.id))).scalars().all()
    return [_to_out(row) for row in rows]


inject_router = APIRouter(tags=["charge-labs"])


@inject_router.get("/inject-data")
async def inject_data(db: AsyncSession = Depends(get_db)):
    """Run one reconciliation pass in-process: registry feed, then every staged catalog record."""
    try:
        report = await ReconciliationService(db).inject_data(
            RegistryClient(get_settings()),
            FuelStagingService(db),
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Data injection failed: {str(e)}")

    return {
        "message": "Data injection process completed successfully",
        "report": report.as_dict(),
    }
