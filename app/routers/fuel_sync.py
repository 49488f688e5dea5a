import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from schemas.fuel_sync import RunNowRequest, StartRequest
from services.exceptions import InvalidScheduleError, SyncAlreadyRunningError, SyncStartError
from services.fuel_sync_service import FuelSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/fuel-sync", tags=["fuel-sync"])


def get_sync_service(request: Request) -> FuelSyncService:
    return request.app.state.fuel_sync


def _status_payload(service: FuelSyncService) -> Dict[str, Any]:
    payload = service.get_status().model_dump(mode="json", by_alias=True)
    payload["timestamp"] = datetime.now(timezone.utc).isoformat()
    return payload


def _already_running(service: FuelSyncService) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "error": "Fuel data synchronization is already running",
            "status": _status_payload(service),
        },
    )


@router.post("/start")
async def start_schedule(
    body: Optional[StartRequest] = Body(None),
    service: FuelSyncService = Depends(get_sync_service),
):
    """Schedule recurring synchronization runs on a cron expression (UTC)."""
    body = body or StartRequest()
    try:
        job = service.start(
            cron_expression=body.cron_expression,
            start_id=body.start_id,
            end_id=body.end_id,
            batch_size=body.batch_size,
        )
    except InvalidScheduleError:
        raise
    except Exception as e:
        logger.exception("Failed to start fuel data sync schedule")
        raise HTTPException(status_code=500, detail=f"Failed to start fuel data sync schedule: {str(e)}")

    return {
        "message": "Fuel data synchronization scheduled",
        "schedule": service.cron_expression,
        "range": {"startId": job.start_id, "endId": job.end_id, "batchSize": job.batch_size},
        "processingMode": "worker process",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": _status_payload(service),
    }


@router.post("/run-now")
async def run_now(
    body: Optional[RunNowRequest] = Body(None),
    service: FuelSyncService = Depends(get_sync_service),
):
    """Start one synchronization run immediately. Returns as soon as the worker is launched."""
    body = body or RunNowRequest()
    try:
        service.run_now(start_id=body.start_id, end_id=body.end_id, batch_size=body.batch_size)
    except SyncAlreadyRunningError:
        return _already_running(service)
    except InvalidScheduleError:
        raise
    except SyncStartError as e:
        raise HTTPException(status_code=500, detail=f"Failed to start fuel data sync: {str(e)}")

    return {
        "message": "Fuel data synchronization started",
        "status": _status_payload(service),
    }


@router.get("/status")
async def get_status(service: FuelSyncService = Depends(get_sync_service)):
    return _status_payload(service)


@router.post("/stop")
async def stop(service: FuelSyncService = Depends(get_sync_service)):
    """Cancel the schedule and kill the running worker, if any."""
    await service.stop()
    return {
        "message": "Fuel data synchronization stopped",
        "status": _status_payload(service),
    }


@router.get("/stats")
async def get_stats(service: FuelSyncService = Depends(get_sync_service)):
    return service.get_stats().model_dump(mode="json", by_alias=True)
