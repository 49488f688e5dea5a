from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_settings
from core.db import create_schema
from core.logging import setup_logging
from exceptions import invalid_schedule_exception_handler
from routers import charge_labs, fuel_sync, health, metrics
from services.exceptions import InvalidScheduleError
from services.fuel_sync_service import FuelSyncService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level)

    await create_schema()

    service = FuelSyncService(settings)
    app.state.fuel_sync = service

    if settings.autostart:
        service.start()
        logger.info("Fuel data sync started automatically on server startup")

    try:
        yield
    finally:
        # teardown on shutdown
        await service.stop()
        app.state.fuel_sync = None


app = FastAPI(title="Charge Labs Fuel Sync API", lifespan=lifespan)

# Register exception handler
app.add_exception_handler(InvalidScheduleError, invalid_schedule_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],   # Allows POST, GET, OPTIONS, etc
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(fuel_sync.router)
app.include_router(charge_labs.router)
app.include_router(charge_labs.inject_router)


@app.get("/", tags=["root"])
def hello():
    return {"message": "Charge Labs fuel data sync service"}
