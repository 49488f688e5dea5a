"""
Pytest configuration and shared fixtures for the fuel sync test suite.

This module provides:
- Database fixtures (in-memory SQLite for fast tests)
- Settings pointing at fake upstream services
- A scripted crawl worker double for scheduler tests
- FastAPI test client fixtures
"""

import queue
import threading
from typing import AsyncGenerator, Iterable, Optional

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  registers tables on Base.metadata
from core.config import Settings
from core.db import Base, get_db
from exceptions import invalid_schedule_exception_handler
from routers import charge_labs, fuel_sync, health, metrics
from services.exceptions import InvalidScheduleError
from services.fuel_sync_service import FuelSyncService


# Test Database Configuration
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def async_engine():
    """Create async engine for testing with in-memory SQLite."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def async_db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for testing."""
    async_session = async_sessionmaker(async_engine, expire_on_commit=False)

    async with async_session() as session:
        yield session


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        registry_url="http://registry.test/vehicles",
        catalog_url="http://catalog.test/ws/rest/vehicle",
        start_id=1,
        end_id=5,
        batch_size=2,
        request_delay=0,
        request_timeout=1,
        fetch_attempts=1,
        cron_expression="0 2 * * *",
        autostart=False,
        log_level="INFO",
    )


class FakeCrawlWorker:
    """
    Scripted stand-in for ProcessCrawlWorker.

    Replays `events` through next_event. With hold=True the worker stays
    alive after its script until terminate() is called.
    """

    def __init__(self, job, events: Iterable = (), exitcode: int = 0, hold: bool = False,
                 fail_on_start: Optional[Exception] = None):
        self.job = job
        self.events = queue.Queue()
        for event in events:
            self.events.put(event)
        self.started = False
        self.terminated = False
        self.joined = False
        self._exitcode = exitcode
        self._fail_on_start = fail_on_start
        self._released = threading.Event()
        if not hold:
            self._released.set()

    def start(self):
        if self._fail_on_start is not None:
            raise self._fail_on_start
        self.started = True

    def next_event(self, timeout):
        try:
            return self.events.get(timeout=timeout)
        except queue.Empty:
            return None

    def is_alive(self):
        if not self.started or self.terminated:
            return False
        return not (self._released.is_set() and self.events.empty())

    def terminate(self):
        self.terminated = True
        self._released.set()

    def join(self, timeout=None):
        self.joined = True

    @property
    def exitcode(self):
        if self.is_alive():
            return None
        return -15 if self.terminated else self._exitcode


@pytest.fixture
def worker_launcher():
    """
    Build a launcher for FuelSyncService that creates FakeCrawlWorker instances.

    Every worker it creates is recorded on launcher.created.
    """
    def build(events: Iterable = (), exitcode: int = 0, hold: bool = False,
              fail_on_start: Optional[Exception] = None):
        created = []

        def launcher(job):
            worker = FakeCrawlWorker(job, list(events), exitcode, hold, fail_on_start)
            created.append(worker)
            return worker

        launcher.created = created
        return launcher

    return build


@pytest_asyncio.fixture
async def sync_service(test_settings, worker_launcher):
    """FuelSyncService whose workers are held open until stopped."""
    service = FuelSyncService(test_settings, launcher=worker_launcher(hold=True), poll_interval=0.01)
    yield service
    await service.stop()


def build_test_app(service: FuelSyncService) -> FastAPI:
    """A test FastAPI app with every router and no lifespan (no Postgres, no autostart)."""
    test_app = FastAPI()
    test_app.add_exception_handler(InvalidScheduleError, invalid_schedule_exception_handler)
    test_app.include_router(health.router)
    test_app.include_router(metrics.router)
    test_app.include_router(fuel_sync.router)
    test_app.include_router(charge_labs.router)
    test_app.include_router(charge_labs.inject_router)
    test_app.state.fuel_sync = service
    return test_app


@pytest_asyncio.fixture
async def async_client(async_db_session, sync_service) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client with database dependency override."""

    async def override_get_db():
        yield async_db_session

    test_app = build_test_app(sync_service)
    test_app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as client:
        yield client

    test_app.dependency_overrides.clear()
