"""
Crawl worker: runs one fuel data synchronization in its own OS process.

The worker owns its database engine and HTTP clients, crawls the catalog
range into the staging store, runs a reconciliation pass and reports every
step to the scheduler as a typed message over a process queue.
"""

import asyncio
import logging
import multiprocessing
import queue
import sys
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import Settings
from core.db import build_engine, build_sessionmaker, create_schema
from core.logging import setup_logging
from services.crawl_pipeline import Emit, FuelCrawlPipeline
from services.fuel_economy_client import FuelEconomyClient
from services.reconciliation_service import ReconciliationService
from services.registry_client import RegistryClient
from services.staging_service import FuelStagingService
from workers.messages import Completed, Error, InjectionCompleted, InjectionError, SyncMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrawlJob:
    start_id: int
    end_id: int
    batch_size: int
    settings: Settings = field(default_factory=Settings)


async def run_crawl_job(job: CrawlJob, emit: Emit, engine: Optional[AsyncEngine] = None) -> int:
    """Crawl, stage, reconcile. Returns the process exit code."""
    settings = job.settings
    own_engine = engine is None
    engine = engine or build_engine(settings.database_url)
    session_factory = build_sessionmaker(engine)

    try:
        await create_schema(engine)
        logger.info(f"Worker: starting fetch from ID {job.start_id} to {job.end_id}")

        async with session_factory() as session, FuelEconomyClient(settings) as client:
            pipeline = FuelCrawlPipeline(
                client,
                FuelStagingService(session),
                emit=emit,
                request_delay=settings.request_delay,
            )
            summary = await pipeline.run(job.start_id, job.end_id, job.batch_size)

        logger.info("Worker: all data fetched and stored, starting data injection")

        # A failed reconciliation is reported on its own, the crawl itself succeeded
        try:
            async with session_factory() as session:
                report = await ReconciliationService(session).inject_data(
                    RegistryClient(settings),
                    FuelStagingService(session),
                )
            emit(InjectionCompleted(report=report.as_dict()))
        except Exception as e:
            logger.exception("Worker: error during data injection")
            emit(InjectionError(error=str(e)))

        emit(Completed(fetched=summary.fetched, persisted=summary.persisted, missing=summary.missing))
        return 0

    except Exception as e:
        logger.exception("Worker: fatal error")
        emit(Error(error=str(e)))
        return 1

    finally:
        if own_engine:
            await engine.dispose()


def worker_main(job: CrawlJob, events) -> None:
    """Process entry point."""
    setup_logging(job.settings.log_level)
    exit_code = asyncio.run(run_crawl_job(job, events.put))
    sys.exit(exit_code)


class ProcessCrawlWorker:
    """Handle on a crawl worker process and its event queue."""

    def __init__(self, job: CrawlJob, context=None):
        ctx = context or multiprocessing.get_context("spawn")
        self.job = job
        self._events = ctx.Queue()
        self._process = ctx.Process(
            target=worker_main,
            args=(job, self._events),
            name=f"fuel-sync-{job.start_id}-{job.end_id}",
            daemon=True,
        )

    def start(self) -> None:
        self._process.start()

    def next_event(self, timeout: float) -> Optional[SyncMessage]:
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    def is_alive(self) -> bool:
        return self._process.is_alive()

    def terminate(self) -> None:
        if self._process.is_alive():
            self._process.terminate()

    def join(self, timeout: Optional[float] = None) -> None:
        self._process.join(timeout)

    @property
    def exitcode(self) -> Optional[int]:
        return self._process.exitcode
