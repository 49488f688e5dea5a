import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from croniter import croniter

from core.config import Settings, get_settings
from core.prometheus_metrics import prometheus_collector
from schemas.fuel_sync import ProgressOut, SyncStatsOut, SyncStatus
from services.crawl_pipeline import validate_range
from services.exceptions import InvalidScheduleError, SyncAlreadyRunningError, SyncStartError
from workers.fuel_data_worker import CrawlJob, ProcessCrawlWorker
from workers.messages import (
    BatchPersisted,
    Completed,
    Error,
    InjectionCompleted,
    InjectionError,
    Progress,
    SyncMessage,
)

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SyncStats:
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    last_error: Optional[str] = None


WorkerLauncher = Callable[[CrawlJob], "ProcessCrawlWorker"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FuelSyncService:
    """
    Schedules fuel data synchronization runs and tracks their progress.

    State machine: IDLE -> RUNNING -> (COMPLETED | FAILED) -> IDLE. At most one
    crawl worker exists at a time; a run requested while RUNNING is rejected
    with SyncAlreadyRunningError. The worker runs in its own process and
    reports through typed messages consumed by a single listener task, which
    is the only place run state changes after start.

    One instance lives on app.state and is shared by the routers.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        launcher: Optional[WorkerLauncher] = None,
        poll_interval: float = 0.5,
    ):
        self.settings = settings or get_settings()
        self.launcher = launcher or ProcessCrawlWorker
        self.poll_interval = poll_interval

        self.state = SyncState.IDLE
        self.last_outcome: Optional[SyncState] = None
        self.stats = SyncStats()
        self.last_run_time: Optional[datetime] = None
        self.next_run_time: Optional[datetime] = None
        self.cron_expression: Optional[str] = None
        self.progress: Optional[Progress] = None
        self.last_report: Optional[dict] = None
        self.last_injection_error: Optional[str] = None

        self._worker = None
        self._listener: Optional[asyncio.Task] = None
        self._schedule_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self.state is SyncState.RUNNING

    def build_job(
        self,
        start_id: Optional[int] = None,
        end_id: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> CrawlJob:
        job = CrawlJob(
            start_id=self.settings.start_id if start_id is None else start_id,
            end_id=self.settings.end_id if end_id is None else end_id,
            batch_size=self.settings.batch_size if batch_size is None else batch_size,
            settings=self.settings,
        )
        validate_range(job.start_id, job.end_id, job.batch_size)
        return job

    # Scheduling

    def start(
        self,
        cron_expression: Optional[str] = None,
        start_id: Optional[int] = None,
        end_id: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> CrawlJob:
        """Schedule runs on a cron expression (UTC). Replaces any existing schedule."""
        expression = cron_expression or self.settings.cron_expression
        if not croniter.is_valid(expression):
            raise InvalidScheduleError(f"Invalid cron expression: {expression!r}", "cronExpression")

        job = self.build_job(start_id, end_id, batch_size)
        self._cancel_schedule()

        self.cron_expression = expression
        self.next_run_time = self._next_fire_time(expression)
        self._schedule_task = asyncio.get_running_loop().create_task(self._schedule_loop(expression, job))

        logger.info(f"Fuel data sync scheduled with '{expression}' for IDs {job.start_id}-{job.end_id}")
        logger.info(f"Next run scheduled for: {self.next_run_time.isoformat()}")
        return job

    @staticmethod
    def _next_fire_time(expression: str) -> datetime:
        return croniter(expression, _utcnow()).get_next(datetime)

    async def _schedule_loop(self, expression: str, job: CrawlJob) -> None:
        while True:
            self.next_run_time = self._next_fire_time(expression)
            delay = (self.next_run_time - _utcnow()).total_seconds()
            await asyncio.sleep(max(delay, 0))

            try:
                self.run_now(job.start_id, job.end_id, job.batch_size)
            except SyncAlreadyRunningError:
                logger.warning("Fuel data sync is already running. Skipping this execution.")
            except SyncStartError as e:
                logger.error(f"Scheduled fuel data sync could not start: {e}")

    def _cancel_schedule(self) -> None:
        if self._schedule_task is not None:
            self._schedule_task.cancel()
            self._schedule_task = None

    # Running

    def run_now(
        self,
        start_id: Optional[int] = None,
        end_id: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> CrawlJob:
        """
        Start a crawl worker immediately and return without waiting for it.

        Check and transition happen without yielding to the event loop, so two
        concurrent callers cannot both start a worker.
        """
        if self.is_running:
            raise SyncAlreadyRunningError("Fuel data synchronization is already running")

        job = self.build_job(start_id, end_id, batch_size)

        self.state = SyncState.RUNNING
        self.last_run_time = _utcnow()
        self.stats.total_runs += 1
        self.progress = None
        self.last_injection_error = None

        logger.info(f"Starting fuel data synchronization at {self.last_run_time.isoformat()}")
        logger.info(f"Processing vehicles from ID {job.start_id} to {job.end_id}")

        try:
            worker = self.launcher(job)
            worker.start()
        except Exception as e:
            logger.error(f"Failed to start worker: {e}")
            self._complete_run(success=False, error=str(e))
            raise SyncStartError(str(e)) from e

        self._worker = worker
        self._listener = asyncio.get_running_loop().create_task(self._listen(worker, job))
        return job

    async def _listen(self, worker, job: CrawlJob) -> None:
        terminal: Optional[SyncMessage] = None

        try:
            while terminal is None:
                message = await asyncio.to_thread(worker.next_event, self.poll_interval)
                if message is None:
                    if worker.is_alive():
                        continue
                    # Pick up anything flushed right before the process exited
                    message = await asyncio.to_thread(worker.next_event, 0)
                    if message is None:
                        break

                if self._handle_message(message, job):
                    terminal = message
        except Exception as e:
            logger.error(f"Lost contact with worker: {e}", exc_info=True)
            worker.terminate()
            await asyncio.to_thread(worker.join, 5)
            self._complete_run(success=False, error=f"Worker channel failed: {e!r}")
            return

        await asyncio.to_thread(worker.join, 5)

        if isinstance(terminal, Completed):
            self._complete_run(success=True)
        elif isinstance(terminal, Error):
            self._complete_run(success=False, error=terminal.error)
        else:
            self._complete_run(success=False, error=f"Worker exited with code {worker.exitcode}")

    def _handle_message(self, message: SyncMessage, job: CrawlJob) -> bool:
        """Apply one worker message. Returns True for terminal messages."""
        if isinstance(message, Progress):
            self.progress = message
            prometheus_collector.record_progress(message.fraction)
            logger.info(
                f"Progress: {message.fraction * 100:.2f}% ({message.current_id}/{job.end_id}) - {message.vehicle_info}"
            )
        elif isinstance(message, BatchPersisted):
            prometheus_collector.record_batch()
            logger.info(f"Bulk insert completed: {message.count} vehicles (IDs {message.first_id}-{message.last_id})")
        elif isinstance(message, InjectionCompleted):
            self.last_report = message.report
            for source in ("registry", "catalog"):
                counts = dict(message.report.get(source) or {})
                counts.pop("source", None)
                prometheus_collector.record_reconciliation(source, counts)
            logger.info(message.message)
        elif isinstance(message, InjectionError):
            self.last_injection_error = message.error
            logger.error(f"Data injection error: {message.error}")
        elif isinstance(message, Completed):
            logger.info(message.message)
            return True
        elif isinstance(message, Error):
            logger.error(f"Worker error: {message.error}")
            return True
        else:
            logger.warning(f"Ignoring unknown worker message: {message!r}")
        return False

    def _complete_run(self, success: bool, error: Optional[str] = None) -> None:
        if success:
            self.state = SyncState.COMPLETED
            self.stats.successful_runs += 1
            logger.info("Fuel data synchronization completed successfully")
        else:
            self.state = SyncState.FAILED
            self.stats.failed_runs += 1
            self.stats.last_error = error
            logger.error(f"Fuel data synchronization failed: {error}")

        prometheus_collector.record_run(success)
        self.last_outcome = self.state
        self.state = SyncState.IDLE
        self._worker = None
        self._listener = None
        self.log_stats()

    async def join(self) -> None:
        """Wait for the current run, if any, to finish."""
        listener = self._listener
        if listener is not None:
            await asyncio.shield(listener)

    # Stopping

    async def stop(self) -> None:
        """Cancel the schedule and kill the running worker. Unflushed batches are lost."""
        if self._schedule_task is not None:
            task = self._schedule_task
            self._cancel_schedule()
            with suppress(asyncio.CancelledError):
                await task
            self.next_run_time = None
            self.cron_expression = None
            logger.info("Fuel data sync schedule stopped")

        worker, listener = self._worker, self._listener
        if worker is not None:
            worker.terminate()
            if listener is not None:
                listener.cancel()
                with suppress(asyncio.CancelledError):
                    await listener
            await asyncio.to_thread(worker.join, 5)
            logger.info("Current worker terminated")

        self._worker = None
        self._listener = None
        self.state = SyncState.IDLE

    # Reporting

    def get_status(self) -> SyncStatus:
        progress = None
        if self.progress is not None:
            progress = ProgressOut(
                current_id=self.progress.current_id,
                start_id=self.progress.start_id,
                end_id=self.progress.end_id,
                percent=round(self.progress.fraction * 100, 2),
                vehicle_info=self.progress.vehicle_info,
            )

        return SyncStatus(
            is_running=self.is_running,
            state=self.state.value,
            last_run_time=self.last_run_time,
            next_run_time=self.next_run_time,
            schedule=self.cron_expression,
            stats=self.get_stats(),
            has_active_worker=self._worker is not None,
            progress=progress,
            last_injection_error=self.last_injection_error,
            last_report=self.last_report,
        )

    def get_stats(self) -> SyncStatsOut:
        return SyncStatsOut(
            total_runs=self.stats.total_runs,
            successful_runs=self.stats.successful_runs,
            failed_runs=self.stats.failed_runs,
            last_error=self.stats.last_error,
        )

    def log_stats(self) -> None:
        logger.info(
            "Fuel data sync statistics",
            extra={
                'total_runs': self.stats.total_runs,
                'successful_runs': self.stats.successful_runs,
                'failed_runs': self.stats.failed_runs,
                'last_run': self.last_run_time.isoformat() if self.last_run_time else "Never",
                'next_run': self.next_run_time.isoformat() if self.next_run_time else "Not scheduled",
                'last_error': self.stats.last_error,
            }
        )
