import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from sqlalchemy.exc import SQLAlchemyError

from services.exceptions import CatalogRecordNotFoundError, FuelSyncError, InvalidScheduleError
from workers.messages import BatchPersisted, Progress, SyncMessage

logger = logging.getLogger(__name__)

Emit = Callable[[SyncMessage], None]


@dataclass
class CrawlSummary:
    fetched: int = 0
    persisted: int = 0
    missing: int = 0
    failed_batches: int = 0


def validate_range(start_id: int, end_id: int, batch_size: int) -> None:
    if start_id < 0:
        raise InvalidScheduleError("startId must be >= 0", "startId")
    if end_id < start_id:
        raise InvalidScheduleError("endId must be >= startId", "endId")
    if batch_size < 1:
        raise InvalidScheduleError("batchSize must be >= 1", "batchSize")


class FuelCrawlPipeline:
    """
    Walks an inclusive catalog ID range one request at a time and stages the
    records in batches.

    A failed ID counts as "no data" and a failed batch is logged and dropped;
    neither stops the range.
    """

    def __init__(self, client, staging, emit: Optional[Emit] = None, request_delay: float = 0.05):
        self.client = client
        self.staging = staging
        self.emit = emit or (lambda message: None)
        self.request_delay = request_delay

    async def run(self, start_id: int, end_id: int, batch_size: int) -> CrawlSummary:
        validate_range(start_id, end_id, batch_size)
        logger.info(f"Starting fetch from ID {start_id} to {end_id}")

        summary = CrawlSummary()
        batch: List[Tuple[int, Dict[str, Any]]] = []

        for vehicle_id in range(start_id, end_id + 1):
            record = await self._fetch(vehicle_id)

            if record is not None:
                batch.append((vehicle_id, record))
                summary.fetched += 1
                vehicle_info = f"{record.get('make')} {record.get('model')} {record.get('year')}"
                logger.info(f"Fetched vehicle ID {vehicle_id} - {vehicle_info}")
                self.emit(Progress(current_id=vehicle_id, start_id=start_id, end_id=end_id, vehicle_info=vehicle_info))
            else:
                summary.missing += 1

            if len(batch) >= batch_size:
                await self._flush(batch, summary)
                batch = []

            if vehicle_id < end_id and self.request_delay > 0:
                await asyncio.sleep(self.request_delay)

        if batch:
            await self._flush(batch, summary)

        logger.info(
            f"Crawl finished: {summary.fetched} fetched, {summary.persisted} persisted, "
            f"{summary.missing} missing, {summary.failed_batches} failed batches"
        )
        return summary

    async def _fetch(self, vehicle_id: int) -> Optional[Dict[str, Any]]:
        try:
            record = await self.client.fetch_vehicle(vehicle_id)
        except CatalogRecordNotFoundError:
            logger.info(f"No data found for vehicle ID {vehicle_id}")
            return None
        except (httpx.HTTPError, FuelSyncError) as e:
            logger.error(f"Error fetching vehicle ID {vehicle_id}: {e}")
            return None

        if record is None:
            logger.info(f"No data found for vehicle ID {vehicle_id}")
        return record

    async def _flush(self, batch: List[Tuple[int, Dict[str, Any]]], summary: CrawlSummary) -> None:
        first_id, last_id = batch[0][0], batch[-1][0]
        try:
            count = await self.staging.bulk_insert(batch)
        except SQLAlchemyError as e:
            logger.error(f"Error inserting batch for IDs {first_id}-{last_id}: {e}")
            summary.failed_batches += 1
            return

        summary.persisted += count
        logger.info(f"Inserted batch up to ID {last_id}")
        self.emit(BatchPersisted(count=count, first_id=first_id, last_id=last_id))
