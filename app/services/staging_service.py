import logging
from typing import Any, Dict, List, Sequence, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from models.fuel_record import FuelRecord

logger = logging.getLogger(__name__)


class FuelStagingService:
    """Staging store for raw fuel economy catalog records, keyed by catalog ID."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def bulk_insert(self, records: Sequence[Tuple[int, Dict[str, Any]]]) -> int:
        """
        Insert (source_id, payload) pairs in one transaction.

        Rows already staged under the same source IDs are replaced, so a
        re-crawl refreshes the staging store instead of duplicating it.
        """
        if not records:
            return 0

        source_ids = [source_id for source_id, _ in records]
        try:
            await self.db.execute(delete(FuelRecord).where(FuelRecord.source_id.in_(source_ids)))
            self.db.add_all([
                FuelRecord(source_id=source_id, payload=payload)
                for source_id, payload in records
            ])
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        return len(records)

    async def fetch_all(self) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(FuelRecord.payload).order_by(FuelRecord.source_id)
        )
        return list(result.scalars().all())
