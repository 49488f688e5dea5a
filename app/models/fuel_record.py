from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Integer, DateTime, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base


class FuelRecord(Base):
    """Raw fuel economy catalog record staged for reconciliation."""
    __tablename__ = "fuel_records"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True
    )

    # External catalog ID the record was fetched from
    source_id: Mapped[int] = mapped_column(
        Integer,
        unique=True,
        index=True
    )

    payload: Mapped[dict[str, Any]] = mapped_column(JSON)

    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
