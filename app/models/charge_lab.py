from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Integer, String, DateTime, JSON, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.orm.attributes import flag_modified

from core.db import Base
from schemas.vehicle import CanonicalVehicle

DOCUMENT_COLUMNS = ("vehicle", "powertrain", "battery", "wheels")


class ChargeLab(Base):
    """Canonical vehicle document, unique per (make, base model, year)."""
    __tablename__ = "charge_labs"
    __table_args__ = (
        UniqueConstraint("make", "model", "year", name="uq_charge_labs_make_model_year"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        index=True
    )

    # Identity (model holds the base model, without wheel size annotation)
    make: Mapped[str] = mapped_column(
        String,
        index=True
    )

    model: Mapped[str] = mapped_column(
        String,
        index=True
    )

    year: Mapped[str] = mapped_column(
        String,
        index=True
    )

    # Document sections
    vehicle: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    powertrain: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    battery: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    wheels: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)

    picture: Mapped[str | None] = mapped_column(
        String,
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True
    )

    @classmethod
    def from_document(cls, document: CanonicalVehicle) -> ChargeLab:
        row = cls(
            make=document.vehicle.make,
            model=document.vehicle.model,
            year=document.vehicle.year,
        )
        row.apply_document(document)
        return row

    def to_document(self) -> CanonicalVehicle:
        return CanonicalVehicle.model_validate({
            "vehicle": self.vehicle or {},
            "powertrain": self.powertrain or {},
            "battery": self.battery or {},
            "wheels": self.wheels or [],
            "picture": self.picture,
        })

    def apply_document(self, document: CanonicalVehicle) -> None:
        """Write the document back. Absent fields are not stored."""
        data = document.model_dump(mode="json", exclude_none=True)
        for column in DOCUMENT_COLUMNS:
            setattr(self, column, data.get(column, [] if column == "wheels" else {}))
            # JSON columns are not mutation tracked
            flag_modified(self, column)
        self.picture = data.get("picture")
