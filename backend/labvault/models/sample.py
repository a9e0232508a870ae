"""Sample and DNA extract models (as storage occupants)."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from labvault.models.base import BaseModel


class Sample(BaseModel):
    __tablename__ = "sample"

    sample_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    barcode: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sample_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    project_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    storage_location_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("storage_unit.id"), nullable=True
    )
    position_label: Mapped[str | None] = mapped_column(String(20), nullable=True)
    storage_datetime: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    stored_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        Index("ix_sample_storage", "storage_location_id"),
        Index("ix_sample_barcode", "barcode"),
    )


class DnaExtract(BaseModel):
    __tablename__ = "dna_extract"

    dna_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    sample_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("sample.id"), nullable=True
    )
    concentration_ng_ul: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True
    )
    storage_location_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("storage_unit.id"), nullable=True
    )
    position_label: Mapped[str | None] = mapped_column(String(20), nullable=True)
    storage_datetime: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    stored_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        Index("ix_dna_extract_storage", "storage_location_id"),
        Index("ix_dna_extract_sample", "sample_id"),
    )
