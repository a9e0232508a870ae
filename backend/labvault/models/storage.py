"""Storage hierarchy: nested storage units with optional slot grids."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from labvault.models.base import BaseModel, JSONType
from labvault.models.enums import LabelSchema


class StorageUnit(BaseModel):
    __tablename__ = "storage_unit"

    storage_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit_type: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # No FK; a dangling parent is shown as a root
    parent_storage_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # Grid layout (all null when the unit has no grid)
    grid_rows: Mapped[int | None] = mapped_column(Integer, nullable=True)
    grid_cols: Mapped[int | None] = mapped_column(Integer, nullable=True)
    label_schema: Mapped[LabelSchema | None] = mapped_column(nullable=True)
    disabled_slots: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    # Empty means every slot not disabled is usable
    enabled_slots: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    # Scalar capacity for units without a grid
    capacity_slots: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Legacy denormalized occupancy map: coordinate -> occupant ref
    occupied_slots: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    occupancy_version: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )

    # Cached capacity (refreshed by tasks.storage; never used for allocation)
    theoretical_slots: Mapped[int | None] = mapped_column(Integer, nullable=True)
    effective_slots: Mapped[int | None] = mapped_column(Integer, nullable=True)
    available_slots: Mapped[int | None] = mapped_column(Integer, nullable=True)
    capacity_recalculated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        Index("ix_storage_unit_parent", "parent_storage_id"),
        Index("ix_storage_unit_type", "unit_type"),
    )

    @property
    def grid_spec(self) -> dict | None:
        if not self.grid_rows or not self.grid_cols:
            return None
        return {
            "rows": self.grid_rows,
            "cols": self.grid_cols,
            "label_schema": self.label_schema or LabelSchema.ALPHA_NUMERIC,
            "disabled_slots": list(self.disabled_slots or []),
            "enabled_slots": list(self.enabled_slots or []),
        }
