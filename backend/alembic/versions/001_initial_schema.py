"""Initial schema - storage hierarchy, samples, DNA extracts, audit log.

Revision ID: 001
Revises: None
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("is_deleted", sa.Boolean, server_default="false", nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # --- Audit ---

    op.create_table(
        "audit_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("old_values", postgresql.JSONB, nullable=True),
        sa.Column("new_values", postgresql.JSONB, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_type", "entity_id"])
    op.create_index("ix_audit_log_timestamp", "audit_log", ["timestamp"])

    # --- Storage ---

    op.create_table(
        "storage_unit",
        *_base_columns(),
        sa.Column("storage_id", sa.String(50), unique=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("unit_type", sa.String(50), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("parent_storage_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("grid_rows", sa.Integer, nullable=True),
        sa.Column("grid_cols", sa.Integer, nullable=True),
        sa.Column("label_schema", sa.String(50), nullable=True),
        sa.Column("disabled_slots", postgresql.JSONB, nullable=True),
        sa.Column("enabled_slots", postgresql.JSONB, nullable=True),
        sa.Column("capacity_slots", sa.Integer, nullable=True),
        sa.Column("occupied_slots", postgresql.JSONB, nullable=True),
        sa.Column("occupancy_version", sa.Integer, server_default="0", nullable=False),
        sa.Column("theoretical_slots", sa.Integer, nullable=True),
        sa.Column("effective_slots", sa.Integer, nullable=True),
        sa.Column("available_slots", sa.Integer, nullable=True),
        sa.Column("capacity_recalculated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
    )
    op.create_index("ix_storage_unit_parent", "storage_unit", ["parent_storage_id"])
    op.create_index("ix_storage_unit_type", "storage_unit", ["unit_type"])

    # --- Samples ---

    op.create_table(
        "sample",
        *_base_columns(),
        sa.Column("sample_code", sa.String(50), unique=True, nullable=False),
        sa.Column("barcode", sa.String(100), nullable=True),
        sa.Column("sample_type", sa.String(50), nullable=True),
        sa.Column("project_code", sa.String(50), nullable=True),
        sa.Column("storage_location_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("storage_unit.id"), nullable=True),
        sa.Column("position_label", sa.String(20), nullable=True),
        sa.Column("storage_datetime", sa.DateTime(timezone=True), nullable=True),
        sa.Column("stored_by", postgresql.UUID(as_uuid=True), nullable=True),
    )
    op.create_index("ix_sample_storage", "sample", ["storage_location_id"])
    op.create_index("ix_sample_barcode", "sample", ["barcode"])

    op.create_table(
        "dna_extract",
        *_base_columns(),
        sa.Column("dna_code", sa.String(50), unique=True, nullable=False),
        sa.Column("sample_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sample.id"), nullable=True),
        sa.Column("concentration_ng_ul", sa.Numeric(10, 2), nullable=True),
        sa.Column("storage_location_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("storage_unit.id"), nullable=True),
        sa.Column("position_label", sa.String(20), nullable=True),
        sa.Column("storage_datetime", sa.DateTime(timezone=True), nullable=True),
        sa.Column("stored_by", postgresql.UUID(as_uuid=True), nullable=True),
    )
    op.create_index("ix_dna_extract_storage", "dna_extract", ["storage_location_id"])
    op.create_index("ix_dna_extract_sample", "dna_extract", ["sample_id"])


def downgrade() -> None:
    op.drop_table("dna_extract")
    op.drop_table("sample")
    op.drop_table("storage_unit")
    op.drop_table("audit_log")
