"""Batch sample placement request/response schemas."""

import uuid

from pydantic import BaseModel, Field, field_validator, model_validator

from labvault.config import settings
from labvault.models.enums import BatchConflictType, BatchRowStatus, DropRejectReason
from labvault.services.coordinates import normalize_coordinate


# --- Batch rows ---

class BatchRow(BaseModel):
    """One row of a batch import: a new sample, or a move of an existing one."""
    sample_code: str = Field(min_length=1, max_length=50)
    existing_sample_id: uuid.UUID | None = None
    sample_type: str | None = Field(default=None, max_length=50)
    barcode: str | None = Field(default=None, max_length=100)
    project_code: str | None = Field(default=None, max_length=50)
    storage_location_id: uuid.UUID | None = None
    position_label: str | None = None

    @field_validator("sample_code")
    @classmethod
    def strip_code(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("sample_code must not be blank.")
        return value

    @field_validator("position_label")
    @classmethod
    def normalize_position(cls, value: str | None) -> str | None:
        return normalize_coordinate(value)

    @model_validator(mode="after")
    def position_needs_storage(self) -> "BatchRow":
        if self.position_label and self.storage_location_id is None:
            raise ValueError("position_label requires storage_location_id.")
        return self


class BatchConflict(BaseModel):
    row_index: int
    storage_location_id: uuid.UUID
    coordinate: str
    conflict_type: BatchConflictType
    other_row_index: int | None = None


class BatchRowIssue(BaseModel):
    row_index: int
    code: str
    message: str


# --- Resolve (auto-assign + conflict check) ---

class BatchResolveRequest(BaseModel):
    rows: list[BatchRow] = Field(min_length=1, max_length=settings.BATCH_MAX_ROWS)
    auto_assign: bool = True


class BatchResolveResult(BaseModel):
    rows: list[BatchRow]
    conflicts: list[BatchConflict] = []
    issues: list[BatchRowIssue] = []


# --- Drop (drag a row onto a slot) ---

class BatchDropRequest(BaseModel):
    rows: list[BatchRow] = Field(min_length=1, max_length=settings.BATCH_MAX_ROWS)
    row_index: int = Field(ge=0)
    coordinate: str = Field(min_length=1, max_length=20)
    storage_location_id: uuid.UUID | None = None


class DropResult(BaseModel):
    accepted: bool
    row_index: int
    storage_location_id: uuid.UUID
    coordinate: str
    reason: DropRejectReason | None = None
    displaced_row_index: int | None = None


class BatchDropResult(BaseModel):
    drop: DropResult
    rows: list[BatchRow]


# --- Commit ---

class BatchCommitRequest(BaseModel):
    rows: list[BatchRow] = Field(min_length=1, max_length=settings.BATCH_MAX_ROWS)


class BatchCommitRowResult(BaseModel):
    row_index: int
    status: BatchRowStatus
    sample_id: uuid.UUID | None = None
    storage_location_id: uuid.UUID | None = None
    position_label: str | None = None
    error_code: str | None = None
    message: str | None = None


class BatchCommitResult(BaseModel):
    results: list[BatchCommitRowResult]
    committed: int
    failed: int
