"""Storage schemas: grid layout, unit snapshots, occupancy, capacity, tree."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from labvault.core.exceptions import InvalidCoordinate
from labvault.models.enums import ItemKind, LabelSchema, OccupantKind
from labvault.services.coordinates import (
    canonical_coordinate,
    coordinate_in_grid,
    normalize_coordinate,
)


# --- Grid ---

class GridSpec(BaseModel):
    """Slot layout of a unit.

    ``disabled_slots`` are never usable. When ``enabled_slots`` is set,
    only those slots are usable (minus any disabled ones). Both lists are
    stored as canonical labels and must lie inside the grid.
    """
    rows: int = Field(ge=1, le=100)
    cols: int = Field(ge=1, le=100)
    label_schema: LabelSchema = LabelSchema.ALPHA_NUMERIC
    disabled_slots: list[str] = []
    enabled_slots: list[str] = []

    @model_validator(mode="after")
    def canonicalize_slots(self) -> "GridSpec":
        outside: list[str] = []
        for field in ("disabled_slots", "enabled_slots"):
            labels: list[str] = []
            for slot in getattr(self, field):
                if normalize_coordinate(slot) is None:
                    continue
                try:
                    label = canonical_coordinate(slot, self.label_schema)
                except InvalidCoordinate:
                    outside.append(str(slot).strip())
                    continue
                if not coordinate_in_grid(label, self.rows, self.cols, self.label_schema):
                    outside.append(label)
                    continue
                labels.append(label)
            setattr(self, field, list(dict.fromkeys(labels)))
        if outside:
            raise ValueError(f"Slots outside the grid: {', '.join(outside)}.")
        return self

    @property
    def disabled_set(self) -> frozenset[str]:
        return frozenset(self.disabled_slots)

    @property
    def enabled_set(self) -> frozenset[str]:
        return frozenset(self.enabled_slots)

    def is_usable(self, label: str) -> bool:
        if label in self.disabled_set:
            return False
        return not self.enabled_slots or label in self.enabled_set


# --- Snapshots consumed by the occupancy core ---

class StorageUnitSnapshot(BaseModel):
    """In-memory view of a storage unit, as loaded from the database."""
    id: uuid.UUID
    storage_id: str
    name: str
    unit_type: str
    parent_storage_id: uuid.UUID | None = None
    grid_spec: GridSpec | None = None
    capacity_slots: int | None = None
    occupied_slots: dict[str, Any] | None = None

    model_config = {"from_attributes": True}


class PositionedItem(BaseModel):
    """A sample or DNA extract as an occupancy source."""
    id: uuid.UUID
    code: str = Field(validation_alias=AliasChoices("code", "sample_code", "dna_code"))
    storage_location_id: uuid.UUID | None = None
    position_label: str | None = None

    model_config = {"from_attributes": True}


class Occupant(BaseModel):
    kind: OccupantKind
    ref_id: str
    display_label: str

    model_config = {"frozen": True}


class CapacitySnapshot(BaseModel):
    theoretical: int = 0
    effective: int = 0
    occupied: int = 0
    # None when the unit is unbounded
    available: int | None = None
    unbounded: bool = False


class UnitPath(BaseModel):
    path_ids: list[uuid.UUID]
    path_names: list[str]
    full_path: str
    depth: int
    is_corrupt: bool = False


class GridSlot(BaseModel):
    label: str
    row: int
    col: int
    is_disabled: bool = False
    is_occupied: bool = False
    occupant: Occupant | None = None
    is_selected: bool = False
    is_highlighted: bool = False


# --- Tree ---

class TreeFilter(BaseModel):
    search_query: str = ""
    active_type: str | None = None
    matching_node_ids: frozenset[uuid.UUID] = frozenset()

    @field_validator("search_query")
    @classmethod
    def normalize_query(cls, value: str) -> str:
        return value.strip().lower()


class TreeRow(BaseModel):
    id: uuid.UUID
    depth: int
    has_children: bool


class VirtualWindow(BaseModel):
    """Slice [start, end) of the flattened rows to materialize."""
    start: int
    end: int
    offset_top: int
    total_height: int


# --- StorageUnit CRUD ---

class StorageUnitCreate(BaseModel):
    storage_id: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    unit_type: str = Field(min_length=1, max_length=50)
    description: str | None = None
    parent_storage_id: uuid.UUID | None = None
    grid_spec: GridSpec | None = None
    capacity_slots: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_capacity_mode(self) -> "StorageUnitCreate":
        if self.grid_spec is not None and self.capacity_slots is not None:
            raise ValueError("Set either grid_spec or capacity_slots, not both.")
        return self


class StorageUnitUpdate(BaseModel):
    storage_id: str | None = Field(default=None, min_length=1, max_length=50)
    name: str | None = Field(default=None, min_length=1, max_length=200)
    unit_type: str | None = Field(default=None, min_length=1, max_length=50)
    description: str | None = None
    parent_storage_id: uuid.UUID | None = None
    grid_spec: GridSpec | None = None
    capacity_slots: int | None = Field(default=None, ge=0)


class StorageUnitRead(BaseModel):
    id: uuid.UUID
    storage_id: str
    name: str
    unit_type: str
    description: str | None
    parent_storage_id: uuid.UUID | None
    grid_spec: GridSpec | None
    capacity_slots: int | None
    occupancy_version: int
    created_at: datetime
    updated_at: datetime
    # Computed (set by service layer)
    path_ids: list[uuid.UUID] = []
    path_names: list[str] = []
    full_path: str = ""
    depth: int = 0
    is_path_corrupt: bool = False
    capacity: CapacitySnapshot = CapacitySnapshot()
    child_count: int = 0
    sample_count: int = 0
    extract_count: int = 0


# --- Occupancy & placement ---

class OccupancyRead(BaseModel):
    storage_unit_id: uuid.UUID
    occupancy_version: int
    grid_spec: GridSpec | None
    capacity: CapacitySnapshot
    slots: dict[str, Occupant]
    grid: list[list[GridSlot]] | None = None


class AutoAssignSuggestion(BaseModel):
    storage_unit_id: uuid.UUID
    coordinate: str
    occupancy_version: int


class AssignRequest(BaseModel):
    item_kind: ItemKind
    item_id: uuid.UUID
    coordinate: str | None = None
    expected_version: int | None = Field(default=None, ge=0)


class MoveRequest(BaseModel):
    item_kind: ItemKind
    item_id: uuid.UUID
    target_storage_id: uuid.UUID
    coordinate: str | None = None
    expected_version: int | None = Field(default=None, ge=0)


class UnassignRequest(BaseModel):
    item_kind: ItemKind
    item_id: uuid.UUID


class PlacementRead(BaseModel):
    item_kind: ItemKind
    item_id: uuid.UUID
    storage_location_id: uuid.UUID | None
    position_label: str | None
    occupancy_version: int | None = None


# --- Tree / search results ---

class TreeRowRead(BaseModel):
    id: uuid.UUID
    depth: int
    has_children: bool
    is_expanded: bool = False
    name: str
    storage_id: str
    unit_type: str
    full_path: str
    sample_count: int = 0
    extract_count: int = 0
    capacity: CapacitySnapshot = CapacitySnapshot()


class StorageTreeRead(BaseModel):
    rows: list[TreeRowRead]
    total_rows: int
    window: VirtualWindow
    storage_types: list[str]
    stats: dict[str, int]


class StorageSearchResult(BaseModel):
    matching_node_ids: list[uuid.UUID]
    matching_sample_ids: list[uuid.UUID]
