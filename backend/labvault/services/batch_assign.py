"""Slot coordination for a batch of rows that are not yet committed.

Rows claim slots provisionally. Committed occupancy is the hard
constraint; another batch row's claim is soft and can be displaced by a
drop. A row that moves an existing sample never collides with that
sample's own current slot.
"""

import logging
import uuid
from collections import defaultdict
from collections.abc import Iterable, Mapping

from labvault.core.exceptions import GridNotConfigured, InvalidCoordinate, NoCapacity
from labvault.models.enums import BatchConflictType, DropRejectReason, OccupantKind
from labvault.schemas.sample import BatchConflict, BatchRow, BatchRowIssue, DropResult
from labvault.schemas.storage import Occupant, StorageUnitSnapshot
from labvault.services.allocator import auto_assign
from labvault.services.coordinates import canonical_coordinate, coordinate_in_grid
from labvault.services.occupancy import OccupancyMap, merge_batch_claims

logger = logging.getLogger(__name__)


class BatchGridCoordinator:
    def __init__(
        self,
        rows: Iterable[BatchRow],
        units_by_id: Mapping[uuid.UUID, StorageUnitSnapshot],
        committed_by_unit: Mapping[uuid.UUID, Mapping[str, Occupant]] | None = None,
    ):
        self.units_by_id = dict(units_by_id)
        self.committed_by_unit = {
            unit_id: dict(occupancy)
            for unit_id, occupancy in (committed_by_unit or {}).items()
        }
        self.rows = [self._canonical_row(row) for row in rows]

    def _canonical_row(self, row: BatchRow) -> BatchRow:
        unit = self.units_by_id.get(row.storage_location_id)
        if unit is None or unit.grid_spec is None or not row.position_label:
            return row.model_copy()
        try:
            label = canonical_coordinate(row.position_label, unit.grid_spec.label_schema)
        except InvalidCoordinate:
            # Left as typed; conflicts() reports it as out of grid
            return row.model_copy()
        return row.model_copy(update={"position_label": label})

    def _row(self, row_index: int) -> BatchRow:
        if not 0 <= row_index < len(self.rows):
            raise ValueError(f"Batch has no row {row_index}.")
        return self.rows[row_index]

    def _grid_unit(self, storage_id: uuid.UUID | None) -> StorageUnitSnapshot:
        if storage_id is None:
            raise GridNotConfigured("Row has no storage unit.")
        unit = self.units_by_id.get(storage_id)
        if unit is None:
            raise ValueError(f"Unknown storage unit {storage_id}.")
        if unit.grid_spec is None:
            raise GridNotConfigured(f"Storage unit {unit.storage_id} has no slot grid.")
        return unit

    def committed_slots(
        self, storage_id: uuid.UUID, row_index: int | None = None
    ) -> OccupancyMap:
        """Committed occupancy as seen by ``row_index``.

        The row's own existing sample is left out so a move can keep or
        reuse its current slot.
        """
        occupancy = self.committed_by_unit.get(storage_id, {})
        if row_index is None:
            return dict(occupancy)
        own_id = self._row(row_index).existing_sample_id
        if own_id is None:
            return dict(occupancy)
        own_ref = str(own_id)
        return {
            slot: occupant
            for slot, occupant in occupancy.items()
            if not (occupant.kind == OccupantKind.SAMPLE and occupant.ref_id == own_ref)
        }

    def batch_occupied_slots(
        self, storage_id: uuid.UUID, exclude_row_index: int | None = None
    ) -> dict[str, int]:
        """Coordinates claimed by batch rows in ``storage_id`` -> first claiming row."""
        claims: dict[str, int] = {}
        for index, row in enumerate(self.rows):
            if index == exclude_row_index:
                continue
            if row.storage_location_id != storage_id or not row.position_label:
                continue
            claims.setdefault(row.position_label, index)
        return claims

    def slot_view(
        self, storage_id: uuid.UUID, exclude_row_index: int | None = None
    ) -> OccupancyMap:
        """Committed occupancy overlaid with batch claims, for the slot picker."""
        claims = {
            slot: self.rows[index].sample_code
            for slot, index in self.batch_occupied_slots(storage_id, exclude_row_index).items()
        }
        return merge_batch_claims(self.committed_slots(storage_id, exclude_row_index), claims)

    def auto_assign_row(self, row_index: int) -> str:
        row = self._row(row_index)
        unit = self._grid_unit(row.storage_location_id)
        coordinate = auto_assign(
            unit,
            self.committed_slots(unit.id, row_index),
            self.batch_occupied_slots(unit.id, exclude_row_index=row_index),
        )
        self.rows[row_index] = row.model_copy(update={"position_label": coordinate})
        return coordinate

    def auto_assign_all(self) -> list[BatchRowIssue]:
        """Fill every unplaced row that targets a grid unit.

        Each container keeps one accumulator of claimed slots, seeded with
        all existing row positions, so rows in the same pass never collide.
        Rows that cannot be placed are reported and the pass continues.
        """
        claimed: dict[uuid.UUID, set[str]] = defaultdict(set)
        for row in self.rows:
            if row.storage_location_id is not None and row.position_label:
                claimed[row.storage_location_id].add(row.position_label)

        issues: list[BatchRowIssue] = []
        for index, row in enumerate(self.rows):
            if row.storage_location_id is None or row.position_label:
                continue
            unit = self.units_by_id.get(row.storage_location_id)
            if unit is None:
                issues.append(BatchRowIssue(
                    row_index=index,
                    code="UNKNOWN_STORAGE_UNIT",
                    message=f"Storage unit {row.storage_location_id} not found.",
                ))
                continue
            if unit.grid_spec is None:
                continue

            try:
                coordinate = auto_assign(
                    unit, self.committed_slots(unit.id, index), claimed[unit.id]
                )
            except NoCapacity as exc:
                logger.warning("Batch row %d not placed: %s", index, exc)
                issues.append(BatchRowIssue(row_index=index, code=exc.code, message=str(exc)))
                continue

            claimed[unit.id].add(coordinate)
            self.rows[index] = row.model_copy(update={"position_label": coordinate})
        return issues

    def on_drop(
        self,
        row_index: int,
        coordinate: str,
        storage_id: uuid.UUID | None = None,
    ) -> DropResult:
        """Place ``row_index`` at ``coordinate``, displacing any batch claim there."""
        row = self._row(row_index)
        unit = self._grid_unit(storage_id or row.storage_location_id)
        grid = unit.grid_spec

        label = canonical_coordinate(coordinate, grid.label_schema)
        if not coordinate_in_grid(label, grid.rows, grid.cols, grid.label_schema):
            raise InvalidCoordinate(f"{label} is outside the grid of {unit.storage_id}.")

        result = {"row_index": row_index, "storage_location_id": unit.id, "coordinate": label}
        if not grid.is_usable(label):
            return DropResult(accepted=False, reason=DropRejectReason.DISABLED, **result)
        if label in self.committed_slots(unit.id, row_index):
            return DropResult(accepted=False, reason=DropRejectReason.ALREADY_OCCUPIED, **result)

        displaced = None
        for index, other in enumerate(self.rows):
            if index == row_index:
                continue
            if other.storage_location_id == unit.id and other.position_label == label:
                self.rows[index] = other.model_copy(update={"position_label": None})
                if displaced is None:
                    displaced = index

        self.rows[row_index] = row.model_copy(
            update={"storage_location_id": unit.id, "position_label": label}
        )
        return DropResult(accepted=True, displaced_row_index=displaced, **result)

    def conflicts(self) -> list[BatchConflict]:
        found: list[BatchConflict] = []
        first_claim: dict[tuple[uuid.UUID, str], int] = {}

        for index, row in enumerate(self.rows):
            if row.storage_location_id is None or not row.position_label:
                continue
            unit = self.units_by_id.get(row.storage_location_id)
            if unit is None or unit.grid_spec is None:
                continue
            grid = unit.grid_spec
            label = row.position_label

            def conflict(kind: BatchConflictType, other: int | None = None) -> BatchConflict:
                return BatchConflict(
                    row_index=index,
                    storage_location_id=unit.id,
                    coordinate=label,
                    conflict_type=kind,
                    other_row_index=other,
                )

            if not coordinate_in_grid(label, grid.rows, grid.cols, grid.label_schema):
                found.append(conflict(BatchConflictType.OUT_OF_GRID))
            elif not grid.is_usable(label):
                found.append(conflict(BatchConflictType.DISABLED))
            elif label in self.committed_slots(unit.id, index):
                found.append(conflict(BatchConflictType.COMMITTED_OCCUPIED))
            else:
                first = first_claim.setdefault((unit.id, label), index)
                if first != index:
                    found.append(conflict(BatchConflictType.DUPLICATE_IN_BATCH, first))
        return found
