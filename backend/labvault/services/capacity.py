"""Capacity snapshots and ancestor paths for storage units."""

import logging
import uuid
from collections.abc import Iterable, Mapping

from labvault.core.exceptions import CorruptHierarchy
from labvault.schemas.storage import CapacitySnapshot, GridSpec, StorageUnitSnapshot, UnitPath
from labvault.services.coordinates import normalize_coordinate

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " › "


def theoretical_slots(grid: GridSpec | None) -> int:
    if grid is None:
        return 0
    return grid.rows * grid.cols


def effective_slots(grid: GridSpec | None) -> int:
    """Usable slots: the explicit enabled set, else the whole grid, minus disabled slots."""
    if grid is None:
        return 0
    if grid.enabled_slots:
        return len(grid.enabled_set - grid.disabled_set)
    return max(theoretical_slots(grid) - len(grid.disabled_set), 0)


def compute_capacity_snapshot(
    unit: StorageUnitSnapshot,
    occupied: Iterable[str] | Mapping[str, object] | None = None,
    item_count: int | None = None,
) -> CapacitySnapshot:
    """Theoretical / effective / available slots for a unit.

    ``occupied`` is the reconciled occupancy (or just its coordinates).
    Occupants sitting on unusable slots do not reduce availability twice.
    Units without a grid hold items that need not carry a position, so
    their occupancy is ``item_count`` when given.
    """
    labels = {normalize_coordinate(slot) for slot in occupied or ()}
    labels.discard(None)

    grid = unit.grid_spec
    if grid is not None:
        occupied_count = sum(1 for label in labels if grid.is_usable(label))
        effective = effective_slots(grid)
        return CapacitySnapshot(
            theoretical=theoretical_slots(grid),
            effective=effective,
            occupied=occupied_count,
            available=max(effective - occupied_count, 0),
        )

    held = item_count if item_count is not None else len(labels)
    if unit.capacity_slots is not None:
        return CapacitySnapshot(
            theoretical=unit.capacity_slots,
            effective=unit.capacity_slots,
            occupied=held,
            available=max(unit.capacity_slots - held, 0),
        )

    return CapacitySnapshot(occupied=held, available=None, unbounded=True)


def utilization_pct(snapshot: CapacitySnapshot) -> float:
    if snapshot.unbounded or snapshot.effective <= 0:
        return 0.0
    return round(snapshot.occupied / snapshot.effective * 100, 1)


def build_ancestor_path(
    unit_id: uuid.UUID,
    nodes_by_id: Mapping[uuid.UUID, StorageUnitSnapshot],
    strict: bool = False,
) -> UnitPath:
    """Walk parent links up to a root and return the root->unit path.

    A parent missing from ``nodes_by_id`` ends the walk (the unit is
    treated as sitting under a synthetic root). The walk visits each node
    at most once; a repeat means a cycle in parent links, which yields a
    partial path flagged ``is_corrupt`` (or raises CorruptHierarchy when
    ``strict``).
    """
    chain: list[StorageUnitSnapshot] = []
    seen: set[uuid.UUID] = set()
    corrupt = False
    current = nodes_by_id.get(unit_id)
    limit = len(nodes_by_id)

    while current is not None:
        if current.id in seen or len(chain) >= limit:
            corrupt = True
            break
        seen.add(current.id)
        chain.append(current)
        if current.parent_storage_id is None:
            break
        current = nodes_by_id.get(current.parent_storage_id)

    if corrupt:
        message = f"Cycle in storage hierarchy above unit {unit_id}."
        if strict:
            raise CorruptHierarchy(message)
        logger.warning(message)

    chain.reverse()
    names = [node.name for node in chain]
    return UnitPath(
        path_ids=[node.id for node in chain],
        path_names=names,
        full_path=PATH_SEPARATOR.join(names),
        depth=max(len(chain) - 1, 0),
        is_corrupt=corrupt,
    )
