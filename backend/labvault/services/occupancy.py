"""Occupancy reconciliation for a single storage unit.

A unit's occupancy is assembled from three sources: the legacy
``occupied_slots`` map stored on the unit, live samples positioned in it,
and live DNA extracts positioned in it. Live, typed entries always win
over legacy ones at the same coordinate.
"""

import logging
from collections.abc import Iterable, Mapping

from labvault.models.enums import OccupantKind
from labvault.schemas.storage import (
    GridSlot,
    Occupant,
    PositionedItem,
    StorageUnitSnapshot,
)
from labvault.services.coordinates import iter_grid_coordinates, normalize_coordinate

logger = logging.getLogger(__name__)

OccupancyMap = dict[str, Occupant]

_LEGEND = {
    OccupantKind.SAMPLE: "Sample",
    OccupantKind.DNA_EXTRACT: "DNA",
    OccupantKind.BATCH: "Batch",
    OccupantKind.UNKNOWN: "Occupied",
}


def occupant_legend(kind: OccupantKind) -> str:
    """Display category for an occupant kind."""
    try:
        return _LEGEND[OccupantKind(kind)]
    except (KeyError, ValueError):
        raise ValueError(f"Unhandled occupant kind: {kind!r}") from None


def _place_live_items(
    occupancy: OccupancyMap,
    unit: StorageUnitSnapshot,
    items: Iterable[PositionedItem] | None,
    kind: OccupantKind,
) -> None:
    for item in items or ():
        if item.storage_location_id != unit.id:
            continue
        coordinate = normalize_coordinate(item.position_label)
        if coordinate is None:
            continue
        occupancy[coordinate] = Occupant(
            kind=kind, ref_id=str(item.id), display_label=item.code,
        )


def reconcile_occupancy(
    unit: StorageUnitSnapshot,
    samples: Iterable[PositionedItem] | None = None,
    extracts: Iterable[PositionedItem] | None = None,
    additional_occupied: Iterable[str] | None = None,
) -> OccupancyMap:
    """Merge legacy, sample, extract, and caller-supplied occupancy.

    Precedence, lowest first: legacy map (``unknown``), live samples,
    live extracts. ``additional_occupied`` coordinates are added as
    ``unknown`` only where nothing else sits. There is no removal step:
    callers that need a slot to read as free (an item's own slot during
    a move) must leave that item out of ``samples``/``extracts``.
    """
    occupancy: OccupancyMap = {}

    for slot, ref in (unit.occupied_slots or {}).items():
        coordinate = normalize_coordinate(slot)
        if coordinate is None:
            continue
        ref_text = "" if ref is None else str(ref)
        occupancy[coordinate] = Occupant(
            kind=OccupantKind.UNKNOWN, ref_id=ref_text, display_label=ref_text or "Occupied",
        )

    _place_live_items(occupancy, unit, samples, OccupantKind.SAMPLE)
    _place_live_items(occupancy, unit, extracts, OccupantKind.DNA_EXTRACT)

    for slot in additional_occupied or ():
        coordinate = normalize_coordinate(slot)
        if coordinate and coordinate not in occupancy:
            occupancy[coordinate] = Occupant(
                kind=OccupantKind.UNKNOWN, ref_id="occupied", display_label="Occupied",
            )

    return occupancy


def merge_batch_claims(
    occupancy: Mapping[str, Occupant], claimed: Iterable[str] | Mapping[str, str]
) -> OccupancyMap:
    """Overlay batch-provisional claims where no committed occupant sits.

    ``claimed`` may map coordinate -> row label for display.
    """
    merged = dict(occupancy)
    labels = claimed if isinstance(claimed, Mapping) else {slot: "Batch" for slot in claimed}
    for slot, label in labels.items():
        coordinate = normalize_coordinate(slot)
        if coordinate and coordinate not in merged:
            merged[coordinate] = Occupant(
                kind=OccupantKind.BATCH, ref_id="batch", display_label=label,
            )
    return merged


def occupied_coordinates(occupancy: Mapping[str, Occupant]) -> set[str]:
    return set(occupancy)


def count_by_kind(occupancy: Mapping[str, Occupant]) -> dict[str, int]:
    counts = {kind.value: 0 for kind in OccupantKind}
    for occupant in occupancy.values():
        counts[occupant.kind.value] += 1
    return counts


def build_slot_grid(
    unit: StorageUnitSnapshot,
    occupancy: Mapping[str, Occupant],
    selected: str | None = None,
    highlighted: Iterable[str] | None = None,
) -> list[list[GridSlot]] | None:
    """Row-major render model for a unit's slot grid (None without a grid)."""
    grid = unit.grid_spec
    if grid is None:
        return None

    selected_label = normalize_coordinate(selected)
    highlighted_set = {normalize_coordinate(slot) for slot in highlighted or ()}
    rows: list[list[GridSlot]] = [[] for _ in range(grid.rows)]
    for row, col, label in iter_grid_coordinates(grid.rows, grid.cols, grid.label_schema):
        occupant = occupancy.get(label)
        rows[row].append(GridSlot(
            label=label,
            row=row,
            col=col,
            is_disabled=not grid.is_usable(label),
            is_occupied=occupant is not None,
            occupant=occupant,
            is_selected=label == selected_label,
            is_highlighted=label in highlighted_set,
        ))

    stray = set(occupancy) - {slot.label for cells in rows for slot in cells}
    if stray:
        logger.warning(
            "Storage unit %s has occupants outside its grid: %s",
            unit.storage_id, ", ".join(sorted(stray)),
        )
    return rows
