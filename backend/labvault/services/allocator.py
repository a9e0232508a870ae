"""First-free slot allocation (row-major, top-left first)."""

from collections.abc import Iterable, Iterator

from labvault.core.exceptions import GridNotConfigured, NoCapacity
from labvault.schemas.storage import GridSpec, StorageUnitSnapshot
from labvault.services.coordinates import iter_grid_coordinates, normalize_coordinate


def iter_free_coordinates(grid: GridSpec, occupied: Iterable[str]) -> Iterator[str]:
    """Yield every enabled, unoccupied coordinate in row-major order."""
    taken = {normalize_coordinate(slot) for slot in occupied}
    for _, _, label in iter_grid_coordinates(grid.rows, grid.cols, grid.label_schema):
        if label in taken or not grid.is_usable(label):
            continue
        yield label


def find_first_free(grid: GridSpec, occupied: Iterable[str]) -> str:
    """Return the first free coordinate; raise NoCapacity if there is none.

    Pure function of its inputs: the same snapshot always yields the same
    coordinate, so retries without a write are idempotent.
    """
    for label in iter_free_coordinates(grid, occupied):
        return label
    raise NoCapacity("All slots are occupied or disabled.")


def auto_assign(
    unit: StorageUnitSnapshot,
    occupied: Iterable[str],
    batch_claimed: Iterable[str] | None = None,
) -> str:
    """Pick a slot in ``unit`` given committed and batch-claimed occupancy."""
    if unit.grid_spec is None:
        raise GridNotConfigured(f"Storage unit {unit.storage_id} has no slot grid.")
    taken = set(occupied)
    taken.update(batch_claimed or ())
    try:
        return find_first_free(unit.grid_spec, taken)
    except NoCapacity:
        raise NoCapacity(
            f"All slots in {unit.storage_id} are occupied or disabled."
        ) from None
