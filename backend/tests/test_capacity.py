"""Capacity snapshots and ancestor paths."""

import logging
import uuid

import pytest

from labvault.core.exceptions import CorruptHierarchy
from labvault.services.capacity import (
    PATH_SEPARATOR,
    build_ancestor_path,
    compute_capacity_snapshot,
    utilization_pct,
)
from labvault.services.coordinates import iter_grid_coordinates


def test_plate_with_disabled_corners(make_unit):
    unit = make_unit(rows=8, cols=12, disabled=("A1", "A2"))
    free_labels = [
        label for _, _, label in iter_grid_coordinates(8, 12) if label not in {"A1", "A2"}
    ]

    snapshot = compute_capacity_snapshot(unit, free_labels[:10])

    assert snapshot.theoretical == 96
    assert snapshot.effective == 94
    assert snapshot.occupied == 10
    assert snapshot.available == 84
    assert not snapshot.unbounded


def test_occupant_on_disabled_slot_is_not_double_counted(make_unit):
    unit = make_unit(rows=2, cols=2, disabled=("B2",))
    snapshot = compute_capacity_snapshot(unit, ["A1", "B2"])
    assert snapshot.effective == 3
    assert snapshot.occupied == 1
    assert snapshot.available == 2


def test_enabled_slots_bound_effective_capacity(make_unit):
    unit = make_unit(rows=2, cols=3, enabled=("A1", "A2", "B1"), disabled=("B1",))
    snapshot = compute_capacity_snapshot(unit, ["A1", "B3"])
    assert snapshot.theoretical == 6
    assert snapshot.effective == 2
    assert snapshot.occupied == 1
    assert snapshot.available == 1


def test_available_never_negative(make_unit):
    unit = make_unit(rows=1, cols=2)
    snapshot = compute_capacity_snapshot(unit, {"A1": None, "A2": None})
    assert snapshot.available == 0


def test_scalar_capacity_counts_items(make_unit):
    unit = make_unit(capacity_slots=5)
    snapshot = compute_capacity_snapshot(unit, [], item_count=3)
    assert (snapshot.theoretical, snapshot.effective) == (5, 5)
    assert snapshot.occupied == 3
    assert snapshot.available == 2


def test_unit_without_grid_or_capacity_is_unbounded(make_unit):
    snapshot = compute_capacity_snapshot(make_unit(), item_count=7)
    assert snapshot.unbounded
    assert snapshot.available is None
    assert snapshot.occupied == 7
    assert utilization_pct(snapshot) == 0.0


def test_utilization_pct(make_unit):
    unit = make_unit(rows=2, cols=2)
    assert utilization_pct(compute_capacity_snapshot(unit, ["A1", "A2", "B1"])) == 75.0


@pytest.fixture
def freezer_chain(make_unit):
    freezer = make_unit("FRZ-1", name="Freezer 1", unit_type="freezer")
    rack = make_unit("RCK-1", name="Rack 1", unit_type="rack", parent_storage_id=freezer.id)
    box = make_unit("BOX-1", name="Box 1", rows=9, cols=9, parent_storage_id=rack.id)
    return freezer, rack, box


def test_ancestor_path_runs_root_to_leaf(freezer_chain):
    freezer, rack, box = freezer_chain
    nodes = {unit.id: unit for unit in freezer_chain}

    path = build_ancestor_path(box.id, nodes)

    assert path.path_ids == [freezer.id, rack.id, box.id]
    assert path.full_path == PATH_SEPARATOR.join(["Freezer 1", "Rack 1", "Box 1"])
    assert path.depth == 2
    assert not path.is_corrupt


def test_missing_parent_acts_as_synthetic_root(make_unit):
    orphan = make_unit("BOX-9", name="Orphan", parent_storage_id=uuid.uuid4())
    path = build_ancestor_path(orphan.id, {orphan.id: orphan})
    assert path.path_names == ["Orphan"]
    assert path.depth == 0


def test_cycle_is_flagged_not_looped(make_unit, caplog):
    a_id, b_id = uuid.uuid4(), uuid.uuid4()
    a = make_unit("A", id=a_id, parent_storage_id=b_id)
    b = make_unit("B", id=b_id, parent_storage_id=a_id)
    nodes = {a_id: a, b_id: b}

    with caplog.at_level(logging.WARNING, logger="labvault.services.capacity"):
        path = build_ancestor_path(a_id, nodes)

    assert path.is_corrupt
    assert set(path.path_ids) == {a_id, b_id}
    assert "Cycle" in caplog.text

    with pytest.raises(CorruptHierarchy):
        build_ancestor_path(a_id, nodes, strict=True)


def test_unknown_unit_has_empty_path():
    path = build_ancestor_path(uuid.uuid4(), {})
    assert path.path_ids == []
    assert path.depth == 0
