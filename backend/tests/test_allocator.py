"""First-free slot allocation."""

import pytest
from pydantic import ValidationError

from labvault.core.exceptions import GridNotConfigured, NoCapacity
from labvault.models.enums import LabelSchema
from labvault.schemas.storage import GridSpec
from labvault.services.allocator import auto_assign, find_first_free, iter_free_coordinates
from labvault.services.occupancy import reconcile_occupancy


def test_row_major_order_on_empty_grid(make_unit):
    grid = make_unit(rows=2, cols=2).grid_spec
    assert find_first_free(grid, []) == "A1"
    assert find_first_free(grid, ["A1"]) == "A2"
    assert find_first_free(grid, ["A1", "A2"]) == "B1"


def test_allocation_is_idempotent(make_unit):
    grid = make_unit(rows=8, cols=12).grid_spec
    occupied = {"A1", "A3"}
    assert find_first_free(grid, occupied) == find_first_free(grid, occupied) == "A2"


def test_disabled_slots_are_skipped(make_unit):
    grid = make_unit(rows=2, cols=2, disabled=("A1", "a2")).grid_spec
    assert find_first_free(grid, []) == "B1"


def test_padded_disabled_slot_is_stored_canonically(make_unit):
    grid = make_unit(rows=2, cols=2, disabled=("a01",)).grid_spec
    assert grid.disabled_slots == ["A1"]
    assert find_first_free(grid, []) == "A2"


def test_numeric_disabled_slot_is_stored_canonically(make_unit):
    grid = make_unit(
        rows=2, cols=2, disabled=(" 01-02 ",), label_schema=LabelSchema.NUMERIC,
    ).grid_spec
    assert grid.disabled_slots == ["1-2"]
    assert find_first_free(grid, ["1-1"]) == "2-1"


@pytest.mark.parametrize("slot", ["C1", "A3", "not a slot"])
def test_disabled_slot_outside_grid_is_rejected(slot):
    with pytest.raises(ValidationError, match="outside the grid"):
        GridSpec(rows=2, cols=2, disabled_slots=[slot])


def test_enabled_slots_limit_allocation(make_unit):
    grid = make_unit(rows=2, cols=2, enabled=("b2", "A2"), disabled=("A2",)).grid_spec
    assert grid.enabled_slots == ["B2", "A2"]
    assert list(iter_free_coordinates(grid, [])) == ["B2"]
    with pytest.raises(NoCapacity):
        find_first_free(grid, ["B2"])


def test_full_grid_raises_no_capacity(make_unit):
    grid = make_unit(rows=1, cols=2, disabled=("A2",)).grid_spec
    with pytest.raises(NoCapacity):
        find_first_free(grid, ["A1"])


def test_numeric_schema(make_unit):
    grid = make_unit(rows=2, cols=2, label_schema=LabelSchema.NUMERIC).grid_spec
    assert list(iter_free_coordinates(grid, ["1-1"])) == ["1-2", "2-1", "2-2"]


def test_auto_assign_counts_batch_claims(make_unit):
    unit = make_unit(rows=2, cols=2)
    assert auto_assign(unit, {"A1"}, batch_claimed={"A2"}) == "B1"


def test_auto_assign_requires_grid(make_unit):
    with pytest.raises(GridNotConfigured):
        auto_assign(make_unit(capacity_slots=4), [])


def test_frz1_scenario(make_unit, make_item):
    freezer = make_unit("FRZ-1", rows=2, cols=2)
    samples = [make_item(freezer, "A1", code="S-1")]

    occupancy = reconcile_occupancy(freezer, samples=samples)
    assert auto_assign(freezer, occupancy) == "A2"

    samples.append(make_item(freezer, "A2", code="S-2"))
    occupancy = reconcile_occupancy(freezer, samples=samples)
    suggestion = auto_assign(freezer, occupancy)
    assert suggestion == "B1"

    samples.append(make_item(freezer, suggestion, code="S-3"))
    disabled = make_unit("FRZ-1", rows=2, cols=2, disabled=("B2",), id=freezer.id)
    occupancy = reconcile_occupancy(disabled, samples=samples)
    with pytest.raises(NoCapacity):
        auto_assign(disabled, occupancy)
