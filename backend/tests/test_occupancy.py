"""Occupancy reconciliation from legacy, sample, and extract sources."""

import logging

import pytest

from labvault.models.enums import OccupantKind
from labvault.services.occupancy import (
    build_slot_grid,
    count_by_kind,
    merge_batch_claims,
    occupant_legend,
    reconcile_occupancy,
)


def test_live_sample_wins_over_legacy_entry(make_unit, make_item):
    unit = make_unit(rows=8, cols=12, occupied_slots={"A1": "legacy-ref", "B2": "old"})
    sample = make_item(unit, "A1", code="S-100")

    occupancy = reconcile_occupancy(unit, samples=[sample])

    assert occupancy["A1"].kind == OccupantKind.SAMPLE
    assert occupancy["A1"].ref_id == str(sample.id)
    assert occupancy["A1"].display_label == "S-100"
    assert occupancy["B2"].kind == OccupantKind.UNKNOWN


def test_extract_overwrites_sample_at_same_coordinate(make_unit, make_item):
    unit = make_unit(rows=2, cols=2)
    occupancy = reconcile_occupancy(
        unit,
        samples=[make_item(unit, "A1", code="S-1")],
        extracts=[make_item(unit, "A1", code="DNA-1")],
    )
    assert occupancy["A1"].kind == OccupantKind.DNA_EXTRACT
    assert occupancy["A1"].display_label == "DNA-1"


def test_items_in_other_units_or_unpositioned_are_ignored(make_unit, make_item):
    unit = make_unit(rows=2, cols=2)
    other = make_unit("BOX-2", rows=2, cols=2)
    occupancy = reconcile_occupancy(
        unit,
        samples=[make_item(other, "A1"), make_item(unit, None), make_item(None, "A2")],
    )
    assert occupancy == {}


def test_positions_are_normalized(make_unit, make_item):
    unit = make_unit(rows=2, cols=2, occupied_slots={" b1 ": None})
    occupancy = reconcile_occupancy(unit, samples=[make_item(unit, "a2")])
    assert set(occupancy) == {"A2", "B1"}
    assert occupancy["B1"].display_label == "Occupied"


def test_additional_occupied_only_fills_empty_coordinates(make_unit, make_item):
    unit = make_unit(rows=2, cols=2)
    occupancy = reconcile_occupancy(
        unit, samples=[make_item(unit, "A1")], additional_occupied=["A1", "B2"],
    )
    assert occupancy["A1"].kind == OccupantKind.SAMPLE
    assert occupancy["B2"].kind == OccupantKind.UNKNOWN


def test_loading_inputs_count_as_empty(make_unit):
    unit = make_unit(rows=2, cols=2)
    assert reconcile_occupancy(unit, samples=None, extracts=None) == {}


def test_batch_claims_never_replace_committed_occupants(make_unit, make_item):
    unit = make_unit(rows=2, cols=2)
    committed = reconcile_occupancy(unit, samples=[make_item(unit, "A1")])

    merged = merge_batch_claims(committed, {"A1": "row 0", "A2": "row 1"})

    assert merged["A1"].kind == OccupantKind.SAMPLE
    assert merged["A2"].kind == OccupantKind.BATCH
    assert merged["A2"].display_label == "row 1"
    assert "A2" not in committed


@pytest.mark.parametrize("kind", list(OccupantKind))
def test_every_occupant_kind_has_a_legend(kind):
    assert occupant_legend(kind)


def test_unknown_kind_has_no_legend():
    with pytest.raises(ValueError):
        occupant_legend("shelf")


def test_count_by_kind(make_unit, make_item):
    unit = make_unit(rows=2, cols=2, occupied_slots={"B2": "x"})
    occupancy = reconcile_occupancy(
        unit, samples=[make_item(unit, "A1")], extracts=[make_item(unit, "A2")],
    )
    counts = count_by_kind(occupancy)
    assert counts == {"sample": 1, "dna_extract": 1, "batch": 0, "unknown": 1}


def test_slot_grid_flags(make_unit, make_item):
    unit = make_unit(rows=2, cols=3, disabled=("B3",))
    occupancy = reconcile_occupancy(unit, samples=[make_item(unit, "A2")])

    grid = build_slot_grid(unit, occupancy, selected="b1", highlighted=["A3"])

    assert [[slot.label for slot in row] for row in grid] == [["A1", "A2", "A3"], ["B1", "B2", "B3"]]
    assert grid[0][1].is_occupied and grid[0][1].occupant.kind == OccupantKind.SAMPLE
    assert grid[1][2].is_disabled
    assert grid[1][0].is_selected
    assert grid[0][2].is_highlighted
    assert not grid[0][0].is_occupied


def test_slot_grid_is_none_without_grid(make_unit):
    assert build_slot_grid(make_unit(capacity_slots=10), {}) is None


def test_slot_grid_warns_about_stray_occupants(make_unit, make_item, caplog):
    unit = make_unit(rows=2, cols=2)
    occupancy = reconcile_occupancy(unit, samples=[make_item(unit, "H12")])

    with caplog.at_level(logging.WARNING, logger="labvault.services.occupancy"):
        build_slot_grid(unit, occupancy)

    assert "H12" in caplog.text
