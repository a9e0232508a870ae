"""Forest building, filter visibility, flattening, and windowing."""

import uuid

import pytest

from labvault.schemas.storage import TreeFilter
from labvault.services.storage_tree import (
    build_forest,
    compute_visibility,
    flatten_tree,
    group_by_storage,
    matches_filter,
    virtual_window,
)


@pytest.fixture
def hierarchy(make_unit):
    root = make_unit("FRZ-1", name="Freezer One", unit_type="freezer")
    child = make_unit("RCK-1", name="Rack Alpha", unit_type="rack", parent_storage_id=root.id)
    grandchild = make_unit(
        "BOX-77", name="Plasma Box", unit_type="box", parent_storage_id=child.id,
    )
    sibling = make_unit("RCK-2", name="Rack Beta", unit_type="rack", parent_storage_id=root.id)
    nephew = make_unit("BOX-2", name="Serum Box", unit_type="box", parent_storage_id=sibling.id)
    return {
        "root": root, "child": child, "grandchild": grandchild,
        "sibling": sibling, "nephew": nephew,
    }


def test_build_forest(hierarchy):
    forest = build_forest(hierarchy.values())
    assert forest.root_ids == [hierarchy["root"].id]
    assert forest.children(hierarchy["root"].id) == [hierarchy["child"].id, hierarchy["sibling"].id]
    assert forest.storage_types == ["box", "freezer", "rack"]


def test_dangling_parent_becomes_root(make_unit):
    orphan = make_unit("BOX-9", parent_storage_id=uuid.uuid4())
    forest = build_forest([orphan])
    assert forest.root_ids == [orphan.id]


def test_empty_input():
    forest = build_forest(None)
    assert forest.root_ids == []
    assert flatten_tree(forest, {}) == []


def test_visibility_propagates_from_grandchild(hierarchy):
    forest = build_forest(hierarchy.values())

    visibility = compute_visibility(forest, TreeFilter(search_query="  PLASMA "))

    assert visibility[hierarchy["root"].id]
    assert visibility[hierarchy["child"].id]
    assert visibility[hierarchy["grandchild"].id]
    assert not visibility[hierarchy["sibling"].id]
    assert not visibility[hierarchy["nephew"].id]


def test_no_filter_shows_everything(hierarchy):
    forest = build_forest(hierarchy.values())
    visibility = compute_visibility(forest, TreeFilter())
    assert all(visibility[unit.id] for unit in hierarchy.values())


def test_type_filter(hierarchy):
    forest = build_forest(hierarchy.values())
    visibility = compute_visibility(forest, TreeFilter(active_type="rack"))
    assert visibility[hierarchy["root"].id]
    assert visibility[hierarchy["sibling"].id]
    assert not visibility[hierarchy["nephew"].id]


def test_query_matches_ancestor_path(hierarchy):
    unit = hierarchy["grandchild"]
    tree_filter = TreeFilter(search_query="freezer one")
    assert matches_filter(unit, tree_filter, ["Freezer One", "Rack Alpha", "Plasma Box"])
    assert not matches_filter(unit, tree_filter)


def test_matching_node_ids_count_as_hits(hierarchy):
    forest = build_forest(hierarchy.values())
    tree_filter = TreeFilter(
        search_query="S-000123", matching_node_ids=frozenset({hierarchy["nephew"].id}),
    )
    visibility = compute_visibility(forest, tree_filter)
    assert visibility[hierarchy["sibling"].id]
    assert not visibility[hierarchy["child"].id]


def test_flatten_descends_only_into_expanded_nodes(hierarchy):
    forest = build_forest(hierarchy.values())
    visibility = compute_visibility(forest, TreeFilter())

    collapsed = flatten_tree(forest, visibility)
    assert [row.id for row in collapsed] == [hierarchy["root"].id]
    assert collapsed[0].has_children

    rows = flatten_tree(forest, visibility, {hierarchy["root"].id, hierarchy["child"].id})
    assert [(row.id, row.depth) for row in rows] == [
        (hierarchy["root"].id, 0),
        (hierarchy["child"].id, 1),
        (hierarchy["grandchild"].id, 2),
        (hierarchy["sibling"].id, 1),
    ]
    assert not rows[2].has_children


def test_flatten_skips_invisible_subtrees(hierarchy):
    forest = build_forest(hierarchy.values())
    visibility = compute_visibility(forest, TreeFilter(search_query="plasma"))
    expanded = {unit.id for unit in hierarchy.values()}

    rows = flatten_tree(forest, visibility, expanded)

    assert [row.id for row in rows] == [
        hierarchy["root"].id, hierarchy["child"].id, hierarchy["grandchild"].id,
    ]


def test_deep_chain_does_not_hit_recursion_limit(make_unit):
    units = [make_unit("U-0", name="level 0")]
    for depth in range(1, 3000):
        units.append(make_unit(
            f"U-{depth}", name=f"level {depth}", parent_storage_id=units[-1].id,
        ))
    forest = build_forest(units)

    visibility = compute_visibility(forest, TreeFilter(active_type="box"))
    rows = flatten_tree(forest, visibility, {unit.id for unit in units})

    assert len(rows) == 3000
    assert rows[-1].depth == 2999


def test_cycle_is_tolerated(make_unit):
    a_id, b_id = uuid.uuid4(), uuid.uuid4()
    root = make_unit("ROOT")
    a = make_unit("A", id=a_id, parent_storage_id=b_id)
    b = make_unit("B", id=b_id, parent_storage_id=a_id)
    forest = build_forest([root, a, b])

    visibility = compute_visibility(forest, TreeFilter())
    rows = flatten_tree(forest, visibility, {a_id, b_id})

    # Neither cycle member is reachable from a root
    assert [row.id for row in rows] == [root.id]


def test_virtual_window():
    window = virtual_window(1000, scroll_offset=3200, viewport_height=640)
    assert window.start == 85
    assert window.end == 135
    assert window.offset_top == 85 * 32
    assert window.total_height == 32000


def test_virtual_window_clamps_at_edges():
    top = virtual_window(10, scroll_offset=0, viewport_height=600)
    assert (top.start, top.end) == (0, 10)

    empty = virtual_window(0, scroll_offset=500)
    assert (empty.start, empty.end, empty.total_height) == (0, 0, 0)

    past_end = virtual_window(100, scroll_offset=999999, viewport_height=320, overscan=5)
    assert past_end.end == 100
    assert past_end.start == 94


def test_group_by_storage(make_unit, make_item):
    box = make_unit("BOX-1")
    items = [make_item(box, "A1"), make_item(box, "A2"), make_item(None, None)]
    grouped = group_by_storage(items)
    assert list(grouped) == [box.id]
    assert len(grouped[box.id]) == 2
    assert group_by_storage(None) == {}
