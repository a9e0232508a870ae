"""Storage tree: forest construction, filter visibility, flattening, windowing.

Visibility is bottom-up: a unit is shown when it matches the filter or
any descendant does, so a search hit deep in the tree keeps its whole
ancestor chain on screen. Flattening then walks only visible, expanded
branches and produces the depth-annotated row list the tree panel
virtualizes.

Both walks are iterative so arbitrarily deep hierarchies do not hit the
recursion limit, and both tolerate cycles in corrupted parent links.
"""

import uuid
from collections import defaultdict
from collections.abc import Iterable, Mapping

from pydantic import BaseModel

from labvault.schemas.storage import (
    PositionedItem,
    StorageUnitSnapshot,
    TreeFilter,
    TreeRow,
    VirtualWindow,
)
from labvault.services.capacity import build_ancestor_path

DEFAULT_ROW_HEIGHT = 32
DEFAULT_OVERSCAN = 15


class StorageForest(BaseModel):
    nodes_by_id: dict[uuid.UUID, StorageUnitSnapshot]
    children_by_parent: dict[uuid.UUID | None, list[uuid.UUID]]
    root_ids: list[uuid.UUID]
    storage_types: list[str]

    def children(self, node_id: uuid.UUID) -> list[uuid.UUID]:
        return self.children_by_parent.get(node_id, [])


def build_forest(units: Iterable[StorageUnitSnapshot] | None) -> StorageForest:
    """Index units by id and parent. Input order is kept for siblings."""
    nodes = {unit.id: unit for unit in units or ()}
    children: dict[uuid.UUID | None, list[uuid.UUID]] = defaultdict(list)
    roots: list[uuid.UUID] = []

    for unit in nodes.values():
        children[unit.parent_storage_id].append(unit.id)
        # Dangling parent: shown as a root rather than dropped
        if unit.parent_storage_id is None or unit.parent_storage_id not in nodes:
            roots.append(unit.id)

    return StorageForest(
        nodes_by_id=nodes,
        children_by_parent=dict(children),
        root_ids=roots,
        storage_types=sorted({unit.unit_type for unit in nodes.values()}),
    )


def matches_filter(
    unit: StorageUnitSnapshot,
    tree_filter: TreeFilter,
    path_names: Iterable[str] = (),
) -> bool:
    if tree_filter.active_type and unit.unit_type != tree_filter.active_type:
        return False
    query = tree_filter.search_query
    if not query:
        return True
    fields = [unit.name, unit.storage_id, *path_names]
    if any(query in (field or "").lower() for field in fields):
        return True
    return unit.id in tree_filter.matching_node_ids


def compute_visibility(
    forest: StorageForest, tree_filter: TreeFilter
) -> dict[uuid.UUID, bool]:
    """visible(n) = matches(n) or any(visible(child)), for every reachable node."""
    visibility: dict[uuid.UUID, bool] = {}
    in_progress: set[uuid.UUID] = set()

    def own_match(node_id: uuid.UUID) -> bool:
        unit = forest.nodes_by_id[node_id]
        if not tree_filter.search_query:
            return matches_filter(unit, tree_filter)
        path = build_ancestor_path(node_id, forest.nodes_by_id)
        return matches_filter(unit, tree_filter, path.path_names)

    for root_id in forest.root_ids:
        if root_id in visibility:
            continue
        # Post-order: (node, children_done)
        stack: list[tuple[uuid.UUID, bool]] = [(root_id, False)]
        while stack:
            node_id, children_done = stack.pop()
            if children_done:
                in_progress.discard(node_id)
                visibility[node_id] = own_match(node_id) or any(
                    visibility.get(child, False) for child in forest.children(node_id)
                )
                continue
            if node_id in visibility or node_id in in_progress:
                continue
            if node_id not in forest.nodes_by_id:
                visibility[node_id] = False
                continue
            in_progress.add(node_id)
            stack.append((node_id, True))
            for child in forest.children(node_id):
                if child not in visibility and child not in in_progress:
                    stack.append((child, False))

    return visibility


def flatten_tree(
    forest: StorageForest,
    visibility: Mapping[uuid.UUID, bool],
    expanded_ids: Iterable[uuid.UUID] = (),
) -> list[TreeRow]:
    """Depth-first rows for visible nodes, descending only into expanded ones.

    Skipping an invisible node skips its subtree too; that is safe only
    because visibility already folds in every descendant match.
    """
    expanded = set(expanded_ids)
    rows: list[TreeRow] = []
    emitted: set[uuid.UUID] = set()

    stack: list[tuple[uuid.UUID, int]] = [
        (root_id, 0) for root_id in reversed(forest.root_ids)
    ]
    while stack:
        node_id, depth = stack.pop()
        if node_id in emitted or node_id not in forest.nodes_by_id:
            continue
        if not visibility.get(node_id, False):
            continue
        emitted.add(node_id)

        children = forest.children(node_id)
        has_children = bool(children)
        rows.append(TreeRow(id=node_id, depth=depth, has_children=has_children))

        if has_children and node_id in expanded:
            for child in reversed(children):
                stack.append((child, depth + 1))

    return rows


def virtual_window(
    row_count: int,
    scroll_offset: int = 0,
    viewport_height: int = 600,
    row_height: int = DEFAULT_ROW_HEIGHT,
    overscan: int = DEFAULT_OVERSCAN,
) -> VirtualWindow:
    """Rows to materialize for a fixed-height virtualized list."""
    total_height = row_count * row_height
    if row_count == 0:
        return VirtualWindow(start=0, end=0, offset_top=0, total_height=0)

    scroll_offset = min(max(scroll_offset, 0), max(total_height - 1, 0))
    first_visible = scroll_offset // row_height
    visible_count = -(-max(viewport_height, 0) // row_height)  # ceil
    start = max(first_visible - overscan, 0)
    end = min(first_visible + visible_count + overscan, row_count)
    return VirtualWindow(
        start=start,
        end=end,
        offset_top=start * row_height,
        total_height=total_height,
    )


def group_by_storage(
    items: Iterable[PositionedItem] | None,
) -> dict[uuid.UUID, list[PositionedItem]]:
    grouped: dict[uuid.UUID, list[PositionedItem]] = defaultdict(list)
    for item in items or ():
        if item.storage_location_id is not None:
            grouped[item.storage_location_id].append(item)
    return dict(grouped)
