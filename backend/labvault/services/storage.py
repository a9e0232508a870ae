"""Storage hierarchy service: unit CRUD, occupancy, placement, and the tree."""

import logging
import uuid
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from labvault.config import settings
from labvault.core.exceptions import (
    CorruptHierarchy,
    GridNotConfigured,
    InvalidCoordinate,
    NoCapacity,
    SlotAlreadyOccupied,
    SlotDisabled,
    StaleOccupancySnapshot,
)
from labvault.models.enums import ChildPolicy, ItemKind
from labvault.models.sample import DnaExtract, Sample
from labvault.models.storage import StorageUnit
from labvault.schemas.storage import (
    AssignRequest,
    GridSpec,
    MoveRequest,
    PositionedItem,
    StorageUnitCreate,
    StorageUnitSnapshot,
    StorageUnitUpdate,
    TreeFilter,
    UnassignRequest,
)
from labvault.services.allocator import auto_assign
from labvault.services.audit import AuditService
from labvault.services.capacity import (
    build_ancestor_path,
    compute_capacity_snapshot,
    utilization_pct,
)
from labvault.services.coordinates import canonical_coordinate, coordinate_in_grid
from labvault.services.occupancy import OccupancyMap, build_slot_grid, reconcile_occupancy
from labvault.services.search import SearchService
from labvault.services.storage_tree import (
    build_forest,
    compute_visibility,
    flatten_tree,
    group_by_storage,
    virtual_window,
)

logger = logging.getLogger(__name__)

ITEM_MODELS = {
    ItemKind.SAMPLE: Sample,
    ItemKind.DNA_EXTRACT: DnaExtract,
}

PositionedByUnit = dict[uuid.UUID, list[PositionedItem]]


class StorageService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    # ── Unit CRUD ─────────────────────────────────────────────────────

    async def list_units(
        self,
        page: int = 1,
        per_page: int = 50,
        unit_type: str | None = None,
        parent_id: uuid.UUID | None = None,
    ) -> tuple[list[dict], int]:
        query = select(StorageUnit).where(StorageUnit.is_deleted == False)  # noqa: E712
        if unit_type:
            query = query.where(StorageUnit.unit_type == unit_type)
        if parent_id is not None:
            query = query.where(StorageUnit.parent_storage_id == parent_id)

        count_q = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_q)).scalar_one()

        query = query.order_by(StorageUnit.storage_id.asc())
        query = query.offset((page - 1) * per_page).limit(per_page)
        result = await self.db.execute(query)
        units = list(result.scalars().all())
        return await self._unit_details(units), total

    async def get_unit(self, unit_id: uuid.UUID) -> dict | None:
        unit = await self._get_unit(unit_id)
        if unit is None:
            return None
        return (await self._unit_details([unit]))[0]

    async def create_unit(
        self, data: StorageUnitCreate, created_by: uuid.UUID | None
    ) -> StorageUnit:
        await self._ensure_storage_id_free(data.storage_id)
        if data.parent_storage_id is not None:
            if await self._get_unit(data.parent_storage_id) is None:
                raise ValueError("Parent storage unit not found.")

        unit = StorageUnit(
            id=uuid.uuid4(),
            storage_id=data.storage_id,
            name=data.name,
            unit_type=data.unit_type,
            description=data.description,
            parent_storage_id=data.parent_storage_id,
            capacity_slots=data.capacity_slots,
            created_by=created_by,
        )
        self._apply_grid(unit, data.grid_spec)
        self.db.add(unit)
        await self.db.flush()

        await self.audit.log_create(
            user_id=created_by,
            entity_type="storage_unit",
            entity_id=unit.id,
            new_values={"storage_id": unit.storage_id, "unit_type": unit.unit_type},
        )
        await self.db.refresh(unit)
        return unit

    async def update_unit(
        self,
        unit_id: uuid.UUID,
        data: StorageUnitUpdate,
        updated_by: uuid.UUID | None,
    ) -> StorageUnit | None:
        unit = await self._get_unit(unit_id)
        if unit is None:
            return None

        changes = data.model_dump(exclude_unset=True)
        if changes.get("grid_spec") is not None and changes.get("capacity_slots") is not None:
            raise ValueError("Set either grid_spec or capacity_slots, not both.")

        old_values: dict = {}
        new_values: dict = {}

        if "storage_id" in changes and changes["storage_id"] != unit.storage_id:
            await self._ensure_storage_id_free(changes["storage_id"])

        if "parent_storage_id" in changes and changes["parent_storage_id"] != unit.parent_storage_id:
            await self._check_reparent(unit, changes["parent_storage_id"])

        if "grid_spec" in changes:
            grid = data.grid_spec
            await self._check_grid_change(unit, grid)
            old_values["grid_spec"] = _jsonable_grid(unit.grid_spec)
            self._apply_grid(unit, grid)
            if grid is not None:
                unit.capacity_slots = None
            new_values["grid_spec"] = _jsonable_grid(unit.grid_spec)
            unit.occupancy_version += 1

        if changes.get("capacity_slots") is not None and unit.grid_spec is not None:
            await self._check_grid_change(unit, None)
            old_values["grid_spec"] = _jsonable_grid(unit.grid_spec)
            self._apply_grid(unit, None)
            new_values["grid_spec"] = None
            unit.occupancy_version += 1

        for field in ("storage_id", "name", "unit_type", "description",
                      "parent_storage_id", "capacity_slots"):
            if field not in changes:
                continue
            value = changes[field]
            current = getattr(unit, field)
            if value != current:
                old_values[field] = str(current) if current is not None else None
                setattr(unit, field, value)
                new_values[field] = str(value) if value is not None else None

        if new_values:
            await self.db.flush()
            await self.audit.log_update(
                user_id=updated_by,
                entity_type="storage_unit",
                entity_id=unit.id,
                old_values=old_values,
                new_values=new_values,
            )
            await self.db.refresh(unit)
        return unit

    async def delete_unit(
        self,
        unit_id: uuid.UUID,
        deleted_by: uuid.UUID | None,
        child_policy: ChildPolicy = ChildPolicy.REJECT,
    ) -> dict | None:
        """Soft-delete a unit; ``child_policy`` decides what happens to children.

        reject:   refuse while the unit has children.
        reparent: children move up to the deleted unit's parent.
        cascade:  the whole subtree is deleted, provided none of it holds items.
        """
        unit = await self._get_unit(unit_id)
        if unit is None:
            return None

        children = await self._children(unit.id)
        reparented: list[uuid.UUID] = []

        if child_policy == ChildPolicy.CASCADE:
            doomed = await self._subtree(unit)
        else:
            doomed = [unit]
            if children and child_policy == ChildPolicy.REJECT:
                raise ValueError(
                    f"Storage unit {unit.storage_id} has {len(children)} child unit(s). "
                    "Delete or move them first, or use child_policy=reparent or cascade."
                )

        held = await self._held_counts([node.id for node in doomed])
        occupied = [
            node.storage_id for node in doomed
            if held.get(node.id) or node.occupied_slots
        ]
        if occupied:
            raise ValueError(
                f"Storage units still hold items: {', '.join(sorted(occupied))}."
            )

        if child_policy == ChildPolicy.REPARENT:
            for child in children:
                child.parent_storage_id = unit.parent_storage_id
                reparented.append(child.id)
                await self.audit.log_update(
                    user_id=deleted_by,
                    entity_type="storage_unit",
                    entity_id=child.id,
                    old_values={"parent_storage_id": str(unit.id)},
                    new_values={
                        "parent_storage_id": (
                            str(unit.parent_storage_id) if unit.parent_storage_id else None
                        ),
                    },
                )

        now = datetime.now(timezone.utc)
        for node in doomed:
            node.soft_delete(now)
            await self.audit.log_delete(
                user_id=deleted_by,
                entity_type="storage_unit",
                entity_id=node.id,
                old_values={"storage_id": node.storage_id, "is_deleted": "False"},
            )

        await self.db.flush()
        return {
            "id": unit.id,
            "deleted_ids": [node.id for node in doomed],
            "reparented_ids": reparented,
        }

    # ── Occupancy ─────────────────────────────────────────────────────

    async def get_occupancy(
        self,
        unit_id: uuid.UUID,
        selected: str | None = None,
        highlighted: Iterable[str] | None = None,
    ) -> dict | None:
        unit = await self._get_unit(unit_id)
        if unit is None:
            return None
        snapshot = self.snapshot(unit)
        samples, extracts = await self._positioned([unit.id])
        occupancy = self._reconcile(snapshot, samples, extracts)
        held = len(samples.get(unit.id, [])) + len(extracts.get(unit.id, []))
        return {
            "storage_unit_id": unit.id,
            "occupancy_version": unit.occupancy_version,
            "grid_spec": snapshot.grid_spec,
            "capacity": compute_capacity_snapshot(snapshot, occupancy, item_count=held),
            "slots": occupancy,
            "grid": build_slot_grid(snapshot, occupancy, selected, highlighted),
        }

    async def suggest_slot(self, unit_id: uuid.UUID) -> dict:
        """First free coordinate in the unit. Nothing is written."""
        unit = await self._get_unit(unit_id)
        if unit is None:
            raise ValueError("Storage unit not found.")
        snapshot = self.snapshot(unit)
        occupancy = await self._live_occupancy(snapshot)
        return {
            "storage_unit_id": unit.id,
            "coordinate": auto_assign(snapshot, occupancy),
            "occupancy_version": unit.occupancy_version,
        }

    # ── Placement ─────────────────────────────────────────────────────

    async def assign_item(
        self,
        unit_id: uuid.UUID,
        data: AssignRequest,
        assigned_by: uuid.UUID | None,
    ) -> dict:
        """Place an unstored item (or reposition it within the same unit)."""
        item = await self.get_item(data.item_kind, data.item_id)
        if item.storage_location_id is not None and item.storage_location_id != unit_id:
            raise ValueError(
                "Item is already stored in another unit. Use move instead."
            )
        return await self._place(
            data.item_kind, item, unit_id, data.coordinate, data.expected_version,
            assigned_by, event="assign",
        )

    async def move_item(self, data: MoveRequest, moved_by: uuid.UUID | None) -> dict:
        item = await self.get_item(data.item_kind, data.item_id)
        source_id = item.storage_location_id
        placement = await self._place(
            data.item_kind, item, data.target_storage_id, data.coordinate,
            data.expected_version, moved_by, event="move",
        )
        if source_id is not None and source_id != data.target_storage_id:
            await self.touch_unit(source_id)
        return placement

    async def unassign_item(
        self, data: UnassignRequest, unassigned_by: uuid.UUID | None
    ) -> dict:
        item = await self.get_item(data.item_kind, data.item_id)
        if item.storage_location_id is None:
            raise ValueError("Item is not assigned to a storage unit.")

        unit = await self._lock_unit(item.storage_location_id)
        before = (item.storage_location_id, item.position_label)
        item.storage_location_id = None
        item.position_label = None
        item.storage_datetime = None
        item.stored_by = None
        unit.occupancy_version += 1

        await self.audit.log_placement(
            item_kind=data.item_kind,
            item_id=item.id,
            before=before,
            after=(None, None),
            event="unassign",
            user_id=unassigned_by,
        )
        await self.db.flush()
        return {
            "item_kind": data.item_kind,
            "item_id": item.id,
            "storage_location_id": None,
            "position_label": None,
            "occupancy_version": unit.occupancy_version,
        }

    async def touch_unit(self, unit_id: uuid.UUID) -> None:
        """Bump the occupancy version of a unit an item just left."""
        unit = await self._get_unit(unit_id)
        if unit is not None:
            unit.occupancy_version += 1

    async def lock_unit(
        self, unit_id: uuid.UUID, expected_version: int | None = None
    ) -> StorageUnit:
        """Lock a unit row for writing and check the caller's snapshot version."""
        unit = await self._lock_unit(unit_id)
        if expected_version is not None and unit.occupancy_version != expected_version:
            logger.info(
                "Stale occupancy snapshot for %s: expected v%d, current v%d",
                unit.storage_id, expected_version, unit.occupancy_version,
            )
            raise StaleOccupancySnapshot(
                f"Occupancy of {unit.storage_id} changed (version "
                f"{unit.occupancy_version}, expected {expected_version}). Reload and retry."
            )
        return unit

    async def resolve_slot(
        self,
        unit: StorageUnit,
        coordinate: str | None,
        exclude_item_id: uuid.UUID | None = None,
    ) -> str | None:
        """Validate (or pick) the slot an item would take in ``unit``.

        Reads live occupancy with ``exclude_item_id`` left out so an item
        never collides with its own current slot. Returns None for units
        without a grid. Raises before anything is written.
        """
        snapshot = self.snapshot(unit)
        grid = snapshot.grid_spec

        if grid is None:
            if coordinate:
                raise GridNotConfigured(
                    f"Storage unit {unit.storage_id} has no slot grid; omit the coordinate."
                )
            if snapshot.capacity_slots is not None:
                held = (await self._held_counts([unit.id], exclude_item_id)).get(unit.id, 0)
                if held >= snapshot.capacity_slots:
                    raise NoCapacity(f"Storage unit {unit.storage_id} is full.")
            return None

        occupancy = await self._live_occupancy(snapshot, exclude_item_id)
        if not coordinate:
            return auto_assign(snapshot, occupancy)

        label = canonical_coordinate(coordinate, grid.label_schema)
        if not coordinate_in_grid(label, grid.rows, grid.cols, grid.label_schema):
            raise InvalidCoordinate(f"{label} is outside the grid of {unit.storage_id}.")
        if not grid.is_usable(label):
            raise SlotDisabled(f"Slot {label} in {unit.storage_id} is disabled.")
        if label in occupancy:
            raise SlotAlreadyOccupied(
                f"Slot {label} in {unit.storage_id} is occupied by "
                f"{occupancy[label].display_label}."
            )
        return label

    async def apply_placement(
        self,
        item_kind: ItemKind,
        item: Sample | DnaExtract,
        unit: StorageUnit,
        label: str | None,
        placed_by: uuid.UUID | None,
        event: str,
    ) -> dict:
        before = (item.storage_location_id, item.position_label)
        item.storage_location_id = unit.id
        item.position_label = label
        item.storage_datetime = datetime.now(timezone.utc)
        item.stored_by = placed_by
        unit.occupancy_version += 1

        await self.audit.log_placement(
            item_kind=item_kind,
            item_id=item.id,
            before=before,
            after=(unit.id, label),
            event=event,
            user_id=placed_by,
        )
        await self.db.flush()
        await self._check_capacity_warning(unit)

        return {
            "item_kind": item_kind,
            "item_id": item.id,
            "storage_location_id": unit.id,
            "position_label": label,
            "occupancy_version": unit.occupancy_version,
        }

    async def _place(
        self,
        item_kind: ItemKind,
        item: Sample | DnaExtract,
        unit_id: uuid.UUID,
        coordinate: str | None,
        expected_version: int | None,
        placed_by: uuid.UUID | None,
        event: str,
    ) -> dict:
        unit = await self.lock_unit(unit_id, expected_version)
        label = await self.resolve_slot(unit, coordinate, exclude_item_id=item.id)
        return await self.apply_placement(item_kind, item, unit, label, placed_by, event)

    # ── Tree ──────────────────────────────────────────────────────────

    async def build_tree(
        self,
        q: str | None = None,
        unit_type: str | None = None,
        expanded: Iterable[uuid.UUID] = (),
        scroll_offset: int = 0,
        viewport_height: int = 600,
    ) -> dict:
        units = await self._all_units()
        forest = build_forest(self.snapshot(unit) for unit in units)

        matching: frozenset[uuid.UUID] = frozenset()
        if q and q.strip():
            found = await SearchService(self.db).search(q)
            matching = frozenset(found.matching_node_ids)
        tree_filter = TreeFilter(
            search_query=q or "", active_type=unit_type, matching_node_ids=matching,
        )
        visibility = compute_visibility(forest, tree_filter)

        expanded_ids = set(expanded)
        if tree_filter.search_query:
            # Search results open every branch that leads to a hit
            expanded_ids.update(node_id for node_id, shown in visibility.items() if shown)

        rows = flatten_tree(forest, visibility, expanded_ids)
        window = virtual_window(
            len(rows),
            scroll_offset=scroll_offset,
            viewport_height=viewport_height,
            row_height=settings.TREE_ROW_HEIGHT,
            overscan=settings.TREE_OVERSCAN,
        )
        page = rows[window.start:window.end]

        samples, extracts = await self._positioned([row.id for row in page])
        rendered = []
        for row in page:
            node = forest.nodes_by_id[row.id]
            occupancy = self._reconcile(node, samples, extracts)
            sample_count = len(samples.get(row.id, []))
            extract_count = len(extracts.get(row.id, []))
            rendered.append({
                "id": row.id,
                "depth": row.depth,
                "has_children": row.has_children,
                "is_expanded": row.id in expanded_ids,
                "name": node.name,
                "storage_id": node.storage_id,
                "unit_type": node.unit_type,
                "full_path": build_ancestor_path(row.id, forest.nodes_by_id).full_path,
                "sample_count": sample_count,
                "extract_count": extract_count,
                "capacity": compute_capacity_snapshot(
                    node, occupancy, item_count=sample_count + extract_count,
                ),
            })

        return {
            "rows": rendered,
            "total_rows": len(rows),
            "window": window,
            "storage_types": forest.storage_types,
            "stats": {
                "total_units": len(forest.nodes_by_id),
                "visible_units": sum(1 for shown in visibility.values() if shown),
                "root_units": len(forest.root_ids),
            },
        }

    # ── Capacity cache ────────────────────────────────────────────────

    async def recalculate_capacity_snapshots(self) -> int:
        """Refresh the cached capacity columns of every live unit."""
        units = await self._all_units()
        samples, extracts = await self._positioned([unit.id for unit in units])
        now = datetime.now(timezone.utc)

        for unit in units:
            snapshot = self.snapshot(unit)
            occupancy = self._reconcile(snapshot, samples, extracts)
            held = len(samples.get(unit.id, [])) + len(extracts.get(unit.id, []))
            capacity = compute_capacity_snapshot(snapshot, occupancy, item_count=held)
            unit.theoretical_slots = None if capacity.unbounded else capacity.theoretical
            unit.effective_slots = None if capacity.unbounded else capacity.effective
            unit.available_slots = capacity.available
            unit.capacity_recalculated_at = now

        await self.db.flush()
        return len(units)

    # ── Snapshots & live occupancy ────────────────────────────────────

    @staticmethod
    def snapshot(unit: StorageUnit) -> StorageUnitSnapshot:
        return StorageUnitSnapshot.model_validate(unit)

    @staticmethod
    def _reconcile(
        snapshot: StorageUnitSnapshot,
        samples: PositionedByUnit,
        extracts: PositionedByUnit,
    ) -> OccupancyMap:
        return reconcile_occupancy(
            snapshot, samples.get(snapshot.id, []), extracts.get(snapshot.id, []),
        )

    async def live_occupancy(
        self, unit: StorageUnit, exclude_item_id: uuid.UUID | None = None
    ) -> OccupancyMap:
        return await self._live_occupancy(self.snapshot(unit), exclude_item_id)

    async def _live_occupancy(
        self,
        snapshot: StorageUnitSnapshot,
        exclude_item_id: uuid.UUID | None = None,
    ) -> OccupancyMap:
        samples, extracts = await self._positioned([snapshot.id], exclude_item_id)
        return self._reconcile(snapshot, samples, extracts)

    async def _positioned(
        self,
        unit_ids: list[uuid.UUID],
        exclude_item_id: uuid.UUID | None = None,
    ) -> tuple[PositionedByUnit, PositionedByUnit]:
        """Live samples and extracts held by ``unit_ids``, grouped by unit."""
        if not unit_ids:
            return {}, {}
        grouped = []
        for model in (Sample, DnaExtract):
            query = select(model).where(
                model.storage_location_id.in_(unit_ids),
                model.is_deleted == False,  # noqa: E712
            )
            if exclude_item_id is not None:
                query = query.where(model.id != exclude_item_id)
            result = await self.db.execute(query)
            grouped.append(group_by_storage(
                PositionedItem.model_validate(row) for row in result.scalars().all()
            ))
        return grouped[0], grouped[1]

    async def _held_counts(
        self,
        unit_ids: list[uuid.UUID],
        exclude_item_id: uuid.UUID | None = None,
    ) -> dict[uuid.UUID, int]:
        counts: dict[uuid.UUID, int] = defaultdict(int)
        if not unit_ids:
            return counts
        for model in (Sample, DnaExtract):
            query = (
                select(model.storage_location_id, func.count(model.id))
                .where(
                    model.storage_location_id.in_(unit_ids),
                    model.is_deleted == False,  # noqa: E712
                )
                .group_by(model.storage_location_id)
            )
            if exclude_item_id is not None:
                query = query.where(model.id != exclude_item_id)
            for unit_id, count in (await self.db.execute(query)).all():
                counts[unit_id] += count
        return counts

    # ── Private helpers ───────────────────────────────────────────────

    async def _get_unit(self, unit_id: uuid.UUID) -> StorageUnit | None:
        result = await self.db.execute(
            select(StorageUnit).where(
                StorageUnit.id == unit_id,
                StorageUnit.is_deleted == False,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()

    async def _lock_unit(self, unit_id: uuid.UUID) -> StorageUnit:
        # A row held by another writer comes back empty
        result = await self.db.execute(
            select(StorageUnit)
            .where(
                StorageUnit.id == unit_id,
                StorageUnit.is_deleted == False,  # noqa: E712
            )
            .with_for_update(skip_locked=True)
        )
        unit = result.scalar_one_or_none()
        if unit is not None:
            return unit
        if await self._get_unit(unit_id) is None:
            raise ValueError("Storage unit not found.")
        raise StaleOccupancySnapshot(
            "Storage unit is being updated by another request. Retry."
        )

    async def get_item(self, item_kind: ItemKind, item_id: uuid.UUID) -> Sample | DnaExtract:
        model = ITEM_MODELS[item_kind]
        result = await self.db.execute(
            select(model).where(
                model.id == item_id,
                model.is_deleted == False,  # noqa: E712
            )
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise ValueError(f"{item_kind.value.replace('_', ' ').capitalize()} not found.")
        return item

    async def _all_units(self) -> list[StorageUnit]:
        result = await self.db.execute(
            select(StorageUnit)
            .where(StorageUnit.is_deleted == False)  # noqa: E712
            .order_by(StorageUnit.storage_id.asc())
        )
        return list(result.scalars().all())

    async def _children(self, unit_id: uuid.UUID) -> list[StorageUnit]:
        result = await self.db.execute(
            select(StorageUnit).where(
                StorageUnit.parent_storage_id == unit_id,
                StorageUnit.is_deleted == False,  # noqa: E712
            )
        )
        return list(result.scalars().all())

    async def _subtree(self, root: StorageUnit) -> list[StorageUnit]:
        """The unit and all its live descendants, each once."""
        collected = [root]
        seen = {root.id}
        frontier = [root.id]
        while frontier:
            result = await self.db.execute(
                select(StorageUnit).where(
                    StorageUnit.parent_storage_id.in_(frontier),
                    StorageUnit.is_deleted == False,  # noqa: E712
                )
            )
            frontier = []
            for child in result.scalars().all():
                if child.id in seen:
                    continue
                seen.add(child.id)
                collected.append(child)
                frontier.append(child.id)
        return collected

    async def _ensure_storage_id_free(self, storage_id: str) -> None:
        result = await self.db.execute(
            select(StorageUnit.id).where(StorageUnit.storage_id == storage_id)
        )
        if result.scalar_one_or_none() is not None:
            raise ValueError(f"Storage id {storage_id} is already in use.")

    async def _check_reparent(
        self, unit: StorageUnit, new_parent_id: uuid.UUID | None
    ) -> None:
        if new_parent_id is None:
            return
        if new_parent_id == unit.id:
            raise CorruptHierarchy("A storage unit cannot be its own parent.")
        units = await self._all_units()
        nodes = {node.id: self.snapshot(node) for node in units}
        if new_parent_id not in nodes:
            raise ValueError("Parent storage unit not found.")
        path = build_ancestor_path(new_parent_id, nodes, strict=True)
        if unit.id in path.path_ids:
            raise CorruptHierarchy(
                f"Moving {unit.storage_id} under {nodes[new_parent_id].storage_id} "
                "would create a cycle."
            )

    async def _check_grid_change(self, unit: StorageUnit, grid: GridSpec | None) -> None:
        """Refuse a layout change that would strand existing occupants."""
        occupancy = await self.live_occupancy(unit)
        if not occupancy:
            return
        if grid is None:
            raise ValueError(
                f"Storage unit {unit.storage_id} has occupied slots; the grid cannot be removed."
            )
        stranded = sorted(
            label for label in occupancy
            if not coordinate_in_grid(label, grid.rows, grid.cols, grid.label_schema)
            or not grid.is_usable(label)
        )
        if stranded:
            raise ValueError(
                "Occupied slots would fall outside the new grid or onto disabled "
                f"slots: {', '.join(stranded)}."
            )

    @staticmethod
    def _apply_grid(unit: StorageUnit, grid: GridSpec | None) -> None:
        if grid is None:
            unit.grid_rows = None
            unit.grid_cols = None
            unit.label_schema = None
            unit.disabled_slots = None
            unit.enabled_slots = None
            return
        unit.grid_rows = grid.rows
        unit.grid_cols = grid.cols
        unit.label_schema = grid.label_schema
        unit.disabled_slots = list(grid.disabled_slots)
        unit.enabled_slots = list(grid.enabled_slots) or None

    async def _unit_details(self, units: list[StorageUnit]) -> list[dict]:
        if not units:
            return []
        nodes = {node.id: self.snapshot(node) for node in await self._all_units()}
        unit_ids = [unit.id for unit in units]
        samples, extracts = await self._positioned(unit_ids)

        child_result = await self.db.execute(
            select(StorageUnit.parent_storage_id, func.count(StorageUnit.id))
            .where(
                StorageUnit.parent_storage_id.in_(unit_ids),
                StorageUnit.is_deleted == False,  # noqa: E712
            )
            .group_by(StorageUnit.parent_storage_id)
        )
        child_counts = dict(child_result.all())

        details = []
        for unit in units:
            snapshot = nodes.get(unit.id) or self.snapshot(unit)
            path = build_ancestor_path(unit.id, nodes)
            occupancy = self._reconcile(snapshot, samples, extracts)
            sample_count = len(samples.get(unit.id, []))
            extract_count = len(extracts.get(unit.id, []))
            details.append({
                **self._unit_dict(unit),
                "path_ids": path.path_ids,
                "path_names": path.path_names,
                "full_path": path.full_path,
                "depth": path.depth,
                "is_path_corrupt": path.is_corrupt,
                "capacity": compute_capacity_snapshot(
                    snapshot, occupancy, item_count=sample_count + extract_count,
                ),
                "child_count": child_counts.get(unit.id, 0),
                "sample_count": sample_count,
                "extract_count": extract_count,
            })
        return details

    def _unit_dict(self, unit: StorageUnit) -> dict:
        return {
            "id": unit.id,
            "storage_id": unit.storage_id,
            "name": unit.name,
            "unit_type": unit.unit_type,
            "description": unit.description,
            "parent_storage_id": unit.parent_storage_id,
            "grid_spec": unit.grid_spec,
            "capacity_slots": unit.capacity_slots,
            "occupancy_version": unit.occupancy_version,
            "created_at": unit.created_at,
            "updated_at": unit.updated_at,
        }

    async def _check_capacity_warning(self, unit: StorageUnit) -> None:
        """Log when a placement leaves the unit at or above the warning threshold."""
        snapshot = self.snapshot(unit)
        occupancy = await self._live_occupancy(snapshot)
        held = (await self._held_counts([unit.id])).get(unit.id, 0)
        capacity = compute_capacity_snapshot(snapshot, occupancy, item_count=held)
        if capacity.unbounded or capacity.effective <= 0:
            return
        pct = utilization_pct(capacity)
        if pct / 100.0 < settings.CAPACITY_WARNING_THRESHOLD:
            return
        logger.warning(
            "Storage unit %s is at %s%% capacity (%d/%d slots).",
            unit.storage_id, pct, capacity.occupied, capacity.effective,
        )


def _jsonable_grid(grid: dict | None) -> dict | None:
    if grid is None:
        return None
    return {**grid, "label_schema": grid["label_schema"].value}
