"""Storage hierarchy endpoints: units, occupancy, placement, tree, search."""

import math
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from labvault.core.deps import get_actor_id
from labvault.database import get_db
from labvault.models.enums import ChildPolicy
from labvault.schemas import PaginationMeta
from labvault.schemas.storage import (
    AssignRequest,
    AutoAssignSuggestion,
    MoveRequest,
    OccupancyRead,
    PlacementRead,
    StorageTreeRead,
    StorageUnitCreate,
    StorageUnitRead,
    StorageUnitUpdate,
    UnassignRequest,
)
from labvault.services.search import SearchService
from labvault.services.storage import StorageService

router = APIRouter(prefix="/storage", tags=["storage"])


# ── Units ────────────────────────────────────────────────────────────

@router.get("/units", response_model=dict)
async def list_units(
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    unit_type: str | None = None,
    parent_id: uuid.UUID | None = None,
):
    """List storage units with path, capacity, and counts."""
    svc = StorageService(db)
    items, total = await svc.list_units(
        page=page, per_page=per_page, unit_type=unit_type, parent_id=parent_id,
    )
    return {
        "success": True,
        "data": [StorageUnitRead(**item).model_dump(mode="json") for item in items],
        "meta": PaginationMeta(
            page=page,
            per_page=per_page,
            total=total,
            total_pages=math.ceil(total / per_page) if per_page else 0,
        ).model_dump(),
    }


@router.post("/units", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_unit(
    data: StorageUnitCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Annotated[uuid.UUID | None, Depends(get_actor_id)],
):
    svc = StorageService(db)
    unit = await svc.create_unit(data, created_by=actor_id)
    detail = await svc.get_unit(unit.id)
    return {
        "success": True,
        "data": StorageUnitRead(**detail).model_dump(mode="json"),
    }


@router.get("/units/{unit_id}", response_model=dict)
async def get_unit(
    unit_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    svc = StorageService(db)
    detail = await svc.get_unit(unit_id)
    if detail is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Storage unit not found.")
    return {
        "success": True,
        "data": StorageUnitRead(**detail).model_dump(mode="json"),
    }


@router.put("/units/{unit_id}", response_model=dict)
async def update_unit(
    unit_id: uuid.UUID,
    data: StorageUnitUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Annotated[uuid.UUID | None, Depends(get_actor_id)],
):
    """Update a unit. Grid and parent changes are checked against occupancy and cycles."""
    svc = StorageService(db)
    unit = await svc.update_unit(unit_id, data, updated_by=actor_id)
    if unit is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Storage unit not found.")
    detail = await svc.get_unit(unit.id)
    return {
        "success": True,
        "data": StorageUnitRead(**detail).model_dump(mode="json"),
    }


@router.delete("/units/{unit_id}", response_model=dict)
async def delete_unit(
    unit_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Annotated[uuid.UUID | None, Depends(get_actor_id)],
    child_policy: ChildPolicy = ChildPolicy.REJECT,
):
    """Soft-delete a unit (reject / reparent / cascade its children)."""
    svc = StorageService(db)
    result = await svc.delete_unit(unit_id, deleted_by=actor_id, child_policy=child_policy)
    if result is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Storage unit not found.")
    return {
        "success": True,
        "data": {
            "id": str(result["id"]),
            "deleted_ids": [str(i) for i in result["deleted_ids"]],
            "reparented_ids": [str(i) for i in result["reparented_ids"]],
        },
    }


# ── Occupancy & placement ────────────────────────────────────────────

@router.get("/units/{unit_id}/occupancy", response_model=dict)
async def get_occupancy(
    unit_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    selected: str | None = None,
    highlighted: list[str] = Query(default=[]),
):
    """Reconciled slot occupancy, capacity, and the render grid."""
    svc = StorageService(db)
    occupancy = await svc.get_occupancy(unit_id, selected=selected, highlighted=highlighted)
    if occupancy is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Storage unit not found.")
    return {
        "success": True,
        "data": OccupancyRead(**occupancy).model_dump(mode="json"),
    }


@router.post("/units/{unit_id}/auto-assign", response_model=dict)
async def suggest_slot(
    unit_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Suggest the first free slot. Nothing is written."""
    svc = StorageService(db)
    suggestion = await svc.suggest_slot(unit_id)
    return {
        "success": True,
        "data": AutoAssignSuggestion(**suggestion).model_dump(mode="json"),
    }


@router.post("/units/{unit_id}/assign", response_model=dict)
async def assign_item(
    unit_id: uuid.UUID,
    data: AssignRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Annotated[uuid.UUID | None, Depends(get_actor_id)],
):
    """Assign a sample or extract to a slot (first free slot when none given)."""
    svc = StorageService(db)
    placement = await svc.assign_item(unit_id, data, assigned_by=actor_id)
    return {
        "success": True,
        "data": PlacementRead(**placement).model_dump(mode="json"),
    }


@router.post("/move", response_model=dict)
async def move_item(
    data: MoveRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Annotated[uuid.UUID | None, Depends(get_actor_id)],
):
    svc = StorageService(db)
    placement = await svc.move_item(data, moved_by=actor_id)
    return {
        "success": True,
        "data": PlacementRead(**placement).model_dump(mode="json"),
    }


@router.post("/unassign", response_model=dict)
async def unassign_item(
    data: UnassignRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Annotated[uuid.UUID | None, Depends(get_actor_id)],
):
    svc = StorageService(db)
    placement = await svc.unassign_item(data, unassigned_by=actor_id)
    return {
        "success": True,
        "data": PlacementRead(**placement).model_dump(mode="json"),
    }


# ── Tree & search ────────────────────────────────────────────────────

@router.get("/tree", response_model=dict)
async def storage_tree(
    db: Annotated[AsyncSession, Depends(get_db)],
    q: str | None = Query(None, max_length=200),
    unit_type: str | None = None,
    expanded: list[uuid.UUID] = Query(default=[]),
    scroll_offset: int = Query(0, ge=0),
    viewport_height: int = Query(600, ge=0, le=10000),
):
    """Filtered, flattened, windowed storage tree."""
    svc = StorageService(db)
    tree = await svc.build_tree(
        q=q,
        unit_type=unit_type,
        expanded=expanded,
        scroll_offset=scroll_offset,
        viewport_height=viewport_height,
    )
    return {
        "success": True,
        "data": StorageTreeRead(**tree).model_dump(mode="json"),
    }


@router.get("/search", response_model=dict)
async def search_storage(
    db: Annotated[AsyncSession, Depends(get_db)],
    q: str = Query(..., min_length=1, max_length=200),
):
    """Units and samples whose labels contain ``q``."""
    result = await SearchService(db).search(q)
    return {
        "success": True,
        "data": result.model_dump(mode="json"),
    }
