"""Batch sample placement endpoints."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from labvault.core.deps import get_actor_id
from labvault.database import get_db
from labvault.schemas.sample import (
    BatchCommitRequest,
    BatchCommitResult,
    BatchDropRequest,
    BatchDropResult,
    BatchResolveRequest,
    BatchResolveResult,
)
from labvault.services.sample import SampleBatchService

router = APIRouter(prefix="/samples", tags=["samples"])


@router.post("/batch/resolve", response_model=dict)
async def resolve_batch(
    data: BatchResolveRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Auto-assign unplaced rows and list slot conflicts. Nothing is written."""
    result = await SampleBatchService(db).resolve(data)
    return {
        "success": True,
        "data": BatchResolveResult(**result).model_dump(mode="json"),
    }


@router.post("/batch/drop", response_model=dict)
async def drop_batch_row(
    data: BatchDropRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Drop one row onto a slot; batch rows already there are displaced."""
    result = await SampleBatchService(db).drop(data)
    return {
        "success": True,
        "data": BatchDropResult(**result).model_dump(mode="json"),
    }


@router.post("/batch/commit", response_model=dict)
async def commit_batch(
    data: BatchCommitRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Annotated[uuid.UUID | None, Depends(get_actor_id)],
):
    """Create or move each row's sample; failing rows are reported per row."""
    result = await SampleBatchService(db).commit(data, committed_by=actor_id)
    return {
        "success": True,
        "data": BatchCommitResult(**result).model_dump(mode="json"),
    }
