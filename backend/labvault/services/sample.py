"""Batch sample placement: resolve slots, drag-and-drop, and per-row commit."""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from labvault.models.enums import BatchRowStatus, ItemKind
from labvault.models.sample import Sample
from labvault.models.storage import StorageUnit
from labvault.schemas.sample import (
    BatchCommitRequest,
    BatchCommitRowResult,
    BatchDropRequest,
    BatchResolveRequest,
    BatchRow,
)
from labvault.services.batch_assign import BatchGridCoordinator
from labvault.services.storage import StorageService

logger = logging.getLogger(__name__)


class SampleBatchService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.storage = StorageService(db)

    async def _coordinator(
        self, rows: list[BatchRow], extra_unit_ids: tuple[uuid.UUID, ...] = ()
    ) -> BatchGridCoordinator:
        unit_ids = {row.storage_location_id for row in rows if row.storage_location_id}
        unit_ids.update(extra_unit_ids)
        units: list[StorageUnit] = []
        if unit_ids:
            result = await self.db.execute(
                select(StorageUnit).where(
                    StorageUnit.id.in_(list(unit_ids)),
                    StorageUnit.is_deleted == False,  # noqa: E712
                )
            )
            units = list(result.scalars().all())

        snapshots = {unit.id: self.storage.snapshot(unit) for unit in units}
        committed = {unit.id: await self.storage.live_occupancy(unit) for unit in units}
        return BatchGridCoordinator(rows, snapshots, committed)

    async def resolve(self, data: BatchResolveRequest) -> dict:
        """Auto-place unplaced rows and report every slot conflict."""
        coordinator = await self._coordinator(data.rows)
        issues = coordinator.auto_assign_all() if data.auto_assign else []
        return {
            "rows": coordinator.rows,
            "conflicts": coordinator.conflicts(),
            "issues": issues,
        }

    async def drop(self, data: BatchDropRequest) -> dict:
        extra = (data.storage_location_id,) if data.storage_location_id else ()
        coordinator = await self._coordinator(data.rows, extra)
        result = coordinator.on_drop(data.row_index, data.coordinate, data.storage_location_id)
        return {"drop": result, "rows": coordinator.rows}

    async def commit(
        self, data: BatchCommitRequest, committed_by: uuid.UUID | None
    ) -> dict:
        """Commit rows one at a time; a failing row does not stop the rest.

        Each row runs in its own savepoint; a failed row is rolled back to
        it and the rows before it stay in the transaction.
        """
        results: list[BatchCommitRowResult] = []
        for index, row in enumerate(data.rows):
            try:
                async with self.db.begin_nested():
                    result = await self._commit_row(index, row, committed_by)
            except (ValueError, SQLAlchemyError) as exc:
                if isinstance(exc, SQLAlchemyError):
                    code, message = "DATABASE_ERROR", "A database error occurred."
                else:
                    code, message = getattr(exc, "code", "BAD_REQUEST"), str(exc)
                logger.warning("Batch row %d (%s) failed: %s", index, row.sample_code, exc)
                results.append(BatchCommitRowResult(
                    row_index=index,
                    status=BatchRowStatus.FAILED,
                    storage_location_id=row.storage_location_id,
                    position_label=row.position_label,
                    error_code=code,
                    message=message,
                ))
                continue
            results.append(result)

        committed = sum(1 for r in results if r.status == BatchRowStatus.COMMITTED)
        logger.info(
            "Batch commit: %d committed, %d failed", committed, len(results) - committed
        )
        return {
            "results": results,
            "committed": committed,
            "failed": len(results) - committed,
        }

    async def _commit_row(
        self, index: int, row: BatchRow, committed_by: uuid.UUID | None
    ) -> BatchCommitRowResult:
        sample = None
        if row.existing_sample_id is not None:
            if row.storage_location_id is None:
                raise ValueError(
                    "Row moves an existing sample but names no storage unit."
                )
            sample = await self.storage.get_item(ItemKind.SAMPLE, row.existing_sample_id)
        else:
            existing = await self.db.execute(
                select(Sample.id).where(Sample.sample_code == row.sample_code)
            )
            if existing.scalar_one_or_none() is not None:
                raise ValueError(f"Sample code {row.sample_code} already exists.")

        unit = None
        label = None
        if row.storage_location_id is not None:
            unit = await self.storage.lock_unit(row.storage_location_id)
            label = await self.storage.resolve_slot(
                unit, row.position_label, exclude_item_id=sample.id if sample else None,
            )

        if sample is None:
            sample = Sample(
                id=uuid.uuid4(),
                sample_code=row.sample_code,
                barcode=row.barcode,
                sample_type=row.sample_type,
                project_code=row.project_code,
            )
            self.db.add(sample)
            await self.db.flush()
            await self.storage.audit.log_create(
                user_id=committed_by,
                entity_type="sample",
                entity_id=sample.id,
                new_values={"sample_code": sample.sample_code, "event": "batch"},
            )

        if unit is not None:
            source_id = sample.storage_location_id
            await self.storage.apply_placement(
                ItemKind.SAMPLE, sample, unit, label, committed_by, event="batch",
            )
            if source_id is not None and source_id != unit.id:
                await self.storage.touch_unit(source_id)

        return BatchCommitRowResult(
            row_index=index,
            status=BatchRowStatus.COMMITTED,
            sample_id=sample.id,
            storage_location_id=sample.storage_location_id,
            position_label=sample.position_label,
        )
