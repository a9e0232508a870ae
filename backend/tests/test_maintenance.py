"""Capacity recalculation task and the legacy slot migration."""

import uuid

import pytest
from sqlalchemy import select

import labvault.database
import labvault.tasks.storage as storage_tasks
from labvault.models.enums import LabelSchema
from labvault.models.sample import Sample
from labvault.models.storage import StorageUnit
from labvault.scripts.migrate_legacy_slots import run_migration


@pytest.fixture
def use_test_db(monkeypatch, session_factory):
    monkeypatch.setattr(labvault.database, "async_session_factory", session_factory)
    monkeypatch.setattr(storage_tasks, "async_session_factory", session_factory)
    return session_factory


async def _seed_legacy(session_factory):
    async with session_factory() as db:
        other = StorageUnit(id=uuid.uuid4(), storage_id="BOX-0", name="Other", unit_type="box")
        box = StorageUnit(
            id=uuid.uuid4(), storage_id="BOX-1", name="Legacy", unit_type="box",
            grid_rows=2, grid_cols=2, label_schema=LabelSchema.ALPHA_NUMERIC,
        )
        by_code = Sample(id=uuid.uuid4(), sample_code="S-1")
        elsewhere = Sample(id=uuid.uuid4(), sample_code="S-2", storage_location_id=other.id)
        by_id = Sample(id=uuid.uuid4(), sample_code="S-3")
        box.occupied_slots = {
            "a1": "S-1",
            "A2": str(elsewhere.id),
            "B1": str(by_id.id),
            "B2": "GONE-9",
        }
        db.add_all([other, box, by_code, elsewhere, by_id])
        await db.commit()
        return box.id


async def test_migration_moves_resolvable_entries(use_test_db):
    box_id = await _seed_legacy(use_test_db)

    counts = await run_migration()

    assert counts == {"units": 1, "resolved": 2, "unresolved": 2}
    async with use_test_db() as db:
        box = await db.get(StorageUnit, box_id)
        assert set(box.occupied_slots) == {"A2", "B2"}
        assert box.occupancy_version == 1
        samples = (await db.execute(
            select(Sample.sample_code, Sample.position_label)
            .where(Sample.storage_location_id == box_id)
            .order_by(Sample.sample_code)
        )).all()
        assert [tuple(row) for row in samples] == [("S-1", "A1"), ("S-3", "B1")]


async def test_migration_dry_run_writes_nothing(use_test_db):
    box_id = await _seed_legacy(use_test_db)

    counts = await run_migration(dry_run=True)

    assert counts["resolved"] == 2
    async with use_test_db() as db:
        box = await db.get(StorageUnit, box_id)
        assert len(box.occupied_slots) == 4
        assert box.occupancy_version == 0


async def test_recalculate_task_body(use_test_db):
    async with use_test_db() as db:
        db.add(StorageUnit(
            id=uuid.uuid4(), storage_id="BOX-1", name="Box", unit_type="box",
            grid_rows=3, grid_cols=3,
        ))
        await db.commit()

    assert await storage_tasks._recalculate_capacity_snapshots() == 1

    async with use_test_db() as db:
        box = (await db.execute(select(StorageUnit))).scalar_one()
        assert box.available_slots == 9
        assert box.capacity_recalculated_at is not None
