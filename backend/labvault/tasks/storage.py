"""Celery tasks for storage capacity bookkeeping."""

import asyncio
import logging

from labvault.celery_app import celery
from labvault.database import async_session_factory
from labvault.services.storage import StorageService

logger = logging.getLogger(__name__)


async def _recalculate_capacity_snapshots() -> int:
    """Recompute cached capacity columns for every live storage unit."""
    async with async_session_factory() as db:
        try:
            count = await StorageService(db).recalculate_capacity_snapshots()
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    logger.info("Recalculated capacity snapshots for %d storage units.", count)
    return count


@celery.task(
    name="labvault.tasks.storage.recalculate_capacity_snapshots", bind=True, max_retries=2
)
def recalculate_capacity_snapshots(self) -> dict:
    """Celery beat task: refresh cached capacity for the storage tree."""
    loop = asyncio.new_event_loop()
    try:
        count = loop.run_until_complete(_recalculate_capacity_snapshots())
        return {"status": "ok", "units": count}
    except Exception as exc:
        logger.exception("Capacity snapshot recalculation failed")
        raise self.retry(exc=exc, countdown=300)
    finally:
        loop.close()
