"""Storage search: which units and samples match a free-text query."""

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from labvault.models.sample import DnaExtract, Sample
from labvault.models.storage import StorageUnit
from labvault.schemas.storage import StorageSearchResult

logger = logging.getLogger(__name__)


class SearchService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def search(self, query: str, limit: int = 500) -> StorageSearchResult:
        """Case-insensitive substring match over unit and sample labels.

        A unit matches on its own name, storage id or type, or because it
        holds a matching sample or DNA extract.
        """
        term = query.strip()
        if not term:
            return StorageSearchResult(matching_node_ids=[], matching_sample_ids=[])
        pattern = f"%{term}%"

        unit_result = await self.db.execute(
            select(StorageUnit.id)
            .where(
                StorageUnit.is_deleted == False,  # noqa: E712
                or_(
                    StorageUnit.name.ilike(pattern),
                    StorageUnit.storage_id.ilike(pattern),
                    StorageUnit.unit_type.ilike(pattern),
                ),
            )
            .limit(limit)
        )
        node_ids = list(unit_result.scalars().all())

        sample_result = await self.db.execute(
            select(Sample.id, Sample.storage_location_id)
            .where(
                Sample.is_deleted == False,  # noqa: E712
                or_(
                    Sample.sample_code.ilike(pattern),
                    Sample.barcode.ilike(pattern),
                    Sample.position_label.ilike(pattern),
                ),
            )
            .limit(limit)
        )
        sample_rows = sample_result.all()

        extract_result = await self.db.execute(
            select(DnaExtract.storage_location_id)
            .where(
                DnaExtract.is_deleted == False,  # noqa: E712
                DnaExtract.storage_location_id != None,  # noqa: E711
                DnaExtract.dna_code.ilike(pattern),
            )
            .limit(limit)
        )

        containers = {row.storage_location_id for row in sample_rows}
        containers.update(extract_result.scalars().all())
        containers.discard(None)
        for unit_id in containers:
            if unit_id not in node_ids:
                node_ids.append(unit_id)

        logger.debug(
            "Storage search %r: %d units, %d samples", term, len(node_ids), len(sample_rows)
        )
        return StorageSearchResult(
            matching_node_ids=node_ids,
            matching_sample_ids=[row.id for row in sample_rows],
        )
