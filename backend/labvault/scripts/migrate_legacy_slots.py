"""One-time migration: move legacy occupied_slots entries onto live sample positions.

Older storage units kept a denormalized ``occupied_slots`` map
(coordinate -> sample reference) instead of positions on the samples
themselves. For each entry this script looks up the referenced sample,
by sample id or by sample code, and:

  - sets the sample's storage_location_id / position_label to the slot,
    when the sample has no position yet or already sits at that slot
  - removes the entry from the legacy map once it is resolved

Entries that do not match a sample, or whose sample is stored elsewhere,
stay in the map (they keep showing as "unknown" occupants).

Usage:
  cd backend
  python -m labvault.scripts.migrate_legacy_slots [--dry-run]
"""

import argparse
import asyncio
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import or_, select

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


def _as_uuid(value: object) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


async def run_migration(dry_run: bool = False) -> dict[str, int]:
    """Execute the legacy slot migration and return per-outcome counts."""
    from labvault.database import async_session_factory
    from labvault.models.sample import Sample
    from labvault.models.storage import StorageUnit
    from labvault.services.coordinates import canonical_coordinate, normalize_coordinate

    counts = {"units": 0, "resolved": 0, "unresolved": 0}

    async with async_session_factory() as db:
        result = await db.execute(
            select(StorageUnit).where(
                StorageUnit.is_deleted == False,  # noqa: E712
                StorageUnit.occupied_slots != None,  # noqa: E711
            )
        )
        units = [unit for unit in result.scalars().all() if unit.occupied_slots]
        if not units:
            logger.info("No storage units with legacy occupied_slots. Nothing to do.")
            return counts

        now = datetime.now(timezone.utc)
        for unit in units:
            counts["units"] += 1
            remaining: dict = {}
            changed = False

            for slot, ref in unit.occupied_slots.items():
                label = normalize_coordinate(slot)
                if unit.grid_spec is not None and label:
                    try:
                        label = canonical_coordinate(label, unit.grid_spec["label_schema"])
                    except ValueError:
                        logger.warning("%s %s: label kept as typed.", unit.storage_id, slot)

                ref_text = "" if ref is None else str(ref).strip()
                sample = None
                if ref_text:
                    ref_id = _as_uuid(ref_text)
                    clauses = [Sample.sample_code == ref_text]
                    if ref_id is not None:
                        clauses.append(Sample.id == ref_id)
                    s_result = await db.execute(
                        select(Sample).where(
                            Sample.is_deleted == False,  # noqa: E712
                            or_(*clauses),
                        )
                    )
                    sample = s_result.scalars().first()

                placeable = sample is not None and (
                    sample.storage_location_id is None
                    or (sample.storage_location_id == unit.id and sample.position_label == label)
                )
                if not placeable:
                    remaining[slot] = ref
                    counts["unresolved"] += 1
                    logger.warning(
                        "%s %s: legacy ref %r left in place (%s).",
                        unit.storage_id,
                        slot,
                        ref,
                        "no matching sample" if sample is None else "sample stored elsewhere",
                    )
                    continue

                logger.info("%s %s -> sample %s", unit.storage_id, label, sample.sample_code)
                counts["resolved"] += 1
                changed = True
                if not dry_run:
                    sample.storage_location_id = unit.id
                    sample.position_label = label
                    sample.storage_datetime = sample.storage_datetime or now

            if changed and not dry_run:
                unit.occupied_slots = remaining or None
                unit.occupancy_version += 1

        if not dry_run:
            await db.commit()
            logger.info(
                "Committed. Units: %d, resolved: %d, unresolved: %d.",
                counts["units"], counts["resolved"], counts["unresolved"],
            )
        else:
            logger.info(
                "[DRY RUN] Units: %d, would resolve: %d, unresolved: %d.",
                counts["units"], counts["resolved"], counts["unresolved"],
            )
    return counts


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Move legacy occupied_slots entries onto sample positions."
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print what would be changed without committing to the database.",
    )
    args = parser.parse_args()

    if args.dry_run:
        logger.info("DRY RUN mode: no changes will be written.")

    asyncio.run(run_migration(dry_run=args.dry_run))


if __name__ == "__main__":
    main()
