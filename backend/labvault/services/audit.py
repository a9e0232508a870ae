"""Audit trail for storage mutations.

Entries are added to the caller's session and land in ``audit_log`` with
the caller's commit, so an aborted request leaves no trail.
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from labvault.models.audit import AuditLog
from labvault.models.enums import AuditAction, ItemKind

logger = logging.getLogger(__name__)

Location = tuple[uuid.UUID | None, str | None]


def _location_values(location: Location) -> dict:
    unit_id, label = location
    return {
        "storage_location_id": str(unit_id) if unit_id else None,
        "position_label": label,
    }


class AuditService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def log(
        self,
        *,
        action: AuditAction,
        entity_type: str,
        entity_id: uuid.UUID | None = None,
        user_id: uuid.UUID | None = None,
        old_values: dict | None = None,
        new_values: dict | None = None,
    ) -> AuditLog:
        """Stage one entry. ``user_id`` None marks a system action."""
        entry = AuditLog(
            id=uuid.uuid4(),
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=old_values,
            new_values=new_values,
        )
        self.db.add(entry)
        logger.info(
            "AUDIT: %s %s/%s by %s", action.value, entity_type, entity_id, user_id or "system"
        )
        return entry

    async def log_create(self, **fields) -> AuditLog:
        return await self.log(action=AuditAction.CREATE, **fields)

    async def log_update(self, **fields) -> AuditLog:
        return await self.log(action=AuditAction.UPDATE, **fields)

    async def log_delete(self, **fields) -> AuditLog:
        return await self.log(action=AuditAction.DELETE, **fields)

    async def log_placement(
        self,
        *,
        item_kind: ItemKind,
        item_id: uuid.UUID,
        before: Location,
        after: Location,
        event: str,
        user_id: uuid.UUID | None = None,
    ) -> AuditLog:
        """Record an item changing slot: assign, move, unassign, or batch."""
        return await self.log(
            action=AuditAction.UPDATE,
            entity_type=item_kind.value,
            entity_id=item_id,
            user_id=user_id,
            old_values=_location_values(before),
            new_values={**_location_values(after), "event": event},
        )
