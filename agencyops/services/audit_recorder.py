"""
Audit trail.

Appends one immutable entry per mutation inside the caller's unit of work.
If the append fails the exception propagates and the mutation rolls back
with it.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agencyops.models.audit_log import AuditAction, AuditEntityType, AuditEntry
from agencyops.schemas.audit import AuditChanges

logger = logging.getLogger(__name__)


class AuditRecorder:
    """Append-only writer and reader for the audit_log table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def record(
        self,
        *,
        actor_id: UUID,
        entity_type: AuditEntityType,
        entity_id: UUID,
        changes: AuditChanges,
        organization_id: UUID | None = None,
    ) -> AuditEntry:
        """
        Append an entry. The action is the payload's ``kind``.

        Flushes immediately so a failing write aborts the surrounding
        transaction before it can commit.
        """
        entry = AuditEntry(
            actor_user_id=actor_id,
            action=AuditAction(changes.kind),
            organization_id=organization_id,
            entity_type=entity_type,
            entity_id=entity_id,
            changes=changes.model_dump(mode="json"),
        )
        self.db.add(entry)
        await self.db.flush()
        logger.info(
            "Audit %s entity=%s:%s actor=%s",
            entry.action.value,
            entity_type.value,
            entity_id,
            actor_id,
        )
        return entry

    async def history(
        self,
        organization_id: UUID,
        actions: Collection[AuditAction] | None = None,
        limit: int = 50,
    ) -> list[AuditEntry]:
        """Entries scoped to one organization, newest first."""
        stmt = select(AuditEntry).where(AuditEntry.organization_id == organization_id)
        if actions:
            stmt = stmt.where(AuditEntry.action.in_(list(actions)))
        result = await self.db.execute(
            stmt.order_by(AuditEntry.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def for_entity(self, entity_id: UUID, limit: int = 100) -> list[AuditEntry]:
        result = await self.db.execute(
            select(AuditEntry)
            .where(AuditEntry.entity_id == entity_id)
            .order_by(AuditEntry.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
