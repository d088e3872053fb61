"""
Organization data access.

Reads and writes against the organizations table. No validation or audit
happens here; that is the HierarchyManager's job.
"""

from __future__ import annotations

from collections.abc import Collection
from uuid import UUID

from sqlalchemy import Row, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from agencyops.models.organization import Organization, OrganizationStatus, OrganizationType


class OrganizationRepository:
    """CRUD access to organization records and parent/child edges."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, org_id: UUID) -> Organization | None:
        result = await self.db.execute(
            select(Organization).where(Organization.id == org_id)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, org_id: UUID) -> Organization | None:
        """Load and row-lock an organization for the rest of the transaction."""
        result = await self.db.execute(
            select(Organization)
            .where(Organization.id == org_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_many(self, org_ids: Collection[UUID]) -> dict[UUID, Organization]:
        if not org_ids:
            return {}
        result = await self.db.execute(
            select(Organization).where(Organization.id.in_(list(org_ids)))
        )
        return {org.id: org for org in result.scalars().all()}

    async def get_parent_link(self, org_id: UUID) -> Row[tuple[UUID, UUID | None]] | None:
        """Return ``(id, parent_id)`` for one organization without loading the entity."""
        result = await self.db.execute(
            select(Organization.id, Organization.parent_id).where(Organization.id == org_id)
        )
        return result.one_or_none()

    async def add(self, org: Organization) -> Organization:
        self.db.add(org)
        await self.db.flush()
        return org

    async def list_roots(self, status: OrganizationStatus = OrganizationStatus.ACTIVE) -> list[Organization]:
        result = await self.db.execute(
            select(Organization)
            .where(Organization.parent_id.is_(None), Organization.status == status)
            .order_by(Organization.created_at, Organization.name)
        )
        return list(result.scalars().all())

    async def list_children(
        self,
        parent_ids: Collection[UUID],
        status: OrganizationStatus = OrganizationStatus.ACTIVE,
    ) -> list[Organization]:
        if not parent_ids:
            return []
        result = await self.db.execute(
            select(Organization)
            .where(Organization.parent_id.in_(list(parent_ids)), Organization.status == status)
            .order_by(Organization.created_at, Organization.name)
        )
        return list(result.scalars().all())

    async def count_active_children(self, org_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Organization)
            .where(
                Organization.parent_id == org_id,
                Organization.status == OrganizationStatus.ACTIVE,
            )
        )
        return result.scalar_one()

    async def active_child_counts(self, org_ids: Collection[UUID]) -> dict[UUID, int]:
        if not org_ids:
            return {}
        result = await self.db.execute(
            select(Organization.parent_id, func.count())
            .where(
                Organization.parent_id.in_(list(org_ids)),
                Organization.status == OrganizationStatus.ACTIVE,
            )
            .group_by(Organization.parent_id)
        )
        return {parent_id: count for parent_id, count in result.all()}

    async def search(
        self,
        type: OrganizationType | None = None,
        status: OrganizationStatus | None = None,
        search: str | None = None,
        parent_id: UUID | None = None,
        roots_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Organization], int]:
        """Filtered page of organizations, newest first, with the unpaged total."""
        conditions = []
        if type is not None:
            conditions.append(Organization.type == type)
        if status is not None:
            conditions.append(Organization.status == status)
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(
                or_(
                    func.lower(Organization.name).like(pattern),
                    func.lower(Organization.ein).like(pattern),
                )
            )
        if roots_only:
            conditions.append(Organization.parent_id.is_(None))
        elif parent_id is not None:
            conditions.append(Organization.parent_id == parent_id)

        total_result = await self.db.execute(
            select(func.count()).select_from(Organization).where(*conditions)
        )
        total = total_result.scalar_one()

        result = await self.db.execute(
            select(Organization)
            .where(*conditions)
            .order_by(Organization.created_at.desc(), Organization.name)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total
