"""
Membership data access.

Reads and writes against organization_members. Active means
``status == ACTIVE``; inactive rows are history and are never deleted.
"""

from __future__ import annotations

from collections.abc import Collection
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agencyops.models.member import MemberRole, OrganizationMember
from agencyops.models.organization import Organization, OrganizationStatus


class MembershipRepository:
    """CRUD access to (user, organization, split, status) records."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, org_id: UUID, user_id: UUID) -> OrganizationMember | None:
        """The single row for this pair, whatever its status."""
        result = await self.db.execute(
            select(OrganizationMember).where(
                OrganizationMember.organization_id == org_id,
                OrganizationMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def add(self, member: OrganizationMember) -> OrganizationMember:
        self.db.add(member)
        await self.db.flush()
        return member

    async def list_active(self, org_id: UUID, for_update: bool = False) -> list[OrganizationMember]:
        """Active members in creation order (joined_at, then id)."""
        stmt = (
            select(OrganizationMember)
            .where(
                OrganizationMember.organization_id == org_id,
                OrganizationMember.is_active,
            )
            .order_by(OrganizationMember.joined_at, OrganizationMember.id)
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_for_organization(
        self, org_id: UUID, include_inactive: bool = False
    ) -> list[OrganizationMember]:
        stmt = select(OrganizationMember).where(OrganizationMember.organization_id == org_id)
        if not include_inactive:
            stmt = stmt.where(OrganizationMember.is_active)
        result = await self.db.execute(
            stmt.order_by(OrganizationMember.joined_at, OrganizationMember.id)
        )
        return list(result.scalars().all())

    async def count_active(self, org_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(OrganizationMember)
            .where(
                OrganizationMember.organization_id == org_id,
                OrganizationMember.is_active,
            )
        )
        return result.scalar_one()

    async def active_counts(self, org_ids: Collection[UUID]) -> dict[UUID, int]:
        if not org_ids:
            return {}
        result = await self.db.execute(
            select(OrganizationMember.organization_id, func.count())
            .where(
                OrganizationMember.organization_id.in_(list(org_ids)),
                OrganizationMember.is_active,
            )
            .group_by(OrganizationMember.organization_id)
        )
        return {org_id: count for org_id, count in result.all()}

    async def active_split_totals(self, org_ids: Collection[UUID]) -> dict[UUID, Decimal]:
        """Sum of active fractions per organization."""
        if not org_ids:
            return {}
        result = await self.db.execute(
            select(
                OrganizationMember.organization_id,
                func.sum(OrganizationMember.commission_split),
            )
            .where(
                OrganizationMember.organization_id.in_(list(org_ids)),
                OrganizationMember.is_active,
            )
            .group_by(OrganizationMember.organization_id)
        )
        return {org_id: Decimal(total or 0) for org_id, total in result.all()}

    async def active_role_counts(self, org_id: UUID) -> dict[MemberRole, int]:
        result = await self.db.execute(
            select(OrganizationMember.role, func.count())
            .where(
                OrganizationMember.organization_id == org_id,
                OrganizationMember.is_active,
            )
            .group_by(OrganizationMember.role)
        )
        return {role: count for role, count in result.all()}

    async def list_active_for_user(
        self, user_id: UUID
    ) -> list[tuple[OrganizationMember, Organization]]:
        """A user's active placements in active organizations, earliest first."""
        result = await self.db.execute(
            select(OrganizationMember, Organization)
            .join(Organization, OrganizationMember.organization_id == Organization.id)
            .where(
                OrganizationMember.user_id == user_id,
                OrganizationMember.is_active,
                Organization.status == OrganizationStatus.ACTIVE,
            )
            .order_by(OrganizationMember.joined_at, OrganizationMember.id)
        )
        return [(member, org) for member, org in result.all()]
