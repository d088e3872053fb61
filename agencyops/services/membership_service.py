"""
Member lifecycle business logic.

Adds, reactivates and removes organization members. Membership rows are
never deleted: removal flips the status and keeps the split for history,
and adding a former member reuses their row.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from agencyops.core.database import unit_of_work
from agencyops.core.exceptions import (
    AlreadyMemberError,
    MemberNotFoundError,
    OrganizationInactiveError,
    OrganizationNotFoundError,
)
from agencyops.core.percent import to_fraction
from agencyops.models.audit_log import AuditEntityType
from agencyops.models.base import utcnow
from agencyops.models.member import MembershipStatus, OrganizationMember
from agencyops.repositories.membership_repository import MembershipRepository
from agencyops.repositories.organization_repository import OrganizationRepository
from agencyops.schemas.audit import MemberAddChanges, MemberReactivateChanges, MemberRemoveChanges
from agencyops.schemas.commission import (
    EffectiveSplitResponse,
    MemberAddRequest,
    MemberResponse,
    MembersListResponse,
)
from agencyops.services.audit_recorder import AuditRecorder
from agencyops.services.split_allocator import SplitAllocator, validate_percent

logger = logging.getLogger(__name__)


class MembershipService:
    """Handles member placement within organizations."""

    def __init__(
        self,
        db: AsyncSession,
        organizations: OrganizationRepository | None = None,
        memberships: MembershipRepository | None = None,
        allocator: SplitAllocator | None = None,
        audit: AuditRecorder | None = None,
    ) -> None:
        self.db = db
        self.organizations = organizations or OrganizationRepository(db)
        self.memberships = memberships or MembershipRepository(db)
        self.audit = audit or AuditRecorder(db)
        self.allocator = allocator or SplitAllocator(
            db, organizations=self.organizations, memberships=self.memberships, audit=self.audit
        )

    # -----------------------------------------------------------------------
    # Add Member
    # -----------------------------------------------------------------------

    async def add_member(
        self, org_id: UUID, data: MemberAddRequest, actor_id: UUID
    ) -> MemberResponse:
        """
        Place a user in an organization.

        - Organization must exist and be active
        - An active placement fails; an inactive one is reactivated in place
        - Split defaults to the organization's default split, else 0
        - Active splits must stay within 100%
        """
        if data.split_percent is not None:
            validate_percent(data.split_percent, user_id=data.user_id)

        async with unit_of_work(self.db):
            org = await self.organizations.get_for_update(org_id)
            if org is None:
                raise OrganizationNotFoundError(org_id)
            if not org.is_active:
                raise OrganizationInactiveError(org_id)

            existing = await self.memberships.get(org_id, data.user_id)
            if existing is not None and existing.is_active:
                raise AlreadyMemberError(org_id, data.user_id)

            if data.split_percent is not None:
                fraction = to_fraction(data.split_percent)
            else:
                fraction = org.default_commission_split or Decimal("0")

            members = await self.memberships.list_active(org_id, for_update=True)
            self.allocator.ensure_within_limit(org_id, members, {data.user_id: fraction})

            if existing is not None:
                existing.status = MembershipStatus.ACTIVE
                existing.left_at = None
                existing.role = data.role
                existing.commission_split = fraction
                await self.db.flush()
                member = existing
                changes = MemberReactivateChanges(
                    user_id=member.user_id,
                    membership_id=member.id,
                    role=member.role,
                    split_percent=member.split_percent,
                )
            else:
                member = await self.memberships.add(
                    OrganizationMember(
                        organization_id=org_id,
                        user_id=data.user_id,
                        role=data.role,
                        commission_split=fraction,
                        status=MembershipStatus.ACTIVE,
                    )
                )
                changes = MemberAddChanges(
                    user_id=member.user_id,
                    membership_id=member.id,
                    role=member.role,
                    split_percent=member.split_percent,
                )

            await self.audit.record(
                actor_id=actor_id,
                entity_type=AuditEntityType.MEMBERSHIP,
                entity_id=member.id,
                organization_id=org_id,
                changes=changes,
            )
            response = MemberResponse.model_validate(member)

        logger.info(
            "Member %s: org=%s user=%s split=%s%% actor=%s",
            "reactivated" if existing is not None else "added",
            org_id,
            data.user_id,
            response.split_percent,
            actor_id,
        )
        return response

    # -----------------------------------------------------------------------
    # Remove Member
    # -----------------------------------------------------------------------

    async def remove_member(self, org_id: UUID, user_id: UUID, actor_id: UUID) -> None:
        """Deactivate a placement. The split stays on the row."""
        async with unit_of_work(self.db):
            org = await self.organizations.get_for_update(org_id)
            if org is None:
                raise OrganizationNotFoundError(org_id)

            member = await self.memberships.get(org_id, user_id)
            if member is None or not member.is_active:
                raise MemberNotFoundError(org_id, user_id)

            member.status = MembershipStatus.INACTIVE
            member.left_at = utcnow()
            await self.db.flush()

            await self.audit.record(
                actor_id=actor_id,
                entity_type=AuditEntityType.MEMBERSHIP,
                entity_id=member.id,
                organization_id=org_id,
                changes=MemberRemoveChanges(
                    user_id=user_id,
                    membership_id=member.id,
                    role=member.role,
                    split_percent=member.split_percent,
                ),
            )

        logger.info("Member removed: org=%s user=%s actor=%s", org_id, user_id, actor_id)

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def list_members(
        self, org_id: UUID, include_inactive: bool = False
    ) -> MembersListResponse:
        if await self.organizations.get(org_id) is None:
            raise OrganizationNotFoundError(org_id)
        members = await self.memberships.list_for_organization(org_id, include_inactive)
        return MembersListResponse(
            members=[MemberResponse.model_validate(m) for m in members],
            total=len(members),
        )

    async def get_user_effective_splits(self, user_id: UUID) -> list[EffectiveSplitResponse]:
        """A user's active splits across active organizations."""
        placements = await self.memberships.list_active_for_user(user_id)
        return [
            EffectiveSplitResponse(
                organization_id=org.id,
                organization_name=org.name,
                organization_type=org.type,
                role=member.role,
                split_percent=member.split_percent,
                joined_at=member.joined_at,
            )
            for member, org in placements
        ]
