"""
Seed helpers shared by the test modules.

Rows are inserted directly, bypassing validation and audit, and committed
so every test starts from a settled state.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agencyops.core.percent import to_fraction
from agencyops.models import (
    AuditEntry,
    Case,
    MemberRole,
    MembershipStatus,
    Organization,
    OrganizationMember,
    OrganizationStatus,
    OrganizationType,
)

ACTOR_ID = UUID("00000000-0000-4000-8000-000000000001")

# Fixed base so join order is explicit in every test
JOINED_BASE = datetime(2026, 1, 1, tzinfo=UTC)


async def seed_org(
    session: AsyncSession,
    name: str = "Org",
    type: OrganizationType = OrganizationType.AGENCY,
    parent: Organization | None = None,
    status: OrganizationStatus = OrganizationStatus.ACTIVE,
    default_split: Decimal | None = None,
) -> Organization:
    org = Organization(
        name=name,
        type=type,
        parent_id=parent.id if parent is not None else None,
        status=status,
        default_commission_split=to_fraction(default_split) if default_split is not None else None,
    )
    session.add(org)
    await session.commit()
    return org


async def seed_member(
    session: AsyncSession,
    org: Organization,
    split_percent: Decimal | str | int = 0,
    order: int = 0,
    user_id: UUID | None = None,
    role: MemberRole = MemberRole.AGENT,
    status: MembershipStatus = MembershipStatus.ACTIVE,
) -> OrganizationMember:
    """``order`` sets joined_at, so join order is explicit."""
    member = OrganizationMember(
        organization_id=org.id,
        user_id=user_id or uuid4(),
        role=role,
        commission_split=to_fraction(Decimal(split_percent)),
        status=status,
        joined_at=JOINED_BASE + timedelta(minutes=order),
    )
    session.add(member)
    await session.commit()
    return member


async def seed_case(session: AsyncSession, user_id: UUID) -> Case:
    case = Case(user_id=user_id)
    session.add(case)
    await session.commit()
    return case


async def count_audit(session: AsyncSession) -> int:
    result = await session.execute(select(func.count()).select_from(AuditEntry))
    return result.scalar_one()


async def active_total(session: AsyncSession, org_id: UUID) -> Decimal:
    """Sum of active fractions for one organization, read from the store."""
    result = await session.execute(
        select(OrganizationMember.commission_split).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.status == MembershipStatus.ACTIVE,
        )
    )
    return sum((Decimal(v) for v in result.scalars().all()), Decimal("0"))


async def split_of(session: AsyncSession, org_id: UUID, user_id: UUID) -> Decimal:
    """Current split of one membership, in percent."""
    result = await session.execute(
        select(OrganizationMember.commission_split).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.user_id == user_id,
        )
    )
    return (Decimal(result.scalar_one()) * 100).quantize(Decimal("0.01"))
