"""
OrganizationMember ORM model.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Numeric, UniqueConstraint, func
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column

from agencyops.core.percent import to_percent
from agencyops.models.base import Base, UUIDMixin, utcnow


class MemberRole(str, enum.Enum):
    """Organization member role enumeration."""

    ADMINISTRATOR = "ADMINISTRATOR"
    EXECUTIVE = "EXECUTIVE"
    MANAGER = "MANAGER"
    AGENT = "AGENT"


class MembershipStatus(str, enum.Enum):
    """Lifecycle state of a placement. Rows are never deleted."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class OrganizationMember(Base, UUIDMixin):
    """
    A user's placement within one organization, carrying a commission split.

    ``commission_split`` is a fraction in [0, 1]; the API speaks percent.
    One row per (organization, user): reactivation reuses it.
    """

    __tablename__ = "organization_members"
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_organization_members_org_user"),
        CheckConstraint("commission_split BETWEEN 0 AND 1", name="ck_organization_members_split_range"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Users are owned by the identity service
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    role: Mapped[MemberRole] = mapped_column(
        Enum(MemberRole, name="member_role"), nullable=False, default=MemberRole.AGENT
    )
    commission_split: Mapped[Decimal] = mapped_column(
        Numeric(5, 4), nullable=False, default=Decimal("0")
    )
    status: Mapped[MembershipStatus] = mapped_column(
        Enum(MembershipStatus, name="membership_status"),
        nullable=False,
        default=MembershipStatus.ACTIVE,
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @hybrid_property
    def is_active(self) -> bool:
        return self.status == MembershipStatus.ACTIVE

    @property
    def split_percent(self) -> Decimal:
        return to_percent(self.commission_split)

    def __repr__(self) -> str:
        return (
            f"<OrganizationMember org_id={self.organization_id} "
            f"user_id={self.user_id} split={self.commission_split}>"
        )
