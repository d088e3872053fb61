"""
Organization ORM model.
"""

from __future__ import annotations

import enum
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from agencyops.core.percent import to_percent
from agencyops.models.base import Base, TimestampMixin, UUIDMixin


class OrganizationType(str, enum.Enum):
    """Level of an organization in the distribution hierarchy."""

    IMO = "IMO"
    MGA = "MGA"
    AGENCY = "AGENCY"
    TEAM = "TEAM"


class OrganizationStatus(str, enum.Enum):
    """Lifecycle state. INACTIVE is the soft-delete marker."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Organization(Base, UUIDMixin, TimestampMixin):
    """A node in the IMO → MGA → Agency → Team tree."""

    __tablename__ = "organizations"
    __table_args__ = (
        CheckConstraint(
            "default_commission_split IS NULL OR default_commission_split BETWEEN 0 AND 1",
            name="ck_organizations_default_split_range",
        ),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[OrganizationType] = mapped_column(
        Enum(OrganizationType, name="organization_type"), nullable=False
    )
    # Weak reference: the tree edge, not ownership
    parent_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    status: Mapped[OrganizationStatus] = mapped_column(
        Enum(OrganizationStatus, name="organization_status"),
        nullable=False,
        default=OrganizationStatus.ACTIVE,
        index=True,
    )
    # Fraction in [0, 1] applied to members added without an explicit split
    default_commission_split: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 4), nullable=True
    )

    # Contact details, opaque to the engine
    ein: Mapped[str | None] = mapped_column(String(20), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(50), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == OrganizationStatus.ACTIVE

    @property
    def default_split_percent(self) -> Decimal | None:
        if self.default_commission_split is None:
            return None
        return to_percent(self.default_commission_split)

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r} type={self.type}>"
