"""
AuditEntry ORM model.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Enum, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from agencyops.models.base import Base, UUIDMixin, utcnow


class AuditAction(str, enum.Enum):
    ORG_CREATE = "ORG_CREATE"
    ORG_UPDATE = "ORG_UPDATE"
    ORG_MOVE = "ORG_MOVE"
    ORG_DELETE = "ORG_DELETE"
    SPLIT_UPDATE = "SPLIT_UPDATE"
    SPLIT_AUTO_BALANCE = "SPLIT_AUTO_BALANCE"
    DEFAULT_SPLIT_UPDATE = "DEFAULT_SPLIT_UPDATE"
    MEMBER_ADD = "MEMBER_ADD"
    MEMBER_REMOVE = "MEMBER_REMOVE"
    MEMBER_REACTIVATE = "MEMBER_REACTIVATE"


class AuditEntityType(str, enum.Enum):
    ORGANIZATION = "ORGANIZATION"
    MEMBERSHIP = "MEMBERSHIP"


class AuditEntry(Base, UUIDMixin):
    """Append-only record of a mutation. Never updated or deleted."""

    __tablename__ = "audit_log"

    actor_user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # Stored as plain strings so new kinds need no type migration
    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, native_enum=False, length=50), nullable=False
    )
    # Organization the mutation belongs to, for history queries
    organization_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)
    entity_type: Mapped[AuditEntityType] = mapped_column(
        Enum(AuditEntityType, native_enum=False, length=30), nullable=False
    )
    entity_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    changes: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<AuditEntry id={self.id} action={self.action} entity_id={self.entity_id}>"
