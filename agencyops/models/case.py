"""
Case ORM model.

The cases table belongs to the case workflow; only the owner is read here.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Mapped, mapped_column

from agencyops.models.base import Base, UUIDMixin


class Case(Base, UUIDMixin):
    """Read-only view of a case: which user owns it."""

    __tablename__ = "cases"
    __table_args__ = {"info": {"managed_by": "case-workflow"}}

    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Case id={self.id} user_id={self.user_id}>"
