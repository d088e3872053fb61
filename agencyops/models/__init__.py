"""
SQLAlchemy ORM models.

All models imported here to ensure they are registered with Base.metadata.
"""

from agencyops.models.audit_log import AuditAction, AuditEntityType, AuditEntry
from agencyops.models.base import Base, TimestampMixin, UUIDMixin
from agencyops.models.case import Case
from agencyops.models.member import MemberRole, MembershipStatus, OrganizationMember
from agencyops.models.organization import Organization, OrganizationStatus, OrganizationType

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "Organization",
    "OrganizationStatus",
    "OrganizationType",
    "OrganizationMember",
    "MemberRole",
    "MembershipStatus",
    "AuditEntry",
    "AuditAction",
    "AuditEntityType",
    "Case",
]
