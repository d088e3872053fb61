"""
Audit trail schemas.

Each action kind has its own ``changes`` shape; ``AuditChanges`` is the
tagged union consumers deserialize into.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter

from agencyops.models.audit_log import AuditAction, AuditEntityType
from agencyops.models.member import MemberRole
from agencyops.models.organization import OrganizationStatus, OrganizationType


class OrganizationSnapshot(BaseModel):
    """Audited state of an organization."""

    id: UUID
    name: str
    type: OrganizationType
    parent_id: UUID | None
    status: OrganizationStatus
    default_split_percent: Decimal | None = None
    ein: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None

    model_config = {"from_attributes": True}


class OrgCreateChanges(BaseModel):
    kind: Literal["ORG_CREATE"] = "ORG_CREATE"
    after: OrganizationSnapshot


class OrgUpdateChanges(BaseModel):
    kind: Literal["ORG_UPDATE"] = "ORG_UPDATE"
    before: OrganizationSnapshot
    after: OrganizationSnapshot
    changed_fields: list[str]


class OrgMoveChanges(BaseModel):
    kind: Literal["ORG_MOVE"] = "ORG_MOVE"
    from_parent_id: UUID | None
    to_parent_id: UUID | None


class OrgDeleteChanges(BaseModel):
    kind: Literal["ORG_DELETE"] = "ORG_DELETE"
    name: str
    type: OrganizationType
    previous_status: OrganizationStatus


class SplitUpdateChanges(BaseModel):
    kind: Literal["SPLIT_UPDATE"] = "SPLIT_UPDATE"
    user_id: UUID
    membership_id: UUID
    old_split_percent: Decimal
    new_split_percent: Decimal


class SplitAllocation(BaseModel):
    user_id: UUID
    old_split_percent: Decimal
    new_split_percent: Decimal


class SplitAutoBalanceChanges(BaseModel):
    kind: Literal["SPLIT_AUTO_BALANCE"] = "SPLIT_AUTO_BALANCE"
    member_count: int
    base_split_percent: Decimal
    remainder: int
    allocations: list[SplitAllocation]


class DefaultSplitChanges(BaseModel):
    kind: Literal["DEFAULT_SPLIT_UPDATE"] = "DEFAULT_SPLIT_UPDATE"
    old_default_percent: Decimal | None
    new_default_percent: Decimal | None


class MemberAddChanges(BaseModel):
    kind: Literal["MEMBER_ADD"] = "MEMBER_ADD"
    user_id: UUID
    membership_id: UUID
    role: MemberRole
    split_percent: Decimal


class MemberReactivateChanges(BaseModel):
    kind: Literal["MEMBER_REACTIVATE"] = "MEMBER_REACTIVATE"
    user_id: UUID
    membership_id: UUID
    role: MemberRole
    split_percent: Decimal


class MemberRemoveChanges(BaseModel):
    kind: Literal["MEMBER_REMOVE"] = "MEMBER_REMOVE"
    user_id: UUID
    membership_id: UUID
    role: MemberRole
    split_percent: Decimal


AuditChanges = Annotated[
    Union[
        OrgCreateChanges,
        OrgUpdateChanges,
        OrgMoveChanges,
        OrgDeleteChanges,
        SplitUpdateChanges,
        SplitAutoBalanceChanges,
        DefaultSplitChanges,
        MemberAddChanges,
        MemberReactivateChanges,
        MemberRemoveChanges,
    ],
    Field(discriminator="kind"),
]

audit_changes_adapter: TypeAdapter[AuditChanges] = TypeAdapter(AuditChanges)


class AuditEntryResponse(BaseModel):
    id: UUID
    actor_user_id: UUID
    action: AuditAction
    organization_id: UUID | None
    entity_type: AuditEntityType
    entity_id: UUID
    changes: AuditChanges
    created_at: datetime

    model_config = {"from_attributes": True}


class AuditHistoryResponse(BaseModel):
    entries: list[AuditEntryResponse]
    total: int
