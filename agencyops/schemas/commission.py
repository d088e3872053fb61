"""
Commission split schemas.

Percentages are exchanged as decimals in [0, 100] with two places.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from agencyops.models.member import MemberRole, MembershipStatus
from agencyops.models.organization import OrganizationType


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class MemberAddRequest(BaseModel):
    """Request body for POST /organizations/{id}/members."""

    user_id: UUID
    role: MemberRole = MemberRole.AGENT
    split_percent: Decimal | None = None


class MemberResponse(BaseModel):
    id: UUID
    organization_id: UUID
    user_id: UUID
    role: MemberRole
    split_percent: Decimal
    status: MembershipStatus
    is_active: bool
    joined_at: datetime
    left_at: datetime | None

    model_config = {"from_attributes": True}


class MembersListResponse(BaseModel):
    members: list[MemberResponse]
    total: int


class EffectiveSplitResponse(BaseModel):
    """A user's active split in one organization."""

    organization_id: UUID
    organization_name: str
    organization_type: OrganizationType
    role: MemberRole
    split_percent: Decimal
    joined_at: datetime


# ---------------------------------------------------------------------------
# Split updates
# ---------------------------------------------------------------------------

class MemberSplitUpdateRequest(BaseModel):
    """Request body for PUT /organizations/{id}/members/{user_id}/split."""

    split_percent: Decimal


class SplitConfigEntry(BaseModel):
    """One requested change in a bulk update."""

    user_id: UUID
    organization_id: UUID
    split_percent: Decimal


class BulkSplitRequest(BaseModel):
    configs: list[SplitConfigEntry] = Field(min_length=1)


class BulkSplitResult(BaseModel):
    user_id: UUID
    organization_id: UUID
    success: bool
    error: str | None = None
    error_code: str | None = None
    member: MemberResponse | None = None


class BulkSplitResponse(BaseModel):
    results: list[BulkSplitResult]
    succeeded: int
    failed: int


class DefaultSplitRequest(BaseModel):
    split_percent: Decimal | None


class DefaultSplitResponse(BaseModel):
    organization_id: UUID
    default_split_percent: Decimal | None


# ---------------------------------------------------------------------------
# Configuration views
# ---------------------------------------------------------------------------

class SplitConfigMember(BaseModel):
    id: UUID
    user_id: UUID
    role: MemberRole
    split_percent: Decimal
    joined_at: datetime

    model_config = {"from_attributes": True}


class OrganizationSplitConfig(BaseModel):
    organization_id: UUID
    members: list[SplitConfigMember]
    total_split: Decimal
    is_valid: bool


class SplitValidationResult(BaseModel):
    organization_id: UUID
    is_valid: bool
    issues: list[str]
    total_split: Decimal
    member_count: int


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------

class SplitPreviewRequest(BaseModel):
    case_id: UUID
    total_commission: Decimal = Field(ge=0)


class SplitPreviewLine(BaseModel):
    user_id: UUID
    role: MemberRole | None = None
    percentage: Decimal
    amount: Decimal


class SplitPreviewResponse(BaseModel):
    case_id: UUID
    total_commission: Decimal
    organization_id: UUID | None = None
    organization_name: str | None = None
    splits: list[SplitPreviewLine]
