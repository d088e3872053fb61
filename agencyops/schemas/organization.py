"""
Organization schemas.

Request/response models for organization and hierarchy endpoints.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from agencyops.models.member import MemberRole
from agencyops.models.organization import OrganizationStatus, OrganizationType


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class _ContactFields(BaseModel):
    ein: str | None = Field(default=None, max_length=20)
    phone: str | None = Field(default=None, max_length=30)
    email: str | None = Field(default=None, max_length=255)
    address: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=100)
    state: str | None = Field(default=None, max_length=50)
    zip_code: str | None = Field(default=None, max_length=20)


class OrganizationCreateRequest(_ContactFields):
    """Request body for POST /organizations."""

    name: str = Field(min_length=2, max_length=200)
    type: OrganizationType
    parent_id: UUID | None = None

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must contain at least 2 non-blank characters")
        return v


class OrganizationUpdateRequest(_ContactFields):
    """
    Request body for PATCH /organizations/{id}.

    ``parent_id`` is applied only when present in the body; an explicit
    null detaches the organization to the root level.
    """

    name: str | None = Field(default=None, min_length=2, max_length=200)
    type: OrganizationType | None = None
    parent_id: UUID | None = None
    status: OrganizationStatus | None = None


class OrganizationMoveRequest(BaseModel):
    """Request body for POST /organizations/{id}/move."""

    new_parent_id: UUID | None = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class OrganizationSummary(BaseModel):
    """Minimal organization reference used in paths and parent links."""

    id: UUID
    name: str
    type: OrganizationType
    parent_id: UUID | None
    status: OrganizationStatus

    model_config = {"from_attributes": True}


class OrganizationResponse(OrganizationSummary):
    """Organization detail response."""

    default_split_percent: Decimal | None = None
    ein: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    created_at: datetime
    updated_at: datetime


class OrganizationDetailResponse(OrganizationResponse):
    parent: OrganizationSummary | None = None
    children: list[OrganizationSummary] = Field(default_factory=list)
    active_member_count: int = 0


class OrganizationListItem(OrganizationResponse):
    parent: OrganizationSummary | None = None
    active_member_count: int = 0
    child_count: int = 0


class OrganizationListResponse(BaseModel):
    organizations: list[OrganizationListItem]
    total: int
    limit: int
    offset: int


class HierarchyNode(BaseModel):
    """One node of a materialized subtree."""

    id: UUID
    name: str
    type: OrganizationType
    status: OrganizationStatus
    parent_id: UUID | None
    depth: int
    active_member_count: int
    child_count: int
    total_split_percent: Decimal
    # Children exist below the depth bound but were not materialized
    truncated: bool = False
    children: list[HierarchyNode] = Field(default_factory=list)


class MemberCounts(BaseModel):
    total: int
    by_role: dict[MemberRole, int]


class ChildCounts(BaseModel):
    total: int


class OrganizationStatsResponse(BaseModel):
    organization_id: UUID
    members: MemberCounts
    children: ChildCounts
