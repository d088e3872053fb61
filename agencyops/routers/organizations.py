"""
Organization management endpoints.

Create, update, move, delete, hierarchy reads, members and split
configuration of a single organization.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from agencyops.core.dependencies import (
    get_actor_id,
    get_hierarchy_manager,
    get_membership_service,
    get_split_allocator,
)
from agencyops.models.organization import OrganizationStatus, OrganizationType
from agencyops.schemas.audit import AuditHistoryResponse
from agencyops.schemas.commission import (
    DefaultSplitRequest,
    DefaultSplitResponse,
    MemberAddRequest,
    MemberResponse,
    MemberSplitUpdateRequest,
    MembersListResponse,
    OrganizationSplitConfig,
    SplitValidationResult,
)
from agencyops.schemas.organization import (
    HierarchyNode,
    OrganizationCreateRequest,
    OrganizationDetailResponse,
    OrganizationListResponse,
    OrganizationMoveRequest,
    OrganizationResponse,
    OrganizationStatsResponse,
    OrganizationSummary,
    OrganizationUpdateRequest,
)
from agencyops.services.hierarchy_manager import HierarchyManager
from agencyops.services.membership_service import MembershipService
from agencyops.services.split_allocator import SplitAllocator

router = APIRouter()


# ---------------------------------------------------------------------------
# Create / List Organizations
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=OrganizationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new organization",
)
async def create_organization(
    data: OrganizationCreateRequest,
    actor_id: UUID = Depends(get_actor_id),
    service: HierarchyManager = Depends(get_hierarchy_manager),
) -> OrganizationResponse:
    """
    Create a new organization.

    - Parent, if given, must exist and be active
    - New organization starts ACTIVE
    """
    return await service.create(data, actor_id)


@router.get(
    "",
    response_model=OrganizationListResponse,
    summary="List organizations",
)
async def list_organizations(
    type: OrganizationType | None = Query(default=None),
    status_filter: OrganizationStatus | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, max_length=200),
    parent_id: UUID | None = Query(default=None),
    roots_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    service: HierarchyManager = Depends(get_hierarchy_manager),
) -> OrganizationListResponse:
    """Filter by type, status, parent or a name/EIN search. Newest first."""
    return await service.list_organizations(
        type=type,
        status=status_filter,
        search=search,
        parent_id=parent_id,
        roots_only=roots_only,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/hierarchy",
    response_model=list[HierarchyNode],
    summary="Get the full organization forest",
)
async def get_full_hierarchy(
    service: HierarchyManager = Depends(get_hierarchy_manager),
) -> list[HierarchyNode]:
    return await service.get_hierarchy()


# ---------------------------------------------------------------------------
# Single Organization
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}",
    response_model=OrganizationDetailResponse,
    summary="Get organization by id",
)
async def get_organization(
    org_id: UUID,
    service: HierarchyManager = Depends(get_hierarchy_manager),
) -> OrganizationDetailResponse:
    return await service.get_organization(org_id)


@router.patch(
    "/{org_id}",
    response_model=OrganizationResponse,
    summary="Update an organization",
)
async def update_organization(
    org_id: UUID,
    data: OrganizationUpdateRequest,
    actor_id: UUID = Depends(get_actor_id),
    service: HierarchyManager = Depends(get_hierarchy_manager),
) -> OrganizationResponse:
    """
    Partially update an organization.

    - Changing parent_id runs the same checks as a move
    - Setting status INACTIVE runs the same checks as a delete
    """
    return await service.update(org_id, data, actor_id)


@router.delete(
    "/{org_id}",
    status_code=status.HTTP_200_OK,
    summary="Deactivate an organization",
)
async def delete_organization(
    org_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    service: HierarchyManager = Depends(get_hierarchy_manager),
) -> dict:
    """Soft delete. Blocked while active children or active members remain."""
    await service.delete(org_id, actor_id)
    return {}


@router.post(
    "/{org_id}/move",
    response_model=OrganizationResponse,
    summary="Move an organization under a new parent",
)
async def move_organization(
    org_id: UUID,
    data: OrganizationMoveRequest,
    actor_id: UUID = Depends(get_actor_id),
    service: HierarchyManager = Depends(get_hierarchy_manager),
) -> OrganizationResponse:
    """A null new_parent_id makes the organization a root."""
    return await service.move(org_id, data.new_parent_id, actor_id)


@router.get(
    "/{org_id}/hierarchy",
    response_model=list[HierarchyNode],
    summary="Get the subtree rooted at an organization",
)
async def get_hierarchy(
    org_id: UUID,
    service: HierarchyManager = Depends(get_hierarchy_manager),
) -> list[HierarchyNode]:
    return await service.get_hierarchy(org_id)


@router.get(
    "/{org_id}/path",
    response_model=list[OrganizationSummary],
    summary="Get the ancestor chain, root first",
)
async def get_path(
    org_id: UUID,
    service: HierarchyManager = Depends(get_hierarchy_manager),
) -> list[OrganizationSummary]:
    return await service.get_path(org_id)


@router.get(
    "/{org_id}/stats",
    response_model=OrganizationStatsResponse,
    summary="Member and child counts",
)
async def get_stats(
    org_id: UUID,
    service: HierarchyManager = Depends(get_hierarchy_manager),
) -> OrganizationStatsResponse:
    return await service.get_stats(org_id)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}/members",
    response_model=MembersListResponse,
    summary="List organization members",
)
async def list_members(
    org_id: UUID,
    include_inactive: bool = Query(default=False),
    service: MembershipService = Depends(get_membership_service),
) -> MembersListResponse:
    return await service.list_members(org_id, include_inactive)


@router.post(
    "/{org_id}/members",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a member to the organization",
)
async def add_member(
    org_id: UUID,
    data: MemberAddRequest,
    actor_id: UUID = Depends(get_actor_id),
    service: MembershipService = Depends(get_membership_service),
) -> MemberResponse:
    """
    Add or reactivate a member.

    - A former member's row is reactivated
    - Split defaults to the organization's default split
    """
    return await service.add_member(org_id, data, actor_id)


@router.delete(
    "/{org_id}/members/{user_id}",
    status_code=status.HTTP_200_OK,
    summary="Remove a member from the organization",
)
async def remove_member(
    org_id: UUID,
    user_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    service: MembershipService = Depends(get_membership_service),
) -> dict:
    await service.remove_member(org_id, user_id, actor_id)
    return {}


@router.put(
    "/{org_id}/members/{user_id}/split",
    response_model=MemberResponse,
    summary="Update a member's commission split",
)
async def update_member_split(
    org_id: UUID,
    user_id: UUID,
    data: MemberSplitUpdateRequest,
    actor_id: UUID = Depends(get_actor_id),
    allocator: SplitAllocator = Depends(get_split_allocator),
) -> MemberResponse:
    """Fails with OVER_ALLOCATED if active splits would exceed 100%."""
    return await allocator.update_member_split(org_id, user_id, data.split_percent, actor_id)


# ---------------------------------------------------------------------------
# Commission Configuration
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}/commission-config",
    response_model=OrganizationSplitConfig,
    summary="Current split configuration",
)
async def get_commission_config(
    org_id: UUID,
    allocator: SplitAllocator = Depends(get_split_allocator),
) -> OrganizationSplitConfig:
    return await allocator.get_config(org_id)


@router.get(
    "/{org_id}/commission-config/validate",
    response_model=SplitValidationResult,
    summary="Advisory validation of the split configuration",
)
async def validate_commission_config(
    org_id: UUID,
    allocator: SplitAllocator = Depends(get_split_allocator),
) -> SplitValidationResult:
    return await allocator.validate_config(org_id)


@router.get(
    "/{org_id}/commission-config/history",
    response_model=AuditHistoryResponse,
    summary="Split-related audit history",
)
async def get_commission_history(
    org_id: UUID,
    limit: int | None = Query(default=None, ge=1),
    allocator: SplitAllocator = Depends(get_split_allocator),
) -> AuditHistoryResponse:
    return await allocator.get_split_history(org_id, limit)


@router.post(
    "/{org_id}/commission-config/auto-balance",
    response_model=OrganizationSplitConfig,
    summary="Spread 100% evenly across active members",
)
async def auto_balance(
    org_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    allocator: SplitAllocator = Depends(get_split_allocator),
) -> OrganizationSplitConfig:
    return await allocator.auto_balance(org_id, actor_id)


@router.put(
    "/{org_id}/commission-config/default-split",
    response_model=DefaultSplitResponse,
    summary="Set the split applied to new members",
)
async def set_default_split(
    org_id: UUID,
    data: DefaultSplitRequest,
    actor_id: UUID = Depends(get_actor_id),
    allocator: SplitAllocator = Depends(get_split_allocator),
) -> DefaultSplitResponse:
    """A null split_percent clears the default."""
    return await allocator.set_default_split(org_id, data.split_percent, actor_id)
