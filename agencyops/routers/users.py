"""
User-centric commission endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from agencyops.core.dependencies import get_membership_service
from agencyops.schemas.commission import EffectiveSplitResponse
from agencyops.services.membership_service import MembershipService

router = APIRouter()


@router.get(
    "/{user_id}/commission-splits",
    response_model=list[EffectiveSplitResponse],
    summary="A user's active splits across organizations",
)
async def get_user_commission_splits(
    user_id: UUID,
    service: MembershipService = Depends(get_membership_service),
) -> list[EffectiveSplitResponse]:
    return await service.get_user_effective_splits(user_id)
