"""
Cross-organization commission split endpoints.

Bulk split updates and the per-case split preview.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from agencyops.core.dependencies import get_actor_id, get_split_allocator
from agencyops.schemas.commission import (
    BulkSplitRequest,
    BulkSplitResponse,
    SplitPreviewRequest,
    SplitPreviewResponse,
)
from agencyops.services.split_allocator import SplitAllocator

router = APIRouter()


# ---------------------------------------------------------------------------
# Bulk Update
# ---------------------------------------------------------------------------

@router.post(
    "/bulk",
    response_model=BulkSplitResponse,
    summary="Update splits across several organizations",
)
async def bulk_update_splits(
    data: BulkSplitRequest,
    actor_id: UUID = Depends(get_actor_id),
    allocator: SplitAllocator = Depends(get_split_allocator),
) -> BulkSplitResponse:
    """
    Apply many split changes at once.

    - Any out-of-range value rejects the whole request
    - Each organization's batch is accepted or rejected independently
    - Per-entry outcomes are reported in request order
    """
    return await allocator.bulk_update_splits(data.configs, actor_id)


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------

@router.post(
    "/preview",
    response_model=SplitPreviewResponse,
    summary="Preview how a case commission would be split",
)
async def preview_split(
    data: SplitPreviewRequest,
    allocator: SplitAllocator = Depends(get_split_allocator),
) -> SplitPreviewResponse:
    """Read-only. Nothing is written."""
    return await allocator.preview_split(data.case_id, data.total_commission)
