"""
FastAPI dependency injection functions.

Provides the resolved actor identity and request-scoped services.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from agencyops.core.config import settings
from agencyops.core.database import get_db
from agencyops.core.exceptions import InvalidActorError
from agencyops.services.hierarchy_manager import HierarchyManager
from agencyops.services.membership_service import MembershipService
from agencyops.services.split_allocator import SplitAllocator

# ---------------------------------------------------------------------------
# Actor
# ---------------------------------------------------------------------------

async def get_actor_id(
    actor: str | None = Header(default=None, alias=settings.ACTOR_HEADER),
) -> UUID:
    """
    Return the caller identity resolved upstream by the auth layer.

    Raises 401 if the header is missing or is not a UUID.
    """
    if not actor:
        raise InvalidActorError(message=f"{settings.ACTOR_HEADER} header required")
    try:
        return UUID(actor)
    except ValueError:
        raise InvalidActorError(
            message=f"{settings.ACTOR_HEADER} header must be a UUID",
            details={"value": actor},
        )


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

def get_hierarchy_manager(db: AsyncSession = Depends(get_db)) -> HierarchyManager:
    """Dependency that constructs HierarchyManager."""
    return HierarchyManager(db=db)


def get_split_allocator(db: AsyncSession = Depends(get_db)) -> SplitAllocator:
    """Dependency that constructs SplitAllocator."""
    return SplitAllocator(db=db)


def get_membership_service(db: AsyncSession = Depends(get_db)) -> MembershipService:
    """Dependency that constructs MembershipService."""
    return MembershipService(db=db)
