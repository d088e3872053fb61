"""
Cycle detection for the organization tree.

Walks parent pointers iteratively with an explicit depth counter. What
happens when the walk hits the bound without reaching a root depends on
``fail_closed``:

- True: the walk raises ``HierarchyDepthExceededError`` (and a revisited
  node raises ``CyclicHierarchyError``), so corrupt or over-deep data
  blocks the reparenting instead of slipping through.
- False: an exhausted walk is reported as "no cycle" and logged.
"""

from __future__ import annotations

import logging
from uuid import UUID

from agencyops.core.config import settings
from agencyops.core.exceptions import CyclicHierarchyError, HierarchyDepthExceededError
from agencyops.repositories.organization_repository import OrganizationRepository

logger = logging.getLogger(__name__)


class CycleDetector:
    """Rejects reparenting that would close a loop in the parent graph."""

    def __init__(
        self,
        organizations: OrganizationRepository,
        max_depth: int | None = None,
        fail_closed: bool | None = None,
    ) -> None:
        self.organizations = organizations
        self.max_depth = max_depth if max_depth is not None else settings.HIERARCHY_MAX_DEPTH
        self.fail_closed = (
            fail_closed if fail_closed is not None else settings.HIERARCHY_FAIL_CLOSED
        )

    async def would_create_cycle(self, candidate_parent_id: UUID, subject_id: UUID) -> bool:
        """
        True if ``subject_id`` is ``candidate_parent_id`` or one of its ancestors.

        In that case making ``candidate_parent_id`` the parent of
        ``subject_id`` would turn the subject into its own ancestor.
        """
        return await self._walk(candidate_parent_id, subject_id)

    async def verify_chain(self, start_id: UUID) -> None:
        """
        Check that the ancestor chain of ``start_id`` terminates at a root.

        Used before attaching a brand new organization, which has no id
        yet that could appear in the chain.
        """
        await self._walk(start_id, None)

    async def _walk(self, start_id: UUID, target_id: UUID | None) -> bool:
        visited: set[UUID] = set()
        current_id: UUID | None = start_id
        depth = 0

        while current_id is not None and depth < self.max_depth:
            if current_id == target_id:
                return True
            if current_id in visited:
                logger.warning(
                    "Existing parent chain from %s revisits %s", start_id, current_id
                )
                if self.fail_closed:
                    raise CyclicHierarchyError(current_id, start_id)
            visited.add(current_id)

            link = await self.organizations.get_parent_link(current_id)
            if link is None:
                # Dangling reference ends the chain
                return False
            current_id = link.parent_id
            depth += 1

        if current_id is None:
            return False
        if current_id == target_id:
            return True

        if self.fail_closed:
            logger.warning(
                "Ancestor walk from %s exceeded depth %s", start_id, self.max_depth
            )
            raise HierarchyDepthExceededError(start_id, self.max_depth)

        logger.warning(
            "Ancestor walk from %s exceeded depth %s; treating as acyclic",
            start_id,
            self.max_depth,
        )
        return False
