"""
Organization hierarchy business logic.

Handles create, update, move and soft delete of organizations, and
materializes subtrees and ancestor paths. Every mutation validates,
writes and audits inside one unit of work.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from agencyops.core.config import settings
from agencyops.core.database import unit_of_work
from agencyops.core.exceptions import (
    CyclicHierarchyError,
    HasActiveChildrenError,
    HasActiveMembersError,
    HierarchyDepthExceededError,
    OrganizationInactiveError,
    OrganizationNotFoundError,
    ParentNotFoundError,
    SelfParentError,
)
from agencyops.core.percent import to_percent
from agencyops.models.audit_log import AuditEntityType
from agencyops.models.organization import Organization, OrganizationStatus, OrganizationType
from agencyops.repositories.membership_repository import MembershipRepository
from agencyops.repositories.organization_repository import OrganizationRepository
from agencyops.schemas.audit import (
    OrganizationSnapshot,
    OrgCreateChanges,
    OrgDeleteChanges,
    OrgMoveChanges,
    OrgUpdateChanges,
)
from agencyops.schemas.organization import (
    ChildCounts,
    HierarchyNode,
    MemberCounts,
    OrganizationCreateRequest,
    OrganizationDetailResponse,
    OrganizationListItem,
    OrganizationListResponse,
    OrganizationResponse,
    OrganizationStatsResponse,
    OrganizationSummary,
    OrganizationUpdateRequest,
)
from agencyops.services.audit_recorder import AuditRecorder
from agencyops.services.cycle_detector import CycleDetector

logger = logging.getLogger(__name__)

# Nullable fields an update may set or clear
_CONTACT_FIELDS = ("ein", "phone", "email", "address", "city", "state", "zip_code")


def _snapshot(org: Organization) -> OrganizationSnapshot:
    return OrganizationSnapshot.model_validate(org)


class HierarchyManager:
    """Owns the organization tree: structure mutations and tree reads."""

    def __init__(
        self,
        db: AsyncSession,
        organizations: OrganizationRepository | None = None,
        memberships: MembershipRepository | None = None,
        cycles: CycleDetector | None = None,
        audit: AuditRecorder | None = None,
        max_depth: int | None = None,
        fail_closed: bool | None = None,
    ) -> None:
        self.db = db
        self.max_depth = max_depth if max_depth is not None else settings.HIERARCHY_MAX_DEPTH
        self.fail_closed = (
            fail_closed if fail_closed is not None else settings.HIERARCHY_FAIL_CLOSED
        )
        self.organizations = organizations or OrganizationRepository(db)
        self.memberships = memberships or MembershipRepository(db)
        self.cycles = cycles or CycleDetector(
            self.organizations, max_depth=self.max_depth, fail_closed=self.fail_closed
        )
        self.audit = audit or AuditRecorder(db)

    # -----------------------------------------------------------------------
    # Create Organization
    # -----------------------------------------------------------------------

    async def create(
        self, data: OrganizationCreateRequest, actor_id: UUID
    ) -> OrganizationResponse:
        """
        Create a new organization.

        - Parent, if given, must exist and be active
        - Parent's ancestor chain must terminate within the depth bound
        - New organization starts ACTIVE
        """
        async with unit_of_work(self.db):
            if data.parent_id is not None:
                parent = await self.organizations.get(data.parent_id)
                if parent is None:
                    raise ParentNotFoundError(data.parent_id)
                if not parent.is_active:
                    raise OrganizationInactiveError(parent.id)
                await self.cycles.verify_chain(parent.id)

            org = Organization(
                name=data.name,
                type=data.type,
                parent_id=data.parent_id,
                status=OrganizationStatus.ACTIVE,
                **{field: getattr(data, field) for field in _CONTACT_FIELDS},
            )
            await self.organizations.add(org)

            await self.audit.record(
                actor_id=actor_id,
                entity_type=AuditEntityType.ORGANIZATION,
                entity_id=org.id,
                organization_id=org.id,
                changes=OrgCreateChanges(after=_snapshot(org)),
            )

        logger.info("Organization created: id=%s parent=%s actor=%s", org.id, org.parent_id, actor_id)
        return OrganizationResponse.model_validate(org)

    # -----------------------------------------------------------------------
    # Update Organization
    # -----------------------------------------------------------------------

    async def update(
        self, org_id: UUID, data: OrganizationUpdateRequest, actor_id: UUID
    ) -> OrganizationResponse:
        """
        Apply a partial update.

        Only fields present in the request body are considered. A parent
        change gets the same checks as ``move``; switching to INACTIVE gets
        the same guard as ``delete``. Reactivation needs an active parent.
        """
        fields_set = data.model_fields_set

        async with unit_of_work(self.db):
            org = await self._get_for_update(org_id)
            before = _snapshot(org)

            if "parent_id" in fields_set and data.parent_id != org.parent_id:
                await self._check_reparent(org, data.parent_id)
                org.parent_id = data.parent_id

            if data.name is not None:
                org.name = data.name
            if data.type is not None:
                org.type = data.type
            for field in _CONTACT_FIELDS:
                if field in fields_set:
                    setattr(org, field, getattr(data, field))

            if data.status is not None and data.status != org.status:
                if data.status == OrganizationStatus.INACTIVE:
                    await self._ensure_deletable(org)
                else:
                    await self._ensure_parent_active(org)
                org.status = data.status

            await self.db.flush()
            after = _snapshot(org)
            changed_fields = [
                field
                for field in OrganizationSnapshot.model_fields
                if getattr(before, field) != getattr(after, field)
            ]

            await self.audit.record(
                actor_id=actor_id,
                entity_type=AuditEntityType.ORGANIZATION,
                entity_id=org.id,
                organization_id=org.id,
                changes=OrgUpdateChanges(before=before, after=after, changed_fields=changed_fields),
            )

        logger.info("Organization updated: id=%s fields=%s actor=%s", org.id, changed_fields, actor_id)
        return OrganizationResponse.model_validate(org)

    # -----------------------------------------------------------------------
    # Move Organization
    # -----------------------------------------------------------------------

    async def move(
        self, org_id: UUID, new_parent_id: UUID | None, actor_id: UUID
    ) -> OrganizationResponse:
        """Reparent an organization; ``None`` makes it a root."""
        async with unit_of_work(self.db):
            org = await self._get_for_update(org_id)
            await self._check_reparent(org, new_parent_id)

            old_parent_id = org.parent_id
            org.parent_id = new_parent_id
            await self.db.flush()

            await self.audit.record(
                actor_id=actor_id,
                entity_type=AuditEntityType.ORGANIZATION,
                entity_id=org.id,
                organization_id=org.id,
                changes=OrgMoveChanges(from_parent_id=old_parent_id, to_parent_id=new_parent_id),
            )

        logger.info(
            "Organization moved: id=%s from=%s to=%s actor=%s",
            org.id,
            old_parent_id,
            new_parent_id,
            actor_id,
        )
        return OrganizationResponse.model_validate(org)

    # -----------------------------------------------------------------------
    # Delete Organization
    # -----------------------------------------------------------------------

    async def delete(self, org_id: UUID, actor_id: UUID) -> None:
        """Soft delete: flip an ACTIVE organization to INACTIVE once nothing active hangs off it."""
        async with unit_of_work(self.db):
            org = await self._get_for_update(org_id)
            if not org.is_active:
                raise OrganizationInactiveError(org.id)
            await self._ensure_deletable(org)

            previous_status = org.status
            org.status = OrganizationStatus.INACTIVE
            await self.db.flush()

            await self.audit.record(
                actor_id=actor_id,
                entity_type=AuditEntityType.ORGANIZATION,
                entity_id=org.id,
                organization_id=org.id,
                changes=OrgDeleteChanges(
                    name=org.name, type=org.type, previous_status=previous_status
                ),
            )

        logger.info("Organization deactivated: id=%s actor=%s", org.id, actor_id)

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def get_organization(self, org_id: UUID) -> OrganizationDetailResponse:
        """Organization with parent summary, active children and member count."""
        org = await self._get(org_id)

        parent = None
        if org.parent_id is not None:
            parent_org = await self.organizations.get(org.parent_id)
            if parent_org is not None:
                parent = OrganizationSummary.model_validate(parent_org)

        children = await self.organizations.list_children([org.id])
        member_count = await self.memberships.count_active(org.id)

        return OrganizationDetailResponse(
            **OrganizationResponse.model_validate(org).model_dump(),
            parent=parent,
            children=[OrganizationSummary.model_validate(child) for child in children],
            active_member_count=member_count,
        )

    async def list_organizations(
        self,
        type: OrganizationType | None = None,
        status: OrganizationStatus | None = None,
        search: str | None = None,
        parent_id: UUID | None = None,
        roots_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> OrganizationListResponse:
        orgs, total = await self.organizations.search(
            type=type,
            status=status,
            search=search,
            parent_id=parent_id,
            roots_only=roots_only,
            limit=limit,
            offset=offset,
        )
        ids = [org.id for org in orgs]
        parents = await self.organizations.get_many(
            {org.parent_id for org in orgs if org.parent_id is not None}
        )
        member_counts = await self.memberships.active_counts(ids)
        child_counts = await self.organizations.active_child_counts(ids)

        items = [
            OrganizationListItem(
                **OrganizationResponse.model_validate(org).model_dump(),
                parent=(
                    OrganizationSummary.model_validate(parents[org.parent_id])
                    if org.parent_id in parents
                    else None
                ),
                active_member_count=member_counts.get(org.id, 0),
                child_count=child_counts.get(org.id, 0),
            )
            for org in orgs
        ]
        return OrganizationListResponse(organizations=items, total=total, limit=limit, offset=offset)

    async def get_stats(self, org_id: UUID) -> OrganizationStatsResponse:
        org = await self._get(org_id)
        by_role = await self.memberships.active_role_counts(org.id)
        children = await self.organizations.count_active_children(org.id)
        return OrganizationStatsResponse(
            organization_id=org.id,
            members=MemberCounts(total=sum(by_role.values()), by_role=by_role),
            children=ChildCounts(total=children),
        )

    async def get_hierarchy(self, root_id: UUID | None = None) -> list[HierarchyNode]:
        """
        Materialize the active subtree under ``root_id``, or the whole forest.

        Built level by level with an explicit depth counter. Nodes deeper
        than the bound are left out; their parent is marked ``truncated``.
        """
        if root_id is not None:
            roots = [await self._get(root_id)]
        else:
            roots = await self.organizations.list_roots()

        levels: list[list[Organization]] = [roots]
        seen: set[UUID] = {org.id for org in roots}
        depth = 0
        while levels[-1] and depth < self.max_depth:
            children = await self.organizations.list_children([org.id for org in levels[-1]])
            next_level = []
            for child in children:
                if child.id in seen:
                    logger.warning("Organization %s reached twice while building hierarchy", child.id)
                    continue
                seen.add(child.id)
                next_level.append(child)
            levels.append(next_level)
            depth += 1

        all_ids = list(seen)
        member_counts = await self.memberships.active_counts(all_ids)
        split_totals = await self.memberships.active_split_totals(all_ids)
        child_counts = await self.organizations.active_child_counts(all_ids)

        nodes: dict[UUID, HierarchyNode] = {}
        for level_depth, level in enumerate(levels):
            for org in level:
                node = HierarchyNode(
                    id=org.id,
                    name=org.name,
                    type=org.type,
                    status=org.status,
                    parent_id=org.parent_id,
                    depth=level_depth,
                    active_member_count=member_counts.get(org.id, 0),
                    child_count=child_counts.get(org.id, 0),
                    total_split_percent=to_percent(split_totals.get(org.id)),
                )
                nodes[org.id] = node
                if level_depth > 0 and org.parent_id in nodes:
                    nodes[org.parent_id].children.append(node)

        for node in nodes.values():
            if node.child_count > len(node.children):
                node.truncated = True

        return [nodes[org.id] for org in roots]

    async def get_path(self, org_id: UUID) -> list[OrganizationSummary]:
        """Ancestor chain from the root down to ``org_id``."""
        path: list[Organization] = []
        visited: set[UUID] = set()
        current_id: UUID | None = org_id

        # The organization itself plus at most max_depth ancestors
        while current_id is not None and len(path) <= self.max_depth:
            org = await self.organizations.get(current_id)
            if org is None:
                if not path:
                    raise OrganizationNotFoundError(org_id)
                break
            if org.id in visited:
                if self.fail_closed:
                    raise CyclicHierarchyError(org_id, org.id)
                break
            visited.add(org.id)
            path.append(org)
            current_id = org.parent_id
        else:
            if current_id is not None and self.fail_closed:
                raise HierarchyDepthExceededError(org_id, self.max_depth)

        path.reverse()
        return [OrganizationSummary.model_validate(org) for org in path]

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    async def _get(self, org_id: UUID) -> Organization:
        org = await self.organizations.get(org_id)
        if org is None:
            raise OrganizationNotFoundError(org_id)
        return org

    async def _get_for_update(self, org_id: UUID) -> Organization:
        org = await self.organizations.get_for_update(org_id)
        if org is None:
            raise OrganizationNotFoundError(org_id)
        return org

    async def _check_reparent(self, org: Organization, new_parent_id: UUID | None) -> None:
        if new_parent_id is None:
            return
        if new_parent_id == org.id:
            raise SelfParentError(org.id)

        parent = await self.organizations.get(new_parent_id)
        if parent is None:
            raise ParentNotFoundError(new_parent_id)
        if not parent.is_active:
            raise OrganizationInactiveError(parent.id)

        if await self.cycles.would_create_cycle(new_parent_id, org.id):
            logger.warning("Rejected reparent of %s under %s: cycle", org.id, new_parent_id)
            raise CyclicHierarchyError(org.id, new_parent_id)

    async def _ensure_parent_active(self, org: Organization) -> None:
        if org.parent_id is None:
            return
        parent = await self.organizations.get(org.parent_id)
        if parent is not None and not parent.is_active:
            logger.warning("Rejected reactivation of %s: parent %s is inactive", org.id, parent.id)
            raise OrganizationInactiveError(parent.id)

    async def _ensure_deletable(self, org: Organization) -> None:
        children = await self.organizations.count_active_children(org.id)
        if children > 0:
            logger.warning("Rejected deactivation of %s: %s active children", org.id, children)
            raise HasActiveChildrenError(org.id, children)

        members = await self.memberships.count_active(org.id)
        if members > 0:
            logger.warning("Rejected deactivation of %s: %s active members", org.id, members)
            raise HasActiveMembersError(org.id, members)
